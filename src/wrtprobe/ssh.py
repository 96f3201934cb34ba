"""SSH session management for remote OpenWRT devices."""

import logging
import socket
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Literal, Optional, Sequence, Tuple

import paramiko
from pydantic import BaseModel, ConfigDict, Field

from .errors import (
    AuthenticationError,
    CommandTimeoutError,
    CommandTransportError,
    HostUnreachableError,
    NotConnectedError,
)
from .reachability import is_reachable

logger = logging.getLogger(__name__)

CANARY_COMMAND = 'echo "Connection Test OK"'
CANARY_MARKER = "Connection Test OK"

# Seconds to wait for the pre-connect reachability probe
REACHABILITY_TIMEOUT = 2.0

# Channel polling while a command runs
POLL_INTERVAL = 0.05
READ_CHUNK = 32768

# stderr fragments that are expected noise when probing optional tools
BENIGN_STDERR_PATTERNS = (
    "WARNING:",
    "Warning:",
    "deprecated",
    "not found",
)

Reachability = Callable[[str, int, str, float], bool]


class SessionState(str, Enum):
    """Lifecycle state of a RemoteSession."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionDescriptor(BaseModel):
    """Everything needed to open a session to one router."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., description="Router hostname or IP address")
    username: str = Field(default="root", description="SSH username")
    password: Optional[str] = Field(default=None, repr=False, description="SSH password")
    key_filename: Optional[str] = Field(default=None, description="SSH private key file")
    port: int = Field(default=22, description="SSH port")
    connect_timeout: float = Field(default=10.0, gt=0, description="Connect timeout in seconds")
    command_timeout: float = Field(default=30.0, gt=0, description="Default per-command timeout")
    reachability: Literal["icmp", "tcp"] = Field(
        default="icmp", description="How to check the host is alive before connecting"
    )


@dataclass(frozen=True)
class CommandResult:
    """Output of one remote command."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def is_benign_stderr(stderr: str) -> bool:
    """Return True if stderr only carries known, expected noise."""
    return any(pattern in stderr for pattern in BENIGN_STDERR_PATTERNS)


def read_channel(channel: paramiko.Channel, deadline: float) -> Tuple[str, str, int]:
    """
    Drain a command channel until the command exits.

    Output is collected as it arrives. The deadline bounds the whole
    command, not just the gaps between reads, so a command that never stops
    writing is still cut off.

    Args:
        channel: Channel returned by exec_command
        deadline: time.monotonic() value after which to give up

    Returns:
        Decoded stdout, decoded stderr and the exit code

    Raises:
        socket.timeout: The deadline passed before the command exited
    """
    out = bytearray()
    err = bytearray()
    while True:
        busy = False
        if channel.recv_ready():
            out += channel.recv(READ_CHUNK)
            busy = True
        if channel.recv_stderr_ready():
            err += channel.recv_stderr(READ_CHUNK)
            busy = True
        if channel.exit_status_ready() and not channel.recv_ready() and not channel.recv_stderr_ready():
            break
        if time.monotonic() >= deadline:
            raise socket.timeout("command did not finish before its deadline")
        if not busy:
            time.sleep(POLL_INTERVAL)

    return (
        out.decode("utf-8", errors="replace"),
        err.decode("utf-8", errors="replace"),
        channel.recv_exit_status(),
    )


class RemoteSession:
    """
    One authenticated SSH connection to a router.

    Commands are serialized through a lock, so a session can be shared by
    several threads without interleaving their output.
    """

    def __init__(
        self,
        reachability: Reachability = is_reachable,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ):
        """
        Initialize a disconnected session.

        Args:
            reachability: Callable(host, port, method, timeout) -> bool used
                before authenticating
            client_factory: Builds the paramiko client for each connect
        """
        self._reachability = reachability
        self._client_factory = client_factory
        self._client: Optional[paramiko.SSHClient] = None
        self._descriptor: Optional[ConnectionDescriptor] = None
        self._state = SessionState.DISCONNECTED
        self._lock = threading.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def descriptor(self) -> Optional[ConnectionDescriptor]:
        return self._descriptor

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    def connect(self, descriptor: ConnectionDescriptor) -> None:
        """
        Open the session.

        Checks reachability, authenticates, then runs a canary command.
        Any failure leaves the session disconnected.

        Args:
            descriptor: Connection parameters

        Raises:
            HostUnreachableError: The host did not answer the reachability probe
            AuthenticationError: Authentication, transport or canary failure
        """
        if self._state is not SessionState.DISCONNECTED:
            logger.info("Replacing existing session to %s", self._descriptor and self._descriptor.host)
            self.dispose()

        host = descriptor.host
        self._state = SessionState.CONNECTING
        self._descriptor = descriptor

        logger.info("Trying %s:%d", host, descriptor.port)
        probe_timeout = min(REACHABILITY_TIMEOUT, descriptor.connect_timeout)
        try:
            reachable = self._reachability(host, descriptor.port, descriptor.reachability, probe_timeout)
        except Exception as e:
            logger.warning("Reachability check for %s failed: %s", host, e)
            self._reset()
            raise HostUnreachableError(host) from e
        if not reachable:
            self._reset()
            raise HostUnreachableError(host)

        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=host,
                port=descriptor.port,
                username=descriptor.username,
                password=descriptor.password,
                key_filename=descriptor.key_filename,
                timeout=descriptor.connect_timeout,
                banner_timeout=descriptor.connect_timeout,
                auth_timeout=descriptor.connect_timeout,
                look_for_keys=descriptor.password is None,
            )
        except (paramiko.SSHException, OSError, EOFError) as e:
            client.close()
            self._reset()
            raise AuthenticationError(host, f"SSH: {e}") from e

        self._client = client
        logger.info("SSH connected to %s", host)

        try:
            result = self._execute(client, CANARY_COMMAND, descriptor.connect_timeout)
        except CommandTransportError as e:
            self._reset()
            raise AuthenticationError(host, f"shell did not respond: {e.reason}") from e

        if CANARY_MARKER not in result.stdout:
            self._reset()
            raise AuthenticationError(host, "shell did not echo the connection test")

        self._state = SessionState.CONNECTED
        logger.info("Connected to %s", host)

    def run(self, command: str, timeout: Optional[float] = None) -> CommandResult:
        """
        Execute a command on the router.

        A non-zero exit code or stderr output is returned as data.

        Args:
            command: Shell command, sent verbatim
            timeout: Seconds the whole command may take (default:
                descriptor's command_timeout)

        Returns:
            The command's stdout, stderr and exit code

        Raises:
            NotConnectedError: The session is not connected
            CommandTimeoutError: The command did not finish in time. Its
                channel is closed and the session stays usable.
            CommandTransportError: The command could not be run or read
        """
        with self._lock:
            client, descriptor = self._client, self._descriptor
            if self._state is not SessionState.CONNECTED or client is None or descriptor is None:
                raise NotConnectedError()
            return self._execute(client, command, timeout or descriptor.command_timeout)

    def run_first(self, alternatives: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
        """
        Run a fallback chain of commands.

        Returns the first result that exits 0 with output. If none has
        output, returns the first one that exited 0, else the last result.

        Args:
            alternatives: Commands in order of preference
            timeout: Per-command timeout

        Returns:
            The selected CommandResult
        """
        if not alternatives:
            raise ValueError("run_first needs at least one command")

        results: List[CommandResult] = []
        for command in alternatives:
            result = self.run(command, timeout)
            if result.ok and result.stdout.strip():
                return result
            results.append(result)
            logger.debug("No output from %r (exit %d), trying next alternative", command, result.exit_code)

        return next((result for result in results if result.ok), results[-1])

    def download(self, remote_path: str, local_path: str) -> None:
        """
        Copy a file from the router over SFTP.

        Args:
            remote_path: Path on the router
            local_path: Destination path on this machine
        """
        with self._lock:
            if self._state is not SessionState.CONNECTED or self._client is None:
                raise NotConnectedError()
            try:
                sftp = self._client.open_sftp()
                try:
                    sftp.get(remote_path, local_path)
                finally:
                    sftp.close()
            except (paramiko.SSHException, OSError, EOFError) as e:
                raise CommandTransportError(f"sftp get {remote_path}", str(e), e) from e

    def dispose(self) -> None:
        """Close the connection. Safe to call at any time, any number of times."""
        with self._lock:
            self._reset()

    def _execute(self, client: paramiko.SSHClient, command: str, timeout: float) -> CommandResult:
        channel: Optional[paramiko.Channel] = None
        try:
            _, stdout, _ = client.exec_command(command, timeout=timeout)
            channel = stdout.channel
            out, err, exit_code = read_channel(channel, time.monotonic() + timeout)
        except socket.timeout as e:
            self._abandon(channel)
            raise CommandTimeoutError(command, timeout) from e
        except (paramiko.SSHException, OSError, EOFError) as e:
            self._abandon(channel)
            raise CommandTransportError(command, str(e) or type(e).__name__, e) from e

        if err.strip():
            if is_benign_stderr(err):
                logger.debug("Command %r wrote to stderr: %s", command, err.strip())
            else:
                logger.warning("Command %r wrote to stderr: %s", command, err.strip())

        return CommandResult(stdout=out, stderr=err, exit_code=exit_code)

    def _abandon(self, channel: Optional[paramiko.Channel]) -> None:
        """Close the channel of a failed command, then check the connection."""
        if channel is not None:
            try:
                channel.close()
            except (paramiko.SSHException, OSError, EOFError) as e:
                logger.debug("Error while closing channel: %s", e)
        self._check_transport()

    def _check_transport(self) -> None:
        """Drop the session if paramiko reports the connection as gone."""
        if self._client is None or self._state is not SessionState.CONNECTED:
            return
        transport = self._client.get_transport()
        if transport is None or not transport.is_active():
            logger.warning("SSH transport to %s dropped", self._descriptor and self._descriptor.host)
            self._reset()

    def _reset(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.debug("Error while closing SSH client: %s", e)
            self._client = None
        self._state = SessionState.DISCONNECTED

    def __enter__(self) -> "RemoteSession":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.dispose()
