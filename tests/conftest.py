"""Shared fakes for the session layer.

FakeClient stands in for paramiko.SSHClient. It answers commands from a
dict of command -> (stdout, stderr, exit_code), a FakeChannel, or an
exception to raise.
Unknown commands behave like a missing tool.
"""

from typing import Callable, Dict, List, Optional, Union

import pytest

from wrtprobe.ssh import CANARY_COMMAND, ConnectionDescriptor, RemoteSession

Response = Union[tuple, "FakeChannel", BaseException]


class FakeTransport:
    def __init__(self, active: bool = True):
        self.active = active

    def is_active(self) -> bool:
        return self.active


class FakeChannel:
    """A command channel. ``hang`` never exits; ``recv_error`` is raised on read."""

    def __init__(
        self,
        stdout: str = "",
        stderr: str = "",
        exit_code: int = 0,
        hang: bool = False,
        recv_error: Optional[BaseException] = None,
    ):
        self._out = stdout.encode("utf-8")
        self._err = stderr.encode("utf-8")
        self.exit_code = exit_code
        self.hang = hang
        self.recv_error = recv_error
        self.closed = False

    def recv_ready(self) -> bool:
        return bool(self._out) or self.recv_error is not None

    def recv(self, size: int) -> bytes:
        if self.recv_error is not None:
            raise self.recv_error
        chunk, self._out = self._out[:size], self._out[size:]
        return chunk

    def recv_stderr_ready(self) -> bool:
        return bool(self._err)

    def recv_stderr(self, size: int) -> bytes:
        chunk, self._err = self._err[:size], self._err[size:]
        return chunk

    def exit_status_ready(self) -> bool:
        return not self.hang

    def recv_exit_status(self) -> int:
        return self.exit_code

    def close(self) -> None:
        self.closed = True


class FakeStream:
    def __init__(self, channel: FakeChannel):
        self.channel = channel


class FakeClient:
    def __init__(self, responses: Optional[Dict[str, Response]] = None, canary: str = "Connection Test OK\n"):
        self.responses = responses or {}
        self.canary = canary
        self.commands: List[str] = []
        self.timeouts: List[Optional[float]] = []
        self.channels: List[FakeChannel] = []
        self.connect_kwargs: Optional[dict] = None
        self.connect_error: Optional[BaseException] = None
        self.transport = FakeTransport()
        self.closed = False

    def set_missing_host_key_policy(self, policy) -> None:
        self.policy = policy

    def connect(self, **kwargs) -> None:
        self.connect_kwargs = kwargs
        if self.connect_error is not None:
            raise self.connect_error

    def exec_command(self, command: str, timeout: Optional[float] = None):
        self.commands.append(command)
        self.timeouts.append(timeout)
        if command == CANARY_COMMAND:
            response: Response = (self.canary, "", 0)
        else:
            response = self.responses.get(command, ("", f"sh: {command.split()[0]}: not found\n", 127))
        if isinstance(response, BaseException):
            raise response
        channel = response if isinstance(response, FakeChannel) else FakeChannel(*response)
        self.channels.append(channel)
        return None, FakeStream(channel), FakeStream(channel)

    def get_transport(self) -> FakeTransport:
        return self.transport

    def close(self) -> None:
        self.closed = True

    @property
    def sent(self) -> List[str]:
        """Commands sent after the connection canary."""
        return [command for command in self.commands if command != CANARY_COMMAND]


@pytest.fixture
def descriptor() -> ConnectionDescriptor:
    return ConnectionDescriptor(host="192.168.1.1", password="secret")


@pytest.fixture
def make_session(descriptor) -> Callable[..., RemoteSession]:
    """Build a connected RemoteSession backed by a FakeClient.

    The client is available as ``session.fake``.
    """

    def factory(responses: Optional[Dict[str, Response]] = None) -> RemoteSession:
        client = FakeClient(responses)
        session = RemoteSession(reachability=lambda *args: True, client_factory=lambda: client)
        session.connect(descriptor)
        session.fake = client  # type: ignore[attr-defined]
        return session

    return factory
