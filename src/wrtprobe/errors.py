"""Exceptions raised by the session and fact layers."""

from typing import Optional


class WrtProbeError(Exception):
    """Base class for every wrtprobe error."""


class ConnectError(WrtProbeError, ConnectionError):
    """Opening a session failed. The session is left disconnected."""

    def __init__(self, host: str, reason: str):
        self.host = host
        self.reason = reason
        super().__init__(f"Failed to connect to {host}: {reason}")


class HostUnreachableError(ConnectError):
    """The host did not answer the reachability probe."""

    def __init__(self, host: str):
        super().__init__(host, "host does not respond to ping")


class AuthenticationError(ConnectError):
    """SSH authentication or transport setup failed while connecting."""


class NotConnectedError(WrtProbeError):
    """An operation needed a live session and there is none."""

    def __init__(self, message: str = "Not connected to a router"):
        super().__init__(message)


class CommandTransportError(WrtProbeError):
    """A command could not be delivered or its output could not be read."""

    def __init__(self, command: str, reason: str, original: Optional[BaseException] = None):
        self.command = command
        self.reason = reason
        self.original = original
        super().__init__(f'Command "{command}" failed: {reason}')


class CommandTimeoutError(CommandTransportError):
    """A command did not finish within its timeout."""

    def __init__(self, command: str, timeout: float):
        self.timeout = timeout
        super().__init__(command, f"timed out after {timeout:g}s")
