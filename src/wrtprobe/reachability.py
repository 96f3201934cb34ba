"""Host reachability checks run before an SSH session is opened."""

import logging
import math
import socket
import subprocess
import sys
from typing import List

logger = logging.getLogger(__name__)


def _ping_command(host: str, timeout: float) -> List[str]:
    """Build a single-echo ping command line for the local platform."""
    if sys.platform.startswith("win"):
        return ["ping", "-n", "1", "-w", str(int(timeout * 1000)), host]
    if sys.platform == "darwin":
        # macOS takes -W in milliseconds
        return ["ping", "-c", "1", "-W", str(int(timeout * 1000)), host]
    return ["ping", "-c", "1", "-W", str(max(1, math.ceil(timeout))), host]


def check_tcp_port(host: str, port: int, timeout: float = 2.0) -> bool:
    """
    Check if a host accepts TCP connections on a port.

    Args:
        host: Host to check
        port: Port to connect to (usually the SSH port)
        timeout: Connection timeout in seconds

    Returns:
        True if the connection was accepted, False otherwise
    """
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def ping_host(host: str, port: int = 22, timeout: float = 2.0) -> bool:
    """
    Send one ICMP echo request with the system ping binary.

    When ping cannot be started (missing or not permitted) the check
    degrades to a TCP connect on ``port``.

    Args:
        host: Host to ping
        port: Port used by the TCP fallback
        timeout: Seconds to wait for the echo reply

    Returns:
        True if the host answered, False otherwise
    """
    command = _ping_command(host, timeout)
    try:
        completed = subprocess.run(
            command,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=timeout + 2,
            check=False,
        )
    except OSError as e:
        logger.warning("ping unavailable (%s), probing %s:%d over TCP", e, host, port)
        return check_tcp_port(host, port, timeout)
    except subprocess.TimeoutExpired:
        return False

    return completed.returncode == 0


def is_reachable(host: str, port: int = 22, method: str = "icmp", timeout: float = 2.0) -> bool:
    """
    Check whether a host is reachable using the given method.

    Args:
        host: Host to check
        port: SSH port, used by the TCP method
        method: "icmp" or "tcp"
        timeout: Probe timeout in seconds

    Returns:
        True if the host responded
    """
    if method == "tcp":
        return check_tcp_port(host, port, timeout)
    if method == "icmp":
        return ping_host(host, port, timeout)
    raise ValueError(f"Unknown reachability method: {method}")
