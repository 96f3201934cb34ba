"""wrtprobe - Read facts from and administer OpenWRT routers over SSH."""

__version__ = "0.1.0"

from .errors import (
    AuthenticationError,
    CommandTimeoutError,
    CommandTransportError,
    ConnectError,
    HostUnreachableError,
    NotConnectedError,
    WrtProbeError,
)
from .ssh import CommandResult, ConnectionDescriptor, RemoteSession, SessionState
from .facts import GROUPS, RouterFacts
from .context import RouterContext
from .models import (
    ActionResult,
    CommandOutput,
    ConnectResult,
    DHCPInfo,
    DHCPLease,
    FirewallInfo,
    FirewallRule,
    LogsInfo,
    NetworkInfo,
    NetworkInterface,
    Package,
    PackageInfo,
    ProcessEntry,
    ServicesInfo,
    ServiceStatus,
    SystemInfo,
    SystemStats,
    WirelessInfo,
    WirelessNetwork,
)
from .inventory import Inventory, RouterProfile, load_inventory

__all__ = [
    # Session
    "RemoteSession",
    "ConnectionDescriptor",
    "CommandResult",
    "SessionState",
    "RouterContext",
    # Facts
    "RouterFacts",
    "GROUPS",
    # Records and reports
    "NetworkInterface",
    "DHCPLease",
    "FirewallRule",
    "Package",
    "WirelessNetwork",
    "ProcessEntry",
    "ServiceStatus",
    "SystemInfo",
    "SystemStats",
    "NetworkInfo",
    "WirelessInfo",
    "DHCPInfo",
    "FirewallInfo",
    "PackageInfo",
    "LogsInfo",
    "ServicesInfo",
    "CommandOutput",
    "ActionResult",
    "ConnectResult",
    # Inventory
    "Inventory",
    "RouterProfile",
    "load_inventory",
    # Errors
    "WrtProbeError",
    "ConnectError",
    "HostUnreachableError",
    "AuthenticationError",
    "NotConnectedError",
    "CommandTransportError",
    "CommandTimeoutError",
]
