"""Typed records produced from router command output."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .results import is_error_text


class ServiceStatus(str, Enum):
    """State of an init.d service."""

    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


class NetworkInterface(BaseModel):
    """An interface from ``ip addr show``."""

    name: str
    ip: str = "N/A"
    subnet_mask: str = "N/A"
    status: str = "DOWN"


class DHCPLease(BaseModel):
    """A line of the dnsmasq lease file."""

    lease_expiry: int  # Unix timestamp
    mac: str
    ip: str
    hostname: str


class FirewallRule(BaseModel):
    """A numbered row of ``iptables -L --line-numbers``."""

    chain_name: str
    rule_index: int
    target: str
    protocol: str
    source: str
    destination: str


class Package(BaseModel):
    """An installed opkg package."""

    name: str
    installed_version: str
    available_version: Optional[str] = None


class WirelessNetwork(BaseModel):
    """A wireless interface and its SSID as reported by iwinfo."""

    interface: str
    ssid: str


class ProcessEntry(BaseModel):
    """A row of busybox ``ps``."""

    pid: int
    user: str
    vsz: str
    stat: str
    command: str


class Report(BaseModel):
    """Base for probe group results. Raw text fields are always present."""

    def failed_fields(self) -> List[str]:
        """Names of the fields that hold an inline error."""
        return [name for name, value in self if is_error_text(value)]


class SystemInfo(Report):
    release: str
    version: str
    uptime: str
    hostname: str
    model: str
    release_info: Dict[str, str] = Field(default_factory=dict)


class SystemStats(Report):
    memory: str
    load: str
    disk: str
    processes: str
    temperature: str
    cpu: str
    time: str


class NetworkInfo(Report):
    interfaces: str
    routes: str
    dns: str
    arp: str
    connections: str
    parsed_interfaces: List[NetworkInterface] = Field(default_factory=list)


class WirelessInfo(Report):
    status: str
    config: str
    clients: str
    scan: str
    networks: List[WirelessNetwork] = Field(default_factory=list)


class DHCPInfo(Report):
    leases: str
    config: str
    stats: str
    hosts: str
    parsed_leases: List[DHCPLease] = Field(default_factory=list)


class FirewallInfo(Report):
    status: str
    rules: str
    zones: str
    traffic: str
    config: str
    parsed_rules: List[FirewallRule] = Field(default_factory=list)


class PackageInfo(Report):
    installed: str
    upgradable: str
    all: str
    config: str
    space: str
    packages: List[Package] = Field(default_factory=list)


class LogsInfo(Report):
    system: str
    kernel: str
    messages: str
    debug: str
    auth: str


class ServicesInfo(BaseModel):
    """Service name to status. ``error`` is set when the listing failed."""

    services: Dict[str, ServiceStatus] = Field(default_factory=dict)
    error: Optional[str] = None


class CommandOutput(BaseModel):
    """Output of a single-command accessor."""

    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    processes: Optional[List[ProcessEntry]] = None


class ActionResult(BaseModel):
    """
    Outcome of a mutating operation.

    ``success`` means the command was delivered and returned. It does not
    mean the change took effect on the router.
    """

    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None
    exit_code: Optional[int] = None
    update_output: Optional[str] = None
    upgradable: Optional[str] = None


class ConnectResult(BaseModel):
    """Outcome of a connect request from the orchestration layer."""

    success: bool
    message: str
    host: Optional[str] = None


