"""Parsers that turn router command output into typed records.

Every function here is pure: text in, records out. None of them raise on
malformed lines; lines they cannot read are skipped.
"""

import re
from typing import Dict, List, Optional

from .models import (
    DHCPLease,
    FirewallRule,
    NetworkInterface,
    Package,
    ProcessEntry,
    ServiceStatus,
    WirelessNetwork,
)

_INTERFACE_HEADER = re.compile(r"^(\d+):\s+([^:\s]+):\s*(?:<([^>]*)>)?(.*)$")
_INET_LINE = re.compile(r"\binet (\d+\.\d+\.\d+\.\d+)/(\d+)")
_CHAIN_HEADER = re.compile(r"^Chain (\S+) \(")
_ESSID_LINE = re.compile(r"^(\S+)\s+ESSID:\s*(.*)$")

# Values of the iptables "opt" column
_IPTABLES_OPTS = {"--", "-f", "!f"}


def cidr_to_mask(prefix: int) -> str:
    """
    Convert a CIDR prefix length to a dotted-decimal subnet mask.

    Args:
        prefix: Prefix length, 0 to 32

    Returns:
        Mask such as "255.255.255.0"
    """
    if not 0 <= prefix <= 32:
        raise ValueError(f"Invalid IPv4 prefix length: {prefix}")
    bits = (0xFFFFFFFF << (32 - prefix)) & 0xFFFFFFFF
    return ".".join(str((bits >> shift) & 0xFF) for shift in (24, 16, 8, 0))


def parse_interfaces(output: str) -> List[NetworkInterface]:
    """
    Parse ``ip addr show`` output.

    Example output:
        1: lo: <LOOPBACK,UP,LOWER_UP> mtu 65536 qdisc noqueue state UNKNOWN
            link/loopback 00:00:00:00:00:00 brd 00:00:00:00:00:00
            inet 127.0.0.1/8 scope host lo
        4: br-lan: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500 state UP
            inet 192.168.1.1/24 brd 192.168.1.255 scope global br-lan

    The first IPv4 address of each block sets ip and subnet_mask.

    Returns: Interfaces in the order they appear
    """
    interfaces: List[NetworkInterface] = []
    current: Optional[NetworkInterface] = None

    for line in output.split("\n"):
        header = _INTERFACE_HEADER.match(line)
        if header:
            if current is not None:
                interfaces.append(current)
            name = header.group(2).split("@", 1)[0]
            flags = (header.group(3) or "").split(",")
            rest = header.group(4) or ""
            is_up = "UP" in flags or re.search(r"\bstate UP\b", rest) is not None
            current = NetworkInterface(name=name, status="UP" if is_up else "DOWN")
            continue

        if current is None or current.ip != "N/A":
            continue

        inet = _INET_LINE.search(line)
        if inet:
            prefix = int(inet.group(2))
            if prefix <= 32:
                current.ip = inet.group(1)
                current.subnet_mask = cidr_to_mask(prefix)

    if current is not None:
        interfaces.append(current)

    return interfaces


def parse_dhcp_leases(output: str) -> List[DHCPLease]:
    """
    Parse /tmp/dhcp.leases file output.

    Format: <expiry> <mac> <ip> <hostname> <client-id>
    Lines with fewer than four fields are skipped.
    """
    leases: List[DHCPLease] = []
    for line in output.strip().split("\n"):
        parts = line.split()
        if len(parts) < 4:
            continue
        try:
            expiry = int(parts[0])
        except ValueError:
            continue
        leases.append(DHCPLease(lease_expiry=expiry, mac=parts[1], ip=parts[2], hostname=parts[3]))
    return leases


def _parse_rule_row(chain: str, parts: List[str]) -> Optional[FirewallRule]:
    # The opt column anchors the row: with -v it sits at index 4 or 5,
    # without -v at 2 or 3, depending on whether the rule has a target.
    opt_index = next((i for i in range(2, 6) if i < len(parts) and parts[i] in _IPTABLES_OPTS), None)
    if opt_index is None:
        return None

    verbose = opt_index >= 4
    if verbose:
        target = parts[3] if opt_index == 5 else ""
        source_index = opt_index + 3
    else:
        target = parts[1] if opt_index == 3 else ""
        source_index = opt_index + 1

    if len(parts) <= source_index + 1:
        return None

    return FirewallRule(
        chain_name=chain,
        rule_index=int(parts[0]),
        target=target,
        protocol=parts[opt_index - 1],
        source=parts[source_index],
        destination=parts[source_index + 1],
    )


def parse_firewall_rules(output: str) -> List[FirewallRule]:
    """
    Parse ``iptables -L -n -v --line-numbers`` output.

    Example output:
        Chain INPUT (policy ACCEPT 0 packets, 0 bytes)
        num   pkts bytes target     prot opt in     out     source       destination
        1     1024  100K ACCEPT     all  --  lo     *       0.0.0.0/0    0.0.0.0/0

    Rows are attached to the most recent chain header. Rows seen before any
    header are ignored.
    """
    rules: List[FirewallRule] = []
    chain: Optional[str] = None

    for line in output.split("\n"):
        line = line.strip()

        chain_match = _CHAIN_HEADER.match(line)
        if chain_match:
            chain = chain_match.group(1)
            continue

        if chain is None or not line[:1].isdigit():
            continue

        rule = _parse_rule_row(chain, line.split())
        if rule is not None:
            rules.append(rule)

    return rules


def parse_packages(installed_output: str, upgradable_output: str = "") -> List[Package]:
    """
    Merge ``opkg list-installed`` and ``opkg list-upgradable`` output.

    Installed lines are ``name - version``; upgradable lines are
    ``name - current - available``.

    Returns: Installed packages, with available_version set when upgradable
    """
    available: Dict[str, str] = {}
    for line in upgradable_output.split("\n"):
        parts = [part.strip() for part in line.split(" - ")]
        if len(parts) >= 2 and parts[0]:
            available[parts[0]] = parts[-1]

    packages: List[Package] = []
    for line in installed_output.split("\n"):
        parts = [part.strip() for part in line.split(" - ")]
        if len(parts) >= 2 and parts[0]:
            packages.append(
                Package(
                    name=parts[0],
                    installed_version=parts[1],
                    available_version=available.get(parts[0]),
                )
            )
    return packages


def classify_service_status(output: str) -> ServiceStatus:
    """Classify ``/etc/init.d/<name> status`` output by keyword."""
    text = output.lower()
    if "not running" in text or "stopped" in text:
        return ServiceStatus.STOPPED
    if "running" in text or "started" in text:
        return ServiceStatus.RUNNING
    return ServiceStatus.UNKNOWN


def parse_service_names(output: str) -> List[str]:
    """Parse an ``ls /etc/init.d/`` listing into service names."""
    return [name.strip() for name in output.split("\n") if name.strip()]


def parse_release(output: str) -> Dict[str, str]:
    """
    Parse /etc/openwrt_release.

    Format: DISTRIB_ID='OpenWrt'
    Returns: Dict with the DISTRIB_ prefix removed, e.g. {"RELEASE": "23.05.3"}
    """
    info: Dict[str, str] = {}
    for line in output.split("\n"):
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip().replace("DISTRIB_", "", 1)
        if key:
            info[key] = value.strip().strip("'\"")
    return info


def parse_wireless_networks(output: str) -> List[WirelessNetwork]:
    """
    Parse ``iwinfo`` output.

    Example output:
        wlan0     ESSID: "MyNetwork"
                  Access Point: AA:BB:CC:DD:EE:FF
    """
    networks: List[WirelessNetwork] = []
    for line in output.split("\n"):
        match = _ESSID_LINE.match(line)
        if match:
            ssid = match.group(2).strip().strip('"')
            networks.append(WirelessNetwork(interface=match.group(1), ssid=ssid or "N/A"))
    return networks


def parse_processes(output: str) -> List[ProcessEntry]:
    """
    Parse busybox ``ps`` output.

    Example output:
          PID USER       VSZ STAT COMMAND
            1 root      1512 S    /sbin/procd
    """
    processes: List[ProcessEntry] = []
    for line in output.split("\n"):
        parts = line.split(None, 4)
        if len(parts) < 5 or not parts[0].isdigit():
            continue
        processes.append(
            ProcessEntry(
                pid=int(parts[0]),
                user=parts[1],
                vsz=parts[2],
                stat=parts[3],
                command=parts[4].strip(),
            )
        )
    return processes
