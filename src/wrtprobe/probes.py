"""Catalogue of the shell commands each probe group sends to the router."""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class Probe:
    """
    One named field of a probe group.

    ``commands`` are alternatives tried in order until one produces
    output. ``fallback`` replaces the field text when none of them exits
    successfully.
    """

    name: str
    commands: Tuple[str, ...]
    fallback: Optional[str] = None
    strip: bool = False


def _probes(*probes: Probe) -> Dict[str, Probe]:
    return {probe.name: probe for probe in probes}


SYSTEM_INFO = _probes(
    Probe("release", ("cat /etc/openwrt_release",), strip=True),
    Probe("version", ("cat /proc/version",), strip=True),
    Probe("uptime", ("cat /proc/uptime && uptime",), strip=True),
    Probe(
        "hostname",
        (
            "uci get system.@system[0].hostname",
            "hostname",
            "cat /proc/sys/kernel/hostname",
        ),
        strip=True,
    ),
    Probe(
        "model",
        ("cat /tmp/sysinfo/model", "grep machine /proc/cpuinfo"),
        fallback="Model not detected",
        strip=True,
    ),
)

SYSTEM_STATS = _probes(
    Probe("memory", ("free -m",)),
    Probe("load", ("cat /proc/loadavg",)),
    Probe("disk", ("df -h",)),
    Probe("processes", ("ps | wc -l",)),
    Probe("temperature", ("cat /sys/class/thermal/thermal_zone*/temp",), fallback="N/A"),
    Probe("cpu", ('top -bn1 | grep "CPU:" | head -1',)),
    Probe("time", ("date",)),
)

NETWORK_INFO = _probes(
    Probe("interfaces", ("ip addr show",)),
    Probe("routes", ("ip route show",)),
    Probe("dns", ("cat /tmp/resolv.conf.auto", "cat /etc/resolv.conf")),
    Probe("arp", ("ip neigh show",)),
    Probe("connections", ("netstat -tunap", "ss -tunap")),
)

WIRELESS_INFO = _probes(
    Probe("status", ("iwinfo", "wifi status")),
    Probe("config", ("uci show wireless",)),
    Probe("clients", ("iwinfo", "iw dev"), fallback="Wireless not available"),
    Probe("scan", ("iwinfo scan", "iw dev wlan0 scan"), fallback="Scan not available"),
)

DHCP_INFO = _probes(
    Probe("leases", ("cat /tmp/dhcp.leases",), fallback="Lease file not found"),
    Probe("config", ("uci show dhcp",)),
    Probe("stats", ("cat /tmp/dnsmasq.status",), fallback="Status not available"),
    Probe("hosts", ("cat /etc/hosts",), fallback="Hosts file not found"),
)

FIREWALL_INFO = _probes(
    Probe("status", ("iptables -L -n -v --line-numbers",)),
    Probe("rules", ("uci show firewall",)),
    Probe("zones", ("iptables -t nat -L -n -v",)),
    Probe("traffic", ("iptables -L -v -x -n",)),
    Probe("config", ("cat /etc/config/firewall",), fallback="Configuration not found"),
)

PACKAGE_INFO = _probes(
    Probe("installed", ("opkg list-installed",)),
    Probe("upgradable", ("opkg list-upgradable",)),
    Probe("all", ("opkg list | head -100",)),
    Probe(
        "config",
        ("cat /etc/opkg/customfeeds.conf /etc/opkg/distfeeds.conf",),
        fallback="Default configuration",
    ),
    Probe("space", ("df -h /overlay /tmp",)),
)

LOGS = _probes(
    Probe("system", ("logread -e", "dmesg | tail -50")),
    Probe("kernel", ("dmesg | tail -30",)),
    Probe(
        "messages",
        ("tail -50 /var/log/messages",),
        fallback="File /var/log/messages not found",
    ),
    Probe("debug", ("logread -l 100",), fallback="System logs not available"),
    Probe("auth", ("tail -30 /var/log/auth.log",), fallback="Authentication logs not available"),
)

# Single-command accessors
FILESYSTEM_COMMAND = 'df -h && echo "---" && ls -la /'
PROCESSES_COMMAND = "ps ww"
WIRELESS_CLIENTS_COMMANDS = ("iwinfo", "iw dev")
UCI_EXPORT_COMMAND = "uci export"
INTERFACE_DUMP_COMMAND = "ubus call network.interface dump"
INTERFACE_STATUS_FALLBACK = "ifstatus"

# Services
SERVICE_LIST_COMMAND = "ls /etc/init.d/"
INIT_SCRIPT = "/etc/init.d/{name}"

# Mutating operations
DEFAULT_BACKUP_PATH = "/tmp/backup.tar.gz"
CLEAR_LOGS_COMMAND = 'echo "" > /var/log/messages 2>/dev/null; logread -c 2>/dev/null; echo "Logs cleared"'
REBOOT_COMMAND = "reboot &"
