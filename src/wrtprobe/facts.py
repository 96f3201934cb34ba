"""Probe groups and administrative operations for an OpenWRT router."""

import json
import logging
import re
import shlex
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from . import probes
from .errors import WrtProbeError
from .models import (
    ActionResult,
    CommandOutput,
    DHCPInfo,
    FirewallInfo,
    LogsInfo,
    NetworkInfo,
    PackageInfo,
    ServicesInfo,
    ServiceStatus,
    SystemInfo,
    SystemStats,
    WirelessInfo,
)
from .parsers import (
    classify_service_status,
    parse_dhcp_leases,
    parse_firewall_rules,
    parse_interfaces,
    parse_packages,
    parse_processes,
    parse_release,
    parse_service_names,
    parse_wireless_networks,
)
from .probes import Probe
from .results import FieldResult, assemble, collect_fields
from .ssh import RemoteSession

logger = logging.getLogger(__name__)

# opkg and sysupgrade routinely outlive the default command timeout
SLOW_COMMAND_TIMEOUT = 300.0

_UCI_PATH = re.compile(r"^[A-Za-z0-9_@\[\]\-.]+$")

# Group name -> RouterFacts accessor
GROUPS: Dict[str, str] = {
    "system": "get_system_info",
    "stats": "get_system_stats",
    "network": "get_network_info",
    "interfaces": "get_interface_status",
    "wireless": "get_wireless_info",
    "dhcp": "get_dhcp_info",
    "firewall": "get_firewall_info",
    "packages": "get_package_info",
    "services": "get_services",
    "logs": "get_logs",
    "filesystem": "get_filesystem_info",
    "processes": "get_processes",
    "wireless-clients": "get_wireless_clients",
    "uci": "get_uci_config",
}

GroupResult = Union[BaseModel, Dict[str, Any]]


class RouterFacts:
    """
    Reads facts from and sends administrative commands to one router.

    Read-only accessors always return every field of their group. A field
    whose command failed holds an inline "Erro: ..." string. Mutating
    operations return an ActionResult instead of raising.
    """

    def __init__(self, session: RemoteSession):
        """
        Args:
            session: Connected session used for every command
        """
        self.session = session

    # --- probe plumbing ---------------------------------------------------

    def _probe(self, probe: Probe) -> FieldResult:
        result = self.session.run_first(probe.commands)
        if not result.ok and probe.fallback is not None:
            logger.debug("Probe %s fell back to notice (exit %d)", probe.name, result.exit_code)
            return FieldResult.success(probe.fallback, placeholder=True)
        text = result.stdout.strip() if probe.strip else result.stdout
        return FieldResult.success(text)

    def _run_group(self, group: Mapping[str, Probe]) -> Dict[str, FieldResult]:
        return collect_fields(group, lambda name: self._probe(group[name]))

    def _single(self, commands: Sequence[str]) -> CommandOutput:
        try:
            result = self.session.run_first(commands)
        except WrtProbeError as e:
            return CommandOutput(success=False, error=str(e))
        return CommandOutput(success=True, output=result.stdout)

    def _action(self, command: str, message: str, timeout: Optional[float] = None) -> ActionResult:
        try:
            result = self.session.run(command, timeout)
        except WrtProbeError as e:
            logger.error("Command %r failed: %s", command, e)
            return ActionResult(success=False, error=str(e))
        return ActionResult(
            success=True,
            output=result.stdout,
            message=message,
            exit_code=result.exit_code,
        )

    # --- read-only groups -------------------------------------------------

    def get_system_info(self) -> SystemInfo:
        """Release, kernel version, uptime, hostname and board model."""
        fields = self._run_group(probes.SYSTEM_INFO)
        release = fields["release"]
        return SystemInfo(
            **assemble(fields),
            release_info=parse_release(release.value) if release.parseable else {},
        )

    def get_system_stats(self) -> SystemStats:
        """Memory, load, disk, process count, temperature, CPU and clock."""
        return SystemStats(**assemble(self._run_group(probes.SYSTEM_STATS)))

    def get_network_info(self) -> NetworkInfo:
        """Addresses, routes, resolvers, neighbours and open connections."""
        fields = self._run_group(probes.NETWORK_INFO)
        interfaces = fields["interfaces"]
        return NetworkInfo(
            **assemble(fields),
            parsed_interfaces=parse_interfaces(interfaces.value) if interfaces.parseable else [],
        )

    def get_interface_status(self) -> Dict[str, Any]:
        """
        Logical interface status from ubus.

        Returns the decoded ``network.interface dump`` JSON. Falls back to
        ``{"raw": <ifstatus output>}`` and finally to ``{"error": message}``.
        """
        try:
            result = self.session.run(probes.INTERFACE_DUMP_COMMAND)
            data = json.loads(result.stdout)
            if isinstance(data, dict):
                return data
            logger.debug("ubus interface dump returned %s, falling back", type(data).__name__)
        except (WrtProbeError, ValueError) as e:
            logger.debug("ubus interface dump unavailable: %s", e)

        try:
            result = self.session.run(probes.INTERFACE_STATUS_FALLBACK)
        except WrtProbeError as e:
            return {"error": str(e)}
        return {"raw": result.stdout}

    def get_wireless_info(self) -> WirelessInfo:
        fields = self._run_group(probes.WIRELESS_INFO)
        status = fields["status"]
        return WirelessInfo(
            **assemble(fields),
            networks=parse_wireless_networks(status.value) if status.parseable else [],
        )

    def get_dhcp_info(self) -> DHCPInfo:
        fields = self._run_group(probes.DHCP_INFO)
        leases = fields["leases"]
        return DHCPInfo(
            **assemble(fields),
            parsed_leases=parse_dhcp_leases(leases.value) if leases.parseable else [],
        )

    def get_firewall_info(self) -> FirewallInfo:
        fields = self._run_group(probes.FIREWALL_INFO)
        status = fields["status"]
        return FirewallInfo(
            **assemble(fields),
            parsed_rules=parse_firewall_rules(status.value) if status.parseable else [],
        )

    def get_package_info(self) -> PackageInfo:
        fields = self._run_group(probes.PACKAGE_INFO)
        installed = fields["installed"]
        upgradable = fields["upgradable"]
        packages = []
        if installed.parseable:
            packages = parse_packages(
                installed.value, upgradable.value if upgradable.parseable else ""
            )
        return PackageInfo(**assemble(fields), packages=packages)

    def get_logs(self) -> LogsInfo:
        return LogsInfo(**assemble(self._run_group(probes.LOGS)))

    def get_service_status(self, name: str) -> ServiceStatus:
        """Status of one init.d service. Any failure yields UNKNOWN."""
        command = f"{probes.INIT_SCRIPT.format(name=shlex.quote(name))} status"
        try:
            result = self.session.run(command)
        except WrtProbeError as e:
            logger.debug("Status probe for %s failed: %s", name, e)
            return ServiceStatus.UNKNOWN
        return classify_service_status(result.stdout)

    def get_services(
        self, on_service: Optional[Callable[[str, ServiceStatus], None]] = None
    ) -> ServicesInfo:
        """
        List init.d services and classify each one's status.

        Args:
            on_service: Called with (name, status) after each service

        Returns:
            ServicesInfo; ``error`` is set if the service list itself failed
        """
        try:
            listing = self.session.run(probes.SERVICE_LIST_COMMAND)
        except WrtProbeError as e:
            logger.error("Could not list services: %s", e)
            return ServicesInfo(error=str(e))

        services: Dict[str, ServiceStatus] = {}
        for name in parse_service_names(listing.stdout):
            status = self.get_service_status(name)
            services[name] = status
            if on_service:
                on_service(name, status)
        return ServicesInfo(services=services)

    def get_filesystem_info(self) -> CommandOutput:
        return self._single((probes.FILESYSTEM_COMMAND,))

    def get_processes(self) -> CommandOutput:
        output = self._single((probes.PROCESSES_COMMAND,))
        if output.success and output.output is not None:
            output.processes = parse_processes(output.output)
        return output

    def get_wireless_clients(self) -> CommandOutput:
        return self._single(probes.WIRELESS_CLIENTS_COMMANDS)

    def get_uci_config(self) -> CommandOutput:
        """Full ``uci export`` dump."""
        return self._single((probes.UCI_EXPORT_COMMAND,))

    def collect(self, groups: Iterable[str], max_workers: int = 4) -> Dict[str, GroupResult]:
        """
        Fetch several probe groups concurrently.

        Each group runs on its own worker; the session serializes the
        commands themselves.

        Args:
            groups: Names from GROUPS
            max_workers: Maximum groups in flight

        Returns:
            Group name -> result, in the requested order
        """
        names = list(groups)
        unknown = [name for name in names if name not in GROUPS]
        if unknown:
            raise ValueError(f"Unknown probe groups: {', '.join(unknown)}")

        results: Dict[str, GroupResult] = {}
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(getattr(self, GROUPS[name])): name for name in names}
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        return {name: results[name] for name in names}

    # --- mutating operations ----------------------------------------------

    def add_firewall_rule(self, rule: str) -> ActionResult:
        """Run ``iptables <rule>``. The rule fragment is sent verbatim."""
        return self._action(f"iptables {rule}", "Firewall rule added")

    def delete_firewall_rule(self, chain: str, index: Union[int, str]) -> ActionResult:
        try:
            number = int(index)
        except (TypeError, ValueError):
            return ActionResult(success=False, error=f"Invalid rule index: {index}")
        if number < 1:
            return ActionResult(success=False, error=f"Invalid rule index: {index}")
        return self._action(f"iptables -D {shlex.quote(chain)} {number}", "Firewall rule deleted")

    def update_packages(self) -> ActionResult:
        """Refresh the opkg package lists and report what can be upgraded."""
        try:
            update = self.session.run("opkg update", SLOW_COMMAND_TIMEOUT)
            upgradable = self.session.run("opkg list-upgradable")
        except WrtProbeError as e:
            logger.error("Package list update failed: %s", e)
            return ActionResult(success=False, error=str(e))
        return ActionResult(
            success=True,
            update_output=update.stdout,
            upgradable=upgradable.stdout,
            message="Package lists updated",
            exit_code=update.exit_code,
        )

    def install_package(self, name: str) -> ActionResult:
        return self._action(
            f"opkg install {shlex.quote(name)}", f"Package {name} installed", SLOW_COMMAND_TIMEOUT
        )

    def remove_package(self, name: str) -> ActionResult:
        return self._action(
            f"opkg remove {shlex.quote(name)}", f"Package {name} removed", SLOW_COMMAND_TIMEOUT
        )

    def upgrade_package(self, name: str) -> ActionResult:
        return self._action(
            f"opkg upgrade {shlex.quote(name)}", f"Package {name} upgraded", SLOW_COMMAND_TIMEOUT
        )

    def _service_action(self, name: str, action: str, message: str) -> ActionResult:
        script = probes.INIT_SCRIPT.format(name=shlex.quote(name))
        return self._action(f"{script} {action}", message)

    def start_service(self, name: str) -> ActionResult:
        return self._service_action(name, "start", f"Service {name} started")

    def stop_service(self, name: str) -> ActionResult:
        return self._service_action(name, "stop", f"Service {name} stopped")

    def restart_service(self, name: str) -> ActionResult:
        return self._service_action(name, "restart", f"Service {name} restarted")

    def enable_service(self, name: str) -> ActionResult:
        return self._service_action(name, "enable", f"Service {name} enabled at boot")

    def disable_service(self, name: str) -> ActionResult:
        return self._service_action(name, "disable", f"Service {name} disabled at boot")

    def set_uci_config(self, section: str, option: str, value: str) -> ActionResult:
        """
        Set one UCI option and commit its package.

        Args:
            section: Section path, e.g. "network.lan" or "system.@system[0]"
            option: Option name, e.g. "ipaddr"
            value: New value

        Returns:
            ActionResult
        """
        if not _UCI_PATH.match(section) or not _UCI_PATH.match(option):
            return ActionResult(success=False, error=f"Invalid UCI path: {section}.{option}")

        package = section.split(".")[0]
        command = f"uci set {section}.{option}={shlex.quote(value)} && uci commit {package}"
        return self._action(command, f"{section}.{option} updated")

    def reboot(self) -> ActionResult:
        """
        Ask the router to reboot.

        The command is backgrounded, so this returns once the request was
        accepted and before the router goes down. The session will drop
        shortly after.
        """
        return self._action(probes.REBOOT_COMMAND, "System rebooting...")

    def backup_config(self, path: str = probes.DEFAULT_BACKUP_PATH) -> ActionResult:
        """Create a sysupgrade configuration backup archive on the router."""
        return self._action(
            f"sysupgrade -b {shlex.quote(path)}", f"Backup created at {path}", SLOW_COMMAND_TIMEOUT
        )

    def clear_logs(self) -> ActionResult:
        return self._action(probes.CLEAR_LOGS_COMMAND, "System logs cleared")
