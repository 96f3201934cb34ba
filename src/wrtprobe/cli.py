"""Command-line interface for inspecting and administering OpenWRT routers."""

import functools
import json
import logging
import os
import re
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

import click
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

from . import __version__
from .context import RouterContext
from .errors import WrtProbeError
from .facts import GROUPS, RouterFacts
from .inventory import filter_routers, get_descriptor, load_inventory, load_last_used, save_last_used
from .models import ActionResult, ServiceStatus
from .progress import spinner
from .ssh import ConnectionDescriptor

logger = logging.getLogger(__name__)


def _load_env_files() -> None:
    """Load environment variables from a .env file.

    Uses ./.env if present, otherwise lets python-dotenv search upwards.
    """
    cwd_env = Path.cwd() / ".env"
    if cwd_env.exists():
        load_dotenv(cwd_env)
    else:
        load_dotenv()


_load_env_files()

DASHBOARD_GROUPS = ("system", "stats", "network", "dhcp", "wireless")

STATUS_COLORS = {
    ServiceStatus.RUNNING: "green",
    ServiceStatus.STOPPED: "red",
    ServiceStatus.UNKNOWN: "yellow",
}


def parse_target(target: str) -> Dict[str, Any]:
    """
    Parse a target string into connection parameters.

    Supports:
    - IP address: 192.168.1.1
    - Hostname: router.local
    - IP:port: 192.168.1.1:2222
    - user@host: root@192.168.1.1
    - user@host:port: root@192.168.1.1:2222
    - IPv6 with port: [fd00::1]:2222

    Returns:
        Dictionary with host, port and username (None when not given)
    """
    result: Dict[str, Any] = {"host": target, "port": 22, "username": None}

    if "@" in target:
        user_part, target = target.split("@", 1)
        result["username"] = user_part

    if target.startswith("["):
        match = re.match(r"\[([^\]]+)\]:?(\d+)?", target)
        if match:
            result["host"] = match.group(1)
            if match.group(2):
                result["port"] = int(match.group(2))
    elif target.count(":") == 1:
        host, port = target.rsplit(":", 1)
        try:
            result["port"] = int(port)
            result["host"] = host
        except ValueError:
            # Not a valid port, treat the whole thing as hostname
            result["host"] = target
    else:
        result["host"] = target

    return result


def _state_path() -> Optional[Path]:
    path = os.environ.get("WRTPROBE_STATE_FILE")
    return Path(path) if path else None


@dataclass
class ConnectionOptions:
    """Connection settings gathered from the command line and environment."""

    target: Optional[str]
    password: Optional[str]
    key_file: Optional[str]
    timeout: float
    command_timeout: float
    inventory: Optional[str]
    tcp_check: bool

    def descriptor(self) -> ConnectionDescriptor:
        """Resolve the target through the inventory, the last-used state or a direct address."""
        if self.inventory and self.target:
            inventory = load_inventory(self.inventory)
            if self.target in inventory.routers:
                return get_descriptor(inventory, self.target, self.password)

        last = load_last_used(_state_path())
        target = self.target or last.host
        if not target:
            raise click.UsageError("No TARGET given and no previous connection to reuse")

        params = parse_target(target)
        username = params["username"]
        if username is None:
            username = last.username if last.host == params["host"] and last.username else "root"

        return ConnectionDescriptor(
            host=params["host"],
            port=params["port"],
            username=username,
            password=self.password,
            key_filename=self.key_file,
            connect_timeout=self.timeout,
            command_timeout=self.command_timeout,
            reachability="tcp" if self.tcp_check else "icmp",
        )


def connection_options(f: Callable[..., Any]) -> Callable[..., Any]:
    """Add TARGET and the connection options to a command."""

    @click.argument("target", required=False, envvar="WRTPROBE_TARGET")
    @click.option("-p", "--password", envvar="WRTPROBE_PASSWORD", help="SSH password")
    @click.option(
        "-k", "--key-file", type=click.Path(exists=True), envvar="WRTPROBE_KEY_FILE",
        help="SSH private key file"
    )
    @click.option(
        "-t", "--timeout", default=10.0, type=float, envvar="WRTPROBE_TIMEOUT",
        help="Connection timeout in seconds"
    )
    @click.option(
        "--command-timeout", default=30.0, type=float, envvar="WRTPROBE_COMMAND_TIMEOUT",
        help="Per-command timeout in seconds"
    )
    @click.option(
        "-i", "--inventory", type=click.Path(exists=True), envvar="WRTPROBE_INVENTORY",
        help="Router inventory YAML; TARGET may then be a router name"
    )
    @click.option("--tcp-check", is_flag=True, help="Check reachability with TCP instead of ping")
    @functools.wraps(f)
    def wrapper(
        target: Optional[str],
        password: Optional[str],
        key_file: Optional[str],
        timeout: float,
        command_timeout: float,
        inventory: Optional[str],
        tcp_check: bool,
        **kwargs: Any,
    ) -> Any:
        options = ConnectionOptions(
            target, password, key_file, timeout, command_timeout, inventory, tcp_check
        )
        return f(options, **kwargs)

    return wrapper


@contextmanager
def open_router(options: ConnectionOptions) -> Iterator[RouterFacts]:
    """Connect, yield RouterFacts, and always disconnect afterwards."""
    descriptor = options.descriptor()
    context = RouterContext()
    interactive = sys.stderr.isatty()

    with spinner(f"Connecting to {descriptor.host}", enabled=interactive):
        result = context.connect(descriptor)
    if not result.success:
        raise ConnectionError(result.message)

    try:
        save_last_used(descriptor.host, descriptor.username, _state_path())
    except OSError as e:
        logger.warning("Could not save last used router: %s", e)

    try:
        yield context.facts
    finally:
        context.disconnect()


def to_data(result: Any) -> Any:
    """Convert a report or action result to plain data."""
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json", exclude_none=True)
    return result


def format_text(data: Dict[str, Any]) -> str:
    """Format a report for the terminal: one titled block per field."""
    lines = []
    for key, value in data.items():
        lines.append("=" * 60)
        lines.append(key)
        lines.append("=" * 60)
        if isinstance(value, str):
            lines.append(value.rstrip())
        elif isinstance(value, list):
            if not value:
                lines.append("(none)")
            for item in value:
                if isinstance(item, dict):
                    lines.append("  " + "  ".join(f"{k}={v}" for k, v in item.items()))
                else:
                    lines.append(f"  {item}")
        elif isinstance(value, dict):
            for k, v in value.items():
                lines.append(f"  {k}: {v}")
        else:
            lines.append(str(value))
    return "\n".join(lines)


def render(result: Any, output_format: str) -> str:
    data = to_data(result)
    if output_format == "json":
        return json.dumps(data, indent=2)
    if output_format == "yaml":
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    if isinstance(data, dict):
        return format_text(data)
    return str(data)


def report_action(result: ActionResult) -> None:
    """Print an ActionResult and exit non-zero on failure."""
    if not result.success:
        click.echo(f"Error: {result.error}", err=True)
        sys.exit(1)
    if result.message:
        click.echo(result.message)
    for text in (result.output, result.update_output, result.upgradable):
        if text and text.strip():
            click.echo(text.rstrip())


def run_action(options: ConnectionOptions, action: Callable[[RouterFacts], ActionResult]) -> None:
    """Connect, run one mutating operation and report it."""
    try:
        with open_router(options) as facts:
            result = action(facts)
    except (ConnectionError, WrtProbeError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    report_action(result)


output_format_option = click.option(
    "-f",
    "--format",
    "output_format",
    type=click.Choice(["text", "json", "yaml"]),
    default="text",
    help="Output format (default: text)",
)


@click.group()
@click.version_option(version=__version__, prog_name="wrtprobe")
@click.option("-v", "--verbose", count=True, help="Log more (-v info, -vv debug)")
def cli(verbose: int) -> None:
    """wrtprobe - inspect and administer OpenWRT routers over SSH.

    TARGET is an address such as 192.168.1.1, root@router.local:2222, or a
    router name from the inventory. When omitted, the last router used is
    reused.

    Examples:

        \b
        # Check that a router is reachable and responsive
        wrtprobe check 192.168.1.1 -p secret

        \b
        # Show DHCP leases as JSON
        wrtprobe show dhcp 192.168.1.1 --format json

        \b
        # Restart dnsmasq
        wrtprobe service restart dnsmasq 192.168.1.1
    """
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@cli.command()
@connection_options
def check(options: ConnectionOptions) -> None:
    """Connect to a router and print a short summary."""
    try:
        with open_router(options) as facts:
            info = facts.get_system_info()
    except (ConnectionError, WrtProbeError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Hostname: {info.hostname}")
    click.echo(f"Model:    {info.model}")
    release = info.release_info.get("DESCRIPTION") or info.release.split("\n")[0]
    click.echo(f"Release:  {release}")


@cli.command()
@click.argument("group", type=click.Choice(sorted(GROUPS)))
@connection_options
@output_format_option
def show(options: ConnectionOptions, group: str, output_format: str) -> None:
    """Show one probe group.

    GROUP is one of the probe groups, e.g. system, network, dhcp, firewall.

    Examples:

        \b
        wrtprobe show network 192.168.1.1
        wrtprobe show firewall router.local --format yaml
    """
    try:
        with open_router(options) as facts:
            with spinner(f"Reading {group}", enabled=sys.stderr.isatty()):
                result = getattr(facts, GROUPS[group])()
    except (ConnectionError, WrtProbeError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(render(result, output_format))


@cli.command()
@connection_options
@click.option(
    "-g", "--groups", default=",".join(DASHBOARD_GROUPS), show_default=True,
    help="Comma-separated probe groups to fetch"
)
@click.option("-w", "--workers", default=4, show_default=True, help="Groups fetched in parallel")
@output_format_option
def dashboard(options: ConnectionOptions, groups: str, workers: int, output_format: str) -> None:
    """Fetch several probe groups at once."""
    names = [name.strip() for name in groups.split(",") if name.strip()]
    unknown = [name for name in names if name not in GROUPS]
    if unknown:
        raise click.BadParameter(f"unknown groups: {', '.join(unknown)}", param_hint="--groups")

    try:
        with open_router(options) as facts:
            with spinner(f"Reading {len(names)} groups", enabled=sys.stderr.isatty()):
                results = facts.collect(names, max_workers=workers)
    except (ConnectionError, WrtProbeError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output_format == "text":
        for name, result in results.items():
            click.echo(click.style(f"# {name}", bold=True))
            click.echo(render(result, "text"))
            click.echo()
    else:
        click.echo(render({name: to_data(result) for name, result in results.items()}, output_format))


@cli.command()
@connection_options
@click.option("--no-color", is_flag=True, help="Disable colored output")
def services(options: ConnectionOptions, no_color: bool) -> None:
    """List init.d services and whether they are running."""
    try:
        with open_router(options) as facts:
            with spinner("Reading services", enabled=sys.stderr.isatty()) as s:
                info = facts.get_services(on_service=lambda name, _: s.step(name))
    except (ConnectionError, WrtProbeError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if info.error:
        click.echo(f"Error: {info.error}", err=True)
        sys.exit(1)

    use_color = not no_color and sys.stdout.isatty()
    width = max((len(name) for name in info.services), default=0)
    for name, status in info.services.items():
        label = status.value
        if use_color:
            label = click.style(label, fg=STATUS_COLORS[status])
        click.echo(f"{name.ljust(width)}  {label}")


@cli.command()
@click.argument("action", type=click.Choice(["start", "stop", "restart", "enable", "disable"]))
@click.argument("name")
@connection_options
def service(options: ConnectionOptions, action: str, name: str) -> None:
    """Start, stop, restart, enable or disable an init.d service.

    Examples:

        \b
        wrtprobe service restart dnsmasq 192.168.1.1
        wrtprobe service disable uhttpd router.local
    """
    run_action(options, lambda facts: getattr(facts, f"{action}_service")(name))


@cli.command()
@click.argument("action", type=click.Choice(["install", "remove", "upgrade"]))
@click.argument("name")
@connection_options
def package(options: ConnectionOptions, action: str, name: str) -> None:
    """Install, remove or upgrade an opkg package."""
    run_action(options, lambda facts: getattr(facts, f"{action}_package")(name))


@cli.command("update-packages")
@connection_options
def update_packages(options: ConnectionOptions) -> None:
    """Refresh the package lists and show upgradable packages."""
    run_action(options, lambda facts: facts.update_packages())


@cli.command("firewall-add")
@click.argument("rule")
@connection_options
def firewall_add(options: ConnectionOptions, rule: str) -> None:
    """Append an iptables rule. RULE is passed to iptables verbatim.

    Put RULE after -- because it starts with a dash.

    Examples:

        \b
        wrtprobe firewall-add -- "-A INPUT -p tcp --dport 8080 -j ACCEPT" 192.168.1.1
    """
    run_action(options, lambda facts: facts.add_firewall_rule(rule))


@cli.command("firewall-delete")
@click.argument("chain")
@click.argument("index", type=int)
@connection_options
def firewall_delete(options: ConnectionOptions, chain: str, index: int) -> None:
    """Delete rule number INDEX from CHAIN."""
    run_action(options, lambda facts: facts.delete_firewall_rule(chain, index))


@cli.command("uci-set")
@click.argument("section")
@click.argument("option")
@click.argument("value")
@connection_options
def uci_set(options: ConnectionOptions, section: str, option: str, value: str) -> None:
    """Set SECTION.OPTION to VALUE and commit.

    Examples:

        \b
        wrtprobe uci-set system.@system[0] hostname gateway 192.168.1.1
    """
    run_action(options, lambda facts: facts.set_uci_config(section, option, value))


@cli.command()
@connection_options
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation prompt")
def reboot(options: ConnectionOptions, yes: bool) -> None:
    """Reboot the router. Returns as soon as the reboot was requested."""
    if not yes and not click.confirm("Reboot the router now?"):
        click.echo("Aborted.")
        return
    run_action(options, lambda facts: facts.reboot())


@cli.command()
@connection_options
@click.option("--path", "remote_path", default="/tmp/backup.tar.gz", show_default=True,
              help="Archive path on the router")
@click.option("--download", type=click.Path(dir_okay=False), help="Copy the archive to this local file")
def backup(options: ConnectionOptions, remote_path: str, download: Optional[str]) -> None:
    """Create a configuration backup archive on the router."""
    try:
        with open_router(options) as facts:
            result = facts.backup_config(remote_path)
            if result.success and download:
                facts.session.download(remote_path, download)
                result.message = f"{result.message}, saved to {download}"
    except (ConnectionError, WrtProbeError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    report_action(result)


@cli.command("clear-logs")
@connection_options
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation prompt")
def clear_logs(options: ConnectionOptions, yes: bool) -> None:
    """Clear the system log buffer and /var/log/messages."""
    if not yes and not click.confirm("Clear the router's logs?"):
        click.echo("Aborted.")
        return
    run_action(options, lambda facts: facts.clear_logs())


@cli.command()
@click.option(
    "-i", "--inventory", type=click.Path(exists=True), envvar="WRTPROBE_INVENTORY",
    required=True, help="Router inventory YAML"
)
@click.option("--match", "pattern", help="Router name or glob pattern")
@click.option("--tag", "tags", multiple=True, help="Only routers carrying this tag (repeatable)")
def routers(inventory: str, pattern: Optional[str], tags: tuple) -> None:
    """List routers in an inventory file."""
    try:
        found = filter_routers(load_inventory(inventory), pattern, list(tags) or None)
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for name, router in found.items():
        tag_text = f"  [{', '.join(router.tags)}]" if router.tags else ""
        click.echo(f"{name}: {router.host}{tag_text}")


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
