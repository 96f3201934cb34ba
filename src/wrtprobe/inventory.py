"""Router inventory files and the last-used connection prefill."""

import fnmatch
import logging
from pathlib import Path
from typing import Dict, List, Literal, Optional, Set

import yaml
from omegaconf import OmegaConf
from pydantic import BaseModel, Field

from .ssh import ConnectionDescriptor

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path.home() / ".config" / "wrtprobe" / "last_used.yaml"


class InventoryDefaults(BaseModel):
    """Default settings applied to every router in the inventory."""

    username: str = Field(default="root", description="Default SSH username")
    port: int = Field(default=22, description="Default SSH port")
    connect_timeout: float = Field(default=10.0, description="Connect timeout in seconds")
    command_timeout: float = Field(default=30.0, description="Per-command timeout in seconds")
    reachability: Literal["icmp", "tcp"] = Field(default="icmp", description="Pre-connect check")


class RouterProfile(BaseModel):
    """Definition of a single router."""

    host: str = Field(..., description="Router address (IP or hostname)")
    username: Optional[str] = Field(default=None, description="SSH username override")
    password: Optional[str] = Field(default=None, description="SSH password")
    key_file: Optional[str] = Field(default=None, description="SSH private key file")
    port: Optional[int] = Field(default=None, description="SSH port override")
    connect_timeout: Optional[float] = Field(default=None, description="Connect timeout override")
    command_timeout: Optional[float] = Field(default=None, description="Command timeout override")
    tags: List[str] = Field(default_factory=list, description="Tags for filtering")


class Inventory(BaseModel):
    """Router inventory configuration."""

    defaults: InventoryDefaults = Field(default_factory=InventoryDefaults)
    routers: Dict[str, RouterProfile] = Field(
        default_factory=dict, description="Router definitions keyed by name"
    )


def load_inventory(inventory_file: str) -> Inventory:
    """
    Load a router inventory file.

    Uses OmegaConf for variable interpolation, e.g. passwords taken from
    the environment with ``${oc.env:ROUTER_PASSWORD}``.

    Args:
        inventory_file: Path to the inventory YAML file

    Returns:
        Inventory instance
    """
    path = Path(inventory_file)
    if not path.exists():
        raise FileNotFoundError(f"Inventory file not found: {inventory_file}")

    with open(path, "r") as f:
        omega_conf = OmegaConf.create(f.read())

    data = OmegaConf.to_container(omega_conf, resolve=True)
    if not isinstance(data, dict):
        raise ValueError("Inventory file must be a YAML dictionary")

    return Inventory.model_validate(data)


def filter_routers(
    inventory: Inventory,
    pattern: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> Dict[str, RouterProfile]:
    """
    Filter routers by name glob and/or tags.

    Args:
        inventory: The inventory
        pattern: Router name or glob pattern (e.g., "ap-*")
        tags: Tags the router must all carry

    Returns:
        Matching routers keyed by name
    """
    result: Dict[str, RouterProfile] = {}
    required: Set[str] = set(tags or [])

    for name, router in inventory.routers.items():
        if pattern is not None and not fnmatch.fnmatch(name, pattern):
            continue
        if not required.issubset(router.tags):
            continue
        result[name] = router

    return result


def get_descriptor(
    inventory: Inventory, name: str, password: Optional[str] = None
) -> ConnectionDescriptor:
    """
    Build a ConnectionDescriptor for a named router, applying defaults.

    Args:
        inventory: The inventory
        name: Router name
        password: Password overriding the one in the inventory

    Returns:
        ConnectionDescriptor
    """
    if name not in inventory.routers:
        raise KeyError(f"Router not in inventory: {name}")

    router = inventory.routers[name]
    defaults = inventory.defaults
    return ConnectionDescriptor(
        host=router.host,
        username=router.username or defaults.username,
        password=password if password is not None else router.password,
        key_filename=router.key_file,
        port=router.port or defaults.port,
        connect_timeout=router.connect_timeout or defaults.connect_timeout,
        command_timeout=router.command_timeout or defaults.command_timeout,
        reachability=defaults.reachability,
    )


class LastUsed(BaseModel):
    """Host and username of the last successful connection. Never the password."""

    host: Optional[str] = None
    username: Optional[str] = None


def load_last_used(path: Optional[Path] = None) -> LastUsed:
    """Read the prefill file. A missing or unreadable file yields an empty LastUsed."""
    state_path = path or DEFAULT_STATE_PATH
    if not state_path.exists():
        return LastUsed()

    try:
        with open(state_path, "r") as f:
            data = yaml.safe_load(f) or {}
        return LastUsed.model_validate(data)
    except (OSError, yaml.YAMLError, ValueError) as e:
        logger.warning("Ignoring unreadable state file %s: %s", state_path, e)
        return LastUsed()


def save_last_used(host: str, username: str, path: Optional[Path] = None) -> None:
    """Remember host and username for the next prompt."""
    state_path = path or DEFAULT_STATE_PATH
    state_path.parent.mkdir(parents=True, exist_ok=True)
    with open(state_path, "w") as f:
        yaml.safe_dump(LastUsed(host=host, username=username).model_dump(), f)
