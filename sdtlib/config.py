"""Runtime configuration for sdt.

All thresholds, markers and host paths used by the mutation engine live on a
single frozen SdtConfig that is handed to every component at construction.
An optional TOML file can override any field:

    [sdt]
    backup_root = "/srv/backups/sdt"
    lookup_name = "debian.org"
    lock_attempts = 60
"""

import dataclasses
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from . import paths
from .errors import ValidationError


@dataclass(frozen=True)
class SdtConfig:
    """Immutable settings shared by the mutation engine."""

    # Backups and logs
    backup_root: Path = paths.BACKUP_ROOT
    log_dir: Path = paths.LOG_DIR

    # Resolver
    resolv_conf: Path = paths.RESOLV_CONF
    resolved_conf: Path = paths.RESOLVED_CONF
    resolved_override: Path = paths.RESOLVED_OVERRIDE
    resolver_service: str = "systemd-resolved"
    managed_link_markers: Tuple[str, ...] = ("systemd", "stub-resolv")
    foreign_manager_markers: Tuple[str, ...] = ("NetworkManager", "systemd-resolved", "resolvconf")
    owner_comment: str = "# Managed by SDT"
    lookup_name: str = "example.com"
    lookup_attempts: int = 5
    lookup_interval: float = 1.0

    # Package manager
    apt_sources_list: Path = paths.APT_SOURCES_LIST
    apt_sources_dir: Path = paths.APT_SOURCES_DIR
    apt_locks: Tuple[Path, ...] = paths.APT_LOCKS
    lock_attempts: int = 180
    lock_interval: float = 2.0
    update_failure_markers: Tuple[str, ...] = ("Failed to fetch", "Some index files failed")
    os_release: Path = paths.OS_RELEASE

    # Mirror benchmark
    ping_count: int = 2
    ping_timeout: int = 1
    connect_timeout: int = 3
    unreachable_score: float = 9999.0
    benchmark_workers: int = 1

    # Interactive menu
    menu_timeout: float = 60.0

    def replace(self, **changes) -> "SdtConfig":
        """Return a copy with the given fields changed."""
        return dataclasses.replace(self, **changes)


def _coerce(name: str, value, default):
    """Convert a TOML value to the type of the field default."""
    if isinstance(default, Path):
        return Path(value)
    if isinstance(default, tuple):
        if not isinstance(value, list):
            raise ValidationError(f"Config key '{name}' must be a list")
        if default and isinstance(default[0], Path):
            return tuple(Path(v) for v in value)
        return tuple(value)
    if isinstance(default, bool) or not isinstance(default, (int, float)):
        return value
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationError(f"Config key '{name}' must be a number")
    return type(default)(value)


def load_config(path: Optional[Union[str, Path]] = None) -> SdtConfig:
    """
    Load configuration from a TOML file.

    Args:
        path: Config file to read. Defaults to $SDT_CONFIG, then
              /etc/sdt/config.toml. A missing default file is not an error.

    Returns:
        SdtConfig with file values applied over the defaults

    Raises:
        ValidationError: explicit file missing, unknown key, or bad value type
    """
    explicit = path is not None or "SDT_CONFIG" in os.environ
    config_path = Path(path or os.environ.get("SDT_CONFIG", paths.CONFIG_FILE))

    config = SdtConfig()
    if not config_path.exists():
        if explicit:
            raise ValidationError(f"Config file not found: {config_path}")
        return config

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValidationError(f"Invalid TOML in {config_path}: {e}") from e

    section = data.get("sdt", data)
    defaults = {f.name: getattr(config, f.name) for f in dataclasses.fields(config)}

    changes = {}
    for key, value in section.items():
        if key not in defaults:
            raise ValidationError(f"Unknown config key '{key}' in {config_path}")
        changes[key] = _coerce(key, value, defaults[key])

    return config.replace(**changes)
