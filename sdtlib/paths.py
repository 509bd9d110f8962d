"""Centralized path constants for sdt.

These are the default host locations. Components never read them directly;
they are folded into SdtConfig so tests can point everything at a temporary
directory.
"""

from pathlib import Path

TEMPLATES_DIR = Path(__file__).parent / "templates"

# sdt's own config and backups
CONFIG_FILE = Path("/etc/sdt/config.toml")
BACKUP_ROOT = Path("/var/backups/sdt")
LOG_DIR = Path("/var/log/sdt")

# System paths - resolver
RESOLV_CONF = Path("/etc/resolv.conf")
RESOLVED_CONF = Path("/etc/systemd/resolved.conf")
RESOLVED_DROPIN_DIR = Path("/etc/systemd/resolved.conf.d")
RESOLVED_OVERRIDE = RESOLVED_DROPIN_DIR / "99-sdt-dns.conf"

# System paths - apt
APT_DIR = Path("/etc/apt")
APT_SOURCES_LIST = APT_DIR / "sources.list"
APT_SOURCES_DIR = APT_DIR / "sources.list.d"
APT_LOCKS = (
    Path("/var/lib/apt/lists/lock"),
    Path("/var/lib/dpkg/lock-frontend"),
)

# System paths - identification
OS_RELEASE = Path("/etc/os-release")
