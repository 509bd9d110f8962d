"""Resolver backend detection and resolver-state parsing."""

import os
import re
import shutil
import subprocess
from enum import Enum
from typing import Dict, List, Optional

from .config import SdtConfig
from .files import read_file
from .services import is_active


class ResolverBackend(Enum):
    MANAGED = "managed"
    STATIC_FILE = "static-file"


# -----------------------------------------------------------------------------
# Parsers (pure, fed with captured command output or file content)
# -----------------------------------------------------------------------------

def parse_override_dns(text: str) -> List[str]:
    """Addresses from the DNS= lines of a resolved.conf fragment."""
    addresses = []
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("DNS="):
            addresses.extend(line[len("DNS="):].split())
    return addresses


def parse_nameservers(text: str) -> List[str]:
    """Addresses from the nameserver lines of a resolv.conf file."""
    addresses = []
    for line in text.splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[0] == "nameserver":
            addresses.append(fields[1])
    return addresses


def parse_default_interface(text: str) -> Optional[str]:
    """Interface of the first default route in `ip route` output."""
    for line in text.splitlines():
        match = re.match(r"^default\b.*?\bdev\s+(\S+)", line)
        if match:
            return match.group(1)
    return None


def parse_resolvectl_dns(text: str) -> Dict[str, List[str]]:
    """
    Parse `resolvectl dns` output into {link: [servers]}.

    Lines look like "Link 2 (eth0): 1.1.1.1 1.0.0.1" or "Global: 9.9.9.9".
    """
    links = {}
    for line in text.splitlines():
        if ":" not in line:
            continue
        label, _, servers = line.partition(": ")
        if not servers and line.rstrip().endswith(":"):
            label, servers = line.rstrip()[:-1], ""
        match = re.match(r"^Link \d+ \((.+)\)$", label.strip())
        name = match.group(1) if match else label.strip()
        links[name] = servers.split()
    return links


# -----------------------------------------------------------------------------
# Host queries
# -----------------------------------------------------------------------------

def has_resolvectl() -> bool:
    return shutil.which("resolvectl") is not None


def default_interface() -> Optional[str]:
    """The interface bound to the default route, if any."""
    try:
        result = subprocess.run(["ip", "route"], capture_output=True, text=True)
    except FileNotFoundError:
        return None
    if result.returncode != 0:
        return None
    return parse_default_interface(result.stdout)


class ResolverBackendDetector:
    """Decides which mechanism is authoritative for DNS on this host."""

    def __init__(self, config: SdtConfig):
        self.config = config

    def _link_is_managed(self) -> bool:
        path = self.config.resolv_conf
        if not path.is_symlink():
            return False
        target = os.readlink(path)
        return any(marker in target for marker in self.config.managed_link_markers)

    def detect(self) -> ResolverBackend:
        """
        Classify the host resolver setup. Evaluated fresh on every call.

        MANAGED if /etc/resolv.conf links into a managed resolver, or if
        resolvectl is installed and the resolver daemon is active.
        """
        if self._link_is_managed():
            return ResolverBackend.MANAGED
        if has_resolvectl() and is_active(self.config.resolver_service):
            return ResolverBackend.MANAGED
        return ResolverBackend.STATIC_FILE


def current_dns(config: SdtConfig) -> Dict[str, List[str]]:
    """
    Collect the DNS servers visible from every representation.

    Read-only, for display. Keys: "sdt" (owned override fragment),
    "links" (per-link servers as "<link>: a b") and "resolv.conf".
    """
    report = {
        "sdt": parse_override_dns(read_file(config.resolved_override, errors="replace")),
        "links": [],
        "resolv.conf": parse_nameservers(read_file(config.resolv_conf, errors="replace"))[:5],
    }
    if has_resolvectl() and is_active(config.resolver_service):
        try:
            result = subprocess.run(["resolvectl", "dns"], capture_output=True, text=True)
        except FileNotFoundError:
            result = None
        if result is not None and result.returncode == 0:
            for link, servers in parse_resolvectl_dns(result.stdout).items():
                if servers:
                    report["links"].append(f"{link}: {' '.join(servers)}")
    return report
