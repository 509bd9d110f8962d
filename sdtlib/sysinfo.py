"""Read-only host facts for the dashboard."""

import json
import os
import platform
import shutil
import socket
import subprocess
from pathlib import Path
from typing import Dict, Optional
from urllib.error import URLError
from urllib.request import urlopen

from .config import SdtConfig
from .files import read_file
from .packages import parse_os_release

IPV4_API_URL = "https://api.ipify.org"
IPV6_API_URL = "https://api64.ipify.org"
LOCATION_API_URL = "http://ip-api.com/json"

UNKNOWN = "Unknown"
UNAVAILABLE = "Unavailable"


def human_size(num_bytes: float) -> str:
    """Format a byte count like `free -h` does (1024-based, one decimal)."""
    value = float(num_bytes)
    for unit in ("B", "Ki", "Mi", "Gi"):
        if value < 1024:
            return f"{int(value)}B" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}Ti"


def parse_meminfo(text: str) -> Optional[Dict[str, int]]:
    """Total and used memory in bytes from /proc/meminfo."""
    values = {}
    for line in text.splitlines():
        key, _, rest = line.partition(":")
        fields = rest.split()
        if fields and fields[0].isdigit():
            values[key.strip()] = int(fields[0]) * 1024
    total = values.get("MemTotal")
    if not total:
        return None
    available = values.get("MemAvailable", values.get("MemFree", 0))
    return {"total": total, "used": total - available}


def parse_cpu_model(text: str) -> str:
    for line in text.splitlines():
        key, _, value = line.partition(":")
        if key.strip() == "model name":
            return value.strip()
    return UNKNOWN


def format_uptime(seconds: float) -> str:
    """Render seconds like `uptime -p`."""
    minutes = int(seconds // 60)
    days, minutes = divmod(minutes, 1440)
    hours, minutes = divmod(minutes, 60)
    parts = []
    for value, unit in ((days, "day"), (hours, "hour"), (minutes, "minute")):
        if value:
            parts.append(f"{value} {unit}{'s' if value != 1 else ''}")
    return "up " + (", ".join(parts) if parts else "0 minutes")


def parse_location(payload: str) -> str:
    """Render an ip-api.com JSON payload as "Country, City"."""
    try:
        data = json.loads(payload)
    except ValueError:
        return UNAVAILABLE
    if not isinstance(data, dict) or data.get("status") != "success":
        return UNAVAILABLE
    parts = [p for p in (data.get("country"), data.get("city")) if p]
    return ", ".join(parts) if parts else UNAVAILABLE


def _fetch(url: str, timeout: float = 5) -> Optional[str]:
    try:
        with urlopen(url, timeout=timeout) as resp:
            return resp.read().decode("utf-8").strip()
    except (URLError, OSError, ValueError):
        return None


def _local_ipv6() -> Optional[str]:
    try:
        result = subprocess.run(
            ["ip", "-6", "addr", "show", "scope", "global"],
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return None
    for line in result.stdout.splitlines():
        fields = line.split()
        if fields and fields[0] == "inet6":
            return fields[1].split("/")[0]
    return None


def collect(config: SdtConfig, network: bool = True) -> Dict[str, str]:
    """
    Gather dashboard facts. Every value degrades to Unknown/Unavailable.

    Args:
        config: Shared configuration (os-release location)
        network: Also query the public IP and geolocation services
    """
    info = {
        "os": parse_os_release(read_file(config.os_release, errors="replace")).get("PRETTY_NAME", UNKNOWN),
        "kernel": platform.release() or UNKNOWN,
        "hostname": socket.gethostname(),
        "cpu_model": parse_cpu_model(read_file(Path("/proc/cpuinfo"))),
        "cpu_cores": str(os.cpu_count() or UNKNOWN),
    }

    uptime_text = read_file(Path("/proc/uptime")).split()
    info["uptime"] = format_uptime(float(uptime_text[0])) if uptime_text else UNKNOWN

    mem = parse_meminfo(read_file(Path("/proc/meminfo")))
    if mem:
        pct = mem["used"] * 100 // mem["total"]
        info["ram"] = f"{human_size(mem['used'])}/{human_size(mem['total'])} {pct}%"
    else:
        info["ram"] = UNKNOWN

    try:
        disk = shutil.disk_usage("/")
        pct = disk.used * 100 // disk.total if disk.total else 0
        info["disk"] = f"{human_size(disk.used)}/{human_size(disk.total)} {pct}%"
    except OSError:
        info["disk"] = UNKNOWN

    if network:
        info["ipv4"] = _fetch(IPV4_API_URL) or UNAVAILABLE
        external_v6 = _fetch(IPV6_API_URL)
        if not external_v6 or ":" not in external_v6:
            external_v6 = _local_ipv6()
        info["ipv6"] = external_v6 or UNAVAILABLE
        payload = _fetch(LOCATION_API_URL)
        info["location"] = parse_location(payload) if payload else UNAVAILABLE
    return info
