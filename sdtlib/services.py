"""Systemd service control used by the resolver backend."""

import shutil
import subprocess

from .errors import CommandError


def _systemctl(*args: str, check: bool = True) -> subprocess.CompletedProcess:
    """Run a systemctl command."""
    cmd = ["systemctl"] + list(args)
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError:
        raise CommandError(cmd) from None
    if check and result.returncode != 0:
        raise CommandError(cmd, result.returncode, result.stderr)
    return result


def has_systemd() -> bool:
    """Check if systemctl is available on this host."""
    return shutil.which("systemctl") is not None


def is_active(service: str) -> bool:
    """Check if a service is currently running."""
    if not has_systemd():
        return False
    result = _systemctl("is-active", "--quiet", service, check=False)
    return result.returncode == 0


def restart_service(service: str) -> None:
    """Restart a service."""
    print(f"Restarting {service}")
    _systemctl("restart", service)

