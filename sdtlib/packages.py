"""APT package manager operations: lock handling, index refresh, upgrades."""

import os
import re
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from .base import BaseOrchestrator
from .config import SdtConfig
from .errors import CommandError, LockTimeoutError
from .files import ensure_dir, read_file
from .retry import BoundedRetry

SUPPORTED_DISTROS = ("ubuntu", "debian")


def _apt_env() -> dict:
    env = os.environ.copy()
    env["DEBIAN_FRONTEND"] = "noninteractive"
    return env


def parse_os_release(text: str) -> Dict[str, str]:
    """Parse os-release KEY=value lines, stripping quotes."""
    fields = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        fields[key] = value.strip().strip("\"'")
    return fields


def detect_distro(config: SdtConfig) -> str:
    """Return the lowercase distro ID (e.g. "ubuntu"), or "" if unknown."""
    return parse_os_release(read_file(config.os_release, errors="replace")).get("ID", "").lower()


def lock_held(config: SdtConfig) -> bool:
    """Check if any process holds one of the package manager locks."""
    for lock in config.apt_locks:
        try:
            result = subprocess.run(["fuser", str(lock)], capture_output=True)
        except FileNotFoundError:
            # No fuser on this host: nothing to poll
            return False
        if result.returncode == 0:
            return True
    return False


def wait_for_lock(config: SdtConfig, retry: Optional[BoundedRetry] = None) -> None:
    """
    Block until the package manager locks are free.

    Raises:
        LockTimeoutError: locks still held after the configured attempts
    """
    retry = retry or BoundedRetry(config.lock_attempts, config.lock_interval)
    if not retry.run(lambda: not lock_held(config)):
        raise LockTimeoutError(
            f"Package manager lock still held after {retry.ceiling:.0f}s"
        )


def update_failed(returncode: int, output: str, markers: Iterable[str]) -> bool:
    """Decide whether an index refresh failed from its status and output."""
    if returncode != 0:
        return True
    pattern = "|".join(re.escape(m) for m in markers)
    return bool(pattern) and re.search(pattern, output, re.IGNORECASE) is not None


def _write_log(config: SdtConfig, name: str, output: str) -> Optional[Path]:
    """Save command output under the log dir, best effort."""
    try:
        ensure_dir(config.log_dir)
        stamp = datetime.now().strftime("%Y%m%d%H%M%S")
        log_path = config.log_dir / f"{name}-{stamp}.log"
        log_path.write_text(output)
        return log_path
    except OSError:
        return None


def refresh_indexes(config: SdtConfig, log_name: str = "apt-update") -> Tuple[bool, str, Optional[Path]]:
    """
    Refresh the package index once, capturing output.

    Waits for the package manager lock first.

    Returns:
        Tuple of (succeeded, captured output, log file path or None)

    Raises:
        LockTimeoutError: lock never became free
    """
    wait_for_lock(config)
    cmd = ["apt-get", "update"]
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            env=_apt_env(),
        )
    except FileNotFoundError:
        return False, f"{cmd[0]}: command not found", None

    output = result.stdout or ""
    log_path = _write_log(config, log_name, output)
    return not update_failed(result.returncode, output, config.update_failure_markers), output, log_path


class PackageMaintenance(BaseOrchestrator):
    """Refresh package indexes and upgrade installed packages."""

    def _run_step(self, message: str, cmd: list) -> None:
        self.log(message)
        if self.dry_run:
            return
        wait_for_lock(self.config)
        self.log_verbose(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, env=_apt_env())
        except FileNotFoundError:
            raise CommandError(cmd) from None
        if result.returncode != 0:
            raise CommandError(cmd, result.returncode)

    def maintain(self) -> bool:
        """
        Run apt-get update then apt-get upgrade.

        Returns:
            True if both steps succeeded
        """
        try:
            self._run_step("Running apt update", ["apt-get", "update", "-y"])
            self._run_step("Running apt upgrade", ["apt-get", "upgrade", "-y"])
        except (CommandError, LockTimeoutError) as e:
            self.log_error(str(e))
            return False

        if not self.dry_run:
            self.record_change("Upgraded system packages")
        self.log_ok("System packages are up to date.")
        return True
