"""
Shared fixtures for sdt tests.

Every test runs against a fake host: a temporary directory tree standing in
for /etc and /var, and a FakeHost that answers subprocess.run() from
scripted rules instead of running real commands.
"""

import shutil
import subprocess
import time
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from sdtlib.config import SdtConfig

DEFAULT_BINARIES = {
    "apt-get",
    "curl",
    "fuser",
    "getent",
    "ip",
    "ping",
    "resolvectl",
    "systemctl",
}


class FakeHost:
    """
    Stand-in for the host's command line tools.

    Rules match on an argv prefix; the most recently added matching rule
    wins. Commands whose program is not in ``binaries`` raise
    FileNotFoundError like a missing executable would.
    """

    def __init__(self):
        self.binaries = set(DEFAULT_BINARIES)
        self.calls: List[List[str]] = []
        self.options: List[dict] = []
        self.sleeps: List[float] = []
        self._rules = []

    def on(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        raises: Optional[BaseException] = None,
        handler: Optional[Callable[[List[str]], subprocess.CompletedProcess]] = None,
    ) -> "FakeHost":
        self._rules.append((list(prefix), returncode, stdout, stderr, raises, handler))
        return self

    def ran(self, *prefix: str) -> List[List[str]]:
        """Recorded calls starting with ``prefix``."""
        return [c for c in self.calls if c[: len(prefix)] == list(prefix)]

    def which(self, name: str) -> Optional[str]:
        return f"/usr/bin/{name}" if name in self.binaries else None

    def run(self, cmd, *args, **kwargs) -> subprocess.CompletedProcess:
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)
        self.options.append(kwargs)
        if cmd[0] not in self.binaries:
            raise FileNotFoundError(2, "No such file or directory", cmd[0])
        for prefix, returncode, stdout, stderr, raises, handler in reversed(self._rules):
            if cmd[: len(prefix)] != prefix:
                continue
            if raises is not None:
                raise raises
            if handler is not None:
                return handler(cmd)
            return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)
        return subprocess.CompletedProcess(cmd, 0, "", "")


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


def completed(cmd, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)


def failing_then_ok(failures: int, stdout_fail: str = "", stdout_ok: str = ""):
    """Handler that fails the first ``failures`` calls and succeeds afterwards."""
    state = {"n": 0}

    def handler(cmd):
        state["n"] += 1
        if state["n"] <= failures:
            return completed(cmd, 1, stdout_fail)
        return completed(cmd, 0, stdout_ok)

    return handler


@pytest.fixture
def host(monkeypatch) -> FakeHost:
    """A FakeHost wired into subprocess.run, shutil.which and time.sleep."""
    fake = FakeHost()
    # Package manager locks are free, names resolve, eth0 carries the default route
    fake.on("fuser", returncode=1)
    fake.on("getent", stdout="93.184.216.34   example.com\n")
    fake.on("ip", "route", stdout="default via 10.0.0.1 dev eth0 proto dhcp metric 100\n")
    fake.on("systemctl", "is-active", returncode=0)

    monkeypatch.setattr(subprocess, "run", fake.run)
    monkeypatch.setattr(shutil, "which", fake.which)
    monkeypatch.setattr(time, "sleep", fake.sleeps.append)
    return fake


@pytest.fixture
def config(tmp_path: Path) -> SdtConfig:
    """SdtConfig pointing every host path into tmp_path."""
    etc = tmp_path / "etc"
    etc.mkdir()
    return SdtConfig().replace(
        backup_root=tmp_path / "var" / "backups" / "sdt",
        log_dir=tmp_path / "var" / "log" / "sdt",
        resolv_conf=etc / "resolv.conf",
        resolved_conf=etc / "systemd" / "resolved.conf",
        resolved_override=etc / "systemd" / "resolved.conf.d" / "99-sdt-dns.conf",
        apt_sources_list=etc / "apt" / "sources.list",
        apt_sources_dir=etc / "apt" / "sources.list.d",
        apt_locks=(tmp_path / "var" / "lib" / "dpkg" / "lock-frontend",),
        os_release=etc / "os-release",
        lock_attempts=3,
        lock_interval=0.5,
        lookup_attempts=3,
        lookup_interval=0.5,
    )


@pytest.fixture
def managed_host(config, host):
    """A host whose /etc/resolv.conf is the systemd-resolved stub symlink."""
    config.resolved_conf.parent.mkdir(parents=True)
    config.resolved_conf.write_text("[Resolve]\n#DNS=\n")
    config.resolv_conf.symlink_to("../run/systemd/resolve/stub-resolv.conf")
    return host


@pytest.fixture
def static_host(config, host):
    """A host with a plain /etc/resolv.conf and no systemd-resolved."""
    host.binaries.discard("resolvectl")
    config.resolv_conf.write_text("nameserver 192.168.1.1\nsearch lan\n")
    return host


UBUNTU_SOURCES = (
    "# See http://help.ubuntu.com/community/UpgradeNotes\n"
    "deb http://archive.ubuntu.com/ubuntu jammy main restricted\n"
    "deb http://archive.ubuntu.com/ubuntu jammy-updates main restricted\n"
    "deb http://security.ubuntu.com/ubuntu jammy-security main restricted\n"
)

DEBIAN_SOURCES = (
    "deb http://deb.debian.org/debian bookworm main\n"
    "deb http://security.debian.org/debian-security bookworm-security main\n"
)


@pytest.fixture
def ubuntu_apt(config):
    """An Ubuntu apt tree with one sources.list and one extra .list file."""
    config.os_release.write_text('NAME="Ubuntu"\nID=ubuntu\nPRETTY_NAME="Ubuntu 22.04.4 LTS"\n')
    config.apt_sources_dir.mkdir(parents=True)
    config.apt_sources_list.write_text(UBUNTU_SOURCES)
    (config.apt_sources_dir / "docker.list").write_text(
        "deb [arch=amd64] https://download.docker.com/linux/ubuntu jammy stable\n"
    )
    return config
