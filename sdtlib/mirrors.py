"""Mirror catalog and latency benchmarking."""

import re
import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from .config import SdtConfig

LATENCY_PROBE = "latency-probe"
CONNECT_PROBE = "connect-time-probe"


@dataclass(frozen=True)
class MirrorCandidate:
    """A repository base URL the operator can switch to."""

    name: str
    url: str

    @property
    def host(self) -> str:
        return urlsplit(self.url).hostname or ""


@dataclass(frozen=True)
class MirrorMeasurement:
    """Benchmark result for one candidate. Lower score is better."""

    candidate: MirrorCandidate
    score: float
    method: str
    detail: str


CATALOG = {
    "ubuntu": (
        MirrorCandidate("Official", "http://archive.ubuntu.com/ubuntu"),
        MirrorCandidate("Mirror-Sweden", "http://se.archive.ubuntu.com/ubuntu"),
        MirrorCandidate("Mirror-Germany", "http://de.archive.ubuntu.com/ubuntu"),
        MirrorCandidate("Mirror-US", "http://us.archive.ubuntu.com/ubuntu"),
        MirrorCandidate("Mirror-UK", "http://gb.archive.ubuntu.com/ubuntu"),
        MirrorCandidate("Mirror-France", "http://fr.archive.ubuntu.com/ubuntu"),
        MirrorCandidate("Mirror-Japan", "http://jp.archive.ubuntu.com/ubuntu"),
        MirrorCandidate("Mirror-Singapore", "http://sg.archive.ubuntu.com/ubuntu"),
    ),
    "debian": (
        MirrorCandidate("Official", "http://deb.debian.org/debian"),
        MirrorCandidate("Mirror-US", "http://ftp.us.debian.org/debian"),
        MirrorCandidate("Mirror-UK", "http://ftp.uk.debian.org/debian"),
        MirrorCandidate("Mirror-Germany", "http://ftp.de.debian.org/debian"),
        MirrorCandidate("Mirror-France", "http://ftp.fr.debian.org/debian"),
        MirrorCandidate("Mirror-Japan", "http://ftp.jp.debian.org/debian"),
        MirrorCandidate("Mirror-Singapore", "http://ftp.sg.debian.org/debian"),
    ),
}


def candidates_for(distro: str) -> Tuple[MirrorCandidate, ...]:
    """Catalog entries for a distro family (empty if unsupported)."""
    return CATALOG.get(distro, ())


# -----------------------------------------------------------------------------
# Output parsers
# -----------------------------------------------------------------------------

_LOSS_RE = re.compile(r"([\d.]+)%\s+packet loss")
_RTT_RE = re.compile(r"min/avg/max(?:/m?dev)?\s*=\s*([\d.]+)/([\d.]+)/")


def parse_ping_output(text: str) -> Optional[Tuple[float, float]]:
    """
    Extract (loss percent, average RTT ms) from ping output.

    Returns None unless both figures are present.
    """
    loss = _LOSS_RE.search(text)
    rtt = _RTT_RE.search(text)
    if not loss or not rtt:
        return None
    return float(loss.group(1)), float(rtt.group(2))


def parse_connect_time(text: str) -> Optional[float]:
    """
    Parse curl's %{time_connect} in seconds.

    Returns None for empty/garbled output or a zero time, which curl
    reports when no connection was established.
    """
    try:
        seconds = float(text.strip().split()[-1])
    except (IndexError, ValueError):
        return None
    if seconds <= 0:
        return None
    return seconds


def latency_score(loss_pct: float, avg_ms: float) -> float:
    """Each percent of loss weighs like 100 ms of latency."""
    return avg_ms + loss_pct * 100


# -----------------------------------------------------------------------------
# Benchmark
# -----------------------------------------------------------------------------

class MirrorBenchmark:
    """Measures and ranks mirror candidates."""

    def __init__(self, config: SdtConfig):
        self.config = config

    def _run(self, cmd: List[str], timeout: float) -> str:
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except (FileNotFoundError, subprocess.TimeoutExpired):
            return ""
        return result.stdout

    def _ping(self, host: str) -> Optional[Tuple[float, float]]:
        if not host:
            return None
        cfg = self.config
        out = self._run(
            ["ping", "-c", str(cfg.ping_count), "-W", str(cfg.ping_timeout), host],
            timeout=cfg.ping_count * cfg.ping_timeout + 5,
        )
        return parse_ping_output(out)

    def _connect_time(self, url: str) -> Optional[float]:
        cfg = self.config
        out = self._run(
            [
                "curl", "-o", "/dev/null", "-sS",
                "--connect-timeout", str(cfg.connect_timeout),
                "--max-time", str(cfg.connect_timeout + 2),
                "-w", "%{time_connect}",
                url,
            ],
            timeout=cfg.connect_timeout + 5,
        )
        return parse_connect_time(out)

    def measure(self, candidate: MirrorCandidate) -> MirrorMeasurement:
        """
        Score one candidate.

        ICMP first; if ping gives no usable statistics (blocked, no reply),
        fall back to TCP connect time. Never raises for an unreachable host.
        """
        stats = self._ping(candidate.host)
        if stats is not None:
            loss, avg = stats
            return MirrorMeasurement(
                candidate,
                latency_score(loss, avg),
                LATENCY_PROBE,
                f"avg={avg:g}ms loss={loss:g}%",
            )

        seconds = self._connect_time(candidate.url)
        if seconds is None:
            return MirrorMeasurement(
                candidate,
                self.config.unreachable_score,
                CONNECT_PROBE,
                "unreachable",
            )
        return MirrorMeasurement(candidate, seconds * 1000, CONNECT_PROBE, f"connect={seconds:.3f}s")

    def rank(self, candidates: Sequence[MirrorCandidate]) -> List[MirrorMeasurement]:
        """
        Measure every candidate and sort ascending by score.

        The sort is stable, so equal scores keep catalog order.
        """
        workers = max(1, self.config.benchmark_workers)
        if workers > 1 and len(candidates) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                measurements = list(pool.map(self.measure, candidates))
        else:
            measurements = [self.measure(c) for c in candidates]
        return sort_measurements(measurements)


def sort_measurements(measurements: Sequence[MirrorMeasurement]) -> List[MirrorMeasurement]:
    return sorted(measurements, key=lambda m: m.score)
