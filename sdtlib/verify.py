"""Post-change verification: did the change take effect, and does it work."""

import subprocess
from typing import Optional

from .base import BaseOrchestrator
from .config import SdtConfig
from .dns import DnsTarget
from .errors import VerificationError
from .files import read_file
from .packages import refresh_indexes
from .resolver import ResolverBackend, parse_nameservers, parse_override_dns
from .retry import BoundedRetry


def resolves(name: str, timeout: float = 10.0) -> bool:
    """Single name lookup through the system resolver (NSS)."""
    try:
        result = subprocess.run(["getent", "hosts", name], capture_output=True, timeout=timeout)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0


class VerificationProbe(BaseOrchestrator):
    """State and behavior checks run after every apply and every restore."""

    def __init__(
        self,
        config: SdtConfig,
        lookup_retry: Optional[BoundedRetry] = None,
        dry_run: bool = False,
        verbose: bool = False,
    ):
        super().__init__(config, dry_run=dry_run, verbose=verbose)
        self.lookup_retry = lookup_retry or BoundedRetry(config.lookup_attempts, config.lookup_interval)

    # -------------------------------------------------------------------------
    # DNS
    # -------------------------------------------------------------------------

    def configured_addresses(self, backend: ResolverBackend) -> list:
        """Addresses in the representation the backend actually reads."""
        if backend == ResolverBackend.MANAGED:
            return parse_override_dns(read_file(self.config.resolved_override, errors="replace"))
        return parse_nameservers(read_file(self.config.resolv_conf, errors="replace"))

    def check_resolution(self) -> None:
        """
        Look up the configured name, retrying with fixed spacing. Lookups and
        sleeps together stay within the retry ceiling.

        Raises:
            VerificationError: no attempt resolved
        """
        name = self.config.lookup_name
        tried = []

        def attempt(remaining: float) -> bool:
            tried.append(remaining)
            return resolves(name, timeout=remaining)

        ok = self.lookup_retry.run_within(
            attempt,
            on_retry=lambda n: self.log_verbose(f"Lookup of {name} failed (attempt {n}), retrying"),
        )
        if not ok:
            raise VerificationError(
                f"Name resolution of {name} failed after {len(tried)} attempts "
                f"within {self.lookup_retry.ceiling:g}s"
            )

    def verify_dns(self, backend: ResolverBackend, target: DnsTarget) -> None:
        """
        Confirm the target is configured where the backend reads it, and that
        names resolve.

        Raises:
            VerificationError: either condition failed
        """
        present = self.configured_addresses(backend)
        missing = [a for a in target.addresses if a not in present]
        if missing:
            source = self.config.resolved_override if backend == ResolverBackend.MANAGED else self.config.resolv_conf
            raise VerificationError(f"{', '.join(missing)} not configured in {source}")
        self.check_resolution()

    # -------------------------------------------------------------------------
    # Mirror
    # -------------------------------------------------------------------------

    def verify_mirror(self, log_name: str = "apt-update") -> None:
        """
        Refresh the package index once and inspect the result.

        Raises:
            VerificationError: non-zero exit or a fetch failure in the output
            LockTimeoutError: the package manager lock never became free
        """
        self.log("Refreshing package index")
        ok, output, log_path = refresh_indexes(self.config, log_name)
        if not ok:
            where = f" (see {log_path})" if log_path else ""
            tail = "\n".join(output.strip().splitlines()[-3:])
            raise VerificationError(f"Package index refresh failed{where}\n{tail}".rstrip())
