"""Backup, apply, verify and roll back configuration changes as one transaction.

Each change runs through the same state machine:

    IDLE -> LOCKING -> BACKING_UP -> APPLYING -> VERIFYING -> SUCCESS
                                        |            |
                                        +------------+--> ROLLING_BACK
                                                              |
                                              ROLLED_BACK <---+---> ROLLBACK_FAILED

Input is validated before a transaction exists. A lock timeout ends the
transaction in ABORTED before anything is touched. A failed snapshot raises
BackupError out of the transaction, also before anything is touched.
Everything after the snapshot ends in one of the terminal states and is
reported as a MutationOutcome.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from .backup import BackupSite, BackupStore, ConfigBackup, apt_site, dns_site
from .base import BaseOrchestrator
from .config import SdtConfig
from .dns import DnsMutator, DnsTarget
from .errors import (
    ApplyError,
    LockTimeoutError,
    RollbackError,
    SdtError,
    VerificationError,
)
from .packages import wait_for_lock
from .resolver import ResolverBackendDetector
from .retry import BoundedRetry
from .sources import MirrorMutator, validate_mirror_url
from .verify import VerificationProbe


class TxState(Enum):
    IDLE = "idle"
    LOCKING = "locking"
    BACKING_UP = "backing-up"
    APPLYING = "applying"
    VERIFYING = "verifying"
    SUCCESS = "success"
    ROLLING_BACK = "rolling-back"
    ROLLED_BACK = "rolled-back"
    ROLLBACK_FAILED = "rollback-failed"
    ABORTED = "aborted"


class OutcomeStatus(Enum):
    APPLIED = "applied"
    APPLIED_AND_VERIFIED = "applied-and-verified"
    ROLLED_BACK = "rolled-back"
    ROLLBACK_FAILED = "rollback-failed"
    ABORTED = "aborted"


@dataclass
class MutationOutcome:
    """Terminal result of one transaction."""

    status: OutcomeStatus
    site: str
    generation: Optional[str] = None
    error: Optional[Exception] = None
    rollback_error: Optional[Exception] = None
    states: List[TxState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.APPLIED_AND_VERIFIED

    def describe(self) -> str:
        text = self.status.value
        if self.generation:
            text += f" (backup {self.generation})"
        if self.error:
            text += f": {self.error}"
        if self.rollback_error:
            text += f"; rollback: {self.rollback_error}"
        return text


class _Transaction:
    """State trail for one run of the state machine."""

    def __init__(self, coordinator: "RollbackCoordinator", site: BackupSite):
        self.coordinator = coordinator
        self.site = site
        self.states = [TxState.IDLE]
        self.backup: Optional[ConfigBackup] = None

    @property
    def state(self) -> TxState:
        return self.states[-1]

    def enter(self, state: TxState) -> None:
        self.coordinator.log_verbose(f"[{self.site.name}] {self.state.value} -> {state.value}")
        self.states.append(state)

    def outcome(self, status: OutcomeStatus, error=None, rollback_error=None) -> MutationOutcome:
        return MutationOutcome(
            status=status,
            site=self.site.name,
            generation=self.backup.generation if self.backup else None,
            error=error,
            rollback_error=rollback_error,
            states=list(self.states),
        )


class RollbackCoordinator(BaseOrchestrator):
    """Runs DNS and mirror changes through backup/apply/verify/rollback."""

    def __init__(
        self,
        config: SdtConfig,
        store: Optional[BackupStore] = None,
        detector: Optional[ResolverBackendDetector] = None,
        dns: Optional[DnsMutator] = None,
        mirror: Optional[MirrorMutator] = None,
        probe: Optional[VerificationProbe] = None,
        lock_retry: Optional[BoundedRetry] = None,
        dry_run: bool = False,
        verbose: bool = False,
    ):
        super().__init__(config, dry_run=dry_run, verbose=verbose)
        self.store = store or BackupStore(config)
        self.detector = detector or ResolverBackendDetector(config)
        self.dns = dns or DnsMutator(config, dry_run=dry_run, verbose=verbose)
        self.mirror = mirror or MirrorMutator(config, dry_run=dry_run, verbose=verbose)
        self.probe = probe or VerificationProbe(config, dry_run=dry_run, verbose=verbose)
        self.lock_retry = lock_retry

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def change_dns(self, target: DnsTarget) -> MutationOutcome:
        """Apply a validated DNS target through the detected backend."""
        backend = self.detector.detect()
        self.log(f"Resolver backend: {backend.value}")
        outcome = self._run(
            dns_site(self.config),
            f"set DNS to {target} via {backend.value}",
            apply=lambda: self.dns.apply(backend, target),
            verify=lambda: self.probe.verify_dns(backend, target),
            after_restore=lambda: self.dns.after_restore(backend),
            verify_restored=self.probe.check_resolution,
        )
        if outcome.ok:
            self.log_ok("DNS updated and verified.")
            self.record_change(f"DNS set to {target}")
        return outcome

    def change_mirror(self, distro: str, url: str) -> MutationOutcome:
        """
        Point APT at a new mirror.

        Raises:
            ValidationError: before any transaction starts
        """
        url = validate_mirror_url(distro, url)
        outcome = self._run(
            apt_site(self.config),
            f"switch {distro} mirror to {url}",
            apply=lambda: self.mirror.apply(distro, url),
            verify=lambda: self.probe.verify_mirror("apt-update"),
            after_restore=None,
            verify_restored=lambda: self.probe.verify_mirror("apt-update-rollback"),
        )
        if outcome.ok:
            self.log_ok("Mirror applied and apt update succeeded.")
            self.record_change(f"Mirror set to {url}")
        return outcome

    def restore_dns(self) -> MutationOutcome:
        """Operator-requested restore of the latest DNS backup."""
        site = dns_site(self.config)
        tx = _Transaction(self, site)
        if self.dry_run:
            self.log("Would restore the latest DNS backup")
            return tx.outcome(OutcomeStatus.APPLIED)

        tx.backup = self.store.latest(site)
        if tx.backup is None:
            self.log_error("No DNS backup found.")
            tx.enter(TxState.ROLLBACK_FAILED)
            return tx.outcome(OutcomeStatus.ROLLBACK_FAILED, rollback_error=RollbackError("No DNS backup found"))

        backend = self.detector.detect()
        tx.enter(TxState.LOCKING)
        try:
            wait_for_lock(self.config, self.lock_retry)
        except LockTimeoutError as e:
            self.log_error(str(e))
            tx.enter(TxState.ABORTED)
            return tx.outcome(OutcomeStatus.ABORTED, error=e)

        outcome = self._roll_back(
            tx,
            None,
            after_restore=lambda: self.dns.after_restore(backend),
            verify_restored=self.probe.check_resolution,
        )
        if outcome.status == OutcomeStatus.ROLLED_BACK:
            self.record_change(f"DNS restored from backup {tx.backup.generation}")
        return outcome

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    def _run(
        self,
        site: BackupSite,
        description: str,
        apply: Callable[[], object],
        verify: Callable[[], None],
        after_restore: Optional[Callable[[], None]],
        verify_restored: Callable[[], None],
    ) -> MutationOutcome:
        tx = _Transaction(self, site)

        if self.dry_run:
            self.log(f"Would back up {', '.join(str(p) for p in site.paths)}")
            self.log(f"Would {description}, verify, and roll back on failure")
            return tx.outcome(OutcomeStatus.APPLIED)

        tx.enter(TxState.LOCKING)
        try:
            wait_for_lock(self.config, self.lock_retry)
        except LockTimeoutError as e:
            self.log_error(f"{e}; nothing was changed.")
            tx.enter(TxState.ABORTED)
            return tx.outcome(OutcomeStatus.ABORTED, error=e)

        tx.enter(TxState.BACKING_UP)
        tx.backup = self.store.snapshot(site)
        saved = tx.backup.saved_paths
        self.log(f"Backed up {len(saved)} {site.name} path(s) (generation {tx.backup.generation})")
        for path in saved:
            self.log_verbose(f"  {path}")

        tx.enter(TxState.APPLYING)
        self.log(description[0].upper() + description[1:])
        try:
            apply()
        except (ApplyError, OSError, UnicodeError) as e:
            error = e if isinstance(e, ApplyError) else ApplyError(str(e))
            self.log_error(f"Apply failed: {error}. Rolling back...")
            return self._roll_back(tx, error, after_restore, verify_restored)

        tx.enter(TxState.VERIFYING)
        try:
            verify()
        except (VerificationError, LockTimeoutError) as e:
            self.log_error(f"Verification failed: {e}. Rolling back...")
            return self._roll_back(tx, e, after_restore, verify_restored)

        tx.enter(TxState.SUCCESS)
        return tx.outcome(OutcomeStatus.APPLIED_AND_VERIFIED)

    def _roll_back(
        self,
        tx: _Transaction,
        cause: Optional[Exception],
        after_restore: Optional[Callable[[], None]],
        verify_restored: Callable[[], None],
    ) -> MutationOutcome:
        tx.enter(TxState.ROLLING_BACK)
        try:
            if tx.backup is None:
                raise RollbackError(f"No backup generation for {tx.site.name}")
            try:
                self.store.restore(tx.backup)
                changed = self.store.differences(tx.backup)
            except OSError as e:
                raise RollbackError(f"Restore of generation {tx.backup.generation} failed: {e}") from e
            if changed:
                raise RollbackError(
                    f"Restored files differ from generation {tx.backup.generation}: "
                    + ", ".join(str(p) for p in changed)
                )
            if after_restore:
                after_restore()
            try:
                verify_restored()
            except (VerificationError, LockTimeoutError) as e:
                raise RollbackError(f"Restored configuration does not verify: {e}") from e
        except SdtError as e:
            error = e if isinstance(e, RollbackError) else RollbackError(str(e))
            self.log_error(f"Rollback failed: {error}")
            tx.enter(TxState.ROLLBACK_FAILED)
            return tx.outcome(OutcomeStatus.ROLLBACK_FAILED, error=cause, rollback_error=error)

        self.log_ok(f"Rollback complete. Restored {tx.site.name} configuration from {tx.backup.generation}.")
        tx.enter(TxState.ROLLED_BACK)
        return tx.outcome(OutcomeStatus.ROLLED_BACK, error=cause)
