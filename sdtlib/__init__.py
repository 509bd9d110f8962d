"""sdt - safe DNS and APT mirror changes for Linux servers."""

from .backup import BackupStore, ConfigBackup, apt_site, dns_site
from .config import SdtConfig, load_config
from .dns import PRESETS, DnsMutator, DnsTarget, validate_address
from .errors import (
    ApplyError,
    BackupError,
    LockTimeoutError,
    RollbackError,
    SdtError,
    ValidationError,
    VerificationError,
)
from .mirrors import MirrorBenchmark, MirrorCandidate, MirrorMeasurement, candidates_for
from .resolver import ResolverBackend, ResolverBackendDetector
from .sources import MirrorMutator, validate_mirror_url
from .transaction import MutationOutcome, OutcomeStatus, RollbackCoordinator
from .verify import VerificationProbe

__all__ = [
    "BackupStore",
    "ConfigBackup",
    "apt_site",
    "dns_site",
    "SdtConfig",
    "load_config",
    "PRESETS",
    "DnsMutator",
    "DnsTarget",
    "validate_address",
    "ApplyError",
    "BackupError",
    "LockTimeoutError",
    "RollbackError",
    "SdtError",
    "ValidationError",
    "VerificationError",
    "MirrorBenchmark",
    "MirrorCandidate",
    "MirrorMeasurement",
    "candidates_for",
    "ResolverBackend",
    "ResolverBackendDetector",
    "MirrorMutator",
    "validate_mirror_url",
    "MutationOutcome",
    "OutcomeStatus",
    "RollbackCoordinator",
    "VerificationProbe",
]
