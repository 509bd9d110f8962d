"""Timestamped backup generations for the configuration sites sdt mutates.

A site is a named set of live paths. Each snapshot creates a new generation
identified by a fixed-width ``YYYYMMDDHHMMSS`` timestamp, so lexical order of
generation ids is chronological order. Two layouts are supported:

- ``sibling``: every file is copied next to itself as
  ``<original-path>.bak.<generation>`` (used for resolver files).
- ``directory``: everything is copied under
  ``<backup-root>/<site>-<generation>/`` (used for apt sources).

Each generation also gets a JSON manifest ``<backup-root>/<site>-<generation>.json``
that lists every protected path and where its copy lives, or null when the
path did not exist at snapshot time. Generations are never deleted.
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .config import SdtConfig
from .errors import BackupError
from .files import copy_path, ensure_dir, remove_path, same_path

GENERATION_FORMAT = "%Y%m%d%H%M%S"
_GENERATION_RE = re.compile(r"^\d{14}$")

SIBLING = "sibling"
DIRECTORY = "directory"


@dataclass(frozen=True)
class BackupSite:
    """A mutation site: the live paths one kind of change may touch."""

    name: str
    paths: Tuple[Path, ...]
    layout: str = SIBLING


@dataclass(frozen=True)
class ConfigBackup:
    """One snapshot generation of a site."""

    site: str
    generation: str
    entries: Tuple[Tuple[Path, Optional[Path]], ...]
    root: Path

    @property
    def manifest(self) -> Path:
        return self.root / f"{self.site}-{self.generation}.json"

    @property
    def saved_paths(self) -> List[Path]:
        """Live paths that existed and were copied."""
        return [live for live, copy in self.entries if copy is not None]


def dns_site(config: SdtConfig) -> BackupSite:
    """Resolver files touched by a DNS change."""
    return BackupSite(
        "dns",
        (config.resolv_conf, config.resolved_conf, config.resolved_override),
        SIBLING,
    )


def apt_site(config: SdtConfig) -> BackupSite:
    """Repository source files touched by a mirror change."""
    return BackupSite("apt", (config.apt_sources_list, config.apt_sources_dir), DIRECTORY)


class BackupStore:
    """Creates and restores backup generations under one backup root."""

    def __init__(self, config: SdtConfig, clock: Optional[Callable[[], datetime]] = None):
        self.root = Path(config.backup_root)
        self.clock = clock or datetime.now

    # -------------------------------------------------------------------------
    # Enumeration
    # -------------------------------------------------------------------------

    def generations(self, site: BackupSite) -> List[str]:
        """All generation ids for a site, oldest first."""
        if not self.root.is_dir():
            return []
        prefix = f"{site.name}-"
        ids = []
        for manifest in self.root.glob(f"{prefix}*.json"):
            generation = manifest.stem[len(prefix):]
            if _GENERATION_RE.match(generation):
                ids.append(generation)
        return sorted(ids)

    def load(self, site: BackupSite, generation: str) -> ConfigBackup:
        """Load one generation from its manifest."""
        manifest = self.root / f"{site.name}-{generation}.json"
        data = json.loads(manifest.read_text())
        entries = tuple(
            (Path(item["path"]), Path(item["copy"]) if item["copy"] else None)
            for item in data["entries"]
        )
        return ConfigBackup(site.name, generation, entries, self.root)

    def latest(self, site: BackupSite) -> Optional[ConfigBackup]:
        """The most recent generation for a site, or None."""
        ids = self.generations(site)
        if not ids:
            return None
        return self.load(site, ids[-1])

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    def _next_generation(self, site: BackupSite) -> str:
        now = self.clock().replace(microsecond=0)
        ids = self.generations(site)
        if ids:
            last = datetime.strptime(ids[-1], GENERATION_FORMAT)
            if now <= last:
                now = last + timedelta(seconds=1)
        return now.strftime(GENERATION_FORMAT)

    def _copy_location(self, site: BackupSite, generation: str, path: Path) -> Path:
        if site.layout == DIRECTORY:
            return self.root / f"{site.name}-{generation}" / path.name
        return path.with_name(f"{path.name}.bak.{generation}")

    def snapshot(self, site: BackupSite) -> ConfigBackup:
        """
        Copy every existing path of a site into a new generation.

        Missing paths are recorded as absent so a restore removes them.

        Raises:
            BackupError: backup root or a copy could not be written
        """
        try:
            ensure_dir(self.root, mode=0o700)
        except OSError as e:
            raise BackupError(f"Cannot create backup root {self.root}: {e}") from e

        generation = self._next_generation(site)
        entries = []
        try:
            for path in site.paths:
                path = Path(path)
                if not path.exists() and not path.is_symlink():
                    entries.append((path, None))
                    continue
                copy = self._copy_location(site, generation, path)
                copy_path(path, copy)
                entries.append((path, copy))

            backup = ConfigBackup(site.name, generation, tuple(entries), self.root)
            backup.manifest.write_text(json.dumps({
                "site": site.name,
                "generation": generation,
                "entries": [
                    {"path": str(live), "copy": str(copy) if copy else None}
                    for live, copy in entries
                ],
            }, indent=2) + "\n")
        except OSError as e:
            raise BackupError(f"Backup of site '{site.name}' failed: {e}") from e
        return backup

    # -------------------------------------------------------------------------
    # Restore
    # -------------------------------------------------------------------------

    def restore(self, backup: ConfigBackup) -> None:
        """
        Put every path of a generation back exactly as it was.

        Raises:
            OSError: a copy is missing or could not be written
        """
        for live, copy in backup.entries:
            if copy is None:
                remove_path(live)
                continue
            if not copy.exists() and not copy.is_symlink():
                raise FileNotFoundError(f"Backup copy missing: {copy}")
            copy_path(copy, live)

    def differences(self, backup: ConfigBackup) -> List[Path]:
        """
        Live paths that no longer match a generation.

        A path absent at snapshot time differs if it exists now. Anything
        else differs unless it matches its copy byte for byte.
        """
        changed = []
        for live, copy in backup.entries:
            if copy is None:
                if live.exists() or live.is_symlink():
                    changed.append(live)
            elif not same_path(live, copy):
                changed.append(live)
        return changed

    def restore_latest(self, site: BackupSite) -> bool:
        """
        Restore the most recent generation of a site.

        Returns:
            False, without touching anything, if the site has no generation
        """
        backup = self.latest(site)
        if backup is None:
            return False
        self.restore(backup)
        return True
