"""Snapshot files: exported databases that can be imported instead of rebuilt.

A snapshot's identity is the build checksum plus the snapshot checksum, never
the scenario checksum, because its content does not depend on how the
database is reused afterwards::

    <snapshot_prefix><orig>.<build6>-<snapshot12>[-<modifier>].<ext>

Two snapshots can exist per scenario: one taken right after migrations (no
seeders) and one taken after seeding.  Which ones are written and consulted
is governed by :class:`~scenario_engine.config.SnapshotPolicy`.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from scenario_engine.checksum.hasher import ChecksumEngine, join_name_parts
from scenario_engine.constants import IGNORED_STORAGE_FILES
from scenario_engine.drivers.base import DatabaseDriver
from scenario_engine.errors import ConfigError
from scenario_engine.models.records import SnapshotFile
from scenario_engine.models.resolved import ResolvedSettings

logger = logging.getLogger(__name__)

SeederRunner = Callable[[str, list[str]], None]


def storage_path(settings: ResolvedSettings) -> Path:
    """The storage directory, anchored at the project root when relative."""
    path = Path(settings.storage_dir)
    if not path.is_absolute():
        path = Path(settings.base_path) / path
    return path


class SnapshotManager:
    """Exports, imports and garbage-collects snapshot files for one build."""

    def __init__(
        self,
        driver: DatabaseDriver,
        checksums: ChecksumEngine,
        *,
        log: logging.Logger | None = None,
    ) -> None:
        self._driver = driver
        self._checksums = checksums
        self._settings = checksums.settings
        self._log = log or logger
        self._storage_dir = storage_path(self._settings)
        prefix = re.escape(self._settings.snapshot_prefix)
        self._name_re = re.compile(
            rf"^{prefix}(?P<orig>.+)\.(?P<build>[0-9a-fx]{{6}})-(?P<scenario>[0-9a-f]{{12}})"
            r"(?:-(?P<modifier>[^.]+))?\.(?P<ext>[^.]+)$"
        )

    @property
    def enabled(self) -> bool:
        """Snapshots are only trusted when source changes can be detected."""
        return (
            self._driver.supports_snapshots
            and self._settings.snapshot_policy.enabled
            and self._checksums.build_checksum_enabled
        )

    # -- Naming --------------------------------------------------------------

    def _modifier(self) -> str:
        return self._settings.database_modifier.strip("-_.")

    def snapshot_path(self, seeders: list[str]) -> Path:
        """Path of the snapshot holding the current recipe with *seeders* applied."""
        name_part = join_name_parts(self._checksums.snapshot_name_part(seeders), self._modifier())
        orig = self._driver.database_stem(self._settings.database)
        filename = f"{self._settings.snapshot_prefix}{orig}.{name_part}.{self._driver.snapshot_extension}"
        return self._storage_dir / filename

    def parse(self, path: Path) -> SnapshotFile | None:
        """Describe the snapshot at *path*, or ``None`` if it is not one."""
        match = self._name_re.match(path.name)
        if match is None:
            return None
        try:
            stat = path.stat()
        except OSError:
            return None
        return SnapshotFile(
            path=path,
            build_part=match["build"],
            scenario_part=match["scenario"],
            modifier=match["modifier"] or "",
            extension=match["ext"],
            size_bytes=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime, UTC),
        )

    # -- Export / import -------------------------------------------------------

    def export(self, database: str, seeders: list[str]) -> Path:
        """Write a snapshot of *database*, which has had *seeders* applied.

        Raises
        ------
        BuildError
            If the driver cannot write the snapshot.
        """
        path = self.snapshot_path(seeders)
        start = time.monotonic()
        self._driver.export_snapshot(database, path)
        self._log.info("Exported snapshot %s (%.3fs)", path.name, time.monotonic() - start)
        return path

    def export_after_migrations(self, database: str) -> Path | None:
        if not self.enabled or not self._settings.snapshot_policy.after_migrations:
            return None
        return self._export_if_missing(database, [])

    def export_after_seeders(self, database: str, seeders: list[str]) -> Path | None:
        policy = self._settings.snapshot_policy
        if not self.enabled or not policy.after_seeders:
            return None
        return self._export_if_missing(database, seeders)

    def _export_if_missing(self, database: str, seeders: list[str]) -> Path | None:
        # Equal names mean equal content, so an existing file is kept as is.
        if self.snapshot_path(seeders).is_file():
            return None
        return self.export(database, seeders)

    def try_import(self, database: str, seeders: list[str], run_seeders: SeederRunner) -> bool:
        """Load a matching snapshot into *database* instead of building it.

        The full snapshot (seeders applied) is preferred.  Otherwise the
        after-migrations snapshot is imported and *run_seeders* brings it up to
        date.  Returns whether a snapshot was imported.
        """
        if not self.enabled:
            return False
        policy = self._settings.snapshot_policy

        candidates: list[tuple[Path, list[str]]] = []
        if policy.after_seeders or not seeders:
            candidates.append((self.snapshot_path(seeders), []))
        if policy.after_migrations and seeders:
            candidates.append((self.snapshot_path([]), seeders))

        for path, remaining in candidates:
            if not path.is_file():
                continue
            start = time.monotonic()
            self._driver.import_snapshot(database, path)
            self._log.info("Imported snapshot %s (%.3fs)", path.name, time.monotonic() - start)
            if remaining:
                run_seeders(database, remaining)
            return True
        return False

    # -- Garbage collection ----------------------------------------------------

    def find_snapshots(self, now: datetime | None = None) -> list[SnapshotFile]:
        """Every snapshot in the storage directory, flagged when stale.

        A snapshot is stale when it was not made for the current build
        checksum and it is older than the grace period.
        """
        if not self._storage_dir.is_dir():
            return []
        now = now or datetime.now(UTC)
        grace = self._settings.stale_grace_seconds
        checksum_known = self._current_build_checksum_known()
        snapshots = []
        for path in sorted(self._storage_dir.iterdir()):
            if not path.is_file() or path.name in IGNORED_STORAGE_FILES:
                continue
            snapshot = self.parse(path)
            if snapshot is None:
                continue
            age = (now - snapshot.modified_at).total_seconds() if snapshot.modified_at else 0
            current = checksum_known and self._checksums.filename_has_build_checksum(path.name)
            snapshots.append(snapshot.model_copy(update={"is_stale": not current and age > grace}))
        return snapshots

    def _current_build_checksum_known(self) -> bool:
        try:
            self._checksums.build_checksum(force=True)
        except ConfigError as exc:
            self._log.warning("Snapshot staleness is judged by age only: %s", exc)
            return False
        return True

    def purge_stale(self, now: datetime | None = None) -> list[Path]:
        """Delete stale snapshots; failures are logged, never raised."""
        removed = []
        for snapshot in self.find_snapshots(now):
            if not snapshot.is_stale:
                continue
            try:
                snapshot.path.unlink()
            except OSError as exc:
                self._log.warning("Could not remove stale snapshot %s: %s", snapshot.path, exc)
                continue
            self._log.info("Removed stale snapshot %s", snapshot.path.name)
            removed.append(snapshot.path)
        return removed
