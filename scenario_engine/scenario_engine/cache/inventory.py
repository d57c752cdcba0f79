"""List and purge the databases and snapshots a project has cached.

Databases built by another project are listed but never removed by a purge;
removing one explicitly raises :class:`OwnershipConflict`.  A database
without reuse metadata may still be in the middle of its first build, so it
is only purged once its file has been untouched for the grace period.
Servers cannot tell when such a database last changed, or who created it, so
there it is listed and left alone.  Deletion failures during a purge are
logged and reported, never raised.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from scenario_engine.builder.resolver import SettingsResolver
from scenario_engine.checksum import ChecksumEngine
from scenario_engine.config import Settings
from scenario_engine.drivers.registry import get_driver
from scenario_engine.errors import ConfigError, OwnershipConflict, ScenarioDBError
from scenario_engine.models.records import DatabaseRecord, SnapshotFile
from scenario_engine.reuse.metadata_store import ReuseMetadataStore
from scenario_engine.snapshot.manager import SnapshotManager

logger = logging.getLogger(__name__)


class PurgeReport(BaseModel):
    """What a purge removed, skipped and failed to remove."""

    removed_databases: list[str] = Field(default_factory=list)
    removed_snapshots: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failures: list[str] = Field(default_factory=list)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class CacheInventory:
    """Cached artefacts of the project described by *settings*."""

    def __init__(self, settings: Settings, *, log: logging.Logger | None = None) -> None:
        self._log = log or logger
        self._settings = SettingsResolver(settings, log=self._log).resolve()
        self._driver = get_driver(self._settings)
        self._checksums = ChecksumEngine(
            self._settings,
            supports_reuse=self._driver.supports_reuse,
            supports_snapshots=self._driver.supports_snapshots,
        )
        self._store = ReuseMetadataStore(self._driver)
        self._snapshots = SnapshotManager(self._driver, self._checksums, log=self._log)
        self._current_build_checksum: str | None = None
        self._checksum_known = False

    @property
    def project_name(self) -> str:
        return self._settings.project_name

    def close(self) -> None:
        self._driver.dispose()

    def current_build_checksum(self) -> str | None:
        """Build checksum of the project's default scenario, ``None`` if it cannot be computed."""
        if not self._checksum_known:
            try:
                self._current_build_checksum = self._checksums.build_checksum(force=True)
            except ConfigError as exc:
                self._log.warning("Staleness is judged by age only: %s", exc)
                self._current_build_checksum = None
            self._checksum_known = True
        return self._current_build_checksum

    # -- Listing ---------------------------------------------------------------

    def databases(self, now: datetime | None = None) -> list[DatabaseRecord]:
        """Every database this project's builder may have created."""
        now = now or datetime.now(UTC)
        records = []
        for name in self._driver.list_databases():
            record = self._store.read(name)
            size = self._driver.size(name)
            modified = self._driver.modified_at(name)
            self._driver.dispose(name)
            if record is None:
                record = DatabaseRecord(name=name, has_metadata=False)
            record = record.model_copy(update={"size_bytes": size, "modified_at": modified})
            records.append(record.model_copy(update={"is_stale": self._is_stale(record, now)}))
        return records

    def owns(self, record: DatabaseRecord) -> bool:
        """Whether a purge of this project may remove *record*.

        A database without metadata is claimed only when the driver can date
        it, which holds for files in the project's own storage directory.
        """
        if not record.has_metadata:
            return record.modified_at is not None
        return record.project_name == self.project_name

    def _is_stale(self, record: DatabaseRecord, now: datetime) -> bool:
        if not self.owns(record):
            return False
        if not record.has_metadata:
            return self._past_grace(record.modified_at, now)
        current = self.current_build_checksum()
        if current is not None and record.build_checksum == current:
            return False
        return self._past_grace(record.last_used_at or record.created_at, now)

    def _past_grace(self, moment: datetime | None, now: datetime) -> bool:
        moment = _as_utc(moment)
        if moment is None:
            return True
        return (now - moment).total_seconds() > self._settings.stale_grace_seconds

    def snapshots(self, now: datetime | None = None) -> list[SnapshotFile]:
        return self._snapshots.find_snapshots(now)

    # -- Removal -----------------------------------------------------------------

    def remove_database(self, name: str) -> None:
        """Remove one database.

        Raises
        ------
        OwnershipConflict
            If the database belongs to another project.
        """
        record = self._store.read(name)
        if record is not None and record.project_name != self.project_name:
            raise OwnershipConflict(name, record.project_name, self.project_name)
        self._driver.drop_database(name)
        self._log.info("Removed database %s", name)

    def purge_stale(self, now: datetime | None = None) -> PurgeReport:
        """Remove stale databases and stale snapshots."""
        report = PurgeReport()
        for record in self.databases(now):
            if not self.owns(record):
                report.skipped.append(record.name)
            elif record.is_stale:
                self._remove_quietly(record.name, report)
        for path in self._snapshots.purge_stale(now):
            report.removed_snapshots.append(str(path))
        return report

    def remove_all(self) -> PurgeReport:
        """Remove every database of this project and every snapshot.

        Databases without metadata are removed only once stale, since a
        fresh one may still be being built.
        """
        report = PurgeReport()
        for record in self.databases():
            if not self.owns(record) or (not record.has_metadata and not record.is_stale):
                report.skipped.append(record.name)
                continue
            self._remove_quietly(record.name, report)
        for snapshot in self._snapshots.find_snapshots():
            try:
                snapshot.path.unlink()
            except OSError as exc:
                self._log.warning("Could not remove snapshot %s: %s", snapshot.path, exc)
                report.failures.append(str(snapshot.path))
                continue
            report.removed_snapshots.append(str(snapshot.path))
        return report

    def _remove_quietly(self, name: str, report: PurgeReport) -> None:
        try:
            self._driver.drop_database(name)
        except ScenarioDBError as exc:
            self._log.warning("Could not remove database %s: %s", name, exc)
            report.failures.append(name)
            return
        self._log.info("Removed database %s", name)
        report.removed_databases.append(name)
