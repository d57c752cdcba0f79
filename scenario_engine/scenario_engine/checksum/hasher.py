"""Deterministic fingerprints for scenario builds.

Three checksums are produced:

* **build checksum** -- content of every file that *can* be used to build
  the database (migrations, pre-data imports, checksum paths), the database
  prefix and the reuse table version.  Any source change invalidates it.
* **snapshot checksum** -- what a snapshot file contains: the pre-data
  imports, the migrations setting and the seeders.
* **scenario checksum** -- the snapshot checksum plus the settings that
  decide how the database is reused (project, original database, reuse and
  verification flags).

All three are SHA-256 digests of canonical JSON, so identical inputs give
identical results across processes.  Results are memoised for the lifetime
of one :class:`ChecksumEngine`; call :meth:`ChecksumEngine.reset` to force
recomputation.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import time
from pathlib import Path
from typing import Any

from scenario_engine.checksum.paths import collect_files, file_checksum, relative_key
from scenario_engine.constants import REUSE_TABLE_VERSION
from scenario_engine.models.fingerprint import (
    BUILD_PART_LENGTH,
    NULL_BUILD_PART,
    SCENARIO_PART_LENGTH,
    BuildFingerprint,
)
from scenario_engine.models.resolved import ResolvedSettings

logger = logging.getLogger(__name__)


def canonical_digest(payload: dict[str, Any]) -> str:
    """SHA-256 over the canonical (sorted, compact) JSON form of *payload*."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def join_name_parts(*parts: str) -> str:
    """Join the non-empty *parts* with hyphens."""
    return "-".join(part for part in parts if part)


class ChecksumEngine:
    """Computes and memoises the fingerprints of one build configuration.

    Parameters
    ----------
    settings:
        The resolved settings of the build.
    supports_reuse:
        Whether the driver can reuse databases at all.  Without reuse there
        is no point hashing source files.
    supports_snapshots:
        Whether the driver can export snapshots.
    """

    def __init__(
        self,
        settings: ResolvedSettings,
        *,
        supports_reuse: bool = True,
        supports_snapshots: bool = True,
    ) -> None:
        self._settings = settings
        self._supports_reuse = supports_reuse
        self._supports_snapshots = supports_snapshots
        self._base_path = Path(settings.base_path).resolve()
        self._build_checksum: str | None = None
        self._scenario_checksum: str | None = None
        self._snapshot_checksum: str | None = None
        self._scenario_done = False
        self._snapshot_done = False
        if settings.precalculated_build_checksum:
            self._build_checksum = settings.precalculated_build_checksum

    @property
    def settings(self) -> ResolvedSettings:
        return self._settings

    def reset(self) -> None:
        """Forget every memoised checksum (including a pre-calculated one)."""
        self._build_checksum = None
        self._scenario_checksum = None
        self._snapshot_checksum = None
        self._scenario_done = False
        self._snapshot_done = False

    def accept_precalculated_build_checksum(self, build_checksum: str | None) -> None:
        """Use a build checksum computed elsewhere instead of hashing files again."""
        if build_checksum:
            self._build_checksum = build_checksum

    # -- Build checksum --------------------------------------------------------

    @property
    def build_checksum_enabled(self) -> bool:
        return self._settings.check_for_source_changes and self._supports_reuse

    def build_checksum(self, force: bool = False) -> str | None:
        """Return the build checksum, or ``None`` when source checking is off.

        Parameters
        ----------
        force:
            Compute the checksum even when it is turned off by the settings.

        Raises
        ------
        ConfigError
            If a referenced path does not exist or is a directory where only
            files are allowed.
        """
        if not force and not self.build_checksum_enabled:
            return None
        if self._build_checksum is None:
            self._build_checksum = self._generate_build_checksum()
        return self._build_checksum

    def _generate_build_checksum(self) -> str:
        start = time.monotonic()
        files = self._list_build_files()
        file_checksums = {relative_key(path, self._base_path): file_checksum(path) for path in files}
        checksum = canonical_digest(
            {
                "file_checksums": file_checksums,
                "database_prefix": self._settings.database_prefix,
                "version": REUSE_TABLE_VERSION,
            }
        )
        logger.debug(
            "Generated the build checksum from %d file(s) in %.3fs: %s",
            len(files),
            time.monotonic() - start,
            checksum[:12],
        )
        return checksum

    def _list_build_files(self) -> list[Path]:
        s = self._settings
        files: set[Path] = set()
        files.update(
            collect_files(
                s.scenario.pick_pre_data_imports(s.driver.value),
                self._base_path,
                dir_allowed=False,
                kind="pre-data import",
            )
        )
        files.update(
            collect_files(
                s.migration_paths(),
                self._base_path,
                dir_allowed=True,
                kind="migrations",
            )
        )
        files.update(
            collect_files(
                s.all_checksum_paths(),
                self._base_path,
                dir_allowed=True,
                kind="checksum",
            )
        )
        return sorted(files)

    # -- Snapshot / scenario checksums ----------------------------------------

    def _recipe_checksum(self, seeders: list[str]) -> str:
        s = self._settings
        return canonical_digest(
            {
                "pre_data_imports": s.scenario.pick_pre_data_imports(s.driver.value),
                "migrations": s.scenario.migrations,
                "seeders": list(seeders),
            }
        )

    def snapshot_checksum(self, seeders: list[str] | None = None) -> str | None:
        """Checksum of what a snapshot holds; ``None`` when snapshots are unsupported.

        *seeders* defaults to the seeders this scenario runs.  Passing an
        empty list gives the checksum of the after-migrations snapshot.
        """
        if not self._supports_snapshots:
            return None
        if seeders is not None:
            return self._recipe_checksum(seeders)
        if not self._snapshot_done:
            self._snapshot_checksum = self._recipe_checksum(self._settings.scenario.seeders_to_run())
            self._snapshot_done = True
        return self._snapshot_checksum

    def scenario_checksum(self) -> str | None:
        """Checksum of the build recipe and reuse settings; ``None`` without scenario databases."""
        if not self._settings.scenario_test_dbs:
            return None
        if not self._scenario_done:
            s = self._settings
            self._scenario_checksum = canonical_digest(
                {
                    "snapshot_checksum": self._recipe_checksum(s.scenario.seeders_to_run()),
                    "project_name": s.project_name,
                    "orig_database": s.database,
                    "scenario_test_dbs": s.scenario_test_dbs,
                    "reuse_transaction": s.reuse_transaction,
                    "reuse_journal": s.reuse_journal,
                    "verify_structure": s.verify_structure,
                    "verify_data": s.verify_data,
                }
            )
            self._scenario_done = True
        return self._scenario_checksum

    def fingerprint(self) -> BuildFingerprint:
        return BuildFingerprint(
            build_checksum=self.build_checksum(),
            scenario_checksum=self.scenario_checksum(),
            snapshot_checksum=self.snapshot_checksum(),
        )

    # -- Name parts -----------------------------------------------------------

    def build_name_part(self, use_build_checksum: bool = True, force: bool = False) -> str:
        """First six characters of the build checksum, or ``xxxxxx``."""
        checksum = self.build_checksum(force) if use_build_checksum else None
        return (checksum or NULL_BUILD_PART)[:BUILD_PART_LENGTH]

    def snapshot_name_part(self, seeders: list[str]) -> str:
        """``<build6>-<snapshot12>`` used in snapshot filenames."""
        snapshot = self.snapshot_checksum(seeders) or ""
        return join_name_parts(self.build_name_part(), snapshot[:SCENARIO_PART_LENGTH])

    def database_name_part(self) -> str:
        """``<build6>_<scenario12>`` used in scenario database names."""
        scenario = self.scenario_checksum() or ""
        return "_".join(part for part in (self.build_name_part(), scenario[:SCENARIO_PART_LENGTH]) if part)

    def filename_has_build_checksum(self, filename: str) -> bool:
        """Whether *filename* was produced for the current (or the null) build checksum.

        e.g. ``snapshot.test_db.ef7aa7-1e6855bc44ee.sqlite``
        """
        parts = {self.build_name_part(True, True), self.build_name_part(False)}
        for part in parts:
            pattern = r"^.+\." + re.escape(part) + r"[^0-9a-f][0-9a-f]+(-[^.]+)?\.[^.]+$"
            if re.match(pattern, filename):
                return True
        return False
