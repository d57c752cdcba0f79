"""Fully defaulted settings used for exactly one build.

:class:`ResolvedSettings` is produced by the settings resolver after merging
the global :class:`~scenario_engine.config.Settings`, test-class overrides and
scenario-specific overrides.  Nothing downstream of the resolver reads the
global settings again.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from scenario_engine.config import DriverName, SnapshotPolicy
from scenario_engine.models.scenario import ScenarioSpec


class ResolvedSettings(BaseModel):
    """The effective configuration of one build."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    project_name: str = ""
    test_name: str = ""
    connection: str = "default"
    driver: DriverName = DriverName.SQLITE
    database: str = Field(..., min_length=1, description="Original database name (or file) of the connection.")
    database_url: str | None = None
    database_modifier: str = ""

    base_path: str = "."
    storage_dir: str = ".scenariodb"
    snapshot_prefix: str = "snapshot."
    database_prefix: str = "test_"

    scenario: ScenarioSpec = Field(default_factory=ScenarioSpec)
    migrations_path: str = "database/migrations"
    check_for_source_changes: bool = True
    checksum_paths: list[str] = Field(default_factory=list)
    precalculated_build_checksum: str | None = None

    scenario_test_dbs: bool = True
    reuse_transaction: bool = True
    reuse_journal: bool = False
    verify_structure: bool = False
    verify_data: bool = False
    force_rebuild: bool = False

    use_snapshots_when_reusing_db: SnapshotPolicy = SnapshotPolicy.NEVER
    use_snapshots_when_not_reusing_db: SnapshotPolicy = SnapshotPolicy.AFTER_SEEDERS
    stale_grace_seconds: int = 4 * 3600

    remote_build_url: str | None = None
    remote_build_timeout: float = 120.0
    is_remote_build: bool = False
    is_browser_test: bool = False
    session_driver: str | None = None

    psql_executable: str = "psql"
    pg_dump_executable: str = "pg_dump"
    mysql_executable: str = "mysql"
    mysqldump_executable: str = "mysqldump"

    @property
    def reusing_db(self) -> bool:
        """Some reuse mechanism wraps the built database."""
        return self.reuse_transaction or self.reuse_journal

    @property
    def will_verify(self) -> bool:
        return self.verify_structure or self.verify_data

    @property
    def snapshot_policy(self) -> SnapshotPolicy:
        if self.reusing_db:
            return self.use_snapshots_when_reusing_db
        return self.use_snapshots_when_not_reusing_db

    @property
    def builds_remotely(self) -> bool:
        return bool(self.remote_build_url) and not self.is_remote_build

    def all_checksum_paths(self) -> list[str]:
        """Global and scenario checksum paths, de-duplicated in order."""
        seen: dict[str, None] = {}
        for path in [*self.checksum_paths, *self.scenario.checksum_paths]:
            seen.setdefault(path, None)
        return list(seen)

    def migration_paths(self) -> list[str]:
        """Directories the migration runner reads, empty when migrations are off."""
        if self.scenario.migrations is False:
            return []
        if self.scenario.migrations is True:
            return [self.migrations_path]
        return [self.scenario.migrations]
