"""Scenario engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class DriverName(str, Enum):
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"


class SnapshotPolicy(str, Enum):
    """When snapshot files are taken and consulted."""

    NEVER = "never"
    AFTER_MIGRATIONS = "after_migrations"
    AFTER_SEEDERS = "after_seeders"
    BOTH = "both"

    @property
    def after_migrations(self) -> bool:
        return self in (SnapshotPolicy.AFTER_MIGRATIONS, SnapshotPolicy.BOTH)

    @property
    def after_seeders(self) -> bool:
        return self in (SnapshotPolicy.AFTER_SEEDERS, SnapshotPolicy.BOTH)

    @property
    def enabled(self) -> bool:
        return self is not SnapshotPolicy.NEVER


class Settings(BaseSettings):
    """Global builder settings loaded from environment variables with SCENARIODB_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="SCENARIODB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    debug: bool = False

    # Project identity -- databases built by other projects are never touched.
    project_name: str = ""

    # Connection
    connection: str = "default"
    driver: DriverName = DriverName.SQLITE
    database: str = "database.sqlite"
    database_url: str | None = None
    database_modifier: str = ""

    # Storage
    base_path: Path = Path(".")
    storage_dir: Path = Path(".scenariodb")
    snapshot_prefix: str = "snapshot."
    database_prefix: str = "test_"

    # Change detection
    check_for_source_changes: bool = True
    checksum_paths: list[str] = []
    migrations_path: str = "database/migrations"

    # Reuse
    scenario_test_dbs: bool = True
    reuse_transaction: bool = True
    reuse_journal: bool = False
    verify_structure: bool = False
    verify_data: bool = False
    force_rebuild: bool = False

    # Snapshots
    use_snapshots_when_reusing_db: SnapshotPolicy = SnapshotPolicy.NEVER
    use_snapshots_when_not_reusing_db: SnapshotPolicy = SnapshotPolicy.AFTER_SEEDERS

    # Garbage collection
    stale_grace_seconds: int = 4 * 3600

    # Remote building
    remote_build_url: str | None = None
    remote_build_timeout: float = 120.0

    # Client executables for server based drivers
    psql_executable: str = "psql"
    pg_dump_executable: str = "pg_dump"
    mysql_executable: str = "mysql"
    mysqldump_executable: str = "mysqldump"

    @field_validator("remote_build_url", mode="before")
    @classmethod
    def blank_url_is_none(cls, v: str | None) -> str | None:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("stale_grace_seconds")
    @classmethod
    def grace_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("stale_grace_seconds must be >= 0")
        return v


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for project %r (driver %s)", settings.project_name, settings.driver.value)

    return settings
