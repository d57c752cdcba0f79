"""Default migration and seeder runners.

Migrations are ``*.sql`` files applied in filename order and recorded in a
``migrations`` table, so re-running a directory only applies new files.
Seeders are either ``*.sql`` files or dotted references to Python callables
(``package.module:function``) that receive an open SQLAlchemy connection
inside a transaction.

Both runners satisfy the small protocols in
:mod:`scenario_engine.migrations.base`, so a project can plug its own
migration engine into the builder instead.
"""

from __future__ import annotations

import importlib
import logging
import time
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, insert, select
from sqlalchemy.exc import SQLAlchemyError

from scenario_engine.checksum.paths import resolve_path
from scenario_engine.drivers.base import DatabaseDriver
from scenario_engine.errors import BuildError, ConfigError

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE = "migrations"

_metadata = MetaData()
migrations_table = Table(
    MIGRATIONS_TABLE,
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("migration", String(512), nullable=False, unique=True),
    Column("applied_at", DateTime(timezone=True), nullable=False),
)


class SqlMigrationRunner:
    """Applies ``*.sql`` migration files through the database driver."""

    def __init__(self, driver: DatabaseDriver, base_path: str | Path = ".") -> None:
        self._driver = driver
        self._base_path = Path(base_path)

    def pending(self, database: str, path: str) -> list[Path]:
        """Migration files under *path* not yet applied to *database*."""
        directory = resolve_path(path, self._base_path)
        if not directory.is_dir():
            raise ConfigError.path_missing(path, "migrations")
        applied = self._applied(database)
        return [file for file in sorted(directory.glob("*.sql")) if file.name not in applied]

    def _applied(self, database: str) -> set[str]:
        engine = self._driver.engine(database)
        _metadata.create_all(engine, tables=[migrations_table])
        with engine.connect() as conn:
            return {row[0] for row in conn.execute(select(migrations_table.c.migration))}

    def run(self, database: str, path: str) -> int:
        """Apply pending migrations from *path*; returns how many ran.

        Raises
        ------
        ConfigError
            If *path* is not a directory.
        BuildError
            If a migration fails.
        """
        start = time.monotonic()
        try:
            files = self.pending(database, path)
            for file in files:
                self._driver.import_file(database, file)
                with self._driver.engine(database).begin() as conn:
                    conn.execute(insert(migrations_table).values(migration=file.name, applied_at=datetime.now(UTC)))
                logger.debug("Migrated %s", file.name)
        except SQLAlchemyError as exc:
            raise BuildError(f"Migrations in {path} failed on {database}: {exc}") from exc
        logger.info("Ran %d migration(s) from %s (%.3fs)", len(files), path, time.monotonic() - start)
        return len(files)


class CallableSeederRunner:
    """Runs seeders given as ``*.sql`` files or ``module:function`` references."""

    def __init__(self, driver: DatabaseDriver, base_path: str | Path = ".") -> None:
        self._driver = driver
        self._base_path = Path(base_path)

    def run(self, database: str, seeders: list[str]) -> None:
        """Run *seeders* in order against *database*.

        Raises
        ------
        ConfigError
            If a seeder cannot be found.
        BuildError
            If a seeder fails.
        """
        for seeder in seeders:
            start = time.monotonic()
            if seeder.endswith(".sql"):
                path = resolve_path(seeder, self._base_path)
                if not path.is_file():
                    raise ConfigError.path_missing(seeder, "seeder")
                self._driver.import_file(database, path)
            else:
                self._run_callable(database, seeder)
            logger.info("Ran seeder %s (%.3fs)", seeder, time.monotonic() - start)

    def _run_callable(self, database: str, seeder: str) -> None:
        module_name, _, attr = seeder.partition(":")
        if not module_name or not attr:
            raise ConfigError(f"Seeder {seeder!r} must look like 'package.module:function' or end in .sql")
        try:
            func = getattr(importlib.import_module(module_name), attr)
        except (ImportError, AttributeError) as exc:
            raise ConfigError(f"Seeder {seeder!r} could not be imported: {exc}") from exc

        try:
            with self._driver.engine(database).begin() as conn:
                func(conn)
        except SQLAlchemyError as exc:
            raise BuildError(f"Seeder {seeder} failed on {database}: {exc}") from exc
