"""Trigger based change journal for reverting a database without a transaction.

When journaling starts, every application table gets a shadow copy of its
rows and three triggers that record the table's name in a changes table
whenever it is written to.  Reverting copies the shadow rows back into each
recorded table.  Only data changes can be reverted: if the set of tables (or
their columns) changed since journaling started, :meth:`Journal.can_revert`
reports ``False`` and the database has to be rebuilt.

Triggers are written in SQLite's dialect; drivers advertise support through
``supports_journal``.
"""

from __future__ import annotations

import logging
import time

from sqlalchemy import Connection, Engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError

from scenario_engine.constants import JOURNAL_CHANGES_TABLE, JOURNAL_SHADOW_PREFIX
from scenario_engine.drivers.base import DatabaseDriver
from scenario_engine.errors import BuildError, DriverUnsupported
from scenario_engine.reuse.tables import JOURNAL_TRIGGER_PREFIX, is_reserved_table

logger = logging.getLogger(__name__)

_OPERATIONS = ("INSERT", "UPDATE", "DELETE")


class Journal:
    """Change journal for one database."""

    def __init__(self, driver: DatabaseDriver, database: str) -> None:
        if not driver.supports_journal:
            raise DriverUnsupported(driver.name.value, "journal based reuse")
        self._driver = driver
        self._database = database

    @property
    def _engine(self) -> Engine:
        return self._driver.engine(self._database)

    def _quote(self, name: str) -> str:
        return self._engine.dialect.identifier_preparer.quote(name)

    @staticmethod
    def _literal(value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def _application_tables(self) -> list[str]:
        return sorted(name for name in inspect(self._engine).get_table_names() if not is_reserved_table(name))

    def _shadow_tables(self) -> dict[str, str]:
        """Map of application table name to its shadow table name."""
        names = inspect(self._engine).get_table_names()
        return {
            name[len(JOURNAL_SHADOW_PREFIX) :]: name for name in names if name.startswith(JOURNAL_SHADOW_PREFIX)
        }

    # -- Set-up / tear-down ------------------------------------------------------

    def start(self) -> None:
        """Snapshot every application table and install the change triggers.

        Raises
        ------
        BuildError
            If the journal tables or triggers cannot be created.
        """
        start = time.monotonic()
        self.remove()
        tables = self._application_tables()
        changes = self._quote(JOURNAL_CHANGES_TABLE)
        try:
            with self._engine.begin() as conn:
                conn.execute(text(f"CREATE TABLE {changes} (table_name VARCHAR(512) PRIMARY KEY)"))
                for table in tables:
                    shadow = self._quote(JOURNAL_SHADOW_PREFIX + table)
                    conn.execute(text(f"CREATE TABLE {shadow} AS SELECT * FROM {self._quote(table)}"))
                    for operation in _OPERATIONS:
                        trigger = self._quote(f"{JOURNAL_TRIGGER_PREFIX}{table}_{operation.lower()}")
                        conn.execute(
                            text(
                                f"CREATE TRIGGER {trigger} AFTER {operation} ON {self._quote(table)} "
                                f"BEGIN INSERT OR IGNORE INTO {changes} (table_name) "
                                f"VALUES ({self._literal(table)}); END"
                            )
                        )
        except SQLAlchemyError as exc:
            raise BuildError(f"Could not start the change journal of {self._database}: {exc}") from exc
        logger.debug(
            "Journaling %d table(s) of %s (%.3fs)",
            len(tables),
            self._database,
            time.monotonic() - start,
        )

    def remove(self) -> None:
        """Drop the journal's triggers, shadow tables and changes table."""
        inspector = inspect(self._engine)
        try:
            with self._engine.begin() as conn:
                for table in inspector.get_table_names():
                    for operation in _OPERATIONS:
                        trigger = self._quote(f"{JOURNAL_TRIGGER_PREFIX}{table}_{operation.lower()}")
                        conn.execute(text(f"DROP TRIGGER IF EXISTS {trigger}"))
                for shadow in self._shadow_tables().values():
                    conn.execute(text(f"DROP TABLE IF EXISTS {self._quote(shadow)}"))
                conn.execute(text(f"DROP TABLE IF EXISTS {self._quote(JOURNAL_CHANGES_TABLE)}"))
        except SQLAlchemyError as exc:
            raise BuildError(f"Could not remove the change journal of {self._database}: {exc}") from exc

    # -- Inspection ------------------------------------------------------------

    def is_active(self) -> bool:
        return inspect(self._engine).has_table(JOURNAL_CHANGES_TABLE)

    def changed_tables(self) -> list[str]:
        with self._engine.connect() as conn:
            rows = conn.execute(text(f"SELECT table_name FROM {self._quote(JOURNAL_CHANGES_TABLE)}"))
            return sorted(row[0] for row in rows)

    def can_revert(self) -> bool:
        """Whether every change since :meth:`start` is a data change the journal holds."""
        try:
            if not self.is_active():
                return False
            inspector = inspect(self._engine)
            tables = self._application_tables()
            shadows = self._shadow_tables()
            if sorted(shadows) != tables:
                logger.debug("Tables of %s changed since journaling started", self._database)
                return False
            for table in tables:
                live = [col["name"] for col in inspector.get_columns(table)]
                saved = [col["name"] for col in inspector.get_columns(shadows[table])]
                if live != saved:
                    logger.debug("Columns of %s.%s changed since journaling started", self._database, table)
                    return False
        except SQLAlchemyError as exc:
            logger.debug("Could not inspect the change journal of %s: %s", self._database, exc)
            return False
        return True

    # -- Revert ----------------------------------------------------------------

    def revert(self) -> list[str]:
        """Restore every changed table from its shadow copy.

        Returns
        -------
        list[str]
            The tables that were restored.

        Raises
        ------
        BuildError
            If the journal cannot be reverted.
        """
        start = time.monotonic()
        shadows = self._shadow_tables()
        try:
            changed = self.changed_tables()
            with self._engine.connect() as conn:
                # Tables are restored one at a time, so foreign keys stay off
                # until every table is back in place.
                conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
                conn.commit()
                self._restore(conn, changed, shadows)
                conn.commit()
        except SQLAlchemyError as exc:
            raise BuildError(f"Could not revert the change journal of {self._database}: {exc}") from exc
        finally:
            # New connections get foreign keys switched back on.
            self._driver.dispose(self._database)
        logger.info(
            "Reverted %d changed table(s) of %s (%.3fs)",
            len(changed),
            self._database,
            time.monotonic() - start,
        )
        return changed

    def _restore(self, conn: Connection, changed: list[str], shadows: dict[str, str]) -> None:
        for table in changed:
            shadow = shadows.get(table)
            if shadow is None:
                raise BuildError(f"The change journal of {self._database} has no copy of {table}")
            conn.execute(text(f"DELETE FROM {self._quote(table)}"))
            conn.execute(text(f"INSERT INTO {self._quote(table)} SELECT * FROM {self._quote(shadow)}"))
        conn.execute(text(f"DELETE FROM {self._quote(JOURNAL_CHANGES_TABLE)}"))
