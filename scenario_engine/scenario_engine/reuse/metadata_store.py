"""Read and write the reuse metadata row kept inside each built database.

Reads are deliberately forgiving: a database without the table, with a
table from another version, with zero or several rows, or one that cannot be
queried at all is reported as ``None`` ("unknown, do not reuse") and never
raises.  Writes replace whatever row was there before.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Connection, delete, inspect, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scenario_engine.constants import REUSE_TABLE, REUSE_TABLE_VERSION
from scenario_engine.drivers.base import DatabaseDriver
from scenario_engine.errors import BuildError
from scenario_engine.models.records import DatabaseRecord
from scenario_engine.reuse.tables import ReuseMetadataTable

logger = logging.getLogger(__name__)


class ReuseMetadataStore:
    """Persists :class:`DatabaseRecord` values through a database driver."""

    def __init__(self, driver: DatabaseDriver) -> None:
        self._driver = driver

    def write(
        self,
        database: str,
        *,
        orig_database: str,
        project_name: str,
        build_checksum: str | None,
        snapshot_checksum: str | None,
        scenario_checksum: str | None,
        transaction_reusable: bool | None,
        journal_reusable: bool | None,
        will_verify: bool,
        structure_checksum: str | None = None,
        data_checksum: str | None = None,
    ) -> None:
        """Create the metadata table if needed and store a fresh row.

        Raises
        ------
        BuildError
            If the row cannot be written.
        """
        engine = self._driver.engine(database)
        now = datetime.now(UTC)
        try:
            ReuseMetadataTable.metadata.create_all(engine, tables=[ReuseMetadataTable.__table__])
            with Session(engine) as session, session.begin():
                session.execute(delete(ReuseMetadataTable))
                session.add(
                    ReuseMetadataTable(
                        version=REUSE_TABLE_VERSION,
                        project_name=project_name,
                        orig_database=orig_database,
                        build_checksum=build_checksum,
                        snapshot_checksum=snapshot_checksum,
                        scenario_checksum=scenario_checksum,
                        transaction_reusable=transaction_reusable,
                        journal_reusable=journal_reusable,
                        verify_required=will_verify,
                        structure_checksum=structure_checksum,
                        data_checksum=data_checksum,
                        created_at=now,
                        last_used_at=now,
                    )
                )
        except SQLAlchemyError as exc:
            raise BuildError(f"Could not write the reuse metadata of {database}: {exc}") from exc
        logger.debug("Wrote reuse metadata to %s", database)

    def read(self, database: str) -> DatabaseRecord | None:
        """Return the stored record, or ``None`` when it is missing or unusable."""
        try:
            if not self._driver.database_exists(database):
                return None
            engine = self._driver.engine(database)
            if not inspect(engine).has_table(REUSE_TABLE):
                return None
            with Session(engine) as session:
                rows = session.execute(select(ReuseMetadataTable)).scalars().all()
        except Exception as exc:
            # Any failure here means "unknown", which the caller treats as not reusable.
            logger.debug("Could not read reuse metadata from %s: %s", database, exc)
            return None

        if len(rows) != 1:
            logger.debug("Reuse metadata of %s has %d rows, ignoring it", database, len(rows))
            return None
        row = rows[0]
        if row.version != REUSE_TABLE_VERSION:
            logger.debug("Reuse metadata of %s is version %s, ignoring it", database, row.version)
            return None

        return DatabaseRecord(
            name=database,
            orig_database=row.orig_database,
            project_name=row.project_name,
            build_checksum=row.build_checksum,
            snapshot_checksum=row.snapshot_checksum,
            scenario_checksum=row.scenario_checksum,
            transaction_reusable=row.transaction_reusable,
            journal_reusable=row.journal_reusable,
            verify_required=row.verify_required,
            structure_checksum=row.structure_checksum,
            data_checksum=row.data_checksum,
            created_at=row.created_at,
            last_used_at=row.last_used_at,
        )

    def remove(self, database: str) -> None:
        """Drop the metadata table so the database is no longer reusable."""
        try:
            engine = self._driver.engine(database)
            ReuseMetadataTable.__table__.drop(engine, checkfirst=True)
        except SQLAlchemyError as exc:
            raise BuildError(f"Could not remove the reuse metadata of {database}: {exc}") from exc

    def mark_used(self, database: str) -> None:
        """Record that the database has just been handed to a test."""
        self._update(database, last_used_at=datetime.now(UTC))

    def set_transaction_reusable(self, connection: Connection, value: bool) -> None:
        """Flip the transaction flag through *connection*, inside its transaction."""
        connection.execute(update(ReuseMetadataTable).values(transaction_reusable=value))

    def _update(self, database: str, **values: object) -> None:
        try:
            with self._driver.engine(database).begin() as conn:
                conn.execute(update(ReuseMetadataTable).values(**values))
        except SQLAlchemyError as exc:
            raise BuildError(f"Could not update the reuse metadata of {database}: {exc}") from exc
