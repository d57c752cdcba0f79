"""Structure and content fingerprints of a live database.

Used when verification is turned on: the fingerprints are stored in the
reuse metadata after a build and compared again before the database is
handed to the next test.  Reserved builder tables are always excluded.
"""

from __future__ import annotations

import hashlib
import json
import logging

from sqlalchemy import Engine, MetaData, inspect, select

from scenario_engine.checksum import canonical_digest
from scenario_engine.reuse.tables import is_reserved_table

logger = logging.getLogger(__name__)


def application_tables(engine: Engine) -> list[str]:
    """Sorted table names excluding the builder's reserved tables."""
    return sorted(name for name in inspect(engine).get_table_names() if not is_reserved_table(name))


def structure_checksum(engine: Engine) -> str:
    """Digest of every application table's columns, keys and indexes."""
    inspector = inspect(engine)
    structure: dict[str, object] = {}
    for table in application_tables(engine):
        structure[table] = {
            "columns": [
                {
                    "name": col["name"],
                    "type": str(col["type"]),
                    "nullable": bool(col.get("nullable", True)),
                    "default": None if col.get("default") is None else str(col["default"]),
                }
                for col in inspector.get_columns(table)
            ],
            "primary_key": inspector.get_pk_constraint(table).get("constrained_columns") or [],
            "foreign_keys": sorted(
                (
                    fk.get("referred_table") or "",
                    tuple(fk.get("constrained_columns") or []),
                    tuple(fk.get("referred_columns") or []),
                )
                for fk in inspector.get_foreign_keys(table)
            ),
            "indexes": sorted(
                (idx.get("name") or "", tuple(idx.get("column_names") or []), bool(idx.get("unique")))
                for idx in inspector.get_indexes(table)
            ),
        }
    return canonical_digest(structure)


def data_checksum(engine: Engine) -> str:
    """Digest of every row of every application table, in a stable order."""
    tables = application_tables(engine)
    metadata = MetaData()
    metadata.reflect(bind=engine, only=tables)
    hasher = hashlib.sha256()
    with engine.connect() as conn:
        for name in tables:
            table = metadata.tables[name]
            hasher.update(name.encode("utf-8"))
            rows = conn.execute(select(table).order_by(*table.columns))
            for row in rows:
                hasher.update(json.dumps(list(row), default=str, separators=(",", ":")).encode("utf-8"))
    return hasher.hexdigest()
