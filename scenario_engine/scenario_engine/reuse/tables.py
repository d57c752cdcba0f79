"""SQLAlchemy 2.0 table stored inside every database the builder creates.

The reuse metadata lives in the database it describes, so it travels with
the database between processes (and between machines, for snapshots taken
before the table is written).
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from scenario_engine.constants import JOURNAL_CHANGES_TABLE, JOURNAL_SHADOW_PREFIX, REUSE_TABLE

JOURNAL_TRIGGER_PREFIX = "____scenariodb_trg__"


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


def is_reserved_table(name: str) -> bool:
    """Tables owned by the builder rather than by the application schema."""
    return (
        name == REUSE_TABLE
        or name == JOURNAL_CHANGES_TABLE
        or name.startswith(JOURNAL_SHADOW_PREFIX)
        or name.startswith("sqlite_")
    )


class Base(DeclarativeBase):
    """Declarative base for the builder's reserved tables."""


class ReuseMetadataTable(Base):
    """Single-row record describing how the surrounding database was built."""

    __tablename__ = REUSE_TABLE

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    version: Mapped[str] = mapped_column(String(16), nullable=False)
    project_name: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    orig_database: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    build_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    snapshot_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    scenario_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    transaction_reusable: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    journal_reusable: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    verify_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    structure_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    data_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    last_used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
