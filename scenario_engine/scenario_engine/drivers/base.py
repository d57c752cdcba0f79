"""Capability interface for database engine families.

The orchestrator, reuse, snapshot and cache components only talk to a
:class:`DatabaseDriver`; engine specific SQL and tooling stays inside the
driver implementations.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Protocol

from sqlalchemy import Engine

from scenario_engine.config import DriverName


class DatabaseDriver(Protocol):
    """Structural interface for one database engine family.

    Implementations are **not** required to subclass this protocol; they only
    need to expose attributes and methods with matching signatures.
    """

    name: DriverName
    snapshot_extension: str
    supports_reuse: bool
    supports_snapshots: bool
    supports_journal: bool
    supports_remote_build: bool

    def database_stem(self, orig_database: str) -> str:
        """The original database name as used inside generated names."""
        ...

    def scenario_database_name(self, orig_database: str, name_part: str) -> str:
        """Name (or path) of the database built for a scenario.

        Parameters
        ----------
        orig_database:
            The connection's original database name.
        name_part:
            ``<build6>_<scenario12>`` produced by the checksum engine.
        """
        ...

    def original_database_name(self, orig_database: str) -> str:
        """Name (or path) used when scenario databases are turned off."""
        ...

    def url(self, database: str) -> str:
        """SQLAlchemy URL of *database*."""
        ...

    def engine(self, database: str) -> Engine:
        """Return (and lazily create) an engine bound to *database*."""
        ...

    def database_exists(self, database: str) -> bool:
        ...

    def create_database(self, database: str) -> None:
        ...

    def drop_database(self, database: str) -> None:
        """Remove *database*; a missing database is not an error."""
        ...

    def import_file(self, database: str, path: Path) -> None:
        """Apply a pre-data import file to *database*."""
        ...

    def export_snapshot(self, database: str, path: Path) -> None:
        """Write a snapshot of *database* to *path* atomically."""
        ...

    def import_snapshot(self, database: str, path: Path) -> None:
        """Replace the contents of *database* with the snapshot at *path*."""
        ...

    def list_databases(self) -> list[str]:
        """Databases that this project's builder may have created."""
        ...

    def size(self, database: str) -> int | None:
        """Size of *database* in bytes, ``None`` when unknown."""
        ...

    def modified_at(self, database: str) -> datetime | None:
        """Last modification time of *database*, ``None`` when the engine cannot tell."""
        ...

    def dispose(self, database: str | None = None) -> None:
        """Close pooled connections for *database*, or for every database."""
        ...
