"""Records for cached artefacts that outlive a single build.

``DatabaseRecord`` mirrors the reuse metadata row stored inside every built
database; ``SnapshotFile`` describes an exported database on disk.  Both are
shared between processes, and readers always re-validate checksums rather
than trusting these records blindly.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field


class DatabaseRecord(BaseModel):
    """Reuse metadata for one physical database (or database file)."""

    name: str = Field(..., min_length=1, description="Physical database name or file path.")
    orig_database: str = Field(default="", description="The database name the scenario was derived from.")
    project_name: str = Field(default="", description="Project that built the database.")
    build_checksum: str | None = None
    snapshot_checksum: str | None = None
    scenario_checksum: str | None = None
    transaction_reusable: bool | None = Field(
        default=None,
        description="True when clean, False while (or after) a wrapping transaction is open, None when unused.",
    )
    journal_reusable: bool | None = None
    verify_required: bool = False
    structure_checksum: str | None = None
    data_checksum: str | None = None
    created_at: datetime | None = None
    last_used_at: datetime | None = None

    # Filled in by the cache inventory.
    has_metadata: bool = True
    size_bytes: int | None = None
    modified_at: datetime | None = None
    is_stale: bool = False

    @property
    def is_clean(self) -> bool:
        """The database was left in a reusable state."""
        return bool(self.transaction_reusable) or bool(self.journal_reusable)


class SnapshotFile(BaseModel):
    """A snapshot file located in the storage directory."""

    path: Path
    build_part: str
    scenario_part: str
    modifier: str = ""
    extension: str
    size_bytes: int = 0
    modified_at: datetime | None = None
    is_stale: bool = False
