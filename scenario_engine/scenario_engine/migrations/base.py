"""Interfaces of the migration and seeding collaborators."""

from __future__ import annotations

from typing import Protocol


class MigrationRunner(Protocol):
    def run(self, database: str, path: str) -> int:
        """Apply the migrations found at *path*; return how many ran."""
        ...


class SeederRunner(Protocol):
    def run(self, database: str, seeders: list[str]) -> None:
        """Run *seeders* in order."""
        ...
