"""Snapshot export, import and garbage collection."""

from scenario_engine.snapshot.manager import SnapshotManager, storage_path

__all__ = ["SnapshotManager", "storage_path"]
