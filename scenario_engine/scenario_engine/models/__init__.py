"""Domain models for the scenario engine."""

from scenario_engine.models.fingerprint import NULL_BUILD_PART, BuildFingerprint
from scenario_engine.models.records import DatabaseRecord, SnapshotFile
from scenario_engine.models.resolved import ResolvedSettings
from scenario_engine.models.scenario import ScenarioSpec

__all__ = [
    "NULL_BUILD_PART",
    "BuildFingerprint",
    "DatabaseRecord",
    "ResolvedSettings",
    "ScenarioSpec",
    "SnapshotFile",
]
