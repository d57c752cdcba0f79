"""Scenario database builder: fingerprinting, reuse and snapshot caching for test databases."""

from scenario_engine.builder import BuildOutcome, DatabaseHandle, ScenarioBuilder
from scenario_engine.config import DriverName, Settings, SnapshotPolicy, load_settings
from scenario_engine.models import ScenarioSpec

__version__ = "0.1.0"

__all__ = [
    "BuildOutcome",
    "DatabaseHandle",
    "DriverName",
    "ScenarioBuilder",
    "ScenarioSpec",
    "Settings",
    "SnapshotPolicy",
    "load_settings",
]
