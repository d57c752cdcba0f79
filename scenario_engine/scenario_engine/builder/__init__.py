"""Scenario builder and settings resolution."""

from scenario_engine.builder.orchestrator import BuildOutcome, DatabaseHandle, ScenarioBuilder
from scenario_engine.builder.resolver import SettingsResolver

__all__ = ["BuildOutcome", "DatabaseHandle", "ScenarioBuilder", "SettingsResolver"]
