"""Shared fixtures for scenario engine tests.

Every test gets its own project directory under ``tmp_path`` with the
storage directory inside it, so SQLite databases and snapshots never leak
between tests.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from scenario_engine.config import Settings
from scenario_engine.models import ResolvedSettings, ScenarioSpec

PROJECT_NAME = "acme"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer SCENARIODB_* variables out of the tests."""
    for key in list(os.environ):
        if key.startswith("SCENARIODB_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def make_resolved(project: Path) -> Callable[..., ResolvedSettings]:
    """Factory for ResolvedSettings anchored at the test project."""

    def _make(**overrides: Any) -> ResolvedSettings:
        values: dict[str, Any] = {
            "project_name": PROJECT_NAME,
            "database": "app.sqlite",
            "base_path": str(project),
            "storage_dir": ".scenariodb",
            "scenario": ScenarioSpec(migrations=False),
        }
        values.update(overrides)
        return ResolvedSettings(**values)

    return _make


@pytest.fixture
def make_settings(project: Path) -> Callable[..., Settings]:
    """Factory for global Settings anchored at the test project."""

    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "project_name": PROJECT_NAME,
            "database": "app.sqlite",
            "base_path": project,
            "_env_file": None,
        }
        values.update(overrides)
        return Settings(**values)

    return _make
