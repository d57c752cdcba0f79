"""Fixtures for end-to-end scenario builds against real SQLite files."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from scenario_engine.config import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("SCENARIODB_"):
            monkeypatch.delenv(key)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project with one migration and one seeder."""
    root = tmp_path / "project"
    migrations = root / "database" / "migrations"
    migrations.mkdir(parents=True)
    (migrations / "0001_users.sql").write_text(
        "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL);",
        encoding="utf-8",
    )
    seeds = root / "database" / "seeds"
    seeds.mkdir()
    (seeds / "users.sql").write_text(
        "INSERT INTO users (name) VALUES ('ada'), ('grace');",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def make_settings(project: Path) -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "project_name": "acme",
            "database": "app.sqlite",
            "base_path": project,
            "_env_file": None,
        }
        values.update(overrides)
        return Settings(**values)

    return _make
