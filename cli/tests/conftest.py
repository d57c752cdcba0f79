"""Shared fixtures for CLI tests.

Each test runs from its own temporary working directory with a project
directory beneath it, so no ``.env`` file or developer ``SCENARIODB_*``
variable leaks into the settings the commands load.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

# Variables ``scenariodb serve`` writes into the process environment.
_SERVE_VARIABLES = ("SCENARIODB_API_HOST", "SCENARIODB_API_PORT", "SCENARIODB_API_SESSION_DRIVER")


@pytest.fixture(autouse=True)
def _clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("SCENARIODB_"):
            monkeypatch.delenv(key)
    for key in _SERVE_VARIABLES:
        # Registered so the serve command's writes are undone after the test.
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SCENARIODB_PROJECT_NAME", "acme")
    monkeypatch.setenv("SCENARIODB_DATABASE", "app.sqlite")


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root
