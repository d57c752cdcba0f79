"""Unit tests for scenario_engine.builder.resolver."""

from __future__ import annotations

from pathlib import Path

import pytest
from scenario_engine.builder import SettingsResolver
from scenario_engine.config import DriverName
from scenario_engine.errors import ConfigError
from scenario_engine.models import ScenarioSpec
from scenario_engine.remote import RemoteBuildPayload


class TestResolve:
    def test_inherits_global_settings(self, make_settings, project: Path):
        resolved = SettingsResolver(make_settings(reuse_journal=True)).resolve()
        assert resolved.project_name == "acme"
        assert resolved.reuse_journal is True
        assert resolved.base_path == str(project)
        assert resolved.scenario == ScenarioSpec()

    def test_overrides_win_over_globals(self, make_settings):
        resolved = SettingsResolver(make_settings(database_modifier="")).resolve(
            overrides={"database_modifier": "-gw3", "verify_structure": True}
        )
        assert resolved.database_modifier == "-gw3"
        assert resolved.verify_structure is True

    def test_scenario_attached(self, make_settings):
        spec = ScenarioSpec(migrations=False, seeders=["seed.sql"])
        assert SettingsResolver(make_settings()).resolve(spec).scenario == spec

    def test_test_name(self, make_settings):
        assert SettingsResolver(make_settings()).resolve(test_name="test_checkout").test_name == "test_checkout"

    def test_unknown_override_rejected(self, make_settings):
        with pytest.raises(ConfigError, match="no_such_setting"):
            SettingsResolver(make_settings()).resolve(overrides={"no_such_setting": 1})

    def test_fixed_fields_cannot_be_overridden(self, make_settings):
        with pytest.raises(ConfigError):
            SettingsResolver(make_settings()).resolve(overrides={"is_remote_build": True})

    def test_invalid_value_becomes_config_error(self, make_settings):
        with pytest.raises(ConfigError, match="Invalid settings"):
            SettingsResolver(make_settings()).resolve(overrides={"driver": "oracle"})

    def test_path_override_stored_as_string(self, make_settings, tmp_path: Path):
        resolved = SettingsResolver(make_settings()).resolve(overrides={"storage_dir": tmp_path / "dbs"})
        assert resolved.storage_dir == str(tmp_path / "dbs")

    def test_browser_tests_do_not_wrap_in_transactions(self, make_settings):
        resolved = SettingsResolver(make_settings()).resolve(overrides={"is_browser_test": True})
        assert resolved.reuse_transaction is False


class TestResolveRemote:
    def test_payload_applied_over_local_connection(self, make_settings, project: Path):
        local = make_settings(remote_build_url="http://elsewhere", database_url=None)
        payload = RemoteBuildPayload(
            project_name="acme",
            driver=DriverName.SQLITE,
            database="app.sqlite",
            scenario=ScenarioSpec(migrations=False),
            reuse_journal=True,
            precalculated_build_checksum="c" * 64,
        )
        resolved = SettingsResolver(local).resolve_remote(payload)
        assert resolved.is_remote_build is True
        assert resolved.remote_build_url is None
        assert resolved.builds_remotely is False
        assert resolved.reuse_journal is True
        assert resolved.precalculated_build_checksum == "c" * 64
        assert resolved.base_path == str(project)
