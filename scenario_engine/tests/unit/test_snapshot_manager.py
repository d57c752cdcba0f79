"""Unit tests for scenario_engine.snapshot."""

from __future__ import annotations

import os
import re
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from scenario_engine.checksum import ChecksumEngine
from scenario_engine.config import SnapshotPolicy
from scenario_engine.drivers import SQLiteDriver
from scenario_engine.models import ScenarioSpec
from scenario_engine.snapshot import SnapshotManager, storage_path
from sqlalchemy import text


def _manager(settings) -> tuple[SnapshotManager, SQLiteDriver]:
    driver = SQLiteDriver(settings)
    return SnapshotManager(driver, ChecksumEngine(settings)), driver


def _database(driver: SQLiteDriver, project: Path, name: str = "test_app_x.sqlite", rows: int = 1) -> str:
    database = str(project / ".scenariodb" / name)
    driver.create_database(database)
    with driver.engine(database).begin() as conn:
        conn.execute(text("CREATE TABLE items (id INTEGER PRIMARY KEY)"))
        for _ in range(rows):
            conn.execute(text("INSERT INTO items DEFAULT VALUES"))
    return database


def _count(driver: SQLiteDriver, database: str) -> int:
    with driver.engine(database).connect() as conn:
        return conn.execute(text("SELECT COUNT(*) FROM items")).scalar()


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


class TestNaming:
    def test_storage_path_anchored_at_project(self, make_resolved, project: Path):
        assert storage_path(make_resolved()) == project / ".scenariodb"

    def test_snapshot_filename(self, make_resolved, project: Path):
        manager, _ = _manager(make_resolved(database_modifier="-gw2"))
        path = manager.snapshot_path([])
        assert path.parent == project / ".scenariodb"
        assert re.match(r"^snapshot\.app\.[0-9a-f]{6}-[0-9a-f]{12}-gw2\.sqlite$", path.name)

    def test_filename_without_modifier(self, make_resolved):
        manager, _ = _manager(make_resolved())
        assert re.match(r"^snapshot\.app\.[0-9a-f]{6}-[0-9a-f]{12}\.sqlite$", manager.snapshot_path([]).name)

    def test_parse_round_trips_its_own_names(self, make_resolved):
        manager, _ = _manager(make_resolved(database_modifier="_gw1"))
        path = manager.snapshot_path(["seeds.sql"])
        path.parent.mkdir(parents=True)
        path.write_bytes(b"")
        snapshot = manager.parse(path)
        assert snapshot is not None
        assert snapshot.modifier == "gw1"
        assert snapshot.extension == "sqlite"
        assert path.name.startswith(f"snapshot.app.{snapshot.build_part}-{snapshot.scenario_part}")

    def test_parse_rejects_other_files(self, make_resolved, project: Path):
        manager, _ = _manager(make_resolved())
        assert manager.parse(project / "test_app_abcdef_0123456789ab.sqlite") is None


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class TestEnabled:
    def test_disabled_by_policy(self, make_resolved):
        manager, _ = _manager(make_resolved())  # reusing with the NEVER default
        assert manager.enabled is False

    def test_disabled_without_build_checksum(self, make_resolved):
        settings = make_resolved(
            use_snapshots_when_reusing_db=SnapshotPolicy.BOTH,
            check_for_source_changes=False,
        )
        manager, _ = _manager(settings)
        assert manager.enabled is False

    def test_enabled(self, make_resolved):
        manager, _ = _manager(make_resolved(use_snapshots_when_reusing_db=SnapshotPolicy.AFTER_SEEDERS))
        assert manager.enabled is True


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------


class TestExportImport:
    @pytest.fixture
    def enabled(self, make_resolved, project: Path):
        (project / "database" / "migrations").mkdir(parents=True)
        return make_resolved(
            scenario=ScenarioSpec(migrations=True, seeders=["seeds.sql"]),
            reuse_transaction=False,
            use_snapshots_when_not_reusing_db=SnapshotPolicy.BOTH,
        )

    def test_export_after_seeders_then_import(self, enabled, project: Path):
        manager, driver = _manager(enabled)
        source = _database(driver, project, rows=3)
        path = manager.export_after_seeders(source, ["seeds.sql"])
        assert path is not None and path.is_file()

        target = str(project / ".scenariodb" / "test_app_y.sqlite")
        driver.create_database(target)
        run_seeders = MagicMock()
        assert manager.try_import(target, ["seeds.sql"], run_seeders) is True
        run_seeders.assert_not_called()
        assert _count(driver, target) == 3
        driver.dispose()

    def test_after_migrations_snapshot_then_seeders(self, enabled, project: Path):
        manager, driver = _manager(enabled)
        source = _database(driver, project, rows=0)
        assert manager.export_after_migrations(source) is not None

        target = str(project / ".scenariodb" / "test_app_y.sqlite")
        driver.create_database(target)
        run_seeders = MagicMock()
        assert manager.try_import(target, ["seeds.sql"], run_seeders) is True
        run_seeders.assert_called_once_with(target, ["seeds.sql"])
        driver.dispose()

    def test_existing_snapshot_is_not_rewritten(self, enabled, project: Path):
        manager, driver = _manager(enabled)
        source = _database(driver, project)
        first = manager.export_after_seeders(source, ["seeds.sql"])
        assert first is not None
        assert manager.export_after_seeders(source, ["seeds.sql"]) is None
        driver.dispose()

    def test_nothing_to_import(self, enabled, project: Path):
        manager, _ = _manager(enabled)
        assert manager.try_import(str(project / "db.sqlite"), ["seeds.sql"], MagicMock()) is False

    def test_disabled_manager_never_imports(self, make_resolved, project: Path):
        manager, _ = _manager(make_resolved())
        assert manager.try_import(str(project / "db.sqlite"), [], MagicMock()) is False
        assert manager.export_after_seeders(str(project / "db.sqlite"), []) is None


# ---------------------------------------------------------------------------
# Garbage collection
# ---------------------------------------------------------------------------


class TestGarbageCollection:
    def _touch(self, storage: Path, name: str, age: timedelta) -> Path:
        storage.mkdir(parents=True, exist_ok=True)
        path = storage / name
        path.write_bytes(b"x")
        mtime = (datetime.now(UTC) - age).timestamp()
        os.utime(path, (mtime, mtime))
        return path

    def test_stale_needs_old_build_and_age(self, make_resolved, project: Path):
        settings = make_resolved(stale_grace_seconds=3600)
        manager, _ = _manager(settings)
        storage = project / ".scenariodb"
        current = ChecksumEngine(settings).build_name_part()
        other = "000000" if current != "000000" else "111111"

        old_other = self._touch(storage, f"snapshot.app.{other}-0123456789ab.sqlite", timedelta(hours=2))
        new_other = self._touch(storage, f"snapshot.app.{other}-ba9876543210.sqlite", timedelta(minutes=5))
        old_current = self._touch(storage, f"snapshot.app.{current}-0123456789ab.sqlite", timedelta(days=3))
        self._touch(storage, "test_app_abcdef_0123456789ab.sqlite", timedelta(days=3))

        stale = {s.path for s in manager.find_snapshots() if s.is_stale}
        assert stale == {old_other}
        assert {s.path for s in manager.find_snapshots()} == {old_other, new_other, old_current}

    def test_purge_removes_only_stale(self, make_resolved, project: Path):
        settings = make_resolved(stale_grace_seconds=0)
        manager, _ = _manager(settings)
        current = ChecksumEngine(settings).build_name_part()
        other = "000000" if current != "000000" else "111111"
        storage = project / ".scenariodb"
        stale = self._touch(storage, f"snapshot.app.{other}-0123456789ab.sqlite", timedelta(minutes=1))
        kept = self._touch(storage, f"snapshot.app.{current}-0123456789ab.sqlite", timedelta(minutes=1))

        assert manager.purge_stale() == [stale]
        assert not stale.exists()
        assert kept.exists()

    def test_purge_failure_is_logged_not_raised(self, make_resolved, project: Path, caplog):
        settings = make_resolved(stale_grace_seconds=0)
        manager, _ = _manager(settings)
        current = ChecksumEngine(settings).build_name_part()
        other = "000000" if current != "000000" else "111111"
        self._touch(project / ".scenariodb", f"snapshot.app.{other}-0123456789ab.sqlite", timedelta(minutes=1))

        with patch.object(Path, "unlink", side_effect=PermissionError("read-only")):
            assert manager.purge_stale() == []
        assert "Could not remove stale snapshot" in caplog.text

    def test_unknown_build_checksum_judges_by_age(self, make_resolved, project: Path, caplog):
        settings = make_resolved(scenario=ScenarioSpec(migrations=True), stale_grace_seconds=3600)
        manager, _ = _manager(settings)
        storage = project / ".scenariodb"
        old = self._touch(storage, "snapshot.app.abcdef-0123456789ab.sqlite", timedelta(hours=2))
        self._touch(storage, "snapshot.app.abcdef-ba9876543210.sqlite", timedelta(minutes=5))

        assert {s.path for s in manager.find_snapshots() if s.is_stale} == {old}
        assert "Snapshot staleness is judged by age only" in caplog.text
