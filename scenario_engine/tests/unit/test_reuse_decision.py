"""Unit tests for scenario_engine.reuse.decision."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pytest
from scenario_engine.drivers import SQLiteDriver
from scenario_engine.errors import OwnershipConflict
from scenario_engine.models import BuildFingerprint
from scenario_engine.reuse import Journal, ReuseDecisionEngine, ReuseMetadataStore, ReuseState
from scenario_engine.reuse.verification import data_checksum, structure_checksum
from sqlalchemy import text

FINGERPRINT = BuildFingerprint(build_checksum="b" * 64, scenario_checksum="c" * 64, snapshot_checksum="s" * 64)


@pytest.fixture
def driver(make_resolved):
    driver = SQLiteDriver(make_resolved())
    yield driver
    driver.dispose()


@pytest.fixture
def store(driver: SQLiteDriver) -> ReuseMetadataStore:
    return ReuseMetadataStore(driver)


@pytest.fixture
def engine(driver: SQLiteDriver, store: ReuseMetadataStore) -> ReuseDecisionEngine:
    return ReuseDecisionEngine(driver, store)


@pytest.fixture
def database(driver: SQLiteDriver, project: Path) -> str:
    name = str(project / ".scenariodb" / "test_app_bbbbbb_cccccccccccc.sqlite")
    driver.create_database(name)
    with driver.engine(name).begin() as conn:
        conn.execute(text("CREATE TABLE items (id INTEGER PRIMARY KEY, label TEXT)"))
        conn.execute(text("INSERT INTO items (label) VALUES ('a')"))
    return name


def _record(store: ReuseMetadataStore, database: str, **overrides: Any) -> None:
    values: dict[str, Any] = {
        "orig_database": "app.sqlite",
        "project_name": "acme",
        "build_checksum": FINGERPRINT.build_checksum,
        "snapshot_checksum": FINGERPRINT.snapshot_checksum,
        "scenario_checksum": FINGERPRINT.scenario_checksum,
        "transaction_reusable": True,
        "journal_reusable": None,
        "will_verify": False,
    }
    values.update(overrides)
    store.write(database, **values)


# ---------------------------------------------------------------------------
# Must build
# ---------------------------------------------------------------------------


class TestMustBuild:
    def test_force_rebuild(self, engine, store, database, make_resolved):
        _record(store, database)
        decision = engine.decide(database, make_resolved(force_rebuild=True), FINGERPRINT)
        assert decision.state is ReuseState.MUST_BUILD
        assert decision.reason == "force-rebuild"

    def test_reuse_disabled(self, engine, store, database, make_resolved):
        _record(store, database)
        settings = make_resolved(reuse_transaction=False, reuse_journal=False)
        assert engine.decide(database, settings, FINGERPRINT).reason == "reuse-disabled"

    def test_missing_database(self, engine, make_resolved, project: Path):
        decision = engine.decide(str(project / "nope.sqlite"), make_resolved(), FINGERPRINT)
        assert decision.reason == "missing"
        assert not decision.reusable

    def test_no_metadata(self, engine, database, make_resolved):
        assert engine.decide(database, make_resolved(), FINGERPRINT).reason == "no-metadata"

    def test_build_checksum_changed(self, engine, store, database, make_resolved):
        _record(store, database, build_checksum="0" * 64)
        decision = engine.decide(database, make_resolved(), FINGERPRINT)
        assert decision.reason == "build-checksum-changed"
        assert decision.record is not None

    def test_scenario_checksum_changed(self, engine, store, database, make_resolved):
        _record(store, database, scenario_checksum="0" * 64)
        assert engine.decide(database, make_resolved(), FINGERPRINT).reason == "scenario-checksum-changed"

    def test_committed_transaction_warns(self, engine, store, database, make_resolved, caplog):
        _record(store, database, transaction_reusable=False)
        with caplog.at_level(logging.WARNING):
            decision = engine.decide(database, make_resolved(), FINGERPRINT)
        assert decision.reason == "transaction-committed"
        assert "committed the wrapping transaction" in caplog.text

    def test_not_reusable_when_no_mechanism_applies(self, engine, store, database, make_resolved):
        _record(store, database, transaction_reusable=None)
        assert engine.decide(database, make_resolved(), FINGERPRINT).reason == "not-reusable"


class TestOwnership:
    def test_other_project_raises_before_checksums(self, engine, store, database, make_resolved):
        _record(store, database, project_name="someone-else", build_checksum="0" * 64)
        with pytest.raises(OwnershipConflict) as exc_info:
            engine.decide(database, make_resolved(), FINGERPRINT)
        assert exc_info.value.owner == "someone-else"
        assert exc_info.value.requested_by == "acme"


# ---------------------------------------------------------------------------
# Reuse
# ---------------------------------------------------------------------------


class TestReuse:
    def test_rolled_back_transaction(self, engine, store, database, make_resolved):
        _record(store, database)
        decision = engine.decide(database, make_resolved(), FINGERPRINT)
        assert decision.state is ReuseState.REUSE_CLEAN
        assert decision.reason == "transaction-rolled-back"
        assert decision.reusable

    def test_journal_revert(self, engine, store, driver, database, make_resolved):
        settings = make_resolved(reuse_transaction=False, reuse_journal=True)
        Journal(driver, database).start()
        _record(store, database, transaction_reusable=None, journal_reusable=True)
        with driver.engine(database).begin() as conn:
            conn.execute(text("DELETE FROM items"))

        decision = engine.decide(database, settings, FINGERPRINT)
        assert decision.state is ReuseState.REUSE_VIA_JOURNAL_REVERT
        with driver.engine(database).connect() as conn:
            assert conn.execute(text("SELECT label FROM items")).scalars().all() == ["a"]

    def test_journal_that_cannot_revert(self, engine, store, driver, database, make_resolved):
        settings = make_resolved(reuse_transaction=False, reuse_journal=True)
        Journal(driver, database).start()
        _record(store, database, transaction_reusable=None, journal_reusable=True)
        with driver.engine(database).begin() as conn:
            conn.execute(text("CREATE TABLE surprise (id INTEGER)"))
        assert engine.decide(database, settings, FINGERPRINT).reason == "journal-cannot-revert"


class TestVerification:
    def test_unchanged_structure_passes(self, engine, store, driver, database, make_resolved):
        _record(store, database, will_verify=True, structure_checksum=structure_checksum(driver.engine(database)))
        decision = engine.decide(database, make_resolved(verify_structure=True), FINGERPRINT)
        assert decision.reusable

    def test_changed_structure_rebuilds(self, engine, store, driver, database, make_resolved):
        _record(store, database, will_verify=True, structure_checksum=structure_checksum(driver.engine(database)))
        with driver.engine(database).begin() as conn:
            conn.execute(text("CREATE TABLE leaked (id INTEGER)"))
        decision = engine.decide(database, make_resolved(verify_structure=True), FINGERPRINT)
        assert decision.reason == "structure-changed"

    def test_changed_data_rebuilds(self, engine, store, driver, database, make_resolved):
        _record(store, database, will_verify=True, data_checksum=data_checksum(driver.engine(database)))
        with driver.engine(database).begin() as conn:
            conn.execute(text("INSERT INTO items (label) VALUES ('leaked')"))
        decision = engine.decide(database, make_resolved(verify_data=True), FINGERPRINT)
        assert decision.reason == "data-changed"
