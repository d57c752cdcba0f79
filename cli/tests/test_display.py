"""Tests for cli/cli/display.py -- Rich output formatting.

Rendered output is captured via a Console writing to a StringIO buffer
rather than stderr.
"""

from __future__ import annotations

import io
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from rich.console import Console
from scenario_engine.builder import BuildOutcome
from scenario_engine.cache import PurgeReport
from scenario_engine.models import BuildFingerprint, DatabaseRecord, SnapshotFile

from cli.display import (
    _coloured_outcome,
    display_build_result,
    display_databases,
    display_purge_report,
    display_snapshots,
    format_size,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _capture_console() -> tuple[Console, io.StringIO]:
    """Console without ANSI escapes so assertions on plain text are reliable."""
    buf = io.StringIO()
    console = Console(file=buf, no_color=True, highlight=False, width=160)
    return console, buf


def _record(name: str = "test_app_a.sqlite", **overrides) -> DatabaseRecord:
    values = {
        "name": name,
        "project_name": "acme",
        "build_checksum": "abcdef" + "0" * 58,
        "transaction_reusable": True,
        "size_bytes": 2048,
        "last_used_at": datetime(2026, 3, 1, 9, 30, tzinfo=UTC),
    }
    values.update(overrides)
    return DatabaseRecord(**values)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


class TestFormatting:
    @pytest.mark.parametrize(
        ("size", "expected"),
        [(None, "-"), (512, "512 B"), (2048, "2.0 KB"), (5 * 1024 * 1024, "5.0 MB"), (3 * 1024**4, "3072.0 GB")],
    )
    def test_format_size(self, size, expected) -> None:
        assert format_size(size) == expected

    def test_coloured_outcome(self) -> None:
        assert _coloured_outcome("reused") == "[green]REUSED[/green]"
        assert _coloured_outcome("mystery") == "[white]MYSTERY[/white]"


# ---------------------------------------------------------------------------
# Build result
# ---------------------------------------------------------------------------


class TestDisplayBuildResult:
    def test_panel(self) -> None:
        console, buf = _capture_console()
        handle = MagicMock()
        handle.name = "test_app_abcdef_0123456789ab"
        handle.outcome = BuildOutcome.REUSED
        handle.reason = "transaction-rolled-back"
        handle.fingerprint = BuildFingerprint(build_checksum="f" * 64)
        display_build_result(console, handle)

        output = buf.getvalue()
        assert "Scenario Database" in output
        assert "test_app_abcdef_0123456789ab" in output
        assert "REUSED (transaction-rolled-back)" in output
        assert "f" * 64 in output
        assert "Snapshot:  -" in output


# ---------------------------------------------------------------------------
# Cache listings
# ---------------------------------------------------------------------------


class TestDisplayDatabases:
    def test_empty(self) -> None:
        console, buf = _capture_console()
        display_databases(console, [], "acme")
        assert "No cached databases." in buf.getvalue()

    def test_states(self) -> None:
        console, buf = _capture_console()
        records = [
            _record("a.sqlite"),
            _record("b.sqlite", is_stale=True),
            _record("c.sqlite", project_name="other"),
            DatabaseRecord(name="d.sqlite", has_metadata=False, is_stale=True),
            _record("e.sqlite", transaction_reusable=False),
        ]
        display_databases(console, records, "acme")

        lines = {line.split()[1]: line for line in buf.getvalue().splitlines() if ".sqlite" in line}
        assert "reusable" in lines["a.sqlite"]
        assert "stale" in lines["b.sqlite"]
        assert "other project" in lines["c.sqlite"]
        assert "no metadata" in lines["d.sqlite"]
        assert "not reusable" in lines["e.sqlite"]
        assert "abcdef" in lines["a.sqlite"]
        assert "2.0 KB" in lines["a.sqlite"]
        assert "2026-03-01 09:30" in lines["a.sqlite"]
        assert "5 database(s) | 2 stale" in buf.getvalue()


class TestDisplaySnapshots:
    def test_empty(self) -> None:
        console, buf = _capture_console()
        display_snapshots(console, [])
        assert "No snapshots." in buf.getvalue()

    def test_rows(self) -> None:
        console, buf = _capture_console()
        snapshots = [
            SnapshotFile(
                path=Path("/tmp/snapshot.app.abcdef-0123456789ab.sqlite"),
                build_part="abcdef",
                scenario_part="0123456789ab",
                extension="sqlite",
                size_bytes=1024,
            ),
            SnapshotFile(
                path=Path("/tmp/snapshot.app.000000-0123456789ab.sqlite"),
                build_part="000000",
                scenario_part="0123456789ab",
                extension="sqlite",
                is_stale=True,
            ),
        ]
        display_snapshots(console, snapshots)
        output = buf.getvalue()
        assert "snapshot.app.abcdef-0123456789ab.sqlite" in output
        assert "/tmp" not in output
        assert "current" in output
        assert "stale" in output


class TestDisplayPurgeReport:
    def test_nothing(self) -> None:
        console, buf = _capture_console()
        display_purge_report(console, PurgeReport())
        assert "Nothing to remove." in buf.getvalue()

    def test_everything(self) -> None:
        console, buf = _capture_console()
        report = PurgeReport(
            removed_databases=["a.sqlite"],
            removed_snapshots=["snapshot.app.abcdef-0123456789ab.sqlite"],
            skipped=["c.sqlite"],
            failures=["d.sqlite"],
        )
        display_purge_report(console, report)
        output = buf.getvalue()
        assert "Removed database a.sqlite" in output
        assert "Removed snapshot snapshot.app.abcdef-0123456789ab.sqlite" in output
        assert "Skipped c.sqlite (another project's, or not yet stale)" in output
        assert "Could not remove d.sqlite" in output
        assert "Nothing to remove." not in output
