"""scenariodb CLI application -- Typer-based developer interface.

Provides commands to build a scenario database ahead of a test run, to list
and purge the databases and snapshots a project has cached, and to serve the
remote-build endpoint.  Human-readable output goes to *stderr* via Rich;
``--json`` switches stdout to machine-readable records so that scripts can
compose cleanly.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler

from cli.display import (
    display_build_result,
    display_databases,
    display_purge_report,
    display_snapshots,
)
from scenario_engine.builder import ScenarioBuilder
from scenario_engine.cache import CacheInventory
from scenario_engine.config import Settings, load_settings
from scenario_engine.errors import ScenarioDBError
from scenario_engine.models import ScenarioSpec

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="scenariodb",
    help="scenariodb - build, reuse and clean up scenario test databases",
    no_args_is_help=True,
)
console = Console(stderr=True)

from cli.commands.serve import serve_command  # noqa: E402

app.command(name="serve")(serve_command)

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_project_root: Path | None = None


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    project_root: Path | None = typer.Option(
        None,
        "--project-root",
        help="Project directory that relative paths are resolved against.",
        envvar="SCENARIODB_BASE_PATH",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log build progress.",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _project_root  # noqa: PLW0603
    _json_output = json_mode
    _project_root = project_root
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings() -> Settings:
    """Load settings, anchored at ``--project-root`` when given."""
    try:
        if _project_root is not None:
            return load_settings(base_path=_project_root)
        return load_settings()
    except ValueError as exc:
        # pydantic's ValidationError is a ValueError.
        console.print(f"[red]Invalid settings: {exc}[/red]")
        raise typer.Exit(code=3) from exc


def _write_json(data: Any) -> None:
    sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def build(
    imports: list[str] = typer.Option(
        [],
        "--import",
        "-i",
        help="File imported before migrations (repeatable).",
    ),
    migrations: bool = typer.Option(
        True,
        "--migrations/--no-migrations",
        help="Run migrations after the imports.",
    ),
    migrations_path: str | None = typer.Option(
        None,
        "--migrations-path",
        help="Directory of migrations, relative to the project root.",
    ),
    seeders: list[str] = typer.Option(
        [],
        "--seeder",
        "-s",
        help="Seeder to run after migrations (repeatable).",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Rebuild even when a reusable database exists.",
    ),
) -> None:
    """Build (or reuse) the database for one scenario and report its name."""
    settings = _settings()
    spec = ScenarioSpec(
        pre_data_imports={settings.driver.value: imports},
        migrations=migrations_path if migrations and migrations_path else migrations,
        seeders=seeders,
    )
    overrides: dict[str, Any] = {"force_rebuild": True} if force else {}

    builder = ScenarioBuilder(settings)
    try:
        handle = builder.build(spec, overrides, test_name="scenariodb build")
        handle.finish()
    except ScenarioDBError as exc:
        console.print(f"[red]Build failed: {exc}[/red]")
        raise typer.Exit(code=3) from exc
    finally:
        builder.reset()

    if _json_output:
        _write_json(
            {
                "database": handle.name,
                "url": handle.url,
                "outcome": handle.outcome.value,
                "reason": handle.reason,
                "fingerprint": handle.fingerprint.model_dump(mode="json"),
            }
        )
    else:
        display_build_result(console, handle)


@app.command("list-caches")
def list_caches() -> None:
    """List the cached databases and snapshots of this project."""
    inventory = _open_inventory()
    try:
        records = inventory.databases()
        snapshots = inventory.snapshots()
    except ScenarioDBError as exc:
        console.print(f"[red]Could not list caches: {exc}[/red]")
        raise typer.Exit(code=3) from exc
    finally:
        inventory.close()

    if _json_output:
        _write_json(
            {
                "databases": [record.model_dump(mode="json") for record in records],
                "snapshots": [snapshot.model_dump(mode="json") for snapshot in snapshots],
            }
        )
        return

    display_databases(console, records, inventory.project_name)
    display_snapshots(console, snapshots)


@app.command("remove-caches")
def remove_caches(
    stale: bool = typer.Option(
        False,
        "--stale",
        help="Only remove stale databases and snapshots.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Do not ask for confirmation.",
    ),
) -> None:
    """Remove this project's cached databases and snapshots."""
    if not stale and not force and not _json_output:
        confirmed = typer.confirm("Remove every cached database and snapshot of this project?", default=False)
        if not confirmed:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit(code=1)

    inventory = _open_inventory()
    try:
        report = inventory.purge_stale() if stale else inventory.remove_all()
    except ScenarioDBError as exc:
        console.print(f"[red]Could not remove caches: {exc}[/red]")
        raise typer.Exit(code=3) from exc
    finally:
        inventory.close()

    if _json_output:
        _write_json(report.model_dump(mode="json"))
    else:
        display_purge_report(console, report)

    if report.failures:
        raise typer.Exit(code=3)


def _open_inventory() -> CacheInventory:
    try:
        return CacheInventory(_settings())
    except ScenarioDBError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=3) from exc
