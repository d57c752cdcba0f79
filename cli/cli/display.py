"""Rich output formatting for the scenariodb CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from scenario_engine.builder import DatabaseHandle
    from scenario_engine.cache import PurgeReport
    from scenario_engine.models import DatabaseRecord, SnapshotFile


# ---------------------------------------------------------------------------
# Outcome colour mapping
# ---------------------------------------------------------------------------

_OUTCOME_COLOURS: dict[str, str] = {
    "built": "yellow",
    "reused": "green",
    "remote": "cyan",
}


def _coloured_outcome(outcome: str) -> str:
    colour = _OUTCOME_COLOURS.get(outcome, "white")
    return f"[{colour}]{outcome.upper()}[/{colour}]"


def format_size(size: int | None) -> str:
    """Human readable byte count, ``-`` when unknown."""
    if size is None:
        return "-"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def _format_time(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


# ---------------------------------------------------------------------------
# Build result
# ---------------------------------------------------------------------------


def display_build_result(console: Console, handle: DatabaseHandle) -> None:
    """Render the outcome of one build.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    handle:
        The handle returned by the builder.
    """
    fingerprint = handle.fingerprint
    lines = [
        f"[bold]Database:[/bold]  {handle.name}",
        f"[bold]Outcome:[/bold]   {_coloured_outcome(handle.outcome.value)} ({handle.reason})",
        f"[bold]Build:[/bold]     {fingerprint.build_checksum or '-'}",
        f"[bold]Scenario:[/bold]  {fingerprint.scenario_checksum or '-'}",
        f"[bold]Snapshot:[/bold]  {fingerprint.snapshot_checksum or '-'}",
    ]
    console.print(Panel("\n".join(lines), title="Scenario Database", border_style="blue"))


# ---------------------------------------------------------------------------
# Cache listings
# ---------------------------------------------------------------------------


def display_databases(console: Console, records: list[DatabaseRecord], project_name: str) -> None:
    """Render a table of cached databases."""
    if not records:
        console.print("[dim]No cached databases.[/dim]")
        return

    table = Table(title="Cached Databases", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Database", style="bold")
    table.add_column("Project")
    table.add_column("Build", justify="center")
    table.add_column("Size", justify="right")
    table.add_column("Last used")
    table.add_column("State")

    stale = 0
    for record in records:
        if not record.has_metadata:
            state = "[red]no metadata[/red]"
        elif record.project_name != project_name:
            state = "[dim]other project[/dim]"
        elif record.is_stale:
            state = "[yellow]stale[/yellow]"
        elif record.is_clean:
            state = "[green]reusable[/green]"
        else:
            state = "[dim]not reusable[/dim]"
        if record.is_stale:
            stale += 1
        table.add_row(
            record.name,
            record.project_name or "-",
            (record.build_checksum or "xxxxxx")[:6],
            format_size(record.size_bytes),
            _format_time(record.last_used_at),
            state,
        )

    console.print(table)
    console.print(f"[bold]{len(records)}[/bold] database(s) | [yellow]{stale} stale[/yellow]")


def display_snapshots(console: Console, snapshots: list[SnapshotFile]) -> None:
    """Render a table of snapshot files."""
    if not snapshots:
        console.print("[dim]No snapshots.[/dim]")
        return

    table = Table(title="Snapshots", show_lines=False, pad_edge=True, expand=False)
    table.add_column("File", style="bold")
    table.add_column("Build", justify="center")
    table.add_column("Snapshot", justify="center")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    table.add_column("State")

    for snapshot in snapshots:
        table.add_row(
            snapshot.path.name,
            snapshot.build_part,
            snapshot.scenario_part,
            format_size(snapshot.size_bytes),
            _format_time(snapshot.modified_at),
            "[yellow]stale[/yellow]" if snapshot.is_stale else "[green]current[/green]",
        )

    console.print(table)


def display_purge_report(console: Console, report: PurgeReport) -> None:
    """Summarise what a purge removed."""
    for name in report.removed_databases:
        console.print(f"[green]✓[/green] Removed database {name}")
    for path in report.removed_snapshots:
        console.print(f"[green]✓[/green] Removed snapshot {path}")
    for name in report.skipped:
        console.print(f"[dim]Skipped {name} (another project's, or not yet stale)[/dim]")
    for name in report.failures:
        console.print(f"[red]Could not remove {name}[/red]")

    if not (report.removed_databases or report.removed_snapshots or report.failures):
        console.print("[dim]Nothing to remove.[/dim]")
