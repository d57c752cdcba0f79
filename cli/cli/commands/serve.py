"""``scenariodb serve`` -- run the remote-build endpoint.

Starts the build API with uvicorn so that other scenariodb installations
(typically browser tests running in a separate process) can ask this
project to build their databases.  Build settings are read from the same
``SCENARIODB_*`` environment variables the builder uses everywhere else.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import typer
import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from scenario_engine.constants import REMOTE_BUILD_PATH

logger = logging.getLogger(__name__)


def serve_command(
    port: int = typer.Option(
        8787,
        "--port",
        "-p",
        help="Port to serve the remote-build endpoint on.",
        envvar="SCENARIODB_API_PORT",
    ),
    host: str = typer.Option(
        "127.0.0.1",
        "--host",
        help="Host to bind the server to.",
        envvar="SCENARIODB_API_HOST",
    ),
    session_driver: str | None = typer.Option(
        None,
        "--session-driver",
        help="Session driver of the application under test; mismatching browser tests are refused.",
    ),
    reload: bool = typer.Option(
        False,
        "--reload",
        help="Enable auto-reload on code changes.",
    ),
) -> None:
    """Serve the remote-build endpoint for other scenariodb installations."""
    console = Console(stderr=True)

    # The app reads its configuration from the environment on startup.
    os.environ["SCENARIODB_API_HOST"] = host
    os.environ["SCENARIODB_API_PORT"] = str(port)
    if session_driver:
        os.environ["SCENARIODB_API_SESSION_DRIVER"] = session_driver

    console.print(
        Panel(
            _build_endpoint_table(host, port, session_driver),
            title="scenariodb build API",
            border_style="blue",
        )
    )
    console.print("[dim]Press Ctrl+C to stop.[/dim]\n")

    try:
        uvicorn_config = uvicorn.Config(
            "build_api.main:app",
            host=host,
            port=port,
            reload=reload,
            log_level="info",
            access_log=False,
        )
        server = uvicorn.Server(uvicorn_config)
        server.run()

    except KeyboardInterrupt:
        console.print("[yellow]Server stopped.[/yellow]")
    except Exception as exc:
        console.print(f"[red]Server error: {exc}[/red]")
        raise typer.Exit(code=3) from exc

    console.print("[green]Server stopped cleanly.[/green]")


def _build_endpoint_table(host: str, port: int, session_driver: str | None) -> Table:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Endpoint", f"http://{host}:{port}{REMOTE_BUILD_PATH}")
    table.add_row("Health", f"http://{host}:{port}/health")
    table.add_row("Project root", str(Path(os.environ.get("SCENARIODB_BASE_PATH", ".")).resolve()))
    table.add_row("Session driver", session_driver or "[dim]any[/dim]")
    return table
