"""Sub-commands registered on the scenariodb Typer app."""
