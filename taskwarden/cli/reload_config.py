"""taskwarden reload: re-read configuration and report what changed."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from taskwarden.config import ConfigManager


def reload_config_command(config: str | None = None) -> tuple[dict[str, object], dict[str, object]]:
    """Reload configuration; return ``(applied, skipped)`` changed keys."""
    result = ConfigManager.instance().reload(config_path=config)
    console = Console()
    if not result.applied and not result.skipped:
        console.print("Applied: 0")
        console.print("No configuration changes.")
        return result.applied, result.skipped

    table = Table(title="Reload Result", show_header=True, header_style="bold")
    for column in ("Key", "New value", "Effect"):
        table.add_column(column)
    for key, value in result.applied.items():
        table.add_row(key, repr(value), "[green]applied[/green]")
    for key, value in result.skipped.items():
        table.add_row(key, repr(value), "[yellow]restart required[/yellow]")
    console.print(f"Applied: {len(result.applied)}  Skipped: {len(result.skipped)}")
    console.print(table)
    return result.applied, result.skipped
