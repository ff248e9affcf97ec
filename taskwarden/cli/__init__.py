"""CLI tools: taskwarden init, reload, db, tasks, approvals, executions."""

from __future__ import annotations

import logging
import sys
from importlib import metadata

import typer
from pydantic import ValidationError

from taskwarden.cli.approvals import approvals_app
from taskwarden.cli.db import db_app
from taskwarden.cli.executions import executions_app
from taskwarden.cli.init_config import init_config_command
from taskwarden.cli.reload_config import reload_config_command
from taskwarden.cli.tasks import tasks_app
from taskwarden.config import ConfigLoadError, ConfigManager

app = typer.Typer(
    name="taskwarden",
    help="taskwarden: recurring store automation with human approval for risky actions.",
)

app.add_typer(db_app, name="db")
app.add_typer(tasks_app, name="tasks")
app.add_typer(approvals_app, name="approvals")
app.add_typer(executions_app, name="executions")


def _configure_logging(level_override: str | None) -> None:
    cfg = ConfigManager.instance().get().logging
    level = (level_override or cfg.level).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=cfg.format)


@app.callback()
def _root(
    config: str = typer.Option("", "--config", help="Path to taskwarden.yaml."),
    log_level: str = typer.Option("", "--log-level", help="Override logging.level."),
) -> None:
    """Load configuration and set up logging before any command runs."""
    try:
        ConfigManager.load(config_path=config.strip() or None)
    except (ConfigLoadError, ValidationError) as e:
        typer.echo(f"Error: invalid configuration: {e}", err=True)
        raise typer.Exit(2) from e
    _configure_logging(log_level.strip() or None)


@app.command("init")
def init_command(
    path: str = typer.Option(".", "--path", help="Output directory"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing taskwarden.yaml"),
) -> None:
    """Generate default taskwarden.yaml in target directory."""
    try:
        init_config_command(path=path, force=force)
    except FileExistsError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e


@app.command("reload")
def reload_command(
    config: str = typer.Option("", "--config", help="Optional config file path"),
) -> None:
    """Reload configuration and print applied/skipped changes."""
    reload_config_command(config=config or None)


def _print_version_and_exit() -> None:
    """Print installed package version and exit."""
    try:
        version = metadata.version("taskwarden")
    except metadata.PackageNotFoundError:
        version = "unknown"
    print(f"taskwarden {version}")
    raise SystemExit(0)


def main() -> None:
    """CLI entry point."""
    if "--version" in sys.argv or "-V" in sys.argv:
        _print_version_and_exit()
    try:
        app()
    except KeyboardInterrupt:
        sys.exit(130)
