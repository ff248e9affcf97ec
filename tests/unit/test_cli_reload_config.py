"""Unit tests for taskwarden reload config command."""

from __future__ import annotations

from pathlib import Path

from taskwarden.cli.reload_config import reload_config_command
from taskwarden.config.manager import ConfigManager


def test_reload_config_command_returns_applied_and_skipped(tmp_path: Path) -> None:
    cfg = tmp_path / "taskwarden.yaml"
    cfg.write_text(
        "approval:\n  stats_window_days: 30\ndatabase:\n  echo: false\n",
        encoding="utf-8",
    )
    manager = ConfigManager.load(config_path=str(cfg))
    assert manager.get().database.echo is False

    cfg.write_text(
        "approval:\n  stats_window_days: 7\ndatabase:\n  echo: true\n",
        encoding="utf-8",
    )
    applied, skipped = reload_config_command(config=str(cfg))
    assert applied == {"approval.stats_window_days": 7}
    assert skipped == {"database.echo": True}
    assert manager.get().approval.stats_window_days == 7
    assert manager.get().database.echo is False


def test_reload_config_command_with_missing_file_uses_defaults(tmp_path: Path) -> None:
    ConfigManager.load(config_path=str(tmp_path / "absent.yaml"))
    applied, skipped = reload_config_command(config=str(tmp_path / "absent.yaml"))
    assert applied == {}
    assert skipped == {}
