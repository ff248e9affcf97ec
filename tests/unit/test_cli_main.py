"""Unit tests for the taskwarden CLI entrypoint and store-backed commands."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from taskwarden.cli import app, main
from taskwarden.db import create_engine, create_session_factory
from taskwarden.scheduling.models import Schedule, ScheduledTask
from taskwarden.store.sql import SqlAlchemyStore

runner = CliRunner()


@pytest.fixture
def db_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.chdir(tmp_path)
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    result = runner.invoke(app, ["db", "init", "--database-url", url])
    assert result.exit_code == 0, result.output
    return url


def _seed_task(url: str) -> ScheduledTask:
    task = ScheduledTask(
        owner_id="owner-1",
        target_id="shop",
        task_type="inventory_check",
        schedule=Schedule(frequency="daily"),
        name="Nightly stock check",
    )

    async def _save() -> None:
        engine = create_engine(url)
        try:
            await SqlAlchemyStore(create_session_factory(engine)).save_task(task)
        finally:
            await engine.dispose()

    asyncio.run(_save())
    return task


def test_version_flag(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr("sys.argv", ["taskwarden", "--version"])
    with pytest.raises(SystemExit) as exc:
        main()
    assert exc.value.code == 0
    assert capsys.readouterr().out.startswith("taskwarden ")


def test_init_writes_template_and_refuses_overwrite(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    first = runner.invoke(app, ["init", "--path", str(tmp_path)])
    assert first.exit_code == 0, first.output
    assert (tmp_path / "taskwarden.yaml").exists()

    second = runner.invoke(app, ["init", "--path", str(tmp_path)])
    assert second.exit_code == 1
    assert "already exists" in second.output


def test_invalid_config_exits_2(tmp_path: Path) -> None:
    cfg = tmp_path / "broken.yaml"
    cfg.write_text("approval: [unclosed\n", encoding="utf-8")
    result = runner.invoke(app, ["--config", str(cfg), "reload"])
    assert result.exit_code == 2


def test_reload_reports_changes(tmp_path: Path) -> None:
    cfg = tmp_path / "taskwarden.yaml"
    cfg.write_text("scheduler:\n  retention_days: 30\n", encoding="utf-8")
    result = runner.invoke(app, ["--config", str(cfg), "reload"])
    assert result.exit_code == 0, result.output
    assert "Applied: 0" in result.output


def test_store_commands_require_a_database_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    for args in (["db", "init"], ["tasks", "list"], ["approvals", "sweep"], ["executions", "purge"]):
        result = runner.invoke(app, args)
        assert result.exit_code == 2, args
        assert "TASKWARDEN_DATABASE_URL" in result.output


def test_db_init_rejects_unsupported_driver(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["db", "init", "--database-url", "mysql://u:p@localhost/db"])
    assert result.exit_code == 2


def test_db_init_creates_tables(db_url: str) -> None:
    result = runner.invoke(app, ["db", "init", "--database-url", db_url])
    assert result.exit_code == 0, result.output
    for table in ("approval_requests", "scheduled_tasks", "task_executions"):
        assert table in result.output


def test_tasks_list_and_status(db_url: str) -> None:
    empty = runner.invoke(app, ["tasks", "list", "--json", "--database-url", db_url])
    assert empty.exit_code == 0, empty.output
    assert json.loads(empty.output) == []

    task = _seed_task(db_url)
    listed = runner.invoke(app, ["tasks", "list", "--json", "--owner", "owner-1", "--database-url", db_url])
    assert [row["id"] for row in json.loads(listed.output)] == [task.id]

    status = runner.invoke(app, ["tasks", "status", task.id, "--json", "--database-url", db_url])
    assert status.exit_code == 0, status.output
    payload = json.loads(status.output)
    assert payload["task"]["name"] == "Nightly stock check"
    assert payload["recent_executions"] == []

    missing = runner.invoke(app, ["tasks", "status", "missing", "--database-url", db_url])
    assert missing.exit_code == 1


def test_approvals_commands(db_url: str, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASKWARDEN_DATABASE_URL", db_url)
    listed = runner.invoke(app, ["approvals", "list", "--owner", "owner-1", "--json"])
    assert listed.exit_code == 0, listed.output
    assert json.loads(listed.output) == []

    bad = runner.invoke(app, ["approvals", "list", "--owner", "owner-1", "--status", "maybe"])
    assert bad.exit_code == 2

    swept = runner.invoke(app, ["approvals", "sweep"])
    assert swept.exit_code == 0, swept.output
    assert "Expired 0 approval request(s)" in swept.output


def test_executions_purge(db_url: str) -> None:
    result = runner.invoke(app, ["executions", "purge", "--days", "7", "--database-url", db_url])
    assert result.exit_code == 0, result.output
    assert "Deleted 0 execution(s)" in result.output

    negative = runner.invoke(app, ["executions", "purge", "--days", "-1", "--database-url", db_url])
    assert negative.exit_code == 2
