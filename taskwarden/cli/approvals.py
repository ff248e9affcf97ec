"""taskwarden approvals: list and expire approval requests."""

from __future__ import annotations

import json

import typer
from rich.console import Console
from rich.table import Table

from taskwarden.app import TaskWarden
from taskwarden.cli.common import iso, run_with_warden
from taskwarden.governance.approval import ApprovalRequest, ApprovalStatus

approvals_app = typer.Typer(name="approvals", help="Inspect and sweep approval requests.")

_DB_OPTION = typer.Option(None, "--database-url", help="Database URL (default: from config/env).")


def _serialize_request(request: ApprovalRequest) -> dict[str, object]:
    return {
        "id": request.id,
        "task_id": request.task_id,
        "action_type": request.action_type,
        "action_description": request.action_description,
        "risk_level": request.risk_level.value,
        "status": request.status.value,
        "requested_at": request.requested_at.isoformat(),
        "expires_at": request.expires_at.isoformat(),
        "response_reason": request.response_reason,
    }


@approvals_app.command("list")
def list_command(
    owner: str = typer.Option(..., "--owner", help="Owner whose requests to list."),
    status: str = typer.Option("", "--status", help="pending, approved, rejected or expired."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
    database_url: str | None = _DB_OPTION,
) -> None:
    """List approval requests for one owner (expired requests are swept first)."""
    normalized_owner = owner.strip()
    if not normalized_owner:
        raise typer.BadParameter("owner must not be empty.")
    wanted: ApprovalStatus | None = None
    if status.strip():
        try:
            wanted = ApprovalStatus(status.strip().lower())
        except ValueError as e:
            raise typer.BadParameter(f"unknown status: {status}") from e

    async def _list(warden: TaskWarden) -> list[ApprovalRequest]:
        return await warden.list_approvals(normalized_owner, wanted)

    requests = run_with_warden(database_url, _list)
    if as_json:
        typer.echo(json.dumps([_serialize_request(r) for r in requests], indent=2))
        return
    table = Table(title=f"Approval Requests ({normalized_owner})", show_header=True, header_style="bold")
    for column in ("ID", "Action", "Risk", "Status", "Requested", "Expires", "Description"):
        table.add_column(column)
    for request in requests:
        table.add_row(
            request.id,
            request.action_type,
            request.risk_level.value,
            request.status.value,
            iso(request.requested_at),
            iso(request.expires_at),
            request.action_description,
        )
    Console().print(table)


@approvals_app.command("sweep")
def sweep_command(database_url: str | None = _DB_OPTION) -> None:
    """Expire every pending request whose approval window has closed."""

    async def _sweep(warden: TaskWarden) -> int:
        return await warden.sweep_expired_approvals()

    count = run_with_warden(database_url, _sweep)
    Console().print(f"Expired {count} approval request(s)")
