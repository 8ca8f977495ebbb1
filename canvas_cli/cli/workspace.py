"""CLI commands for workspaces."""

import json
from typing import Annotated, Optional

import cyclopts
from rich.table import Table

from canvas_cli.cli.common import console, display_value, services

workspace_app = cyclopts.App(name="workspace", help="List, inspect and bind workspaces")


@workspace_app.command(name="list")
def list_workspaces(
    *,
    remote: Annotated[
        Optional[str], cyclopts.Parameter(help="Remote to list (default: bound remote)")
    ] = None,
    cached: Annotated[
        bool, cyclopts.Parameter(help="Only show the local cache, no network")
    ] = False,
):
    """List workspaces of a remote, refreshing the cache when it is stale."""
    with services() as svc:
        if cached:
            workspaces = svc.api.cached_workspaces(remote)
        else:
            workspaces = svc.api.list_workspaces(remote)

        if not workspaces:
            console.print("[yellow]No workspaces found[/yellow]")
            return

        default = svc.store.get_session().default_workspace
        table = Table(title="Workspaces")
        table.add_column("", width=1)
        table.add_column("Key", style="cyan")
        table.add_column("Label")
        table.add_column("Status")
        for key, record in sorted(workspaces.items()):
            table.add_row(
                "*" if key == default else "",
                key,
                display_value(record.get("label") or record.get("name")),
                display_value(record.get("status")),
            )
        console.print(table)


@workspace_app.command
def show(token: Annotated[str, cyclopts.Parameter(help="Workspace id, alias or address")]):
    """Fetch one workspace and print it as JSON."""
    with services() as svc:
        resolved, record = svc.api.get_workspace(token)
        console.print(f"[cyan]{resolved.key}[/cyan]")
        console.print_json(json.dumps(record, default=str))


@workspace_app.command
def bind(token: Annotated[str, cyclopts.Parameter(help="Workspace id, alias or address")]):
    """Make a workspace the default."""
    with services() as svc:
        resolved = svc.api.bind_workspace(token)
        console.print(f"[green]✓ Default workspace set to '{resolved.key}'[/green]")
