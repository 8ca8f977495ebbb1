"""CLI commands for contexts."""

import json
from typing import Annotated, Optional

import cyclopts
from rich.table import Table

from canvas_cli.cli.common import console, display_value, services

context_app = cyclopts.App(name="context", help="List, inspect and bind contexts")


@context_app.command(name="list")
def list_contexts(
    *,
    remote: Annotated[
        Optional[str], cyclopts.Parameter(help="Remote to list (default: bound remote)")
    ] = None,
    cached: Annotated[
        bool, cyclopts.Parameter(help="Only show the local cache, no network")
    ] = False,
):
    """List contexts of a remote, refreshing the cache when it is stale."""
    with services() as svc:
        if cached:
            contexts = svc.api.cached_contexts(remote)
        else:
            contexts = svc.api.list_contexts(remote)

        if not contexts:
            console.print("[yellow]No contexts found[/yellow]")
            return

        bound = svc.store.get_session().bound_context
        table = Table(title="Contexts")
        table.add_column("", width=1)
        table.add_column("Key", style="cyan")
        table.add_column("URL")
        table.add_column("Workspace")
        for key, record in sorted(contexts.items()):
            table.add_row(
                "*" if key == bound else "",
                key,
                display_value(record.get("url")),
                display_value(record.get("workspaceId") or record.get("workspace")),
            )
        console.print(table)


@context_app.command
def show(token: Annotated[str, cyclopts.Parameter(help="Context id, alias or address")]):
    """Fetch one context and print it as JSON."""
    with services() as svc:
        resolved, record = svc.api.get_context(token)
        console.print(f"[cyan]{resolved.key}[/cyan]")
        console.print_json(json.dumps(record, default=str))


@context_app.command
def bind(token: Annotated[str, cyclopts.Parameter(help="Context id, alias or address")]):
    """Bind a context as the current one."""
    with services() as svc:
        resolved = svc.api.bind_context(token)
        console.print(f"[green]✓ Bound context '{resolved.key}'[/green]")


@context_app.command
def current():
    """Show the bound context."""
    with services() as svc:
        key, record = svc.api.current_context()
        if key is None:
            console.print("[yellow]No context bound. Use: canvas context bind <id>[/yellow]")
            return
        console.print(f"[cyan]{key}[/cyan]")
        if record and record.get("url"):
            console.print(f"  URL: {record['url']}")
