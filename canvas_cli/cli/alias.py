"""CLI commands for resource aliases."""

import sys
from typing import Annotated

import cyclopts
from rich.table import Table

from canvas_cli.cli.common import console, display_value, services
from canvas_cli.remote.address import require_address
from canvas_cli.remote.store import validate_alias_name

alias_app = cyclopts.App(name="alias", help="Manage short names for resource addresses")


@alias_app.command(name="list")
def list_aliases():
    """List all aliases."""
    with services() as svc:
        aliases = svc.store.get_aliases()
        if not aliases:
            console.print("[yellow]No aliases configured[/yellow]")
            console.print("Create one with: canvas alias set <name> user@remote:resource")
            return

        table = Table(title="Aliases")
        table.add_column("Alias", style="cyan")
        table.add_column("Address")
        table.add_column("Created")
        table.add_column("Updated")
        for name, alias in sorted(aliases.items()):
            table.add_row(
                name,
                alias.address,
                alias.created_at.strftime("%Y-%m-%d %H:%M"),
                display_value(
                    alias.updated_at.strftime("%Y-%m-%d %H:%M") if alias.updated_at else None
                ),
            )
        console.print(table)


@alias_app.command(name="set")
def set_alias(
    name: Annotated[str, cyclopts.Parameter(help="Alias name")],
    address: Annotated[str, cyclopts.Parameter(help="Full address user@remote:resource[/path]")],
    *,
    force: Annotated[bool, cyclopts.Parameter(help="Overwrite an existing alias")] = False,
):
    """Create an alias for a full resource address.

    Example:
        canvas alias set work alice@canvas.local:work-ctx
    """
    with services() as svc:
        validate_alias_name(name)
        require_address(address)

        existing = svc.store.get_alias(name)
        if existing and not force:
            console.print(
                f"[yellow]Alias '{name}' already points to: {existing.address}. "
                "Use --force to overwrite.[/yellow]"
            )
            sys.exit(1)

        svc.store.set_alias(name, address)
        console.print(f"[green]✓ Alias '{name}' set to '{address}'[/green]")


@alias_app.command
def get(name: Annotated[str, cyclopts.Parameter(help="Alias name")]):
    """Print the address an alias points to."""
    with services() as svc:
        alias = svc.store.get_alias(name)
        if alias is None:
            console.print(f"[red]Alias '{name}' not found[/red]")
            sys.exit(1)
        console.print(alias.address)


@alias_app.command
def update(
    name: Annotated[str, cyclopts.Parameter(help="Alias name")],
    address: Annotated[str, cyclopts.Parameter(help="New full address")],
):
    """Point an existing alias at a new address."""
    with services() as svc:
        require_address(address)
        if svc.store.get_alias(name) is None:
            console.print(f"[red]Alias '{name}' not found[/red]")
            sys.exit(1)
        svc.store.set_alias(name, address)
        console.print(f"[green]✓ Alias '{name}' updated to '{address}'[/green]")


@alias_app.command
def remove(
    name: Annotated[str, cyclopts.Parameter(help="Alias name")],
    *,
    force: Annotated[bool, cyclopts.Parameter(help="Confirm removal")] = False,
):
    """Remove an alias."""
    if not force:
        console.print(
            f"[yellow]This removes alias '{name}'. Use --force to confirm.[/yellow]"
        )
        sys.exit(1)

    with services() as svc:
        if not svc.store.remove_alias(name):
            console.print(f"[red]Alias '{name}' not found[/red]")
            sys.exit(1)
        console.print(f"[green]✓ Alias '{name}' removed[/green]")
