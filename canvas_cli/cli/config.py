"""CLI commands for viewing and editing ``canvas-cli.json``.

Keys are dotted paths into the config, e.g. ``sync.stale_threshold``.
Values given to ``set`` are read as JSON when they parse, so ``false``
and ``15`` are stored as a boolean and a number; anything else is kept
as a string.
"""

import json
import sys
from typing import Annotated, Any, Optional

import cyclopts
from rich.markup import escape
from rich.table import Table

from canvas_cli.cli.common import console, services

config_app = cyclopts.App(name="config", help="View and change CLI configuration")

_MISSING = object()


def parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def flatten_keys(data: dict, prefix: str = "") -> list[str]:
    keys = []
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and value:
            keys.extend(flatten_keys(value, full_key))
        else:
            keys.append(full_key)
    return keys


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if value is None:
        return "null"
    return "object"


def _lookup(data: dict, key: str) -> Any:
    node: Any = data
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _print_value(key: str, value: Any) -> None:
    console.print(f"{key}: {json.dumps(value, indent=2)}", markup=False, highlight=False)


@config_app.command
def show(key: Annotated[Optional[str], cyclopts.Parameter(help="Dotted config key")] = None):
    """Show the effective configuration, or one key of it."""
    with services() as svc:
        if key:
            value = svc.config.get(key, _MISSING)
            if value is _MISSING:
                console.print(f"[yellow]Configuration key '{key}' not found[/yellow]")
                sys.exit(1)
            _print_value(key, value)
        else:
            console.print("[bold]Current Configuration:[/bold]")
            console.print_json(data=svc.config.as_dict())

        console.print(f"\n[dim]Config file: {svc.config.path}[/dim]")


@config_app.command
def get(
    key: Annotated[str, cyclopts.Parameter(help="Dotted config key")],
    *,
    raw: Annotated[bool, cyclopts.Parameter(help="Print the bare JSON value")] = False,
):
    """Print one configuration value."""
    with services() as svc:
        value = svc.config.get(key, _MISSING)
        if value is _MISSING:
            console.print(f"[yellow]Configuration key '{key}' not found[/yellow]")
            sys.exit(1)

        if raw:
            console.print(json.dumps(value), markup=False, highlight=False)
        else:
            _print_value(key, value)


@config_app.command(name="set")
def set_value(
    key: Annotated[str, cyclopts.Parameter(help="Dotted config key")],
    value: Annotated[str, cyclopts.Parameter(help="New value, parsed as JSON when possible")],
):
    """Set a configuration value.

    Example:
        canvas config set sync.stale_threshold 30
    """
    with services() as svc:
        parsed = parse_value(value)
        svc.config.set(key, parsed)
        console.print(
            f"[green]✓ Configuration updated: {escape(key)} = {escape(json.dumps(parsed))}[/green]",
            highlight=False,
        )

        _, errors = svc.config.validate()
        for error in errors:
            if error.startswith(f"{key} "):
                console.print(f"[yellow]⚠ {error}; the default will be used[/yellow]")


@config_app.command
def delete(
    key: Annotated[str, cyclopts.Parameter(help="Dotted config key")],
    *,
    force: Annotated[bool, cyclopts.Parameter(help="Confirm deletion")] = False,
):
    """Remove an override so the key reverts to its default."""
    with services() as svc:
        if svc.config.get(key, _MISSING) is _MISSING:
            console.print(f"[yellow]Configuration key '{key}' not found[/yellow]")
            sys.exit(1)

        if not force:
            console.print(
                f"[yellow]This deletes configuration key '{key}'. Use --force to confirm.[/yellow]"
            )
            sys.exit(1)

        if not svc.config.delete(key):
            console.print(f"[yellow]'{key}' is not overridden; it already has its default[/yellow]")
            return
        console.print(f"[green]✓ Configuration key '{key}' deleted[/green]")


@config_app.command
def reset(
    *,
    force: Annotated[bool, cyclopts.Parameter(help="Confirm reset")] = False,
):
    """Drop every override and return to the defaults."""
    if not force:
        console.print(
            "[yellow]This resets all configuration to defaults. Use --force to confirm.[/yellow]"
        )
        sys.exit(1)

    with services() as svc:
        svc.config.reset()
        console.print("[green]✓ Configuration reset to defaults[/green]")


@config_app.command(name="list")
def list_keys():
    """List every configuration key with its type and value."""
    with services() as svc:
        data = svc.config.as_dict()
        overrides = svc.config.file.read()
        keys = flatten_keys(data)
        if not keys:
            console.print("[yellow]No configuration keys found[/yellow]")
            return

        table = Table(title="Configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Type")
        table.add_column("Value")
        table.add_column("Source")
        for key in keys:
            value = svc.config.get(key)
            overridden = _lookup(overrides, key) is not _MISSING
            table.add_row(
                key,
                _type_name(value),
                escape(json.dumps(value)),
                "file" if overridden else "default",
            )
        console.print(table)


@config_app.command
def path():
    """Print the path of the config file."""
    with services() as svc:
        console.print(str(svc.config.path), markup=False, highlight=False)


@config_app.command
def validate():
    """Check the configuration; exits 1 if any value is invalid."""
    with services() as svc:
        valid, errors = svc.config.validate()
        if valid:
            console.print("[green]✓ Configuration is valid[/green]")
            return

        console.print("[red]✗ Configuration has errors:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        sys.exit(1)
