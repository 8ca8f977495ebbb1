"""CLI commands for managing remotes.

A remote is a Canvas server plus the user identity used against it,
addressed as ``user@remote``.
"""

import logging
import sys
import time
from typing import Annotated, Optional

import cyclopts
import httpx
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from canvas_cli.cli.common import (
    console,
    display_value,
    format_age,
    freshness_label,
    services,
)
from canvas_cli.remote.address import is_local_remote, parse_remote_identifier
from canvas_cli.remote.exceptions import (
    CanvasError,
    InvalidAddressError,
    RemoteApiError,
    RemoteNotFoundError,
)
from canvas_cli.remote.models import DEFAULT_API_BASE, Remote, RemoteAuth, utcnow
from canvas_cli.remote.sync import SyncResult

logger = logging.getLogger(__name__)

remote_app = cyclopts.App(name="remote", help="Manage remote Canvas servers")


def _validate_url(url: str) -> None:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise InvalidAddressError(f"Invalid URL format: {url}") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise InvalidAddressError(f"Invalid URL format: {url}")


def _require_remote(svc, remote_id: str) -> Remote:
    remote = svc.store.get_remote(remote_id)
    if remote is None:
        raise RemoteNotFoundError(f"Remote '{remote_id}' not found")
    return remote


def print_sync_result(result: SyncResult) -> None:
    if result.error and not result.succeeded:
        console.print(f"[red]✗ Sync failed for '{result.remote_id}': {escape(result.error)}[/red]")
        return

    for kind in result.kinds:
        if not kind.attempted:
            continue
        if kind.error:
            console.print(f"  [yellow]⚠ {kind.kind}: {escape(kind.error)}[/yellow]")
        else:
            removed = f", removed {len(kind.removed)}" if kind.removed else ""
            console.print(f"  [green]✓ Synced {kind.fetched} {kind.kind}{removed}[/green]")
    console.print(f"[green]✓ Sync completed for remote '{result.remote_id}'[/green]")


@remote_app.command
def add(
    remote_id: Annotated[str, cyclopts.Parameter(help="Remote identifier (user@remote)")],
    url: Annotated[str, cyclopts.Parameter(help="Server URL")],
    *,
    api_base: Annotated[
        str, cyclopts.Parameter(help="REST API base path")
    ] = DEFAULT_API_BASE,
    description: Annotated[
        Optional[str], cyclopts.Parameter(help="Description")
    ] = None,
    token: Annotated[
        Optional[str], cyclopts.Parameter(help="API token for token-based auth")
    ] = None,
):
    """Add a remote.

    The first remote added becomes the default.

    Example:
        canvas remote add admin@canvas.local http://localhost:8001
    """
    with services() as svc:
        if parse_remote_identifier(remote_id) is None:
            raise InvalidAddressError(
                f"Invalid remote identifier '{remote_id}'. Use: user@remote-name"
            )
        _validate_url(url)

        remote = Remote(
            id=remote_id,
            url=url,
            api_base=api_base,
            description=description or f"Remote Canvas server at {url}",
            auth=RemoteAuth(method="token" if token else "password", token=token or ""),
        )
        first = svc.store.add_remote(remote)

        console.print(f"[green]✓ Remote '{remote_id}' added[/green]")
        console.print(f"  URL: {url}")
        console.print(f"  API Base: {api_base}")
        if token:
            console.print("  Authentication: token")
        else:
            console.print(
                f"  Authentication: password (log in with: canvas remote login {remote_id})"
            )

        if first:
            console.print("[green]✓ Set as default remote (first remote added)[/green]")
        else:
            console.print(
                f"[cyan]Tip: make it the default with: canvas remote bind {remote_id}[/cyan]"
            )


@remote_app.command(name="list")
def list_remotes():
    """List configured remotes with their sync state."""
    with services() as svc:
        remotes = svc.store.get_remotes()
        session = svc.store.get_session()

        if not remotes:
            console.print("[yellow]No remotes configured[/yellow]")
            console.print("Add one with: canvas remote add user@remote-name https://server-url")
            return

        table = Table(title="Remotes")
        table.add_column("", width=1)
        table.add_column("Remote", style="cyan")
        table.add_column("URL")
        table.add_column("Auth")
        table.add_column("Last Synced")
        table.add_column("Status")

        for remote_id, remote in sorted(remotes.items()):
            table.add_row(
                "*" if session.bound_remote == remote_id else "",
                remote_id,
                remote.url,
                remote.auth.method,
                format_age(remote.last_synced),
                freshness_label(svc.sync.freshness(remote)),
            )

        console.print(table)
        if session.bound_remote:
            console.print(f"Default remote: [cyan]{session.bound_remote}[/cyan]")


@remote_app.command
def show(remote_id: Annotated[str, cyclopts.Parameter(help="Remote identifier")]):
    """Show one remote's details and cached resource counts."""
    with services() as svc:
        remote = _require_remote(svc, remote_id)
        session = svc.store.get_session()
        identifier = parse_remote_identifier(remote_id)

        details = Text.assemble(
            ("URL: ", "cyan"),
            (remote.url, "white"),
            ("\nAPI Base: ", "cyan"),
            (remote.api_base, "white"),
            ("\nDescription: ", "cyan"),
            (display_value(remote.description), "white"),
            ("\nAuthentication: ", "cyan"),
            (remote.auth.method, "white"),
            ("\nHas Token: ", "cyan"),
            ("yes" if remote.auth.has_token else "no", "white"),
            ("\nServer Version: ", "cyan"),
            (display_value(remote.version), "white"),
            ("\nLast Synced: ", "cyan"),
            (format_age(remote.last_synced), "white"),
            ("\nStatus: ", "cyan"),
            (svc.sync.freshness(remote), "white"),
            ("\nDefault: ", "cyan"),
            ("yes" if session.bound_remote == remote_id else "no", "white"),
            ("\nLocal: ", "cyan"),
            ("yes" if identifier and is_local_remote(identifier.remote) else "no", "white"),
            ("\n\nCached workspaces: ", "cyan"),
            (str(len(svc.store.get_workspaces(remote_id))), "white"),
            ("\nCached contexts: ", "cyan"),
            (str(len(svc.store.get_contexts(remote_id))), "white"),
        )
        console.print(Panel(details, title=remote_id, border_style="blue"))


@remote_app.command
def remove(
    remote_id: Annotated[str, cyclopts.Parameter(help="Remote identifier")],
    *,
    force: Annotated[bool, cyclopts.Parameter(help="Confirm removal")] = False,
):
    """Remove a remote and everything cached from it."""
    if not force:
        console.print(
            f"[yellow]This removes remote '{remote_id}' and all of its cached data. "
            "Use --force to confirm.[/yellow]"
        )
        sys.exit(1)

    with services() as svc:
        was_default = svc.store.get_session().bound_remote == remote_id
        svc.store.remove_remote(remote_id)
        if was_default:
            console.print("  [yellow]Unbound default remote[/yellow]")
        console.print(f"[green]✓ Remote '{remote_id}' removed[/green]")


@remote_app.command
def bind(remote_id: Annotated[str, cyclopts.Parameter(help="Remote identifier")]):
    """Make a remote the default for bare resource names."""
    with services() as svc:
        remote = _require_remote(svc, remote_id)
        svc.store.update_session(bound_remote=remote_id, bound_at=utcnow())
        console.print(f"[green]✓ Bound to remote '{remote_id}' as default[/green]")
        console.print(f"  URL: {remote.url}")


@remote_app.command
def sync(remote_id: Annotated[str, cyclopts.Parameter(help="Remote identifier")]):
    """Fetch all workspaces and contexts from a remote, replacing its cache."""
    with services() as svc:
        _require_remote(svc, remote_id)
        console.print(f"[blue]Syncing with remote '{remote_id}'...[/blue]")
        if not svc.sync.is_remote_reachable(remote_id):
            console.print(f"[red]✗ Remote '{remote_id}' is not reachable[/red]")
            sys.exit(1)
        result = svc.sync.sync_remote(remote_id)
        print_sync_result(result)
        if not result.succeeded:
            sys.exit(1)


@remote_app.command
def ping(remote_id: Annotated[str, cyclopts.Parameter(help="Remote identifier")]):
    """Check that a remote answers its health endpoint."""
    with services() as svc:
        remote = _require_remote(svc, remote_id)
        console.print(f"[blue]Pinging remote '{remote_id}' at {remote.url}...[/blue]")

        start = time.monotonic()
        try:
            info = svc.clients.get(remote_id).ping()
        except CanvasError as e:
            console.print(f"[red]✗ Remote '{remote_id}' is not reachable[/red]")
            console.print(f"  Error: {escape(str(e))}")
            sys.exit(1)
        duration = int((time.monotonic() - start) * 1000)

        console.print(f"[green]✓ Remote '{remote_id}' is reachable ({duration}ms)[/green]")
        for label, key in (
            ("Server Version", "version"),
            ("Environment", "environment"),
            ("Hostname", "hostname"),
        ):
            if info.get(key):
                console.print(f"  {label}: {info[key]}")

        if info.get("version") and info["version"] != remote.version:
            svc.store.update_remote(remote_id, version=str(info["version"]))


@remote_app.command
def login(
    remote_id: Annotated[str, cyclopts.Parameter(help="Remote identifier")],
    *,
    email: Annotated[Optional[str], cyclopts.Parameter(help="Account email")] = None,
    password: Annotated[
        Optional[str], cyclopts.Parameter(help="Account password (prompted if omitted)")
    ] = None,
    token: Annotated[
        Optional[str], cyclopts.Parameter(help="Store an API token instead of logging in")
    ] = None,
    strategy: Annotated[str, cyclopts.Parameter(help="Login strategy")] = "auto",
):
    """Authenticate with a remote and store the issued token."""
    with services() as svc:
        _require_remote(svc, remote_id)

        if token:
            svc.store.update_remote(remote_id, auth=RemoteAuth(method="token", token=token))
            console.print(f"[green]✓ Token stored for '{remote_id}'[/green]")
            return

        email = email or Prompt.ask("Email", console=console)
        password = password or Prompt.ask("Password", password=True, console=console)
        if not email or not password:
            raise InvalidAddressError("Email and password are required to log in")

        console.print(f"[blue]Logging into remote '{remote_id}' as {email}...[/blue]")
        payload = svc.clients.get(remote_id).login(email, password, strategy=strategy)
        if not isinstance(payload, dict) or not payload.get("token"):
            raise RemoteApiError(f"Login to '{remote_id}' returned no token")

        svc.store.update_remote(
            remote_id, auth=RemoteAuth(method="token", token=payload["token"])
        )
        svc.clients.clear(remote_id)

        user = payload.get("user") or {}
        console.print(
            f"[green]✓ Logged into '{remote_id}' as {user.get('name') or user.get('email') or email}[/green]"
        )


@remote_app.command
def logout(remote_id: Annotated[str, cyclopts.Parameter(help="Remote identifier")]):
    """Log out of a remote and forget its token."""
    with services() as svc:
        _require_remote(svc, remote_id)
        try:
            svc.clients.get(remote_id).logout()
        except CanvasError as e:
            logger.debug(f"Server logout for '{remote_id}' failed: {e}")
            console.print("[yellow]⚠ Server logout may have failed, clearing local token[/yellow]")

        svc.store.update_remote(remote_id, auth=RemoteAuth())
        svc.clients.clear(remote_id)
        console.print(f"[green]✓ Logged out from remote '{remote_id}'[/green]")


@remote_app.command
def rename(
    old_id: Annotated[str, cyclopts.Parameter(help="Current remote identifier")],
    new_id: Annotated[str, cyclopts.Parameter(help="New remote identifier")],
):
    """Rename a remote, carrying over its cache and session bindings."""
    with services() as svc:
        svc.store.rename_remote(old_id, new_id)
        console.print(f"[green]✓ Remote renamed from '{old_id}' to '{new_id}'[/green]")
