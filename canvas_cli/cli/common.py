"""Shared console, service wiring and formatting for the CLI commands."""

import contextlib
import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import httpx
from rich.console import Console
from rich.markup import escape

from canvas_cli.config import CliConfig, get_config_dir
from canvas_cli.remote.api import CanvasApi
from canvas_cli.remote.client import RemoteClientFactory
from canvas_cli.remote.exceptions import CanvasError
from canvas_cli.remote.models import utcnow
from canvas_cli.remote.store import RemoteStore
from canvas_cli.remote.sync import FRESH, STALE, SyncCoordinator

logger = logging.getLogger(__name__)

console = Console()

# Overridden in tests with an httpx.MockTransport.
HTTP_TRANSPORT: Optional[httpx.BaseTransport] = None


@dataclass
class Services:
    config: CliConfig
    store: RemoteStore
    clients: RemoteClientFactory
    sync: SyncCoordinator
    api: CanvasApi


def build_services(
    config_dir: Optional[Path] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> Services:
    config_dir = Path(config_dir) if config_dir else get_config_dir()
    config = CliConfig(config_dir)
    valid, errors = config.validate()
    if not valid:
        for error in errors:
            logger.warning(f"Config problem in {config.path}: {error} (using default)")
    store = RemoteStore(config_dir)
    clients = RemoteClientFactory(store, config, transport=transport)
    sync = SyncCoordinator(store, clients, config)
    api = CanvasApi(store, clients, sync)
    return Services(config=config, store=store, clients=clients, sync=sync, api=api)


@contextlib.contextmanager
def services() -> Iterator[Services]:
    """Wire up one invocation's services and turn CanvasError into exit 1."""
    svc = build_services(transport=HTTP_TRANSPORT)
    try:
        yield svc
    except CanvasError as e:
        logger.debug(f"Command failed: {e!r}")
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    finally:
        svc.clients.close()


def format_age(when: Optional[datetime], now: Optional[datetime] = None) -> str:
    if when is None:
        return "never"
    seconds = int(((now or utcnow()) - when).total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def freshness_label(state: str) -> str:
    if state == FRESH:
        return "[green]fresh[/green]"
    if state == STALE:
        return "[yellow]stale[/yellow]"
    return "[dim]unsynced[/dim]"


def display_value(value) -> str:
    return "-" if value in (None, "") else str(value)
