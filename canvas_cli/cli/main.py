import logging
import os
import sys
from typing import Annotated

import cyclopts
from cyclopts import App
from dotenv import load_dotenv

from canvas_cli import __version__
from canvas_cli.cli.alias import alias_app
from canvas_cli.cli.common import console, services
from canvas_cli.cli.config import config_app
from canvas_cli.cli.context import context_app
from canvas_cli.cli.remote import print_sync_result, remote_app
from canvas_cli.cli.workspace import workspace_app

app = App(name="canvas", help="Canvas command-line client", version=__version__)
app.command(remote_app, name="remote")
app.command(alias_app, name="alias")
app.command(context_app, name="context")
app.command(workspace_app, name="workspace")
app.command(config_app, name="config")


def configure_logging(debug: bool = False) -> None:
    debug = debug or bool(os.environ.get("CANVAS_DEBUG"))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@app.command
def sync():
    """Sync every configured remote."""
    with services() as svc:
        remotes = svc.store.get_remotes()
        if not remotes:
            console.print("[yellow]No remotes configured[/yellow]")
            return

        failed = 0
        for result in svc.sync.sync_all():
            console.print(f"[blue]{result.remote_id}[/blue]")
            print_sync_result(result)
            if not result.succeeded:
                failed += 1

        pruned = svc.store.prune_orphans()
        if pruned:
            console.print(f"[dim]Pruned {pruned} orphaned cache entries[/dim]")

        if failed:
            sys.exit(1)


@app.meta.default
def launcher(
    *tokens: Annotated[str, cyclopts.Parameter(show=False, allow_leading_hyphen=True)],
    debug: Annotated[bool, cyclopts.Parameter(help="Enable debug logging")] = False,
):
    configure_logging(debug)
    app(tokens)


load_dotenv()


def main():
    app.meta()
