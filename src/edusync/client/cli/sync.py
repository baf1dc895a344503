"""Sync commands for the edusync CLI.

Commands:
- sync: Push pending local changes to the backend
- pull: Download remote records into the local store
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

import click

from edusync.client.api import APIError
from edusync.client.app import SyncApp
from edusync.client.sync import InitializationError, OfflineError

if TYPE_CHECKING:
    from edusync.core.config import AppConfig


def _start_app(config: AppConfig) -> SyncApp:
    if config.server is None:
        click.echo("Error: No server configured. Set server_url in the config file.", err=True)
        sys.exit(1)

    app = SyncApp(config)
    try:
        app.initialize()
    except InitializationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    return app


@click.command()
@click.pass_obj
def sync(config: AppConfig) -> None:
    """Push pending local changes to the server."""
    app = _start_app(config)
    try:
        if not app.monitor.is_online:
            click.echo("Error: Server unreachable, nothing was synced.", err=True)
            sys.exit(1)

        result = app.driver.sync_pending_changes()
        if result.skipped:
            click.echo(f"Sync skipped ({result.reason})")
            return

        click.echo(
            f"Synced: {len(result.synced)}, failed: {len(result.failed)}, "
            f"abandoned: {len(result.abandoned)}, deferred: {len(result.deferred)}"
        )
        for entry_id, error in result.errors.items():
            click.echo(f"  {entry_id}: {error}", err=True)
        if result.failed or result.abandoned:
            sys.exit(2)
    finally:
        app.cleanup()


@click.command()
@click.option(
    "--type",
    "-t",
    "entity_types",
    multiple=True,
    help="Entity type to pull (repeatable, default: all).",
)
@click.pass_obj
def pull(config: AppConfig, entity_types: tuple[str, ...]) -> None:
    """Download records from the server into the local store."""
    app = _start_app(config)
    try:
        result = app.driver.download_from_server(list(entity_types) or None)
    except (OfflineError, APIError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        app.cleanup()

    click.echo(
        f"Pulled {result.pulled} records: {result.applied} applied, "
        f"{result.kept_local} kept local, {result.skipped} skipped"
    )
    for entity_type, count in sorted(result.by_type.items()):
        click.echo(f"  {entity_type}: {count}")
