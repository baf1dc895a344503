"""Outbox inspection commands for the edusync CLI.

Commands:
- status: Show pending/abandoned counts and the last sync time
- failed: List abandoned entries
- retry: Move abandoned entries back to the queue
- purge: Delete old synced entries
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import click

from edusync.client.outbox import Outbox
from edusync.client.store import LocalStore, StoreError
from edusync.client.sync import LAST_SYNC_KEY, META_COLLECTION

if TYPE_CHECKING:
    from edusync.core.config import AppConfig


@contextmanager
def _open_outbox(config: AppConfig) -> Iterator[Outbox]:
    """Open the local store without starting background sync."""
    if not config.db_path.exists():
        click.echo(f"No local database at {config.db_path}", err=True)
        sys.exit(1)
    try:
        store = LocalStore(config.db_path).open()
    except StoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    try:
        yield Outbox(store, max_attempts=config.sync.max_attempts)
    finally:
        store.close()


@click.command()
@click.pass_obj
def status(config: AppConfig) -> None:
    """Show the state of the outbox."""
    with _open_outbox(config) as outbox:
        pending = outbox.pending_count()
        abandoned = len(outbox.abandoned())
        meta = outbox.store.find_one(META_COLLECTION, {"id": LAST_SYNC_KEY})

    click.echo(f"Server: {config.server.server_url if config.server else '(not configured)'}")
    click.echo(f"Database: {config.db_path}")
    click.echo(f"Pending: {pending}")
    click.echo(f"Abandoned: {abandoned}")
    click.echo(f"Last sync: {meta['value'] if meta else 'never'}")


@click.command()
@click.pass_obj
def failed(config: AppConfig) -> None:
    """List entries that exceeded their retry budget."""
    with _open_outbox(config) as outbox:
        entries = outbox.abandoned()

    if not entries:
        click.echo("No failed entries.")
        return
    for entry in entries:
        click.echo(
            f"{entry.id}  {entry.action.value} {entry.entity_type}/{entry.entity_id}  "
            f"attempts={entry.sync_attempts}  {entry.last_error or ''}".rstrip()
        )


@click.command()
@click.argument("entry_id", required=False)
@click.option("--all", "retry_all", is_flag=True, help="Retry every failed entry.")
@click.pass_obj
def retry(config: AppConfig, entry_id: str | None, retry_all: bool) -> None:
    """Move a failed entry (or all with --all) back to the queue."""
    if not entry_id and not retry_all:
        click.echo("Error: Give an ENTRY_ID or --all.", err=True)
        sys.exit(1)

    with _open_outbox(config) as outbox:
        count = outbox.retry_abandoned(None if retry_all else entry_id)

    if count == 0 and entry_id and not retry_all:
        click.echo(f"Error: No failed entry {entry_id}", err=True)
        sys.exit(1)
    click.echo(f"Re-queued {count} entr{'y' if count == 1 else 'ies'}.")


@click.command()
@click.option(
    "--days",
    type=click.IntRange(min=0),
    default=None,
    help="Retention in days (default: retention_days from config).",
)
@click.pass_obj
def purge(config: AppConfig, days: int | None) -> None:
    """Delete synced entries older than the retention window."""
    if days is None:
        days = config.sync.retention_days
    if days is None:
        click.echo("Error: No retention configured. Use --days.", err=True)
        sys.exit(1)

    with _open_outbox(config) as outbox:
        count = outbox.purge_synced(days)
    click.echo(f"Purged {count} synced entr{'y' if count == 1 else 'ies'}.")
