"""Command-line interface for edusync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- status: Show the state of the outbox
- sync: Push pending local changes to the server
- pull: Download records from the server
- failed: List entries that exceeded their retry budget
- retry: Move failed entries back to the queue
- purge: Delete old synced entries
"""

from __future__ import annotations

from pathlib import Path

import click

from edusync.client.cli.config import (
    get_config_dir,
    get_config_file,
    load_app_config,
    setup_logging,
)
from edusync.client.cli.outbox import failed, purge, retry, status
from edusync.client.cli.sync import pull, sync


@click.group()
@click.version_option(package_name="edusync")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.edusync/config.json).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """edusync - Offline-first sync for the learning platform."""
    setup_logging(verbose)
    try:
        ctx.obj = load_app_config(config_path)
    except (ValueError, OSError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


# Outbox commands
cli.add_command(status)
cli.add_command(failed)
cli.add_command(retry)
cli.add_command(purge)

# Sync commands
cli.add_command(sync)
cli.add_command(pull)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "load_app_config",
    "setup_logging",
]
