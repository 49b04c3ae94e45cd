"""Command-line interface for RelayCloud.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Store bot tokens and destination channel
- upload: Upload a file as chunk messages
- download: Download an uploaded file
- resume: Resume an interrupted upload or download
- jobs: List unfinished transfer jobs
- files: List uploaded files
- cleanup: Remove a job's checkpoint and temp storage
- delete: Delete the chunk messages of an uploaded file
"""

from __future__ import annotations

import logging

import click

from relaycloud.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_state_db,
    load_bot_config,
    load_config,
    load_transfer_config,
    save_config,
)
from relaycloud.client.cli.configure import configure
from relaycloud.client.cli.jobs import cleanup, files, jobs
from relaycloud.client.cli.transfer import delete, download, resume, upload


def setup_logging(verbose: bool) -> None:
    """Install a stderr handler on the relaycloud logger."""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    relaycloud_logger = logging.getLogger("relaycloud")
    for existing in relaycloud_logger.handlers[:]:
        relaycloud_logger.removeHandler(existing)
    relaycloud_logger.addHandler(handler)
    relaycloud_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
@click.version_option(package_name="relaycloud")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """RelayCloud - Chunked file storage over a bot messaging API."""
    setup_logging(verbose)


# Setup
cli.add_command(configure)

# Transfer commands
cli.add_command(upload)
cli.add_command(download)
cli.add_command(resume)
cli.add_command(delete)

# Job management
cli.add_command(jobs)
cli.add_command(files)
cli.add_command(cleanup)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    "setup_logging",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_state_db",
    "load_bot_config",
    "load_config",
    "load_transfer_config",
    "save_config",
]
