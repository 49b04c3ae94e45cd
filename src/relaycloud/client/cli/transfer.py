"""Transfer commands for RelayCloud CLI.

Commands:
- upload: Upload a file as chunk messages
- download: Download an uploaded file
- resume: Resume an interrupted upload or download
- delete: Delete the chunk messages of an uploaded file
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import click

from relaycloud.client.api import APIError, BotAPIClient
from relaycloud.client.cli.config import (
    get_state_db,
    load_bot_config,
    load_transfer_config,
)
from relaycloud.client.state import CheckpointStore
from relaycloud.client.transfer import (
    ChunkedDownloader,
    ChunkedUploader,
    ChunkTransporter,
    CredentialRateLimiter,
    ProgressEvent,
    ProgressStream,
    TransferJob,
    UploadResult,
)
from relaycloud.core.config import BotConfig, TransferConfig
from relaycloud.core.labels import is_chunked
from relaycloud.core.types import Direction, TransferCancelledError, TransferError

T = TypeVar("T")


class ProgressLine:
    """Single-line chunk progress display."""

    def __init__(self, label: str) -> None:
        self._label = label
        self._shown = False

    def __call__(self, event: ProgressEvent) -> None:
        click.echo(
            f"\r{self._label}: {event.completed}/{event.total} chunks "
            f"({event.percent:.0f}%)",
            nl=False,
        )
        self._shown = True

    def finish(self) -> None:
        """End the progress line."""
        if self._shown:
            click.echo()
            self._shown = False


def echo_upload_result(file_name: str, result: UploadResult) -> None:
    """Print the file id, and the marker of a chunked file."""
    if result.marker is None:
        click.echo(f"Uploaded {file_name} as a single document")
        click.echo(f"File id: {result.job_id}")
        return
    click.echo(f"Uploaded {file_name}: {result.total_chunks} chunk(s)")
    click.echo(f"File id: {result.job_id}")
    click.echo(f"Marker:  {result.marker}")


def require_bot_config() -> BotConfig:
    """Load the bot configuration, exiting if it is incomplete."""
    bot_config = load_bot_config()
    if not bot_config.tokens:
        click.echo("Error: No bot tokens configured. Run 'relaycloud configure' first.", err=True)
        sys.exit(1)
    if not bot_config.channel_id:
        click.echo("Error: No channel configured. Run 'relaycloud configure' first.", err=True)
        sys.exit(1)
    return bot_config


def build_transporter(client: BotAPIClient, config: TransferConfig) -> ChunkTransporter:
    """Create a transporter honoring the configured quota and retry policy."""
    limiter = CredentialRateLimiter(
        max_requests=config.rate_limit,
        window=config.rate_window,
    )
    return ChunkTransporter(
        client,
        rate_limiter=limiter,
        max_attempts=config.max_attempts,
        initial_backoff=config.initial_backoff,
    )


def run_transfer(
    job_id: str,
    main: Callable[[ProgressStream], Awaitable[T]],
    label: str,
    show_progress: bool,
) -> T:
    """Run a transfer coroutine, reporting errors and exiting on failure.

    Args:
        job_id: Job id shown in resume hints.
        main: Coroutine function receiving the progress stream to publish to.
        label: Progress line label.
        show_progress: Whether to display the progress line.
    """
    stream = ProgressStream()
    line = ProgressLine(label)
    if show_progress:
        stream.add_listener(line)

    try:
        return asyncio.run(main(stream))
    except KeyboardInterrupt:
        line.finish()
        click.echo(f"Interrupted. Resume with: relaycloud resume {job_id}", err=True)
        sys.exit(130)
    except TransferCancelledError as e:
        line.finish()
        click.echo(f"Cancelled: {e}", err=True)
        sys.exit(1)
    except (TransferError, APIError) as e:
        line.finish()
        click.echo(f"Error: {e}", err=True)
        if getattr(e, "retryable", False):
            click.echo(f"Resume with: relaycloud resume {job_id}", err=True)
        sys.exit(1)
    finally:
        line.finish()


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--no-progress", is_flag=True, help="Disable the progress line.")
def upload(path: Path, no_progress: bool) -> None:
    """Upload a file as chunk messages.

    The file is split into chunks sent in parallel over all configured bots.
    """
    bot_config = require_bot_config()
    transfer_config = load_transfer_config()
    store = CheckpointStore(get_state_db())
    job_id = TransferJob.new_id()

    async def main(stream: ProgressStream) -> UploadResult:
        async with BotAPIClient.from_config(bot_config) as client:
            uploader = ChunkedUploader(
                build_transporter(client, transfer_config),
                store,
                transfer_config,
                stream,
            )
            return await uploader.upload_file(
                path, bot_config.tokens, bot_config.channel_id, job_id=job_id
            )

    try:
        result = run_transfer(job_id, main, f"↑ {path.name}", not no_progress)
    finally:
        store.close()

    echo_upload_result(path.name, result)


@click.command()
@click.argument("file_id")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Output path (default: original name in current directory).",
)
@click.option(
    "--temp-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for chunk artifacts.",
)
@click.option("--no-progress", is_flag=True, help="Disable the progress line.")
def download(
    file_id: str,
    output: Path | None,
    temp_dir: Path | None,
    no_progress: bool,
) -> None:
    """Download an uploaded file by its file id (or a unique prefix)."""
    bot_config = require_bot_config()
    transfer_config = load_transfer_config()
    store = CheckpointStore(get_state_db())

    record = store.get_remote_file(file_id)
    if record is None:
        store.close()
        click.echo(f"Error: No uploaded file matches '{file_id}'.", err=True)
        sys.exit(1)

    target = output or Path.cwd() / record.file_name
    job_id = TransferJob.new_id()

    async def main(stream: ProgressStream) -> Path:
        async with BotAPIClient.from_config(bot_config) as client:
            downloader = ChunkedDownloader(
                build_transporter(client, transfer_config),
                store,
                transfer_config,
                stream,
            )
            return await downloader.download_record(
                record, bot_config.tokens, target, temp_dir=temp_dir, job_id=job_id
            )

    try:
        path = run_transfer(job_id, main, f"↓ {record.file_name}", not no_progress)
    finally:
        store.close()

    click.echo(f"Downloaded {record.file_name} to {path}")


@click.command()
@click.argument("job_id")
@click.option("--no-progress", is_flag=True, help="Disable the progress line.")
def resume(job_id: str, no_progress: bool) -> None:
    """Resume an interrupted upload or download.

    Chunks already transferred are skipped; the job keeps its bots and
    credential rotation.
    """
    bot_config = load_bot_config()
    transfer_config = load_transfer_config()
    store = CheckpointStore(get_state_db())

    record = store.get_job(job_id)
    if record is None:
        store.close()
        click.echo(f"Error: No job '{job_id}'. See 'relaycloud jobs'.", err=True)
        sys.exit(1)

    job = record.job

    async def main(stream: ProgressStream) -> UploadResult | Path:
        async with BotAPIClient.from_config(bot_config) as client:
            transporter = build_transporter(client, transfer_config)
            if job.direction == Direction.UPLOAD:
                uploader = ChunkedUploader(transporter, store, transfer_config, stream)
                return await uploader.resume(job_id)
            downloader = ChunkedDownloader(transporter, store, transfer_config, stream)
            return await downloader.resume(job_id)

    arrow = "↑" if job.direction == Direction.UPLOAD else "↓"
    try:
        result = run_transfer(job_id, main, f"{arrow} {job.file_name}", not no_progress)
    finally:
        store.close()

    if isinstance(result, UploadResult):
        echo_upload_result(job.file_name, result)
    else:
        click.echo(f"Downloaded {job.file_name} to {result}")


@click.command()
@click.argument("identifier")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def delete(identifier: str, yes: bool) -> None:
    """Delete the chunk messages of an uploaded file.

    IDENTIFIER is a file id (or unique prefix) or the file's chunked marker.
    """
    bot_config = require_bot_config()
    transfer_config = load_transfer_config()
    store = CheckpointStore(get_state_db())

    try:
        if is_chunked(identifier):
            record = store.find_remote_file_by_marker(identifier)
        else:
            record = store.get_remote_file(identifier)
        if record is None:
            click.echo(f"Error: No uploaded file matches '{identifier}'.", err=True)
            sys.exit(1)

        if not yes and not click.confirm(
            f"Delete {record.total_chunks} chunk message(s) of {record.file_name}?"
        ):
            sys.exit(0)

        async def main() -> int:
            async with BotAPIClient.from_config(bot_config) as client:
                uploader = ChunkedUploader(
                    build_transporter(client, transfer_config), store, transfer_config
                )
                return await uploader.delete_remote(record)

        deleted = asyncio.run(main())
        if deleted == record.total_chunks:
            store.delete_remote_file(record.file_id)
        else:
            click.echo(
                f"Warning: {record.total_chunks - deleted} message(s) could not be deleted.",
                err=True,
            )
        click.echo(f"Deleted {deleted}/{record.total_chunks} chunk message(s) of {record.file_name}")
    finally:
        store.close()
