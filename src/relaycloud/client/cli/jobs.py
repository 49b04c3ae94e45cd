"""Job management commands for RelayCloud CLI.

Commands:
- jobs: List unfinished transfer jobs
- files: List uploaded files
- cleanup: Remove a job's checkpoint and temp storage
"""

from __future__ import annotations

import sys

import click

from relaycloud.client.cli.config import get_state_db
from relaycloud.client.state import CheckpointStore, JobRecord
from relaycloud.client.transfer import cleanup_job, list_temp_chunk_artifacts
from relaycloud.core.types import Direction, JobStatus


def format_size(size: int) -> str:
    """Format a byte count for display."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def completed_count(store: CheckpointStore, record: JobRecord) -> int:
    """Number of chunks of a job already transferred."""
    if record.job.direction == Direction.DOWNLOAD:
        return len(list_temp_chunk_artifacts(record.job.temp_dir))
    return len(store.load_completed_chunks(record.job_id))


@click.command()
@click.option(
    "--status",
    type=click.Choice([s.value for s in JobStatus]),
    default=None,
    help="Only list jobs with this status.",
)
def jobs(status: str | None) -> None:
    """List unfinished transfer jobs."""
    store = CheckpointStore(get_state_db())
    try:
        records = store.list_jobs(JobStatus(status) if status else None)
        if not records:
            click.echo("No jobs.")
            return

        for record in records:
            job = record.job
            done = completed_count(store, record)
            click.echo(
                f"{job.job_id}  {job.direction.value:<8}  {job.status.value:<9}  "
                f"{done}/{job.total_chunks}  {job.file_name}"
            )
            if record.last_error:
                click.echo(f"    {record.last_error}")
    finally:
        store.close()


@click.command()
def files() -> None:
    """List uploaded files."""
    store = CheckpointStore(get_state_db())
    try:
        records = store.list_remote_files()
        if not records:
            click.echo("No uploaded files.")
            return

        for record in records:
            layout = f"{record.total_chunks:>4} chunk(s)" if record.chunked else "    document"
            click.echo(
                f"{record.file_id}  {format_size(record.size):>10}  "
                f"{layout}  {record.file_name}"
            )
    finally:
        store.close()


@click.command()
@click.argument("job_id")
def cleanup(job_id: str) -> None:
    """Remove a job's checkpoint and downloaded chunk artifacts.

    Chunk messages already uploaded are not deleted.
    """
    store = CheckpointStore(get_state_db())
    try:
        if not cleanup_job(job_id, store):
            click.echo(f"Error: Nothing to clean up for job '{job_id}'.", err=True)
            sys.exit(1)
        click.echo(f"Cleaned up job {job_id}")
    finally:
        store.close()
