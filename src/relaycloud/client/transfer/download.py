"""Chunked file download with resume from temp artifacts.

This module provides:
- ChunkedDownloader: Fetches chunks in parallel into a temp dir, then
  reassembles them into the output file
- DownloadError: Download did not complete
- cleanup_job: Explicit removal of a job's temp storage and checkpoint

Each chunk is written to ``<temp_dir>/chunk_<i>.tmp`` as soon as it is
fetched. The temp dir is removed only after the output has been
reassembled, so an interrupted download resumes from what is on disk.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from relaycloud.client.transfer.artifacts import (
    default_temp_dir,
    list_temp_chunk_artifacts,
    remove_temp_dir,
    temp_chunk_path,
    write_temp_chunk,
)
from relaycloud.client.transfer.coordinator import TransferCoordinator
from relaycloud.client.transfer.progress import ProgressStream
from relaycloud.client.transfer.reassembly import Reassembler
from relaycloud.client.transfer.types import (
    ChunkDescriptor,
    ChunkInfo,
    ChunkOutcome,
    RemoteFileRecord,
    TransferJob,
    TransferResult,
)
from relaycloud.core.config import TransferConfig
from relaycloud.core.types import (
    Direction,
    IntegrityError,
    JobStatus,
    TransferCancelledError,
    TransferError,
)

if TYPE_CHECKING:
    from relaycloud.client.state import CheckpointStore
    from relaycloud.client.transfer.transporter import ChunkTransporter

logger = logging.getLogger(__name__)


class DownloadError(TransferError):
    """Download did not complete.

    Attributes:
        job_id: Job that failed; its temp dir is kept for resume.
        result: Coordinator result, if chunks were attempted.
    """

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        result: TransferResult | None = None,
    ) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.result = result

    @property
    def retryable(self) -> bool:
        """Check if resuming may succeed."""
        return self.result is not None and self.result.retryable


class ChunkedDownloader:
    """Downloads a chunked file with a credential pool.

    Usage:
        downloader = ChunkedDownloader(transporter, store)
        path = await downloader.download_record(record, tokens, Path("out.bin"))
    """

    def __init__(
        self,
        transporter: ChunkTransporter,
        store: CheckpointStore | None = None,
        config: TransferConfig | None = None,
        progress: ProgressStream | None = None,
        temp_root: Path | None = None,
    ) -> None:
        """Initialize the downloader.

        Args:
            transporter: Single-chunk network operations.
            store: Optional checkpoint store (enables resume by job id).
            config: Transfer parameters.
            progress: Stream receiving progress events.
            temp_root: Parent of per-job temp dirs (system temp if None).
        """
        self._transporter = transporter
        self._store = store
        self._config = config or TransferConfig()
        self._progress = progress or ProgressStream()
        self._temp_root = temp_root
        self._reassembler = Reassembler()
        self._coordinator: TransferCoordinator | None = None

    @property
    def progress(self) -> ProgressStream:
        """Progress event stream."""
        return self._progress

    def cancel(self) -> None:
        """Cancel the running download, if any."""
        if self._coordinator is not None:
            self._coordinator.cancel()

    def _temp_dir_for(self, job_id: str) -> Path:
        return default_temp_dir(job_id, self._temp_root)

    async def download_file(
        self,
        remote_refs: list[str],
        credentials: list[str],
        output: Path,
        temp_dir: Path | None = None,
        offset: int = 0,
        expected_size: int | None = None,
        chunk_hashes: list[str] | None = None,
        job_id: str | None = None,
        destination: str = "",
    ) -> Path:
        """Download the chunks of a file and reassemble them.

        Args:
            remote_refs: Remote reference of each chunk, in index order.
            credentials: Ordered credential pool.
            output: Final path of the downloaded file.
            temp_dir: Directory for chunk artifacts (per-job default if None).
            offset: Rotation offset; with the upload's offset and pool each
                chunk is fetched with the credential that sent it.
            expected_size: Total size the output must have, if known.
            chunk_hashes: Expected short hash of each chunk, if known.
            job_id: Id for the new job (generated if None).
            destination: Chat the chunks live in (informational).

        Returns:
            The output path.

        Raises:
            DownloadError: If chunks failed or reassembly failed.
            TransferCancelledError: If the download was cancelled.
            ValueError: If the credential pool is empty.
        """
        if not credentials:
            raise ValueError("Credential pool is empty")
        if not remote_refs:
            raise DownloadError("No chunks to download")

        job_id = job_id or TransferJob.new_id()
        output = Path(output)
        job = TransferJob(
            job_id=job_id,
            direction=Direction.DOWNLOAD,
            file_name=output.name,
            size=expected_size or 0,
            chunk_size=self._config.chunk_size,
            destination=destination,
            credentials=list(credentials),
            offset=offset,
            temp_dir=Path(temp_dir) if temp_dir else self._temp_dir_for(job_id),
            remote_refs=list(remote_refs),
            chunk_hashes=list(chunk_hashes or []),
        )
        if self._store:
            self._store.create_job(job, output_path=output.resolve())

        logger.info(
            f"Downloading {output.name} in {job.total_chunks} chunks "
            f"with {len(credentials)} credential(s), job {job_id}"
        )
        return await self._run(job, output, set())

    async def download_record(
        self,
        record: RemoteFileRecord,
        credentials: list[str],
        output: Path,
        temp_dir: Path | None = None,
        job_id: str | None = None,
    ) -> Path:
        """Download a file from its parent record."""
        return await self.download_file(
            record.remote_refs,
            credentials,
            output,
            temp_dir=temp_dir,
            job_id=job_id,
            offset=record.offset,
            expected_size=record.size,
            chunk_hashes=[c.hash for c in record.chunks],
            destination=record.destination,
        )

    async def resume(
        self,
        job: TransferJob | str,
        completed_indices: Iterable[int] = (),
        temp_dir: Path | None = None,
        output: Path | None = None,
    ) -> Path:
        """Resume an interrupted download.

        The skip-set is the union of completed_indices and the chunk
        artifacts found in the temp dir; only the remaining chunks are
        fetched.

        Args:
            job: The job, or its id when a checkpoint store is configured.
            completed_indices: Indices known to be done.
            temp_dir: Temp dir holding chunk artifacts (the job's if None).
            output: Final path (the stored output path if None).

        Returns:
            The output path.

        Raises:
            DownloadError: If the job is unknown or cannot complete.
            TransferCancelledError: If the download was cancelled.
        """
        stored_output: str | None = None
        if isinstance(job, str):
            record = self._store.get_job(job) if self._store else None
            if record is None or record.job.direction != Direction.DOWNLOAD:
                raise DownloadError(f"No download job {job}", job)
            job = record.job
            stored_output = record.output_path
        elif self._store:
            record = self._store.get_job(job.job_id)
            if record is not None:
                stored_output = record.output_path

        if temp_dir is not None:
            job.temp_dir = Path(temp_dir)
        if job.temp_dir is None:
            job.temp_dir = self._temp_dir_for(job.job_id)

        target = output or (Path(stored_output) if stored_output else None)
        if target is None:
            raise DownloadError(f"No output path for job {job.job_id}", job.job_id)

        on_disk = list_temp_chunk_artifacts(job.temp_dir)
        skip = set(completed_indices) | on_disk
        logger.info(
            f"Resuming download {job.job_id}: {len(skip)}/{job.total_chunks} "
            "chunks already present"
        )
        return await self._run(job, Path(target), skip)

    async def _run(self, job: TransferJob, output: Path, skip: set[int]) -> Path:
        """Fetch the pending chunks of a job, then reassemble."""
        try:
            return await self._fetch_job(job, output, skip)
        except asyncio.CancelledError:
            if self._store:
                self._store.update_status(job.job_id, JobStatus.CANCELLED)
            logger.info(f"Download {job.job_id} interrupted")
            raise
        finally:
            self._progress.finish()

    async def _fetch_job(self, job: TransferJob, output: Path, skip: set[int]) -> Path:
        temp_dir = job.temp_dir
        assert temp_dir is not None

        async def fetch(item: ChunkDescriptor, credential: str) -> ChunkOutcome:
            assert item.remote_ref is not None
            outcome = await self._transporter.fetch_chunk(
                credential, item.remote_ref, item.index, item.hash
            )
            if not outcome.success or outcome.data is None:
                return outcome
            try:
                await asyncio.to_thread(write_temp_chunk, temp_dir, item.index, outcome.data)
            except OSError as e:
                return ChunkOutcome(
                    index=item.index,
                    error=f"Cannot write chunk: {e}",
                    attempts=outcome.attempts,
                )
            outcome.data = None
            return outcome

        def on_chunk_completed(info: ChunkInfo) -> None:
            if self._store:
                self._store.append_completed_chunk(job.job_id, info)

        if self._store:
            self._store.update_status(job.job_id, JobStatus.ACTIVE)

        self._coordinator = TransferCoordinator(job.job_id, fetch, self._progress)
        try:
            result = await self._coordinator.run(
                job.descriptors(),
                job.credentials,
                offset=job.offset,
                skip=skip,
                on_chunk_completed=on_chunk_completed,
            )
        finally:
            self._coordinator = None

        if result.cancelled:
            if self._store:
                self._store.update_status(job.job_id, JobStatus.CANCELLED)
            raise TransferCancelledError(f"Download {job.job_id} cancelled")

        if not result.success:
            if self._store:
                self._store.update_status(job.job_id, JobStatus.FAILED, result.error)
            raise DownloadError(
                f"Chunked download failed: {result.error}", job.job_id, result
            )

        total = job.total_chunks
        chunks = {i: temp_chunk_path(temp_dir, i) for i in list_temp_chunk_artifacts(temp_dir)}
        try:
            path = await self._reassembler.assemble(
                chunks, total, output, expected_size=job.size or None
            )
        except IntegrityError as e:
            if self._store:
                self._store.update_status(job.job_id, JobStatus.FAILED, str(e))
            raise DownloadError(f"Reassembly failed: {e}", job.job_id) from e

        remove_temp_dir(temp_dir)
        if self._store:
            self._store.delete_job(job.job_id)
        job.status = JobStatus.COMPLETED

        logger.info(f"Downloaded {output.name}: {total} chunks")
        return path

    def cleanup(self, job_id: str, temp_dir: Path | None = None) -> bool:
        """Remove a job's temp storage and checkpoint.

        Returns:
            True if anything was removed.
        """
        return cleanup_job(job_id, self._store, temp_dir, self._temp_root)


def cleanup_job(
    job_id: str,
    store: CheckpointStore | None = None,
    temp_dir: Path | None = None,
    temp_root: Path | None = None,
) -> bool:
    """Remove a job's temp storage and checkpoint.

    Args:
        job_id: Job to clean up.
        store: Checkpoint store holding the job, if any.
        temp_dir: Temp dir of the job (the stored or default one if None).
        temp_root: Parent of per-job temp dirs used for the default.

    Returns:
        True if anything was removed.
    """
    removed = False
    if store:
        record = store.get_job(job_id)
        if record is not None:
            temp_dir = temp_dir or record.job.temp_dir
            store.delete_job(job_id)
            removed = True
    if temp_dir is None:
        temp_dir = default_temp_dir(job_id, temp_root)
    if remove_temp_dir(temp_dir):
        removed = True
    if removed:
        logger.info(f"Cleaned up job {job_id}")
    return removed
