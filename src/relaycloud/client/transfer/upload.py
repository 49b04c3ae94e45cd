"""Chunked file upload with resumable chunk support.

This module provides:
- ChunkedUploader: Splits a file into chunks and sends them in parallel
  (files up to the chunk threshold go out as a single document)
- UploadResult: Outcome of a successful upload
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from relaycloud.client.transfer.coordinator import TransferCoordinator
from relaycloud.client.transfer.progress import ProgressStream
from relaycloud.client.transfer.rotation import next_offset
from relaycloud.client.transfer.types import (
    ChunkDescriptor,
    ChunkInfo,
    ChunkOutcome,
    RemoteFileRecord,
    TransferJob,
    TransferResult,
)
from relaycloud.core.chunking import needs_chunking, read_chunk, short_hash
from relaycloud.core.config import TransferConfig
from relaycloud.core.labels import ChunkMeta
from relaycloud.core.types import (
    Direction,
    JobStatus,
    TransferCancelledError,
    TransferError,
)

if TYPE_CHECKING:
    from relaycloud.client.state import CheckpointStore
    from relaycloud.client.transfer.transporter import ChunkTransporter

logger = logging.getLogger(__name__)


class UploadError(TransferError):
    """Upload did not complete.

    Attributes:
        job_id: Job that failed; pass it to resume() to continue.
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


@dataclass
class UploadResult:
    """Result of a completed upload.

    Attributes:
        job_id: Upload job id, also the file id of every chunk label.
        record: Parent record of the uploaded file.
    """

    job_id: str
    record: RemoteFileRecord

    @property
    def marker(self) -> str | None:
        """Chunked marker, ``[CHUNKED:<n>|<message ids>]`` (None for a single document)."""
        return self.record.marker

    @property
    def total_chunks(self) -> int:
        """Number of chunks sent."""
        return self.record.total_chunks

    @property
    def chunks(self) -> list[ChunkInfo]:
        """ChunkInfo of every chunk, ordered by index."""
        return self.record.chunks


class ChunkedUploader:
    """Uploads a file as chunk messages spread over a credential pool.

    Progress is checkpointed per chunk when a store is given, so an
    interrupted upload continues with resume(job_id).

    Usage:
        uploader = ChunkedUploader(transporter, store)
        result = await uploader.upload_file(path, tokens, channel_id)
        print(result.marker)
    """

    def __init__(
        self,
        transporter: ChunkTransporter,
        store: CheckpointStore | None = None,
        config: TransferConfig | None = None,
        progress: ProgressStream | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            transporter: Single-chunk network operations.
            store: Optional checkpoint store (enables resume).
            config: Transfer parameters.
            progress: Stream receiving progress events.
        """
        self._transporter = transporter
        self._store = store
        self._config = config or TransferConfig()
        self._progress = progress or ProgressStream()
        self._coordinator: TransferCoordinator | None = None

    @property
    def progress(self) -> ProgressStream:
        """Progress event stream."""
        return self._progress

    def cancel(self) -> None:
        """Cancel the running upload, if any."""
        if self._coordinator is not None:
            self._coordinator.cancel()

    async def upload_file(
        self,
        path: Path,
        credentials: list[str],
        destination: str,
        job_id: str | None = None,
    ) -> UploadResult:
        """Upload a file.

        Args:
            path: Local file to upload.
            credentials: Ordered credential pool.
            destination: Destination chat/channel id.
            job_id: Id for the new job (generated if None).

        Returns:
            UploadResult with the chunked marker of a chunked file.

        Raises:
            UploadError: If the file is missing or empty, or chunks failed.
            TransferCancelledError: If the upload was cancelled.
            ValueError: If the credential pool is empty.
        """
        path = Path(path)
        if not credentials:
            raise ValueError("Credential pool is empty")
        if not path.is_file():
            raise UploadError(f"File not found: {path}")

        size = path.stat().st_size
        if size == 0:
            raise UploadError(f"Cannot upload empty file: {path}")

        # Files up to the threshold go out as one unlabelled document
        chunked = needs_chunking(size, self._config.threshold)
        job = TransferJob(
            job_id=job_id or TransferJob.new_id(),
            direction=Direction.UPLOAD,
            file_name=path.name,
            size=size,
            chunk_size=self._config.chunk_size if chunked else size,
            destination=destination,
            credentials=list(credentials),
            offset=next_offset(len(credentials)),
            chunked=chunked,
        )
        if self._store:
            self._store.create_job(job, source_path=path.resolve())

        if chunked:
            logger.info(
                f"Uploading {path.name} ({size} bytes) in {job.total_chunks} chunks "
                f"with {len(credentials)} credential(s), job {job.job_id}"
            )
        else:
            logger.info(
                f"Uploading {path.name} ({size} bytes) as a single document, "
                f"job {job.job_id}"
            )
        return await self._run(job, path, {})

    async def resume(self, job_id: str) -> UploadResult:
        """Resume an interrupted upload from its checkpoint.

        The stored offset and file id are reused so chunks already sent keep
        their credential and label.

        Raises:
            UploadError: If the job is unknown, or its source file changed.
        """
        if self._store is None:
            raise UploadError("Resume requires a checkpoint store", job_id)

        record = self._store.get_job(job_id)
        if record is None or record.job.direction != Direction.UPLOAD:
            raise UploadError(f"No upload job {job_id}", job_id)
        if record.source_path is None:
            raise UploadError(f"Upload job {job_id} has no source file", job_id)

        job = record.job
        path = Path(record.source_path)
        if not path.is_file() or path.stat().st_size != job.size:
            self._store.update_status(job_id, JobStatus.FAILED, "Source file changed")
            raise UploadError(f"Source file changed or missing: {path}", job_id)

        completed = self._store.load_completed_chunks(job_id)
        logger.info(
            f"Resuming upload {job_id}: {len(completed)}/{job.total_chunks} "
            "chunks already sent"
        )
        return await self._run(job, path, completed)

    async def _run(
        self,
        job: TransferJob,
        path: Path,
        completed: dict[int, ChunkInfo],
    ) -> UploadResult:
        """Send the pending chunks of a job and finish it."""
        try:
            return await self._send_job(job, path, completed)
        except asyncio.CancelledError:
            if self._store:
                self._store.update_status(job.job_id, JobStatus.CANCELLED)
            logger.info(f"Upload {job.job_id} interrupted")
            raise
        finally:
            self._progress.finish()

    async def _send_job(
        self,
        job: TransferJob,
        path: Path,
        completed: dict[int, ChunkInfo],
    ) -> UploadResult:
        """Run the coordinator over the job and record the uploaded file."""
        total = job.total_chunks

        async def send(item: ChunkDescriptor, credential: str) -> ChunkOutcome:
            try:
                data = await asyncio.to_thread(read_chunk, path, item.range)
            except (OSError, TransferError) as e:
                return ChunkOutcome(index=item.index, error=f"Cannot read chunk: {e}")
            if not job.chunked:
                return await self._transporter.send_document(
                    credential, job.destination, data, job.file_name
                )
            meta = ChunkMeta(
                file_id=job.job_id,
                index=item.index,
                total=total,
                name=job.file_name,
                hash=short_hash(data),
            )
            return await self._transporter.send_chunk(
                credential, job.destination, data, meta
            )

        def on_chunk_completed(info: ChunkInfo) -> None:
            if self._store:
                self._store.append_completed_chunk(job.job_id, info)

        if self._store:
            self._store.update_status(job.job_id, JobStatus.ACTIVE)

        self._coordinator = TransferCoordinator(job.job_id, send, self._progress)
        try:
            result = await self._coordinator.run(
                job.descriptors(),
                job.credentials,
                offset=job.offset,
                completed=completed.values(),
                on_chunk_completed=on_chunk_completed,
            )
        finally:
            self._coordinator = None

        if result.cancelled:
            if self._store:
                self._store.update_status(job.job_id, JobStatus.CANCELLED)
            raise TransferCancelledError(f"Upload {job.job_id} cancelled")

        if not result.success:
            if self._store:
                self._store.update_status(job.job_id, JobStatus.FAILED, result.error)
            kind = "Chunked upload" if job.chunked else "Upload"
            raise UploadError(f"{kind} failed: {result.error}", job.job_id, result)

        record = RemoteFileRecord(
            file_id=job.job_id,
            file_name=job.file_name,
            size=job.size,
            destination=job.destination,
            offset=job.offset,
            chunks=result.chunks,
            chunked=job.chunked,
        )
        if self._store:
            self._store.save_remote_file(record)
            self._store.delete_job(job.job_id)
        job.status = JobStatus.COMPLETED

        if job.chunked:
            logger.info(f"Uploaded {job.file_name}: {total} chunks, {record.marker}")
        else:
            logger.info(f"Uploaded {job.file_name} as a single document")
        return UploadResult(job_id=job.job_id, record=record)

    async def delete_remote(self, record: RemoteFileRecord) -> int:
        """Delete every chunk message of an uploaded file.

        Each message is deleted with the credential that sent it.

        Returns:
            Number of messages deleted.
        """
        deleted = 0
        for chunk in record.chunks:
            if await self._transporter.delete_chunk(
                chunk.credential, record.destination, chunk.message_id
            ):
                deleted += 1
        logger.info(
            f"Deleted {deleted}/{record.total_chunks} chunk messages of "
            f"{record.file_name}"
        )
        return deleted
