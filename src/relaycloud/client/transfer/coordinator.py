"""Parallel transfer of the chunks of one job.

This module provides:
- TransferCoordinator: Runs a chunk operation over all pending chunks of a
  job with bounded parallelism, one retry phase, and cancellation

The coordinator is direction-agnostic: the upload and download drivers
supply the per-chunk operation (read+send, or fetch+write). It owns:
1. Credential assignment: pool[(index + offset) % len(pool)]
2. Concurrency: at most len(pool) chunk operations in flight
3. Bookkeeping: completed map, completed counter and failed set, all
   mutated under one lock
4. Persistence hook and progress events after each completed chunk
5. A second phase re-running exactly the chunks that failed in the first,
   provided the first phase completed at least one chunk
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence

from relaycloud.client.transfer.progress import ProgressStream
from relaycloud.client.transfer.types import (
    ChunkCompletedCallback,
    ChunkDescriptor,
    ChunkInfo,
    ChunkOperation,
    ChunkOutcome,
    ChunkState,
    ProgressEvent,
    TransferResult,
    assign_credential,
)

logger = logging.getLogger(__name__)


class TransferCoordinator:
    """Runs the chunks of one job in parallel.

    A coordinator instance serves a single run() at a time.

    Usage:
        coordinator = TransferCoordinator(job.job_id, operation)
        result = await coordinator.run(
            job.descriptors(),
            job.credentials,
            offset=job.offset,
            skip=already_done,
            on_chunk_completed=store_checkpoint,
        )
    """

    def __init__(
        self,
        job_id: str,
        operation: ChunkOperation,
        progress: ProgressStream | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            job_id: Job whose chunks are transferred (used in events and logs).
            operation: Coroutine function transferring one chunk with a
                given credential.
            progress: Stream receiving a ProgressEvent per completed chunk.
        """
        self._job_id = job_id
        self._operation = operation
        self._progress = progress or ProgressStream()

        self._lock = asyncio.Lock()
        self._cancel_event = asyncio.Event()
        self._tasks: set[asyncio.Task[None]] = set()

        # Per-run bookkeeping, guarded by self._lock
        self._completed: dict[int, ChunkInfo] = {}
        self._failed: dict[int, ChunkOutcome] = {}
        self._total = 0
        self._done_count = 0
        self._on_chunk_completed: ChunkCompletedCallback | None = None

    @property
    def job_id(self) -> str:
        """Job id of this coordinator."""
        return self._job_id

    @property
    def progress(self) -> ProgressStream:
        """Progress event stream."""
        return self._progress

    @property
    def cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Cancel the job.

        Chunks not yet started are skipped and in-flight operations are
        cancelled. Chunks already completed stay recorded.
        """
        if self._cancel_event.is_set():
            return
        logger.info(f"Cancelling job {self._job_id}")
        self._cancel_event.set()
        for task in list(self._tasks):
            task.cancel()

    async def run(
        self,
        items: Sequence[ChunkDescriptor],
        credentials: Sequence[str],
        offset: int = 0,
        skip: Iterable[int] | None = None,
        completed: Iterable[ChunkInfo] | None = None,
        on_chunk_completed: ChunkCompletedCallback | None = None,
    ) -> TransferResult:
        """Transfer every chunk not already done.

        Args:
            items: Descriptors of all chunks of the job, indices 0..n-1.
            credentials: Ordered credential pool; its size bounds parallelism.
            offset: Rotation offset of the job.
            skip: Indices already transferred.
            completed: ChunkInfo of chunks already transferred; their indices
                are skipped too.
            on_chunk_completed: Persistence hook called with the ChunkInfo of
                each chunk completed during this run.

        Returns:
            TransferResult; success iff every chunk is completed.

        Raises:
            ValueError: If the credential pool is empty.
        """
        if not credentials:
            raise ValueError("Credential pool is empty")

        pool = list(credentials)
        self._total = len(items)
        self._completed = {}
        self._failed = {}
        self._on_chunk_completed = on_chunk_completed

        by_index = {item.index: item for item in items}
        skip_set = {i for i in (skip or ()) if i in by_index}
        for info in completed or ():
            if info.index not in by_index:
                continue
            skip_set.add(info.index)
            self._completed[info.index] = info
            if by_index[info.index].state != ChunkState.COMPLETED:
                by_index[info.index].mark_completed(info)

        baseline = len(skip_set)
        self._done_count = baseline
        if baseline:
            logger.info(
                f"Job {self._job_id}: resuming with {baseline}/{self._total} chunks done"
            )
            self._progress.publish(ProgressEvent(self._job_id, baseline, self._total))

        # Phase 1: every chunk not skipped
        pending = [item for item in items if item.index not in skip_set]
        await self._run_phase(pending, pool, offset)
        first_phase_successes = self._done_count - baseline

        # Phase 2: exactly the chunks that failed, same credential mapping
        if self._failed and first_phase_successes > 0 and not self.cancelled:
            retry_items = [by_index[i] for i in sorted(self._failed)]
            logger.info(
                f"Job {self._job_id}: retrying {len(retry_items)} failed chunk(s)"
            )
            self._failed = {}
            await self._run_phase(retry_items, pool, offset)
        elif self._failed and not self.cancelled:
            logger.warning(
                f"Job {self._job_id}: no chunk succeeded, skipping retry phase"
            )

        return self._build_result(skip_set)

    async def _run_phase(
        self,
        items: Sequence[ChunkDescriptor],
        pool: list[str],
        offset: int,
    ) -> None:
        """Run one phase over the given items and wait for all of them."""
        if not items or self.cancelled:
            return

        semaphore = asyncio.Semaphore(len(pool))
        async with asyncio.TaskGroup() as group:
            for item in items:
                credential = assign_credential(pool, item.index, offset)
                task = group.create_task(self._run_chunk(item, credential, semaphore))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    async def _run_chunk(
        self,
        item: ChunkDescriptor,
        credential: str,
        semaphore: asyncio.Semaphore,
    ) -> None:
        """Transfer one chunk and record its outcome."""
        async with semaphore:
            if self.cancelled:
                return

            item.mark_in_flight(credential)
            try:
                outcome = await self._operation(item, credential)
            except asyncio.CancelledError:
                item.mark_failed()
                raise

            await self._record(item, outcome)

    async def _record(self, item: ChunkDescriptor, outcome: ChunkOutcome) -> None:
        """Record a chunk outcome under the bookkeeping lock.

        A transferred chunk is persisted before it counts as completed. If
        the persistence hook fails, the chunk is recorded as failed instead,
        and its siblings keep running.
        """
        if outcome.success and self._on_chunk_completed is not None:
            assert outcome.info is not None
            try:
                self._on_chunk_completed(outcome.info)
            except Exception as e:
                logger.error(
                    f"Job {self._job_id}: cannot checkpoint chunk {item.index}: {e}"
                )
                outcome = ChunkOutcome(
                    index=item.index,
                    error=f"Checkpoint failed: {e}",
                    attempts=outcome.attempts,
                )

        async with self._lock:
            if outcome.success:
                assert outcome.info is not None
                item.mark_completed(outcome.info)
                self._completed[item.index] = outcome.info
                self._failed.pop(item.index, None)
                self._done_count += 1
                event = ProgressEvent(
                    self._job_id, self._done_count, self._total, item.index
                )
            else:
                item.mark_failed()
                self._failed[item.index] = outcome
                event = None

        if event is None:
            logger.error(
                f"Job {self._job_id}: chunk {item.index} failed: {outcome.error}"
            )
            return

        logger.debug(
            f"Job {self._job_id}: chunk {item.index} done "
            f"({event.completed}/{event.total})"
        )
        self._progress.publish(event)

    def _build_result(self, skip_set: set[int]) -> TransferResult:
        """Build the final result of the run."""
        done = set(self._completed) | skip_set
        success = len(done) == self._total
        chunks = [self._completed[i] for i in sorted(self._completed)]

        failed = {i: o.error or "unknown error" for i, o in sorted(self._failed.items())}
        retryable = any(o.transient for o in self._failed.values())

        # A job that finished before cancel() took effect is not cancelled
        cancelled = self.cancelled and not success

        error = None
        if cancelled:
            error = f"Job {self._job_id} cancelled"
        elif not success:
            details = "; ".join(f"chunk {i}: {msg}" for i, msg in failed.items())
            missing = self._total - len(done)
            error = f"{missing} of {self._total} chunk(s) not transferred: {details}"

        if success:
            logger.info(f"Job {self._job_id}: all {self._total} chunks transferred")
        elif not cancelled:
            logger.error(f"Job {self._job_id}: {error}")

        return TransferResult(
            job_id=self._job_id,
            success=success,
            chunks=chunks,
            total_chunks=self._total,
            failed=failed,
            cancelled=cancelled,
            error=error,
            retryable=retryable,
        )
