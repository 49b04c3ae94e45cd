"""Progress event stream for transfer jobs.

This module provides:
- ProgressStream: Publishes ProgressEvent to callbacks and async subscribers

Events are published from the coordinator's event loop. Callbacks run
synchronously in publish order; async subscribers receive events through
an unbounded queue and stop iterating when the job ends (finish()) or
the stream is closed.

Usage:
    stream = ProgressStream()
    stream.add_listener(lambda e: print(f"{e.percent:.0f}%"))

    async for event in stream.subscribe():
        ...
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from relaycloud.client.transfer.types import ProgressCallback, ProgressEvent

logger = logging.getLogger(__name__)


class ProgressStream:
    """Fan-out of ProgressEvent to listeners."""

    def __init__(self) -> None:
        self._listeners: list[ProgressCallback] = []
        self._queues: list[asyncio.Queue[ProgressEvent | None]] = []
        self._closed = False
        self._last: ProgressEvent | None = None

    @property
    def last_event(self) -> ProgressEvent | None:
        """Most recently published event."""
        return self._last

    @property
    def closed(self) -> bool:
        """Check if the stream has been closed."""
        return self._closed

    def add_listener(self, callback: ProgressCallback) -> None:
        """Register a synchronous callback."""
        self._listeners.append(callback)

    def remove_listener(self, callback: ProgressCallback) -> None:
        """Unregister a callback (no-op if unknown)."""
        if callback in self._listeners:
            self._listeners.remove(callback)

    def publish(self, event: ProgressEvent) -> None:
        """Deliver an event to every listener and subscriber."""
        if self._closed:
            return
        self._last = event
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Progress listener failed: {e}")
        for queue in self._queues:
            queue.put_nowait(event)

    async def subscribe(self) -> AsyncIterator[ProgressEvent]:
        """Iterate over events published after subscribing.

        Iteration stops at the end of the current job (see finish()) or
        when the stream is closed.
        """
        queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._queues.append(queue)
        try:
            if self._closed:
                return
            while True:
                event = await queue.get()
                if event is None:
                    return
                yield event
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def finish(self) -> None:
        """End every current subscription once its queued events are read.

        Called by the transfer drivers when a job ends, whatever the
        outcome. Listeners stay registered, and the stream keeps serving
        later jobs and later subscriptions.
        """
        queues, self._queues = self._queues, []
        for queue in queues:
            queue.put_nowait(None)

    def close(self) -> None:
        """End every subscription; later publishes are ignored."""
        if self._closed:
            return
        self._closed = True
        self.finish()
