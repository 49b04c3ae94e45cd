"""Credential rotation offset for new jobs.

Each new job starts its round-robin assignment at a different credential
so that small jobs do not all land on the first credential of the pool.
The offset is chosen once per job and persisted with it; resumes reuse the
stored value.
"""

from __future__ import annotations

import threading


class OffsetRotator:
    """Thread-safe rotating counter."""

    def __init__(self, start: int = 0) -> None:
        self._next = start
        self._lock = threading.Lock()

    def next_offset(self, pool_size: int) -> int:
        """Return the next offset in [0, pool_size).

        Raises:
            ValueError: If pool_size is not positive.
        """
        if pool_size <= 0:
            raise ValueError("pool_size must be positive")
        with self._lock:
            value = self._next
            self._next += 1
        return value % pool_size

    def reset(self, start: int = 0) -> None:
        """Reset the counter."""
        with self._lock:
            self._next = start


_rotator = OffsetRotator()


def next_offset(pool_size: int) -> int:
    """Next offset from the process-wide rotator."""
    return _rotator.next_offset(pool_size)
