"""Sliding-window rate limiting per (credential, destination).

This module provides:
- CredentialUsageWindow: Recent admission timestamps of one key
- CredentialRateLimiter: Keyed registry of windows, each with its own lock
- get_rate_limiter: Process-wide limiter instance

The API allows about 20 messages per minute per bot and chat. Each key is
tracked independently, so unrelated (credential, destination) pairs never
contend for the same lock.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable

from relaycloud.client.api import mask_token

logger = logging.getLogger(__name__)

# Default rate limit configuration
DEFAULT_MAX_REQUESTS = 20
DEFAULT_WINDOW = 60.0  # seconds

RateKey = tuple[str, str]


class CredentialUsageWindow:
    """Admission timestamps of one (credential, destination) key."""

    def __init__(self) -> None:
        self.timestamps: deque[float] = deque()
        self.lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self.timestamps)

    def purge(self, now: float, window: float) -> None:
        """Drop timestamps that have left the window."""
        while self.timestamps and now - self.timestamps[0] >= window:
            self.timestamps.popleft()

    @property
    def oldest(self) -> float | None:
        """Oldest timestamp still in the window."""
        return self.timestamps[0] if self.timestamps else None


class CredentialRateLimiter:
    """Sliding-window limiter keyed by (credential, destination).

    acquire() admits at most max_requests calls per key in any trailing
    window. When the key is full it sleeps until the oldest admission
    leaves the window and checks again. The lock is released while
    sleeping so other keys and other coroutines keep going.

    Usage:
        limiter = CredentialRateLimiter()
        await limiter.acquire(token, channel_id)
        await client.send_chunk(token, channel_id, ...)
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window: float = DEFAULT_WINDOW,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        """Initialize the limiter.

        Args:
            max_requests: Admissions allowed per key per window.
            window: Window length in seconds.
            clock: Monotonic time source.
            sleep: Coroutine function used to wait.
        """
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        self._max_requests = max_requests
        self._window = window
        self._clock = clock
        self._sleep = sleep
        self._windows: dict[RateKey, CredentialUsageWindow] = {}

    @property
    def max_requests(self) -> int:
        """Admissions allowed per key per window."""
        return self._max_requests

    @property
    def window(self) -> float:
        """Window length in seconds."""
        return self._window

    def _window_for(self, key: RateKey) -> CredentialUsageWindow:
        window = self._windows.get(key)
        if window is None:
            window = CredentialUsageWindow()
            self._windows[key] = window
        return window

    async def acquire(self, credential: str, destination: str) -> float:
        """Wait until an operation for this key is allowed.

        Args:
            credential: Credential about to be used.
            destination: Destination it targets.

        Returns:
            Total seconds spent waiting.
        """
        key = (credential, destination)
        waited = 0.0

        while True:
            self.collect_idle()
            usage = self._window_for(key)
            async with usage.lock:
                now = self._clock()
                usage.purge(now, self._window)
                if len(usage) < self._max_requests:
                    usage.timestamps.append(now)
                    return waited
                oldest = usage.oldest
                assert oldest is not None
                wait = self._window - (now - oldest)

            logger.warning(
                f"Rate limit reached for {destination} "
                f"(token={mask_token(credential)}); waiting {wait:.1f}s"
            )
            await self._sleep(wait)
            waited += wait

    def usage(self, credential: str, destination: str) -> int:
        """Number of admissions of a key in the current window."""
        usage = self._windows.get((credential, destination))
        if usage is None:
            return 0
        usage.purge(self._clock(), self._window)
        return len(usage)

    def collect_idle(self) -> int:
        """Drop windows with no recent admissions and no waiter.

        Returns:
            Number of windows dropped.
        """
        now = self._clock()
        idle: list[RateKey] = []
        for key, usage in self._windows.items():
            if usage.lock.locked():
                continue
            usage.purge(now, self._window)
            if not usage.timestamps:
                idle.append(key)
        for key in idle:
            del self._windows[key]
        return len(idle)

    def __len__(self) -> int:
        return len(self._windows)


_default_limiter: CredentialRateLimiter | None = None


def get_rate_limiter() -> CredentialRateLimiter:
    """Return the process-wide rate limiter.

    All jobs of a process share it, so quotas hold across concurrent jobs
    that use the same credentials.
    """
    global _default_limiter
    if _default_limiter is None:
        _default_limiter = CredentialRateLimiter()
    return _default_limiter
