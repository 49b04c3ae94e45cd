"""Tests for retry logic with exponential backoff."""

from __future__ import annotations

from typing import Any

import pytest

from relaycloud.client.api import (
    ClientError,
    ErrorKind,
    NetworkError,
    ServerError,
    ThrottledError,
)
from relaycloud.client.transfer.retry import (
    backoff_delay,
    error_kind,
    is_retryable,
    retry_with_backoff,
)
from relaycloud.core.types import IntegrityError

from conftest import SleepRecorder


def failing(errors: list[Exception], result: Any = "ok") -> Any:
    """Create a coroutine function raising the given errors, then returning result."""
    calls = {"count": 0}

    async def func() -> Any:
        calls["count"] += 1
        if errors:
            raise errors.pop(0)
        return result

    func.calls = calls  # type: ignore[attr-defined]
    return func


class TestBackoffDelay:
    """Tests for backoff_delay()."""

    def test_default_sequence(self) -> None:
        """Should wait 0, 1, 2, 4, 8 seconds before attempts 1 to 5."""
        assert [backoff_delay(a) for a in range(1, 6)] == [0.0, 1.0, 2.0, 4.0, 8.0]

    def test_custom_initial(self) -> None:
        """Should scale with initial_backoff."""
        assert backoff_delay(3, initial_backoff=0.5) == 1.0


class TestClassification:
    """Tests for error_kind() and is_retryable()."""

    def test_api_errors(self) -> None:
        """Should classify API errors by their kind."""
        assert error_kind(NetworkError("x")) is ErrorKind.TRANSIENT_NETWORK
        assert error_kind(ThrottledError("x", 429)) is ErrorKind.TRANSIENT_THROTTLED
        assert error_kind(ServerError("x", 502)) is ErrorKind.TRANSIENT_SERVER
        assert error_kind(ClientError("x", 400)) is ErrorKind.PERMANENT_CLIENT

    def test_integrity_error_is_transient(self) -> None:
        """Corrupted transfers should be retried."""
        assert is_retryable(IntegrityError("bad hash")) is True

    def test_unclassified_errors(self) -> None:
        """Other exceptions should not be retried."""
        assert error_kind(ValueError("x")) is None
        assert is_retryable(ValueError("x")) is False
        assert is_retryable(ClientError("x", 400)) is False


class TestRetryWithBackoff:
    """Tests for retry_with_backoff()."""

    @pytest.mark.asyncio
    async def test_success_first_try(self, sleeps: SleepRecorder) -> None:
        """Should return without sleeping."""
        func = failing([])

        assert await retry_with_backoff(func, sleep=sleeps) == "ok"
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, sleeps: SleepRecorder) -> None:
        """Should back off 1, 2, 4, 8s and succeed on the fifth attempt."""
        func = failing([NetworkError("down") for _ in range(4)])

        assert await retry_with_backoff(func, sleep=sleeps) == "ok"
        assert func.calls["count"] == 5
        assert sleeps.delays == [1.0, 2.0, 4.0, 8.0]

    @pytest.mark.asyncio
    async def test_raises_last_error_when_exhausted(self, sleeps: SleepRecorder) -> None:
        """Should raise the last error after max_attempts."""
        errors: list[Exception] = [ServerError(f"fail {i}", 500) for i in range(5)]
        func = failing(errors)

        with pytest.raises(ServerError, match="fail 4"):
            await retry_with_backoff(func, sleep=sleeps)

        assert func.calls["count"] == 5
        assert sleeps.delays == [1.0, 2.0, 4.0, 8.0]

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self, sleeps: SleepRecorder) -> None:
        """Should raise permanent errors after one attempt."""
        func = failing([ClientError("bad request", 400)])

        with pytest.raises(ClientError):
            await retry_with_backoff(func, sleep=sleeps)

        assert func.calls["count"] == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_unclassified_error_not_retried(self, sleeps: SleepRecorder) -> None:
        """Should raise unclassified errors immediately."""
        func = failing([ValueError("boom")])

        with pytest.raises(ValueError):
            await retry_with_backoff(func, sleep=sleeps)

        assert func.calls["count"] == 1

    @pytest.mark.asyncio
    async def test_throttle_hint_overrides_shorter_backoff(
        self, sleeps: SleepRecorder
    ) -> None:
        """A retry_after hint longer than the backoff should be honored."""
        func = failing([ThrottledError("slow down", 429, retry_after=30.0)])

        assert await retry_with_backoff(func, sleep=sleeps) == "ok"
        assert sleeps.delays == [30.0]

    @pytest.mark.asyncio
    async def test_throttle_hint_shorter_than_backoff(self, sleeps: SleepRecorder) -> None:
        """A short retry_after hint should not shorten the backoff."""
        func = failing([ThrottledError("slow down", 429, retry_after=0.5)])

        await retry_with_backoff(func, sleep=sleeps)

        assert sleeps.delays == [1.0]

    @pytest.mark.asyncio
    async def test_on_retry_callback(self, sleeps: SleepRecorder) -> None:
        """Should report each retry with its attempt number and delay."""
        seen: list[tuple[int, float]] = []
        func = failing([NetworkError("a"), NetworkError("b")])

        await retry_with_backoff(
            func,
            sleep=sleeps,
            on_retry=lambda attempt, error, delay: seen.append((attempt, delay)),
        )

        assert seen == [(2, 1.0), (3, 2.0)]
