"""Tests for the per-credential sliding-window rate limiter."""

from __future__ import annotations

import asyncio

import pytest

from relaycloud.client.transfer.rate_limit import (
    CredentialRateLimiter,
    get_rate_limiter,
)


class FakeClock:
    """Manual clock whose sleep advances time instead of waiting."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    """Create a manual clock."""
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> CredentialRateLimiter:
    """Create a limiter of 20 ops / 60 s on the manual clock."""
    return CredentialRateLimiter(
        max_requests=20, window=60.0, clock=clock, sleep=clock.sleep
    )


class TestAcquire:
    """Tests for CredentialRateLimiter.acquire()."""

    @pytest.mark.asyncio
    async def test_admits_up_to_limit_without_waiting(
        self, limiter: CredentialRateLimiter, clock: FakeClock
    ) -> None:
        """The first 20 operations of a key should not wait."""
        for _ in range(20):
            assert await limiter.acquire("bot-a", "chan") == 0.0

        assert clock.sleeps == []
        assert limiter.usage("bot-a", "chan") == 20

    @pytest.mark.asyncio
    async def test_21st_operation_waits_for_window(
        self, limiter: CredentialRateLimiter, clock: FakeClock
    ) -> None:
        """The 21st operation within 60s should wait until the oldest expires."""
        for _ in range(20):
            await limiter.acquire("bot-a", "chan")

        waited = await limiter.acquire("bot-a", "chan")

        assert waited == pytest.approx(60.0)
        assert clock.now == pytest.approx(60.0)
        assert limiter.usage("bot-a", "chan") == 1

    @pytest.mark.asyncio
    async def test_wait_accounts_for_elapsed_time(
        self, limiter: CredentialRateLimiter, clock: FakeClock
    ) -> None:
        """Wait should be window minus the age of the oldest admission."""
        await limiter.acquire("bot-a", "chan")
        clock.now = 45.0
        for _ in range(19):
            await limiter.acquire("bot-a", "chan")

        waited = await limiter.acquire("bot-a", "chan")

        assert waited == pytest.approx(15.0)

    @pytest.mark.asyncio
    async def test_keys_are_independent(
        self, limiter: CredentialRateLimiter, clock: FakeClock
    ) -> None:
        """A full key should not delay other credentials or destinations."""
        for _ in range(20):
            await limiter.acquire("bot-a", "chan")

        assert await limiter.acquire("bot-b", "chan") == 0.0
        assert await limiter.acquire("bot-a", "other") == 0.0
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_concurrent_callers_respect_window(
        self, limiter: CredentialRateLimiter, clock: FakeClock
    ) -> None:
        """No 60s window should ever contain more than 20 admissions."""
        admitted: list[float] = []

        async def call() -> None:
            await limiter.acquire("bot-a", "chan")
            admitted.append(clock())

        await asyncio.gather(*(call() for _ in range(45)))

        assert len(admitted) == 45
        for start in admitted:
            in_window = [t for t in admitted if start <= t < start + 60.0]
            assert len(in_window) <= 20


class TestCollectIdle:
    """Tests for idle window collection."""

    @pytest.mark.asyncio
    async def test_drops_expired_windows(
        self, limiter: CredentialRateLimiter, clock: FakeClock
    ) -> None:
        """Windows with no admission in the last 60s should be dropped."""
        await limiter.acquire("bot-a", "chan")
        await limiter.acquire("bot-b", "chan")
        assert len(limiter) == 2

        clock.now = 30.0
        assert limiter.collect_idle() == 0

        clock.now = 61.0
        assert limiter.collect_idle() == 2
        assert len(limiter) == 0

    def test_usage_of_unknown_key(self, limiter: CredentialRateLimiter) -> None:
        """Unknown keys should report zero usage."""
        assert limiter.usage("nobody", "chan") == 0


class TestGetRateLimiter:
    """Tests for the process-wide limiter."""

    def test_returns_same_instance(self) -> None:
        """Should return one shared limiter."""
        assert get_rate_limiter() is get_rate_limiter()

    def test_default_quota(self) -> None:
        """Should default to 20 operations per 60 seconds."""
        limiter = get_rate_limiter()
        assert limiter.max_requests == 20
        assert limiter.window == 60.0

    def test_rejects_zero_limit(self) -> None:
        """Should reject a zero quota."""
        with pytest.raises(ValueError):
            CredentialRateLimiter(max_requests=0)
