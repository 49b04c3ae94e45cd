"""Shared fixtures: an in-memory Bot API stand-in and fast transfer plumbing."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from relaycloud.client.api import RemoteMessage
from relaycloud.client.transfer.rate_limit import CredentialRateLimiter
from relaycloud.client.transfer.transporter import ChunkTransporter
from relaycloud.core.labels import parse_chunk_label


@dataclass
class SentChunk:
    """A sendDocument call seen by FakeTransport."""

    credential: str
    destination: str
    file_name: str
    caption: str | None
    data: bytes

    @property
    def index(self) -> int:
        if self.caption is None:
            return 0
        meta = parse_chunk_label(self.caption)
        assert meta is not None
        return meta.index


@dataclass
class FakeTransport:
    """In-memory ChunkTransport.

    Failures are queued per chunk index (sends) or per remote ref (fetches):
    each call pops and raises the next queued exception, if any.
    """

    sent: list[SentChunk] = field(default_factory=list)
    fetched: list[tuple[str, str]] = field(default_factory=list)
    deleted: list[tuple[str, str, int]] = field(default_factory=list)
    stored: dict[str, bytes] = field(default_factory=dict)
    send_failures: dict[int, list[BaseException]] = field(default_factory=dict)
    fetch_failures: dict[str, list[BaseException]] = field(default_factory=dict)
    corrupt_refs: set[str] = field(default_factory=set)
    in_flight: int = 0
    max_in_flight: int = 0
    _next_message_id: int = 100

    async def __aenter__(self) -> FakeTransport:
        return self

    async def __aexit__(self, *args: Any) -> None:
        return None

    async def _enter(self) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)

    def _leave(self) -> None:
        self.in_flight -= 1

    async def send_chunk(
        self,
        credential: str,
        destination: str,
        data: bytes,
        file_name: str,
        caption: str | None = None,
    ) -> RemoteMessage:
        chunk = SentChunk(credential, destination, file_name, caption, data)
        self.sent.append(chunk)
        await self._enter()
        try:
            failures = self.send_failures.get(chunk.index)
            if failures:
                raise failures.pop(0)
            message_id = self._next_message_id
            self._next_message_id += 1
            remote_ref = f"file-{message_id}"
            self.stored[remote_ref] = data
            return RemoteMessage(message_id=message_id, remote_ref=remote_ref)
        finally:
            self._leave()

    async def resolve_download_location(self, credential: str, remote_ref: str) -> str:
        failures = self.fetch_failures.get(remote_ref)
        if failures:
            raise failures.pop(0)
        return f"documents/{remote_ref}"

    async def fetch_bytes(self, credential: str, path: str) -> bytes:
        remote_ref = path.split("/", 1)[1]
        self.fetched.append((credential, remote_ref))
        await self._enter()
        try:
            data = self.stored[remote_ref]
            if remote_ref in self.corrupt_refs:
                return data[::-1] + b"!"
            return data
        finally:
            self._leave()

    async def delete_remote_message(
        self,
        credential: str,
        destination: str,
        message_id: int,
    ) -> bool:
        self.deleted.append((credential, destination, message_id))
        return True

    def sent_indices(self) -> list[int]:
        """Chunk indices of all send calls, in call order."""
        return [c.index for c in self.sent]


@dataclass
class StalledTransport(FakeTransport):
    """FakeTransport whose sends and fetches never finish."""

    started: asyncio.Event = field(default_factory=asyncio.Event)

    async def send_chunk(
        self,
        credential: str,
        destination: str,
        data: bytes,
        file_name: str,
        caption: str | None = None,
    ) -> RemoteMessage:
        self.sent.append(SentChunk(credential, destination, file_name, caption, data))
        self.started.set()
        await asyncio.Event().wait()
        raise AssertionError("unreachable")

    async def fetch_bytes(self, credential: str, path: str) -> bytes:
        self.started.set()
        await asyncio.Event().wait()
        raise AssertionError("unreachable")


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Create an in-memory transport."""
    return FakeTransport()


@pytest.fixture
def sleeps() -> SleepRecorder:
    """Record backoff sleeps instead of waiting."""
    return SleepRecorder()


@pytest.fixture
def transporter(fake_transport: FakeTransport, sleeps: SleepRecorder) -> ChunkTransporter:
    """Create a transporter over the fake transport with an unconstrained limiter."""
    return ChunkTransporter(
        fake_transport,
        rate_limiter=CredentialRateLimiter(max_requests=10_000),
        sleep=sleeps,
    )
