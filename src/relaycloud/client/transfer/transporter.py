"""Single-chunk network operations with rate limiting and retry.

This module provides:
- ChunkTransport: Protocol of the network collaborator (BotAPIClient)
- ChunkTransporter: send/fetch/delete one chunk (or a single-document
  file), never raising on failure

Every network call is preceded by CredentialRateLimiter.acquire() for the
(credential, destination) pair it uses. Failures are retried according to
the structured ErrorKind carried by the exception.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from relaycloud.client.api import RemoteMessage, mask_token
from relaycloud.client.transfer.rate_limit import CredentialRateLimiter, get_rate_limiter
from relaycloud.client.transfer.retry import (
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_ATTEMPTS,
    error_kind,
    retry_with_backoff,
)
from relaycloud.client.transfer.types import ChunkInfo, ChunkOutcome
from relaycloud.core.chunking import short_hash
from relaycloud.core.labels import ChunkMeta
from relaycloud.core.types import IntegrityError

logger = logging.getLogger(__name__)

# getFile and file downloads are not tied to a chat; they share one
# rate-limit destination per credential.
FETCH_DESTINATION = "getFile"


class ChunkTransport(Protocol):
    """Network operations needed to move chunks."""

    async def send_chunk(
        self,
        credential: str,
        destination: str,
        data: bytes,
        file_name: str,
        caption: str | None = None,
    ) -> RemoteMessage: ...

    async def resolve_download_location(self, credential: str, remote_ref: str) -> str: ...

    async def fetch_bytes(self, credential: str, path: str) -> bytes: ...

    async def delete_remote_message(
        self,
        credential: str,
        destination: str,
        message_id: int,
    ) -> bool: ...


class ChunkTransporter:
    """Transfers single chunks through a ChunkTransport.

    Usage:
        transporter = ChunkTransporter(client)
        outcome = await transporter.send_chunk(token, channel, data, meta)
        if not outcome.success:
            print(outcome.error)
    """

    def __init__(
        self,
        transport: ChunkTransport,
        rate_limiter: CredentialRateLimiter | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        """Initialize the transporter.

        Args:
            transport: Network collaborator.
            rate_limiter: Limiter gating every call (process-wide by default).
            max_attempts: Attempts per chunk operation.
            initial_backoff: Delay before the second attempt.
            sleep: Coroutine function used for backoff waits.
        """
        self._transport = transport
        self._limiter = rate_limiter or get_rate_limiter()
        self._max_attempts = max_attempts
        self._initial_backoff = initial_backoff
        self._sleep = sleep

    @property
    def rate_limiter(self) -> CredentialRateLimiter:
        """Limiter used by this transporter."""
        return self._limiter

    async def _run(
        self,
        index: int,
        operation: Callable[[], Awaitable[ChunkOutcome]],
        description: str,
    ) -> ChunkOutcome:
        """Run an operation under the retry policy, converting errors to an outcome."""
        attempts = 0

        async def attempt() -> ChunkOutcome:
            nonlocal attempts
            attempts += 1
            return await operation()

        try:
            outcome = await retry_with_backoff(
                attempt,
                max_attempts=self._max_attempts,
                initial_backoff=self._initial_backoff,
                sleep=self._sleep,
            )
        except Exception as e:
            logger.error(f"{description} failed after {attempts} attempt(s): {e}")
            return ChunkOutcome(
                index=index,
                error=str(e) or type(e).__name__,
                kind=error_kind(e),
                attempts=attempts,
            )

        outcome.attempts = attempts
        return outcome

    async def _send(
        self,
        credential: str,
        destination: str,
        data: bytes,
        file_name: str,
        caption: str | None,
        index: int,
        digest: str,
        description: str,
    ) -> ChunkOutcome:
        """Send one document under the rate limit and retry policy."""

        async def send() -> ChunkOutcome:
            await self._limiter.acquire(credential, destination)
            message = await self._transport.send_chunk(
                credential, destination, data, file_name, caption
            )
            logger.debug(
                f"Sent {description} as message {message.message_id} "
                f"({mask_token(credential)})"
            )
            return ChunkOutcome(
                index=index,
                info=ChunkInfo(
                    index=index,
                    message_id=message.message_id,
                    remote_ref=message.remote_ref,
                    hash=digest,
                    credential=credential,
                ),
            )

        return await self._run(index, send, f"Upload of {description}")

    async def send_chunk(
        self,
        credential: str,
        destination: str,
        data: bytes,
        meta: ChunkMeta,
    ) -> ChunkOutcome:
        """Send one chunk, labeled with its wire metadata.

        Args:
            credential: Credential assigned to the chunk.
            destination: Destination chat/channel id.
            data: Chunk bytes.
            meta: Chunk identity rendered as the message caption.

        Returns:
            ChunkOutcome with ChunkInfo on success, error details otherwise.
        """
        return await self._send(
            credential,
            destination,
            data,
            meta.document_name,
            meta.to_label(),
            meta.index,
            meta.hash,
            f"chunk {meta.index + 1}/{meta.total} of {meta.name}",
        )

    async def send_document(
        self,
        credential: str,
        destination: str,
        data: bytes,
        file_name: str,
    ) -> ChunkOutcome:
        """Send a whole file as one document without a chunk label.

        Returns:
            ChunkOutcome for index 0, with ChunkInfo on success.
        """
        return await self._send(
            credential,
            destination,
            data,
            file_name,
            None,
            0,
            short_hash(data),
            file_name,
        )

    async def fetch_chunk(
        self,
        credential: str,
        remote_ref: str,
        index: int = 0,
        expected_hash: str | None = None,
    ) -> ChunkOutcome:
        """Fetch one chunk's bytes.

        Resolves the download location, then downloads the content. An empty
        body, or one whose short hash differs from expected_hash, counts as a
        failed attempt.

        Args:
            credential: Credential assigned to the chunk.
            remote_ref: Remote file reference.
            index: Chunk index, reported in the outcome.
            expected_hash: Short hash the content must match, if known.

        Returns:
            ChunkOutcome with data and ChunkInfo on success.
        """

        async def fetch() -> ChunkOutcome:
            await self._limiter.acquire(credential, FETCH_DESTINATION)
            path = await self._transport.resolve_download_location(credential, remote_ref)
            await self._limiter.acquire(credential, FETCH_DESTINATION)
            data = await self._transport.fetch_bytes(credential, path)

            if not data:
                raise IntegrityError(f"Chunk {index} downloaded empty")
            digest = short_hash(data)
            if expected_hash and digest != expected_hash:
                raise IntegrityError(
                    f"Chunk {index} hash mismatch: expected {expected_hash}, got {digest}"
                )

            logger.debug(f"Fetched chunk {index} ({len(data)} bytes)")
            return ChunkOutcome(
                index=index,
                info=ChunkInfo(
                    index=index,
                    message_id=0,
                    remote_ref=remote_ref,
                    hash=digest,
                    credential=credential,
                ),
                data=data,
            )

        return await self._run(index, fetch, f"Download of chunk {index}")

    async def delete_chunk(
        self,
        credential: str,
        destination: str,
        message_id: int,
    ) -> bool:
        """Delete a chunk message with the credential that created it.

        Returns:
            True if the message was deleted.
        """

        async def delete() -> bool:
            await self._limiter.acquire(credential, destination)
            return await self._transport.delete_remote_message(
                credential, destination, message_id
            )

        try:
            return await retry_with_backoff(
                delete,
                max_attempts=self._max_attempts,
                initial_backoff=self._initial_backoff,
                sleep=self._sleep,
            )
        except Exception as e:
            logger.error(f"Failed to delete message {message_id}: {e}")
            return False
