"""HTTP client for the Bot API used as chunk transport.

This module provides:
- BotAPIClient: async HTTP client for sending, fetching and deleting chunk messages
- APIError hierarchy with a structured ErrorKind classification
- RemoteMessage, RemoteFile: parsed API results

Errors are classified here, from the HTTP status and the API's JSON error
payload, so callers never have to look at error text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

import httpx

from relaycloud.core.config import DEFAULT_API_URL, BotConfig

logger = logging.getLogger(__name__)


def mask_token(token: str) -> str:
    """Shorten a credential for log output."""
    return f"{token[:10]}..."


class ErrorKind(Enum):
    """Classification of a transport failure."""

    TRANSIENT_NETWORK = auto()  # I/O error, timeout
    TRANSIENT_THROTTLED = auto()  # Quota exceeded, may carry retry_after
    TRANSIENT_SERVER = auto()  # 5xx
    PERMANENT_CLIENT = auto()  # Any other 4xx

    @property
    def is_transient(self) -> bool:
        """Check if an operation failing this way may succeed on retry."""
        return self is not ErrorKind.PERMANENT_CLIENT


class APIError(Exception):
    """Base exception for API errors.

    Attributes:
        status_code: HTTP status, if a response was received.
        kind: Structured classification used by retry logic.
        retry_after: Server-suggested wait in seconds, if any.
    """

    kind = ErrorKind.PERMANENT_CLIENT

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class NetworkError(APIError):
    """Connection failed or timed out."""

    kind = ErrorKind.TRANSIENT_NETWORK


class ThrottledError(APIError):
    """Too many requests."""

    kind = ErrorKind.TRANSIENT_THROTTLED


class ServerError(APIError):
    """Server-side failure (5xx)."""

    kind = ErrorKind.TRANSIENT_SERVER


class ClientError(APIError):
    """Request rejected by the server (4xx other than 429)."""

    kind = ErrorKind.PERMANENT_CLIENT


class AuthenticationError(ClientError):
    """Invalid credential."""


class NotFoundError(ClientError):
    """Resource not found."""


@dataclass
class RemoteMessage:
    """A message created by the API, holding one transferred document.

    Attributes:
        message_id: Id of the message in the destination chat.
        remote_ref: Opaque file id used to fetch the document later.
    """

    message_id: int
    remote_ref: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteMessage:
        """Create from the ``result`` object of a send call.

        Documents are preferred; videos and photos (largest size) are
        accepted because the API may re-type uploaded media.
        """
        message_id = int(data["message_id"])

        for kind in ("document", "video", "audio"):
            media = data.get(kind)
            if media:
                return cls(message_id=message_id, remote_ref=media["file_id"])

        photos = data.get("photo")
        if photos:
            return cls(message_id=message_id, remote_ref=photos[-1]["file_id"])

        raise APIError("No document, video or photo in API response")


@dataclass
class RemoteFile:
    """File info returned by getFile."""

    file_id: str
    file_path: str
    file_size: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteFile:
        """Create from API response dictionary."""
        return cls(
            file_id=data["file_id"],
            file_path=data["file_path"],
            file_size=data.get("file_size"),
        )


class BotAPIClient:
    """Async HTTP client for the Bot API.

    One client serves every credential: the token is part of each request
    path, not of the connection.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: Base URL of the Bot API.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self._api_url,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: BotConfig) -> BotAPIClient:
        """Create a client from a BotConfig."""
        return cls(api_url=config.api_url, timeout=config.timeout)

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> BotAPIClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping transport failures to NetworkError."""
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError(f"{type(e).__name__}: {e}") from e

    def _handle_response(self, response: httpx.Response) -> Any:
        """Check an API response and return its ``result`` payload.

        Raises:
            ThrottledError: On 429, with retry_after from the payload.
            ServerError: On 5xx.
            AuthenticationError, NotFoundError, ClientError: On other 4xx.
        """
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        status = response.status_code
        description = payload.get("description") or response.reason_phrase or "Unknown error"

        if status == 429:
            parameters = payload.get("parameters") or {}
            retry_after = parameters.get("retry_after")
            raise ThrottledError(
                description,
                status,
                float(retry_after) if retry_after is not None else None,
            )
        if status >= 500:
            raise ServerError(description, status)
        if status in (401, 403):
            raise AuthenticationError(description, status)
        if status == 404:
            raise NotFoundError(description, status)
        if status >= 400:
            raise ClientError(description, status)

        if not payload.get("ok", False):
            raise ClientError(description, status)
        return payload.get("result")

    # === Chunk operations ===

    async def send_chunk(
        self,
        credential: str,
        destination: str,
        data: bytes,
        file_name: str,
        caption: str | None = None,
    ) -> RemoteMessage:
        """Send one chunk (or a whole small file) as a document message.

        Args:
            credential: Bot token to send with.
            destination: Target chat/channel id.
            data: Chunk bytes.
            file_name: Document file name.
            caption: Chunk label attached to the message; None sends the
                document without a caption.

        Returns:
            The created message with its remote file reference.
        """
        logger.debug(
            f"sendDocument {file_name} ({len(data)} bytes) "
            f"with {mask_token(credential)}"
        )
        form = {"chat_id": destination}
        if caption is not None:
            form["caption"] = caption
        response = await self._request(
            "POST",
            f"/bot{credential}/sendDocument",
            data=form,
            files={"document": (file_name, data, "application/octet-stream")},
        )
        return RemoteMessage.from_dict(self._handle_response(response))

    async def resolve_download_location(self, credential: str, remote_ref: str) -> str:
        """Resolve a remote file reference to a downloadable path.

        Returns:
            File path relative to the file download endpoint.
        """
        response = await self._request(
            "POST",
            f"/bot{credential}/getFile",
            data={"file_id": remote_ref},
        )
        return RemoteFile.from_dict(self._handle_response(response)).file_path

    async def fetch_bytes(self, credential: str, path: str) -> bytes:
        """Download the content of a resolved file path."""
        response = await self._request("GET", f"/file/bot{credential}/{path}")
        if response.status_code >= 400:
            # File endpoint errors carry the same JSON payload as API calls
            self._handle_response(response)
        return response.content

    async def delete_remote_message(
        self,
        credential: str,
        destination: str,
        message_id: int,
    ) -> bool:
        """Delete a message from the destination chat.

        Returns:
            True if the API confirmed the deletion.
        """
        response = await self._request(
            "POST",
            f"/bot{credential}/deleteMessage",
            data={"chat_id": destination, "message_id": str(message_id)},
        )
        return bool(self._handle_response(response))
