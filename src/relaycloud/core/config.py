"""Shared configuration classes for relaycloud.

This module defines configuration classes used by the transfer engine,
the Bot API client and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from relaycloud.core.chunking import CHUNK_SIZE

DEFAULT_API_URL = "https://api.telegram.org"


@dataclass
class TransferConfig:
    """Tunable parameters of the chunked transfer engine.

    Attributes:
        chunk_size: Size of each chunk in bytes.
        chunk_threshold: Files larger than this are chunked; None follows
            chunk_size, so a file that fits in one chunk is sent whole.
        rate_limit: Maximum operations per window per (credential, destination).
        rate_window: Length of the sliding rate-limit window in seconds.
        max_attempts: Attempts per chunk operation, including the first.
        initial_backoff: Delay before the second attempt, doubled each time.
    """

    chunk_size: int = CHUNK_SIZE
    chunk_threshold: int | None = None
    rate_limit: int = 20
    rate_window: float = 60.0
    max_attempts: int = 5
    initial_backoff: float = 1.0

    def __post_init__(self) -> None:
        """Validate values."""
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.chunk_threshold is not None and self.chunk_threshold < 0:
            raise ValueError("chunk_threshold must not be negative")
        if self.rate_limit <= 0:
            raise ValueError("rate_limit must be positive")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @property
    def threshold(self) -> int:
        """Size above which a file is sent as chunks."""
        if self.chunk_threshold is None:
            return self.chunk_size
        return self.chunk_threshold


@dataclass
class BotConfig:
    """Configuration for talking to the Bot API.

    Attributes:
        tokens: Ordered pool of bot tokens used as credentials.
        channel_id: Destination chat/channel id.
        api_url: Base URL of the Bot API.
        timeout: Request timeout in seconds for chunk operations.
    """

    tokens: list[str] = field(default_factory=list)
    channel_id: str = ""
    api_url: str = DEFAULT_API_URL
    timeout: float = 60.0

    def __post_init__(self) -> None:
        """Normalize API URL and drop blank tokens."""
        self.api_url = self.api_url.rstrip("/")
        self.tokens = [t.strip() for t in self.tokens if t.strip()]

    @property
    def is_complete(self) -> bool:
        """Check if enough is configured to transfer files."""
        return bool(self.tokens) and bool(self.channel_id)
