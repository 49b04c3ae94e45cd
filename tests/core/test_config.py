"""Tests for core configuration classes."""

from __future__ import annotations

import pytest

from relaycloud.core.config import DEFAULT_API_URL, BotConfig, TransferConfig


class TestTransferConfig:
    """Tests for TransferConfig class."""

    def test_defaults(self) -> None:
        """Should use the fixed transfer parameters."""
        config = TransferConfig()
        assert config.chunk_size == 4 * 1024 * 1024
        assert config.threshold == 4 * 1024 * 1024
        assert config.rate_limit == 20
        assert config.rate_window == 60.0
        assert config.max_attempts == 5
        assert config.initial_backoff == 1.0

    def test_threshold_follows_chunk_size(self) -> None:
        """Without an explicit threshold, files up to one chunk are not chunked."""
        assert TransferConfig(chunk_size=6).threshold == 6
        assert TransferConfig(chunk_size=6, chunk_threshold=100).threshold == 100
        assert TransferConfig(chunk_size=6, chunk_threshold=0).threshold == 0

    def test_rejects_negative_threshold(self) -> None:
        """Should reject a negative threshold."""
        with pytest.raises(ValueError):
            TransferConfig(chunk_threshold=-1)

    def test_rejects_invalid_chunk_size(self) -> None:
        """Should reject non-positive chunk sizes."""
        with pytest.raises(ValueError):
            TransferConfig(chunk_size=0)

    def test_rejects_zero_attempts(self) -> None:
        """Should require at least one attempt."""
        with pytest.raises(ValueError):
            TransferConfig(max_attempts=0)


class TestBotConfig:
    """Tests for BotConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with defaults."""
        config = BotConfig(tokens=["t1"], channel_id="-100")
        assert config.tokens == ["t1"]
        assert config.channel_id == "-100"
        assert config.api_url == DEFAULT_API_URL
        assert config.timeout == 60.0

    def test_url_trailing_slash_removed(self) -> None:
        """Should strip trailing slash from API URL."""
        config = BotConfig(api_url="https://example.com/")
        assert config.api_url == "https://example.com"

    def test_blank_tokens_dropped(self) -> None:
        """Should drop blank tokens and strip whitespace."""
        config = BotConfig(tokens=[" t1 ", "", "  ", "t2"])
        assert config.tokens == ["t1", "t2"]

    def test_is_complete(self) -> None:
        """Should require tokens and a channel."""
        assert BotConfig(tokens=["t1"], channel_id="-100").is_complete is True
        assert BotConfig(tokens=[], channel_id="-100").is_complete is False
        assert BotConfig(tokens=["t1"]).is_complete is False
