"""Configuration utilities for RelayCloud CLI.

This module provides shared configuration functions used across CLI commands.
Settings live in ~/.relaycloud/config.json; RELAYCLOUD_TOKENS (comma
separated), RELAYCLOUD_CHANNEL and RELAYCLOUD_API_URL override the file.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from relaycloud.core.config import DEFAULT_API_URL, BotConfig, TransferConfig

ENV_TOKENS = "RELAYCLOUD_TOKENS"
ENV_CHANNEL = "RELAYCLOUD_CHANNEL"
ENV_API_URL = "RELAYCLOUD_API_URL"

# Keys of the "transfer" section mapped to TransferConfig fields
TRANSFER_KEYS = (
    "chunk_size",
    "chunk_threshold",
    "rate_limit",
    "rate_window",
    "max_attempts",
    "initial_backoff",
)


def get_config_dir() -> Path:
    """Get the configuration directory for RelayCloud.

    Returns:
        Path to ~/.relaycloud.
    """
    return Path.home() / ".relaycloud"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_state_db() -> Path:
    """Get the path to the checkpoint database."""
    return get_config_dir() / "state.db"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def load_bot_config() -> BotConfig:
    """Build the Bot API configuration from file and environment."""
    config = load_config()

    tokens: list[str] = list(config.get("tokens") or [])
    env_tokens = os.environ.get(ENV_TOKENS)
    if env_tokens:
        tokens = env_tokens.split(",")

    channel = os.environ.get(ENV_CHANNEL) or str(config.get("channel_id") or "")
    api_url = os.environ.get(ENV_API_URL) or config.get("api_url") or DEFAULT_API_URL

    bot_config = BotConfig(tokens=tokens, channel_id=channel, api_url=api_url)
    if config.get("timeout"):
        bot_config.timeout = float(config["timeout"])
    return bot_config


def load_transfer_config() -> TransferConfig:
    """Build the transfer parameters from the config file's transfer section."""
    section = load_config().get("transfer") or {}
    values = {key: section[key] for key in TRANSFER_KEYS if key in section}
    return TransferConfig(**values)
