"""Core module - Shared chunk planning, wire labels, config and types."""

from relaycloud.core.chunking import (
    CHUNK_SIZE,
    CHUNK_THRESHOLD,
    ChunkPlan,
    ChunkRange,
    needs_chunking,
    plan,
    read_chunk,
    short_hash,
)
from relaycloud.core.config import BotConfig, TransferConfig
from relaycloud.core.labels import (
    ChunkMeta,
    build_chunk_label,
    build_chunked_marker,
    is_chunked,
    parse_chunk_count,
    parse_chunk_label,
    parse_chunked_refs,
)
from relaycloud.core.types import (
    Direction,
    IntegrityError,
    JobStatus,
    MissingChunkError,
    TransferCancelledError,
    TransferError,
)

__all__ = [
    # Chunking
    "CHUNK_SIZE",
    "CHUNK_THRESHOLD",
    "ChunkPlan",
    "ChunkRange",
    "needs_chunking",
    "plan",
    "read_chunk",
    "short_hash",
    # Config
    "BotConfig",
    "TransferConfig",
    # Labels
    "ChunkMeta",
    "build_chunk_label",
    "build_chunked_marker",
    "is_chunked",
    "parse_chunk_count",
    "parse_chunk_label",
    "parse_chunked_refs",
    # Types
    "Direction",
    "IntegrityError",
    "JobStatus",
    "MissingChunkError",
    "TransferCancelledError",
    "TransferError",
]
