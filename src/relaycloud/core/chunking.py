"""Fixed-size chunk planning for RelayCloud.

This module provides fixed-size chunking for:
- Deciding whether a file is large enough to need chunking
- Deriving chunk count and byte ranges from a file size
- Short content hashes used to identify chunks on the wire
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path

from relaycloud.core.types import IntegrityError

# Chunk size configuration (in bytes)
CHUNK_SIZE = 4 * 1024 * 1024  # 4 MB
CHUNK_THRESHOLD = 4 * 1024 * 1024  # Files larger than this are chunked

SHORT_HASH_LENGTH = 16


@dataclass(frozen=True)
class ChunkRange:
    """Byte range of one chunk within a file."""

    index: int
    offset: int
    length: int

    @property
    def end(self) -> int:
        """Return the exclusive end offset of this chunk."""
        return self.offset + self.length


@dataclass(frozen=True)
class ChunkPlan:
    """Chunk layout of a file of a given size."""

    size: int
    chunk_size: int
    ranges: tuple[ChunkRange, ...]

    @property
    def total_chunks(self) -> int:
        """Return the number of chunks in the plan."""
        return len(self.ranges)


def total_chunks(size: int, chunk_size: int = CHUNK_SIZE) -> int:
    """Return ceil(size / chunk_size)."""
    return (size + chunk_size - 1) // chunk_size


def plan(size: int, chunk_size: int = CHUNK_SIZE) -> ChunkPlan:
    """Split a file size into contiguous fixed-size ranges.

    Every chunk is chunk_size bytes except possibly the last, which holds
    the remainder (or a full chunk when size divides evenly).

    Args:
        size: Total file size in bytes.
        chunk_size: Size of each chunk in bytes.

    Returns:
        ChunkPlan with one ChunkRange per chunk, ordered by index.

    Raises:
        ValueError: If size is negative or chunk_size is not positive.
    """
    if size < 0:
        raise ValueError(f"size must be >= 0, got {size}")
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be > 0, got {chunk_size}")

    ranges = tuple(
        ChunkRange(
            index=i,
            offset=i * chunk_size,
            length=min((i + 1) * chunk_size, size) - i * chunk_size,
        )
        for i in range(total_chunks(size, chunk_size))
    )
    return ChunkPlan(size=size, chunk_size=chunk_size, ranges=ranges)


def needs_chunking(size: int, threshold: int = CHUNK_THRESHOLD) -> bool:
    """Check if a file of this size must be sent in several chunks."""
    return size > threshold


def short_hash(data: bytes) -> str:
    """Compute the short chunk hash.

    Args:
        data: Raw chunk bytes.

    Returns:
        First 16 hex characters of the SHA-256 digest.
    """
    return hashlib.sha256(data).hexdigest()[:SHORT_HASH_LENGTH]


def read_chunk(path: Path, chunk: ChunkRange) -> bytes:
    """Read the bytes of one chunk from a file.

    Args:
        path: File to read from.
        chunk: Range to read.

    Returns:
        Exactly chunk.length bytes.

    Raises:
        FileNotFoundError: If the file does not exist.
        IntegrityError: If the file ends before the range does.
    """
    with Path(path).open("rb") as f:
        f.seek(chunk.offset)
        data = f.read(chunk.length)

    if len(data) != chunk.length:
        raise IntegrityError(
            f"Short read for chunk {chunk.index}: "
            f"expected {chunk.length} bytes, got {len(data)}"
        )
    return data
