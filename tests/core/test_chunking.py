"""Tests for chunk planning."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from relaycloud.core.chunking import (
    CHUNK_SIZE,
    CHUNK_THRESHOLD,
    ChunkRange,
    needs_chunking,
    plan,
    read_chunk,
    short_hash,
    total_chunks,
)
from relaycloud.core.types import IntegrityError

MIB = 1024 * 1024


class TestPlan:
    """Tests for plan()."""

    def test_ten_mib_file(self) -> None:
        """Should split 10 MiB into 4 + 4 + 2 MiB."""
        result = plan(10 * MIB, 4 * MIB)

        assert result.total_chunks == 3
        assert [(r.offset, r.length) for r in result.ranges] == [
            (0, 4 * MIB),
            (4 * MIB, 4 * MIB),
            (8 * MIB, 2 * MIB),
        ]

    def test_exact_multiple(self) -> None:
        """Last chunk should be full when size divides evenly."""
        result = plan(8 * MIB, 4 * MIB)

        assert result.total_chunks == 2
        assert result.ranges[-1].length == 4 * MIB

    def test_single_byte(self) -> None:
        """A 1-byte file should be one chunk."""
        result = plan(1, CHUNK_SIZE)

        assert result.total_chunks == 1
        assert result.ranges[0] == ChunkRange(index=0, offset=0, length=1)

    def test_empty_file(self) -> None:
        """A zero-byte file should plan to zero chunks."""
        assert plan(0).total_chunks == 0

    @pytest.mark.parametrize("size", [1, 999, 1000, 1001, 4096, 12345])
    def test_ranges_cover_file(self, size: int) -> None:
        """Ranges should be contiguous, indexed 0..n-1 and sum to size."""
        result = plan(size, 1000)

        assert result.total_chunks == total_chunks(size, 1000)
        assert sum(r.length for r in result.ranges) == size
        offset = 0
        for i, chunk in enumerate(result.ranges):
            assert chunk.index == i
            assert chunk.offset == offset
            assert 0 < chunk.length <= 1000
            offset = chunk.end

    def test_rejects_negative_size(self) -> None:
        """Should reject negative sizes."""
        with pytest.raises(ValueError):
            plan(-1)

    def test_rejects_zero_chunk_size(self) -> None:
        """Should reject non-positive chunk sizes."""
        with pytest.raises(ValueError):
            plan(10, 0)


class TestNeedsChunking:
    """Tests for needs_chunking()."""

    def test_threshold_is_exclusive(self) -> None:
        """Files of exactly the threshold size are not chunked."""
        assert needs_chunking(CHUNK_THRESHOLD) is False
        assert needs_chunking(CHUNK_THRESHOLD + 1) is True

    def test_small_file(self) -> None:
        """Small files are not chunked."""
        assert needs_chunking(100) is False


class TestShortHash:
    """Tests for short_hash()."""

    def test_is_sha256_prefix(self) -> None:
        """Should be the first 16 hex chars of SHA-256."""
        data = b"hello world"
        assert short_hash(data) == hashlib.sha256(data).hexdigest()[:16]
        assert len(short_hash(data)) == 16


class TestReadChunk:
    """Tests for read_chunk()."""

    def test_reads_range(self, tmp_path: Path) -> None:
        """Should read exactly the requested range."""
        path = tmp_path / "data.bin"
        path.write_bytes(bytes(range(256)) * 4)

        data = read_chunk(path, ChunkRange(index=1, offset=256, length=100))

        assert data == bytes(range(100))

    def test_short_read_raises(self, tmp_path: Path) -> None:
        """Should raise IntegrityError if the file is shorter than the range."""
        path = tmp_path / "data.bin"
        path.write_bytes(b"abc")

        with pytest.raises(IntegrityError):
            read_chunk(path, ChunkRange(index=0, offset=0, length=10))

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        """Should raise FileNotFoundError for a missing file."""
        with pytest.raises(FileNotFoundError):
            read_chunk(tmp_path / "missing", ChunkRange(index=0, offset=0, length=1))
