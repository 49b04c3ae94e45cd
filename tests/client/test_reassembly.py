"""Tests for chunk reassembly."""

from __future__ import annotations

from pathlib import Path

import pytest

from relaycloud.client.transfer.artifacts import write_temp_chunk
from relaycloud.client.transfer.reassembly import (
    Reassembler,
    assemble,
    missing_indices,
    part_path,
)
from relaycloud.core.types import IntegrityError, MissingChunkError


@pytest.fixture
def chunk_files(tmp_path: Path) -> dict[int, Path]:
    """Write three chunk artifacts."""
    temp_dir = tmp_path / "chunks"
    return {
        i: write_temp_chunk(temp_dir, i, data)
        for i, data in enumerate([b"alpha-", b"beta-", b"gamma"])
    }


class TestAssemble:
    """Tests for assemble()."""

    def test_concatenates_in_index_order(
        self, tmp_path: Path, chunk_files: dict[int, Path]
    ) -> None:
        """Output should be chunk 0, then 1, then 2, whatever the map order."""
        shuffled = {2: chunk_files[2], 0: chunk_files[0], 1: chunk_files[1]}
        output = tmp_path / "out" / "file.bin"

        assemble(shuffled, 3, output)

        assert output.read_bytes() == b"alpha-beta-gamma"
        assert not part_path(output).exists()

    def test_accepts_bytes(self, tmp_path: Path) -> None:
        """In-memory chunks should be written directly."""
        output = tmp_path / "file.bin"

        assemble({0: b"ab", 1: b"cd"}, 2, output, expected_size=4)

        assert output.read_bytes() == b"abcd"

    def test_missing_chunk_writes_nothing(
        self, tmp_path: Path, chunk_files: dict[int, Path]
    ) -> None:
        """A gap should raise MissingChunkError before any output exists."""
        del chunk_files[1]
        output = tmp_path / "file.bin"

        with pytest.raises(MissingChunkError) as exc_info:
            assemble(chunk_files, 3, output)

        assert exc_info.value.missing == [1]
        assert not output.exists()
        assert not part_path(output).exists()

    def test_size_mismatch(self, tmp_path: Path, chunk_files: dict[int, Path]) -> None:
        """A wrong total size should fail and leave no file behind."""
        output = tmp_path / "file.bin"

        with pytest.raises(IntegrityError):
            assemble(chunk_files, 3, output, expected_size=999)

        assert not output.exists()
        assert not part_path(output).exists()

    def test_replaces_existing_output(self, tmp_path: Path) -> None:
        """An existing file at the output path should be replaced."""
        output = tmp_path / "file.bin"
        output.write_bytes(b"old content")

        assemble({0: b"new"}, 1, output)

        assert output.read_bytes() == b"new"

    def test_missing_indices(self) -> None:
        """Should list absent indices in order."""
        assert missing_indices({0: b"a", 3: b"d"}, 5) == [1, 2, 4]


class TestReassembler:
    """Tests for the async Reassembler."""

    @pytest.mark.asyncio
    async def test_assemble(self, tmp_path: Path, chunk_files: dict[int, Path]) -> None:
        """Should reassemble off the event loop."""
        output = tmp_path / "file.bin"

        path = await Reassembler().assemble(chunk_files, 3, output, expected_size=16)

        assert path == output
        assert output.read_bytes() == b"alpha-beta-gamma"
