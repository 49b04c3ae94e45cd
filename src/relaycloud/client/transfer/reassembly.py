"""Reassembly of downloaded chunks into the final file.

This module provides:
- assemble: Write chunks in index order to a temporary file, then rename
- Reassembler: Async wrapper running assemble() off the event loop

The output only appears under its final name once every chunk has been
written; a crash leaves at most a ``.part`` file behind.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from collections.abc import Mapping
from pathlib import Path

from relaycloud.core.types import IntegrityError, MissingChunkError

logger = logging.getLogger(__name__)

PART_SUFFIX = ".part"
COPY_BUFFER_SIZE = 1024 * 1024  # 1 MB

ChunkSource = Path | bytes


def part_path(output: Path) -> Path:
    """Temporary path the output is written to before the final rename."""
    return output.with_name(output.name + PART_SUFFIX)


def missing_indices(chunks: Mapping[int, ChunkSource], total: int) -> list[int]:
    """Indices in [0, total) absent from the chunk map."""
    return [i for i in range(total) if i not in chunks]


def assemble(
    chunks: Mapping[int, ChunkSource],
    total: int,
    output: Path,
    expected_size: int | None = None,
) -> Path:
    """Concatenate chunks 0..total-1 into output.

    Args:
        chunks: Chunk index to chunk file path or chunk bytes.
        total: Number of chunks of the file.
        output: Final path of the reassembled file.
        expected_size: Total size the output must have, if known.

    Returns:
        The output path.

    Raises:
        MissingChunkError: If any index is absent (nothing is written).
        IntegrityError: If the written size differs from expected_size.
    """
    missing = missing_indices(chunks, total)
    if missing:
        raise MissingChunkError(missing)

    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)
    temp = part_path(output)

    written = 0
    try:
        with open(temp, "wb") as f:
            for index in range(total):
                source = chunks[index]
                if isinstance(source, bytes):
                    f.write(source)
                    written += len(source)
                else:
                    with open(source, "rb") as chunk_file:
                        shutil.copyfileobj(chunk_file, f, COPY_BUFFER_SIZE)
                    written = f.tell()
            f.flush()
            os.fsync(f.fileno())

        if expected_size is not None and written != expected_size:
            raise IntegrityError(
                f"Reassembled size {written} does not match expected {expected_size}"
            )

        os.replace(temp, output)
    except BaseException:
        temp.unlink(missing_ok=True)
        raise

    logger.info(f"Reassembled {total} chunks into {output} ({written} bytes)")
    return output


class Reassembler:
    """Builds the final file from a completed-chunk map.

    Usage:
        path = await Reassembler().assemble(chunk_files, total, output)
    """

    async def assemble(
        self,
        chunks: Mapping[int, ChunkSource],
        total: int,
        output: Path,
        expected_size: int | None = None,
    ) -> Path:
        """Reassemble in a worker thread. See assemble()."""
        return await asyncio.to_thread(assemble, chunks, total, output, expected_size)
