"""Temporary storage of downloaded chunks.

Each downloaded chunk is written to ``<temp_dir>/chunk_<i>.tmp`` as soon as
it arrives, so an interrupted download can resume from what is on disk.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

TEMP_CHUNK_PATTERN = re.compile(r"^chunk_(\d+)\.tmp$")
TEMP_DIR_PREFIX = "relaycloud-"


def temp_chunk_name(index: int) -> str:
    """File name of a downloaded chunk artifact."""
    return f"chunk_{index}.tmp"


def temp_chunk_path(temp_dir: Path, index: int) -> Path:
    """Path of a downloaded chunk artifact."""
    return Path(temp_dir) / temp_chunk_name(index)


def default_temp_dir(job_id: str, base: Path | None = None) -> Path:
    """Temp dir used for a download job when none is given."""
    root = Path(base) if base is not None else Path(tempfile.gettempdir())
    return root / f"{TEMP_DIR_PREFIX}{job_id}"


def list_temp_chunk_artifacts(temp_dir: Path | None) -> set[int]:
    """Indices of chunk artifacts present in a temp dir.

    Empty files are ignored: a chunk is never empty, so an empty artifact
    is a write that did not complete.

    Args:
        temp_dir: Directory holding ``chunk_<i>.tmp`` files.

    Returns:
        Set of chunk indices, empty if the directory does not exist.
    """
    if temp_dir is None:
        return set()
    temp_dir = Path(temp_dir)
    if not temp_dir.is_dir():
        return set()

    indices: set[int] = set()
    for entry in temp_dir.iterdir():
        match = TEMP_CHUNK_PATTERN.match(entry.name)
        if match is None or not entry.is_file():
            continue
        try:
            if entry.stat().st_size == 0:
                continue
        except OSError:
            continue
        indices.add(int(match.group(1)))
    return indices


def write_temp_chunk(temp_dir: Path, index: int, data: bytes) -> Path:
    """Write a chunk artifact atomically.

    The data goes to a hidden file first and is renamed into place, so a
    listed artifact is always complete.
    """
    temp_dir = Path(temp_dir)
    temp_dir.mkdir(parents=True, exist_ok=True)
    target = temp_chunk_path(temp_dir, index)
    partial = temp_dir / f".{target.name}.partial"
    with open(partial, "wb") as f:
        f.write(data)
    os.replace(partial, target)
    return target


def remove_temp_dir(temp_dir: Path | None) -> bool:
    """Remove a job's temp dir and everything in it.

    Returns:
        True if a directory was removed.
    """
    if temp_dir is None:
        return False
    temp_dir = Path(temp_dir)
    if not temp_dir.exists():
        return False
    shutil.rmtree(temp_dir)
    logger.debug(f"Removed temp dir {temp_dir}")
    return True
