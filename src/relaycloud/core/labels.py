"""Wire-level labels attached to transferred messages.

Two labels exist:
- Chunk label, sent as the caption of every chunk message so the receiving
  side can validate chunk identity independent of transport ordering:
  ``[CHUNK]|fileId:<uuid>|chunk:<index>|total:<count>|name:<name>|hash:<16hex>``
- Chunked marker, attached to the parent record of a chunked file:
  ``[CHUNKED:<count>|<ref1>,<ref2>,...]`` or ``[CHUNKED:<count>]``
"""

from __future__ import annotations

import re
from dataclasses import dataclass

CHUNK_LABEL_PREFIX = "[CHUNK]"
CHUNKED_MARKER_PREFIX = "[CHUNKED:"

_CHUNK_COUNT_RE = re.compile(r"\[CHUNKED:(\d+)[|\]]")
_CHUNKED_REFS_RE = re.compile(r"\[CHUNKED:\d+\|([^\]]+)\]")

# Field order on the wire
_LABEL_FIELDS = ("fileId", "chunk", "total", "name", "hash")


@dataclass(frozen=True)
class ChunkMeta:
    """Identity of one chunk as carried by its wire label.

    Attributes:
        file_id: UUID shared by all chunks of one file.
        index: 0-based chunk index.
        total: Total number of chunks of the file.
        name: Original file name.
        hash: Short content hash (16 hex chars).
    """

    file_id: str
    index: int
    total: int
    name: str
    hash: str

    def to_label(self) -> str:
        """Render this metadata as a chunk label."""
        return build_chunk_label(self)

    @property
    def document_name(self) -> str:
        """File name used for the transferred document."""
        if self.total == 1:
            return self.name
        return f"{self.name}.chunk_{self.index}_of_{self.total}"


def build_chunk_label(meta: ChunkMeta) -> str:
    """Build the caption attached to a chunk message."""
    return (
        f"{CHUNK_LABEL_PREFIX}"
        f"|fileId:{meta.file_id}"
        f"|chunk:{meta.index}"
        f"|total:{meta.total}"
        f"|name:{meta.name}"
        f"|hash:{meta.hash}"
    )


def parse_chunk_label(label: str) -> ChunkMeta | None:
    """Parse a chunk label back into ChunkMeta.

    The name field may itself contain ``|``; it runs up to the last
    ``|hash:`` separator.

    Returns:
        ChunkMeta, or None if the text is not a well-formed chunk label.
    """
    if not label.startswith(CHUNK_LABEL_PREFIX + "|"):
        return None

    body = label[len(CHUNK_LABEL_PREFIX) + 1 :]
    head, sep, hash_value = body.rpartition("|hash:")
    if not sep:
        return None

    parts = head.split("|", 3)
    if len(parts) != 4:
        return None

    values: dict[str, str] = {}
    for part, expected in zip(parts, _LABEL_FIELDS[:4], strict=True):
        key, colon, value = part.partition(":")
        if not colon or key != expected:
            return None
        values[key] = value

    try:
        index = int(values["chunk"])
        total = int(values["total"])
    except ValueError:
        return None

    return ChunkMeta(
        file_id=values["fileId"],
        index=index,
        total=total,
        name=values["name"],
        hash=hash_value,
    )


def build_chunked_marker(total: int, refs: list[str] | None = None) -> str:
    """Build the marker stored on the parent record of a chunked file."""
    if refs:
        return f"{CHUNKED_MARKER_PREFIX}{total}|{','.join(refs)}]"
    return f"{CHUNKED_MARKER_PREFIX}{total}]"


def is_chunked(text: str | None) -> bool:
    """Check if a record caption marks a chunked file."""
    return text is not None and text.startswith(CHUNKED_MARKER_PREFIX)


def parse_chunk_count(text: str | None) -> int | None:
    """Extract the chunk count from a chunked marker.

    Returns:
        The count, or None if no marker is present.
    """
    if text is None:
        return None
    match = _CHUNK_COUNT_RE.search(text)
    if match is None:
        return None
    return int(match.group(1))


def parse_chunked_refs(text: str | None) -> list[str]:
    """Extract the comma-separated remote references from a chunked marker.

    Returns:
        List of references, empty if the marker carries none.
    """
    if text is None:
        return []
    match = _CHUNKED_REFS_RE.search(text)
    if match is None:
        return []
    return [ref.strip() for ref in match.group(1).split(",") if ref.strip()]
