"""Tests for wire labels and chunked markers."""

from __future__ import annotations

from relaycloud.core.labels import (
    ChunkMeta,
    build_chunk_label,
    build_chunked_marker,
    is_chunked,
    parse_chunk_count,
    parse_chunk_label,
    parse_chunked_refs,
)

FILE_ID = "0b7e6f43-31a4-4d0e-9c64-7d0f2f0c2a11"


def make_meta(**overrides: object) -> ChunkMeta:
    """Create a ChunkMeta for testing."""
    values: dict[str, object] = {
        "file_id": FILE_ID,
        "index": 2,
        "total": 5,
        "name": "video.mp4",
        "hash": "0123456789abcdef",
    }
    values.update(overrides)
    return ChunkMeta(**values)  # type: ignore[arg-type]


class TestChunkLabel:
    """Tests for chunk labels."""

    def test_format(self) -> None:
        """Should render fields in wire order."""
        label = build_chunk_label(make_meta())

        assert label == (
            f"[CHUNK]|fileId:{FILE_ID}|chunk:2|total:5"
            "|name:video.mp4|hash:0123456789abcdef"
        )

    def test_parse(self) -> None:
        """Should parse a label back into the same metadata."""
        meta = make_meta()
        assert parse_chunk_label(meta.to_label()) == meta

    def test_parse_name_with_separator(self) -> None:
        """Names containing '|' should survive parsing."""
        meta = make_meta(name="a|b|c.txt")
        assert parse_chunk_label(meta.to_label()) == meta

    def test_parse_rejects_other_text(self) -> None:
        """Non-label captions should not parse."""
        assert parse_chunk_label("holiday photos") is None
        assert parse_chunk_label("[CHUNK]|fileId:x|chunk:a|total:1|name:n|hash:h") is None
        assert parse_chunk_label("[CHUNK]|fileId:x|chunk:1") is None

    def test_document_name(self) -> None:
        """Multi-chunk documents carry their position in the name."""
        assert make_meta().document_name == "video.mp4.chunk_2_of_5"
        assert make_meta(index=0, total=1).document_name == "video.mp4"


class TestChunkedMarker:
    """Tests for chunked markers."""

    def test_with_refs(self) -> None:
        """Should list refs after the count."""
        marker = build_chunked_marker(3, ["10", "11", "12"])

        assert marker == "[CHUNKED:3|10,11,12]"
        assert parse_chunk_count(marker) == 3
        assert parse_chunked_refs(marker) == ["10", "11", "12"]

    def test_without_refs(self) -> None:
        """Should omit the ref list when empty."""
        marker = build_chunked_marker(7)

        assert marker == "[CHUNKED:7]"
        assert parse_chunk_count(marker) == 7
        assert parse_chunked_refs(marker) == []

    def test_marker_followed_by_caption(self) -> None:
        """The count should parse when text follows the marker."""
        assert parse_chunk_count("[CHUNKED:4|1,2,3,4] my file") == 4

    def test_is_chunked(self) -> None:
        """Only captions starting with the marker are chunked."""
        assert is_chunked("[CHUNKED:2]") is True
        assert is_chunked("plain caption") is False
        assert is_chunked(None) is False
        assert parse_chunk_count("plain caption") is None
