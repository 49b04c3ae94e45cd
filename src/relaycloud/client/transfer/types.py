"""Shared types and dataclasses for chunked transfers.

This module provides:
- ChunkState: Lifecycle of a single chunk
- ChunkInfo: Record of a completed chunk (what resume and deletion need)
- ChunkDescriptor: Planned chunk with its mutable transfer state
- ChunkOutcome: Result of one transporter call
- TransferJob: One upload or download job
- ProgressEvent, TransferResult: Coordinator output types
- RemoteFileRecord: Parent record of a chunked file
- Type aliases for callbacks
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import IntEnum, auto
from pathlib import Path
from typing import Any

from relaycloud.client.api import ErrorKind
from relaycloud.core.chunking import ChunkRange, plan
from relaycloud.core.labels import build_chunked_marker
from relaycloud.core.types import Direction, JobStatus, TransferError


class ChunkState(IntEnum):
    """State of a chunk within a job."""

    PENDING = auto()
    IN_FLIGHT = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass(frozen=True)
class ChunkInfo:
    """A chunk that has been transferred.

    Attributes:
        index: Chunk index.
        message_id: Message holding the chunk (0 when not applicable).
        remote_ref: Remote file reference of the chunk.
        hash: Short content hash.
        credential: Credential that created/fetched the chunk. Fixed once
            the chunk is completed; later operations on the remote artifact
            must use it.
    """

    index: int
    message_id: int
    remote_ref: str
    hash: str
    credential: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        return {
            "index": self.index,
            "message_id": self.message_id,
            "remote_ref": self.remote_ref,
            "hash": self.hash,
            "credential": self.credential,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChunkInfo:
        """Create from a stored dictionary."""
        return cls(
            index=int(data["index"]),
            message_id=int(data.get("message_id") or 0),
            remote_ref=data.get("remote_ref") or "",
            hash=data.get("hash") or "",
            credential=data.get("credential") or "",
        )


@dataclass
class ChunkDescriptor:
    """A planned chunk and its transfer state.

    Only the task transferring the chunk mutates it. Once COMPLETED it
    cannot change again.
    """

    index: int
    offset: int
    length: int
    hash: str | None = None
    remote_ref: str | None = None
    credential: str | None = None
    state: ChunkState = ChunkState.PENDING
    info: ChunkInfo | None = None

    @classmethod
    def from_range(cls, chunk: ChunkRange) -> ChunkDescriptor:
        """Create a pending descriptor for a planned range."""
        return cls(index=chunk.index, offset=chunk.offset, length=chunk.length)

    @property
    def range(self) -> ChunkRange:
        """Byte range of this chunk."""
        return ChunkRange(index=self.index, offset=self.offset, length=self.length)

    def mark_in_flight(self, credential: str) -> None:
        """Mark the chunk as being transferred with a credential."""
        if self.state == ChunkState.COMPLETED:
            raise TransferError(f"Chunk {self.index} is already completed")
        if self.state == ChunkState.IN_FLIGHT:
            raise TransferError(f"Chunk {self.index} is already in flight")
        self.credential = credential
        self.state = ChunkState.IN_FLIGHT

    def mark_completed(self, info: ChunkInfo) -> None:
        """Record a successful transfer."""
        if self.state == ChunkState.COMPLETED:
            raise TransferError(f"Chunk {self.index} is already completed")
        self.info = info
        self.hash = info.hash
        self.remote_ref = info.remote_ref
        self.credential = info.credential
        self.state = ChunkState.COMPLETED

    def mark_failed(self) -> None:
        """Record a failed transfer."""
        if self.state != ChunkState.COMPLETED:
            self.state = ChunkState.FAILED


@dataclass
class ChunkOutcome:
    """Result of one chunk operation, after all retry attempts.

    Attributes:
        index: Chunk index.
        info: ChunkInfo on success.
        error: Error message on failure.
        kind: Classification of the last failure.
        attempts: Number of attempts made.
        data: Fetched bytes on a successful download.
    """

    index: int
    info: ChunkInfo | None = None
    error: str | None = None
    kind: ErrorKind | None = None
    attempts: int = 0
    data: bytes | None = field(default=None, repr=False)

    @property
    def success(self) -> bool:
        """Check if the chunk was transferred."""
        return self.info is not None

    @property
    def transient(self) -> bool:
        """Check if the failure may go away on a later run."""
        return self.kind is not None and self.kind.is_transient


@dataclass
class TransferJob:
    """One chunked upload or download.

    Attributes:
        job_id: Unique job id. For uploads it is also the file id carried
            by every chunk label.
        direction: Upload or download.
        file_name: Original file name.
        size: Total size in bytes.
        chunk_size: Fixed chunk size in bytes.
        destination: Destination chat/channel id.
        credentials: Ordered credential pool.
        offset: Rotation offset for round-robin credential assignment.
        status: Current job status.
        temp_dir: Directory holding downloaded chunk artifacts.
        remote_refs: Remote references of each chunk (downloads).
        chunk_hashes: Expected short hash of each chunk (downloads, optional).
        chunked: False for an upload sent as one unlabelled document.
    """

    job_id: str
    direction: Direction
    file_name: str
    size: int
    chunk_size: int
    destination: str
    credentials: list[str]
    offset: int = 0
    status: JobStatus = JobStatus.PENDING
    temp_dir: Path | None = None
    remote_refs: list[str] = field(default_factory=list)
    chunk_hashes: list[str] = field(default_factory=list)
    chunked: bool = True

    @staticmethod
    def new_id() -> str:
        """Generate a new job id."""
        return str(uuid.uuid4())

    @property
    def total_chunks(self) -> int:
        """Number of chunks of the job."""
        if self.direction == Direction.DOWNLOAD and self.remote_refs:
            return len(self.remote_refs)
        return plan(self.size, self.chunk_size).total_chunks

    def credential_for(self, index: int) -> str:
        """Round-robin credential for a chunk index."""
        return assign_credential(self.credentials, index, self.offset)

    def descriptors(self) -> list[ChunkDescriptor]:
        """Create pending descriptors for every chunk of the job."""
        if self.direction == Direction.DOWNLOAD and self.remote_refs:
            return [
                ChunkDescriptor(
                    index=i,
                    offset=0,
                    length=0,
                    hash=self.chunk_hashes[i] if i < len(self.chunk_hashes) else None,
                    remote_ref=ref,
                )
                for i, ref in enumerate(self.remote_refs)
            ]
        return [
            ChunkDescriptor.from_range(chunk)
            for chunk in plan(self.size, self.chunk_size).ranges
        ]


def assign_credential(credentials: list[str], index: int, offset: int = 0) -> str:
    """Return credentials[(index + offset) % len(credentials)].

    Raises:
        ValueError: If the pool is empty.
    """
    if not credentials:
        raise ValueError("Credential pool is empty")
    return credentials[(index + offset) % len(credentials)]


@dataclass(frozen=True)
class ProgressEvent:
    """Progress of a job after one more chunk completed."""

    job_id: str
    completed: int
    total: int
    index: int | None = None

    @property
    def percent(self) -> float:
        """Get progress percentage."""
        if self.total == 0:
            return 100.0
        return self.completed / self.total * 100


@dataclass
class TransferResult:
    """Result of running all chunks of a job.

    Attributes:
        job_id: Job id.
        success: True iff every chunk is completed.
        chunks: ChunkInfo of every completed chunk, ordered by index.
        total_chunks: Number of chunks in the job.
        failed: Error message per failed chunk index.
        cancelled: True if the job was cancelled.
        error: Aggregate error summary when not successful.
        retryable: True if some remaining failure was transient.
    """

    job_id: str
    success: bool
    chunks: list[ChunkInfo]
    total_chunks: int
    failed: dict[int, str] = field(default_factory=dict)
    cancelled: bool = False
    error: str | None = None
    retryable: bool = False

    @property
    def completed_count(self) -> int:
        """Number of completed chunks."""
        return len(self.chunks)

    @property
    def completed_indices(self) -> set[int]:
        """Indices of completed chunks."""
        return {c.index for c in self.chunks}


# Type aliases for callbacks
ChunkOperation = Callable[[ChunkDescriptor, str], Awaitable[ChunkOutcome]]
ChunkCompletedCallback = Callable[[ChunkInfo], None]
ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class RemoteFileRecord:
    """Parent record of an uploaded file.

    Holds what a later download or deletion needs: the file reference of
    every chunk, the message holding it and the credential that sent it.
    A file at or below the chunk threshold is a single unlabelled document:
    one entry in chunks, and no chunked marker.

    Attributes:
        file_id: UUID carried by every chunk label (the upload job id).
        file_name: Original file name.
        size: Total size in bytes.
        destination: Chat/channel holding the chunk messages.
        offset: Rotation offset the file was uploaded with.
        chunks: ChunkInfo of every chunk, ordered by index.
        chunked: True if the file was sent as labelled chunks.
    """

    file_id: str
    file_name: str
    size: int
    destination: str
    offset: int
    chunks: list[ChunkInfo]
    chunked: bool = True

    @property
    def total_chunks(self) -> int:
        """Number of chunks."""
        return len(self.chunks)

    @property
    def message_ids(self) -> list[int]:
        """Message ids in chunk order."""
        return [c.message_id for c in self.chunks]

    @property
    def remote_refs(self) -> list[str]:
        """Remote file references in chunk order."""
        return [c.remote_ref for c in self.chunks]

    @property
    def marker(self) -> str | None:
        """Chunked marker listing the message ids (None if not chunked)."""
        if not self.chunked:
            return None
        return build_chunked_marker(
            self.total_chunks, [str(m) for m in self.message_ids]
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        return {
            "file_id": self.file_id,
            "file_name": self.file_name,
            "size": self.size,
            "destination": self.destination,
            "offset": self.offset,
            "chunks": [c.to_dict() for c in self.chunks],
            "chunked": self.chunked,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteFileRecord:
        """Create from a stored dictionary."""
        chunks = [ChunkInfo.from_dict(c) for c in data.get("chunks", [])]
        return cls(
            file_id=data["file_id"],
            file_name=data["file_name"],
            size=int(data["size"]),
            destination=str(data["destination"]),
            offset=int(data.get("offset") or 0),
            chunks=sorted(chunks, key=lambda c: c.index),
            chunked=bool(data.get("chunked", True)),
        )
