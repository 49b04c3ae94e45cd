"""Shared types for relaycloud.

This module defines enums and exceptions used by both the transfer engine
and the CLI.
"""

from __future__ import annotations

from enum import Enum


class JobStatus(str, Enum):
    """Lifecycle status of a transfer job.

    Stored as text in the checkpoint database.
    """

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Direction(str, Enum):
    """Direction of a transfer job."""

    UPLOAD = "upload"
    DOWNLOAD = "download"


class TransferError(Exception):
    """Base exception for transfer errors."""


class IntegrityError(TransferError):
    """Chunk data does not match what was expected (hash, size, short read)."""


class MissingChunkError(IntegrityError):
    """Reassembly was asked to produce a file with chunks missing.

    Attributes:
        missing: Sorted list of absent chunk indices.
    """

    def __init__(self, missing: list[int]) -> None:
        self.missing = missing
        preview = ", ".join(str(i) for i in missing[:10])
        if len(missing) > 10:
            preview += ", ..."
        super().__init__(f"Missing {len(missing)} chunk(s): {preview}")


class TransferCancelledError(TransferError):
    """Raised when a transfer job is cancelled."""
