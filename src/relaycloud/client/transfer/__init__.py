"""Chunked transfer engine.

Architecture:
    ChunkPlanner → TransferCoordinator → ChunkTransporter × N → Bot API

Components:
- **CredentialRateLimiter**: Sliding-window quota per (credential, destination)
- **ChunkTransporter**: Sends/fetches one chunk, with retry and backoff
- **TransferCoordinator**: Runs all chunks of a job in parallel, one task
  per chunk, bounded by the credential pool size
- **Reassembler**: Writes downloaded chunks to the output in index order
- **ChunkedUploader / ChunkedDownloader**: Job drivers with checkpointing
  and resume

All public symbols are re-exported here.
"""

from relaycloud.client.transfer.artifacts import (
    default_temp_dir,
    list_temp_chunk_artifacts,
    remove_temp_dir,
    temp_chunk_name,
    temp_chunk_path,
    write_temp_chunk,
)
from relaycloud.client.transfer.coordinator import TransferCoordinator
from relaycloud.client.transfer.download import (
    ChunkedDownloader,
    DownloadError,
    cleanup_job,
)
from relaycloud.client.transfer.progress import ProgressStream
from relaycloud.client.transfer.rate_limit import (
    DEFAULT_MAX_REQUESTS,
    DEFAULT_WINDOW,
    CredentialRateLimiter,
    CredentialUsageWindow,
    get_rate_limiter,
)
from relaycloud.client.transfer.reassembly import Reassembler, assemble
from relaycloud.client.transfer.retry import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_INITIAL_BACKOFF,
    DEFAULT_MAX_ATTEMPTS,
    backoff_delay,
    error_kind,
    is_retryable,
    retry_with_backoff,
)
from relaycloud.client.transfer.rotation import OffsetRotator, next_offset
from relaycloud.client.transfer.transporter import (
    FETCH_DESTINATION,
    ChunkTransport,
    ChunkTransporter,
)
from relaycloud.client.transfer.types import (
    ChunkCompletedCallback,
    ChunkDescriptor,
    ChunkInfo,
    ChunkOperation,
    ChunkOutcome,
    ChunkState,
    ProgressCallback,
    ProgressEvent,
    RemoteFileRecord,
    TransferJob,
    TransferResult,
    assign_credential,
)
from relaycloud.client.transfer.upload import ChunkedUploader, UploadError, UploadResult

__all__ = [
    # Artifacts
    "default_temp_dir",
    "list_temp_chunk_artifacts",
    "remove_temp_dir",
    "temp_chunk_name",
    "temp_chunk_path",
    "write_temp_chunk",
    # Coordinator
    "TransferCoordinator",
    # Download
    "ChunkedDownloader",
    "DownloadError",
    "cleanup_job",
    # Progress
    "ProgressStream",
    # Rate limiting
    "DEFAULT_MAX_REQUESTS",
    "DEFAULT_WINDOW",
    "CredentialRateLimiter",
    "CredentialUsageWindow",
    "get_rate_limiter",
    # Reassembly
    "Reassembler",
    "assemble",
    # Retry
    "DEFAULT_BACKOFF_MULTIPLIER",
    "DEFAULT_INITIAL_BACKOFF",
    "DEFAULT_MAX_ATTEMPTS",
    "backoff_delay",
    "error_kind",
    "is_retryable",
    "retry_with_backoff",
    # Rotation
    "OffsetRotator",
    "next_offset",
    # Transporter
    "FETCH_DESTINATION",
    "ChunkTransport",
    "ChunkTransporter",
    # Types
    "ChunkCompletedCallback",
    "ChunkDescriptor",
    "ChunkInfo",
    "ChunkOperation",
    "ChunkOutcome",
    "ChunkState",
    "ProgressCallback",
    "ProgressEvent",
    "RemoteFileRecord",
    "TransferJob",
    "TransferResult",
    "assign_credential",
    # Upload
    "ChunkedUploader",
    "UploadError",
    "UploadResult",
]
