"""Checkpoint state for resumable transfers.

This module provides:
- CheckpointStore: SQLite-based store of transfer jobs and completed chunks
- JobRecord: A stored job with its local paths and error

Remote file records (the parent record of each uploaded file) are stored
alongside, since downloads and deletions need them.

Architecture:
    A job row is created before any chunk is transferred and one chunk row
    is appended as each chunk completes. Resume reads the chunk rows back
    (uploads) or scans the temp dir (downloads) to build the skip-set.
    Chunk rows are never updated: a completed chunk is immutable.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from pathlib import Path

from relaycloud.client.transfer.artifacts import list_temp_chunk_artifacts
from relaycloud.client.transfer.types import ChunkInfo, RemoteFileRecord, TransferJob
from relaycloud.core.types import Direction, JobStatus

logger = logging.getLogger(__name__)


@dataclass
class JobRecord:
    """A transfer job as stored.

    Attributes:
        job: The transfer job.
        source_path: Local file being uploaded (uploads).
        output_path: Final output path (downloads).
        last_error: Aggregate error of the last failed run.
        created_at: Creation timestamp.
        updated_at: Last status change timestamp.
    """

    job: TransferJob
    source_path: str | None = None
    output_path: str | None = None
    last_error: str | None = None
    created_at: float = 0.0
    updated_at: float = 0.0

    @property
    def job_id(self) -> str:
        """Job id."""
        return self.job.job_id

    @property
    def status(self) -> JobStatus:
        """Job status."""
        return self.job.status

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> JobRecord:
        """Create JobRecord from database row."""
        job = TransferJob(
            job_id=row["job_id"],
            direction=Direction(row["direction"]),
            file_name=row["file_name"],
            size=row["size"],
            chunk_size=row["chunk_size"],
            destination=row["destination"],
            credentials=json.loads(row["credentials"]) if row["credentials"] else [],
            offset=row["rotation_offset"],
            status=JobStatus(row["status"]),
            temp_dir=Path(row["temp_dir"]) if row["temp_dir"] else None,
            remote_refs=json.loads(row["remote_refs"]) if row["remote_refs"] else [],
            chunk_hashes=json.loads(row["chunk_hashes"]) if row["chunk_hashes"] else [],
            chunked=bool(row["chunked"]),
        )
        return cls(
            job=job,
            source_path=row["source_path"],
            output_path=row["output_path"],
            last_error=row["last_error"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class CheckpointStore:
    """SQLite-based store of transfer jobs and their completed chunks.

    Thread-safe; the engine calls it from the event loop thread and the CLI
    from the main thread.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the checkpoint database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrency
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS transfer_jobs (
                job_id TEXT PRIMARY KEY,
                direction TEXT NOT NULL,
                file_name TEXT NOT NULL,
                size INTEGER NOT NULL,
                chunk_size INTEGER NOT NULL,
                destination TEXT NOT NULL,
                credentials TEXT NOT NULL,
                rotation_offset INTEGER NOT NULL DEFAULT 0,
                status TEXT NOT NULL,
                temp_dir TEXT,
                remote_refs TEXT,
                chunk_hashes TEXT,
                chunked INTEGER NOT NULL DEFAULT 1,
                source_path TEXT,
                output_path TEXT,
                last_error TEXT,
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL
            );

            -- One row per completed chunk, never updated
            CREATE TABLE IF NOT EXISTS completed_chunks (
                job_id TEXT NOT NULL
                    REFERENCES transfer_jobs(job_id) ON DELETE CASCADE,
                chunk_index INTEGER NOT NULL,
                message_id INTEGER NOT NULL,
                remote_ref TEXT NOT NULL,
                hash TEXT NOT NULL,
                credential TEXT NOT NULL,
                completed_at REAL NOT NULL,
                PRIMARY KEY (job_id, chunk_index)
            );

            -- Parent records of uploaded files; marker is NULL for a file
            -- sent as a single document
            CREATE TABLE IF NOT EXISTS remote_files (
                file_id TEXT PRIMARY KEY,
                file_name TEXT NOT NULL,
                size INTEGER NOT NULL,
                marker TEXT,
                record TEXT NOT NULL,
                uploaded_at REAL NOT NULL
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # === Job operations ===

    def create_job(
        self,
        job: TransferJob,
        source_path: Path | str | None = None,
        output_path: Path | str | None = None,
    ) -> JobRecord:
        """Store a new job.

        Args:
            job: The job to store.
            source_path: Local file being uploaded.
            output_path: Final output path of a download.

        Returns:
            The stored record.
        """
        now = time.time()
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO transfer_jobs (
                    job_id, direction, file_name, size, chunk_size, destination,
                    credentials, rotation_offset, status, temp_dir, remote_refs,
                    chunk_hashes, chunked, source_path, output_path, last_error,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?)
                """,
                (
                    job.job_id,
                    job.direction.value,
                    job.file_name,
                    job.size,
                    job.chunk_size,
                    job.destination,
                    json.dumps(job.credentials),
                    job.offset,
                    job.status.value,
                    str(job.temp_dir) if job.temp_dir else None,
                    json.dumps(job.remote_refs),
                    json.dumps(job.chunk_hashes),
                    int(job.chunked),
                    str(source_path) if source_path else None,
                    str(output_path) if output_path else None,
                    now,
                    now,
                ),
            )
        logger.debug(f"Created {job.direction.value} job {job.job_id}")
        return JobRecord(
            job=job,
            source_path=str(source_path) if source_path else None,
            output_path=str(output_path) if output_path else None,
            created_at=now,
            updated_at=now,
        )

    def get_job(self, job_id: str) -> JobRecord | None:
        """Get a job by id.

        Returns:
            JobRecord if found, None otherwise.
        """
        with self._lock:
            cursor = self._conn.execute(
                "SELECT * FROM transfer_jobs WHERE job_id = ?",
                (job_id,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return JobRecord.from_row(row)

    def list_jobs(self, status: JobStatus | None = None) -> list[JobRecord]:
        """List stored jobs, oldest first.

        Args:
            status: Only return jobs with this status.
        """
        with self._lock:
            if status is None:
                cursor = self._conn.execute(
                    "SELECT * FROM transfer_jobs ORDER BY created_at"
                )
            else:
                cursor = self._conn.execute(
                    "SELECT * FROM transfer_jobs WHERE status = ? ORDER BY created_at",
                    (status.value,),
                )
            rows = cursor.fetchall()
        return [JobRecord.from_row(row) for row in rows]

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error: str | None = None,
    ) -> None:
        """Update the status of a job.

        Cancelled jobs never carry an error; any other status stores the
        given error (None clears it).
        """
        if status == JobStatus.CANCELLED:
            error = None
        with self._lock:
            self._conn.execute(
                """
                UPDATE transfer_jobs
                SET status = ?, last_error = ?, updated_at = ?
                WHERE job_id = ?
                """,
                (status.value, error, time.time(), job_id),
            )

    def delete_job(self, job_id: str) -> None:
        """Delete a job and its completed chunks."""
        with self._lock:
            self._conn.execute("DELETE FROM transfer_jobs WHERE job_id = ?", (job_id,))

    # === Chunk checkpoints ===

    def load_completed_chunks(self, job_id: str) -> dict[int, ChunkInfo]:
        """Load the completed chunks of a job.

        Returns:
            Chunk index to ChunkInfo.
        """
        with self._lock:
            cursor = self._conn.execute(
                """
                SELECT chunk_index, message_id, remote_ref, hash, credential
                FROM completed_chunks WHERE job_id = ? ORDER BY chunk_index
                """,
                (job_id,),
            )
            rows = cursor.fetchall()
        return {
            row["chunk_index"]: ChunkInfo(
                index=row["chunk_index"],
                message_id=row["message_id"],
                remote_ref=row["remote_ref"],
                hash=row["hash"],
                credential=row["credential"],
            )
            for row in rows
        }

    def append_completed_chunk(self, job_id: str, info: ChunkInfo) -> None:
        """Record a completed chunk.

        A chunk already recorded keeps its first record.
        """
        with self._lock:
            self._conn.execute(
                """
                INSERT OR IGNORE INTO completed_chunks (
                    job_id, chunk_index, message_id, remote_ref, hash, credential,
                    completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job_id,
                    info.index,
                    info.message_id,
                    info.remote_ref,
                    info.hash,
                    info.credential,
                    time.time(),
                ),
            )

    def clear_completed_chunks(self, job_id: str) -> None:
        """Forget the completed chunks of a job."""
        with self._lock:
            self._conn.execute(
                "DELETE FROM completed_chunks WHERE job_id = ?", (job_id,)
            )

    def list_temp_chunk_artifacts(self, temp_dir: Path | None) -> set[int]:
        """Indices of chunk artifacts present in a temp dir."""
        return list_temp_chunk_artifacts(temp_dir)

    # === Remote files ===

    def save_remote_file(self, record: RemoteFileRecord) -> None:
        """Store (or replace) the parent record of an uploaded file."""
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO remote_files (
                    file_id, file_name, size, marker, record, uploaded_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.file_id,
                    record.file_name,
                    record.size,
                    record.marker,
                    json.dumps(record.to_dict()),
                    time.time(),
                ),
            )

    def get_remote_file(self, file_id: str) -> RemoteFileRecord | None:
        """Get the record of an uploaded file by file id or file id prefix.

        Returns:
            RemoteFileRecord if exactly one file matches, None otherwise.
        """
        with self._lock:
            cursor = self._conn.execute(
                "SELECT record FROM remote_files WHERE file_id LIKE ? || '%'",
                (file_id,),
            )
            rows = cursor.fetchall()
        if len(rows) != 1:
            return None
        return RemoteFileRecord.from_dict(json.loads(rows[0]["record"]))

    def find_remote_file_by_marker(self, marker: str) -> RemoteFileRecord | None:
        """Get the record of an uploaded file by its chunked marker."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT record FROM remote_files WHERE marker = ?",
                (marker,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return RemoteFileRecord.from_dict(json.loads(row["record"]))

    def list_remote_files(self) -> list[RemoteFileRecord]:
        """List uploaded files, oldest first."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT record FROM remote_files ORDER BY uploaded_at"
            )
            rows = cursor.fetchall()
        return [RemoteFileRecord.from_dict(json.loads(row["record"])) for row in rows]

    def delete_remote_file(self, file_id: str) -> None:
        """Forget the record of an uploaded file."""
        with self._lock:
            self._conn.execute("DELETE FROM remote_files WHERE file_id = ?", (file_id,))
