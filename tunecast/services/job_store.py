"""
Job Store Service
SQLite-backed persistence for media, jobs and the scheduler lease.

All cross-process coordination goes through conditional UPDATEs executed
inside BEGIN IMMEDIATE transactions; the affected row count is the outcome.
"""

import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import aiosqlite

from ..config import get_settings
from ..models.job import JobKind, JobStatus, RenderJob, UploadJob
from ..models.media_item import (
    DriveConnection,
    DriveConnectionStatus,
    MediaItem,
    MediaStatus,
)
from ..utils.clock import utc_now
from ..utils.logger import get_logger

logger = get_logger()

Job = Union[RenderJob, UploadJob]

# Keeps IN (...) lists well under SQLite's bound-parameter limit
_CHUNK = 500

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS drive_connections (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        root_folder_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'active',
        error_message TEXT,
        last_synced_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS media_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        drive_file_id TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        mime_type TEXT NOT NULL,
        size_bytes INTEGER,
        folder_id TEXT,
        folder_path TEXT,
        modified_time TEXT,
        drive_connection_id INTEGER,
        status TEXT NOT NULL DEFAULT 'active',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS render_jobs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        render_spec TEXT,
        audio_media_item_id INTEGER NOT NULL,
        image_media_item_id INTEGER,
        output_media_item_id INTEGER,
        drive_connection_id INTEGER,
        requested_by_user_id INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        error_message TEXT,
        scheduled_for TEXT,
        claim_token TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS upload_jobs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        media_item_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        tags TEXT NOT NULL DEFAULT '[]',
        privacy_status TEXT NOT NULL DEFAULT 'private',
        requested_by_user_id INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        error_message TEXT,
        youtube_video_id TEXT,
        scheduled_for TEXT,
        claim_token TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS scheduler_leases (
        name TEXT PRIMARY KEY,
        holder TEXT NOT NULL DEFAULT '',
        expires_at REAL NOT NULL DEFAULT 0,
        updated_at REAL NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_render_jobs_status ON render_jobs(status, requested_by_user_id)",
    "CREATE INDEX IF NOT EXISTS idx_upload_jobs_status ON upload_jobs(status, requested_by_user_id)",
    "CREATE INDEX IF NOT EXISTS idx_media_items_connection ON media_items(drive_connection_id, status)",
]


def _ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


def _chunks(values: Sequence, size: int = _CHUNK) -> Iterable[Sequence]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


def _placeholders(values: Sequence) -> str:
    return ",".join("?" for _ in values)


class JobStore:
    """Persistent storage for media items, jobs and leases."""

    def __init__(self, db_path: str, timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._initialized = False
        self._init_lock = asyncio.Lock()

    # =========================================================================
    # Connections
    # =========================================================================

    @asynccontextmanager
    async def _connection(self):
        async with aiosqlite.connect(
            self.db_path, timeout=self.timeout, isolation_level=None
        ) as conn:
            conn.row_factory = aiosqlite.Row
            yield conn

    @asynccontextmanager
    async def _transaction(self):
        """All-or-nothing unit holding the SQLite write lock from the start."""
        await self.initialize()
        async with self._connection() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            else:
                await conn.execute("COMMIT")

    async def _fetchall(self, query: str, params: Sequence = ()) -> List[aiosqlite.Row]:
        await self.initialize()
        async with self._connection() as conn:
            cursor = await conn.execute(query, tuple(params))
            rows = await cursor.fetchall()
            await cursor.close()
        return list(rows)

    async def _fetchone(self, query: str, params: Sequence = ()) -> Optional[aiosqlite.Row]:
        rows = await self._fetchall(query, params)
        return rows[0] if rows else None

    async def initialize(self):
        """Initialize database schema."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            async with self._connection() as conn:
                await conn.execute("PRAGMA journal_mode=WAL")
                await conn.execute("PRAGMA synchronous=NORMAL")
                for statement in _SCHEMA:
                    await conn.execute(statement)

            self._initialized = True
            logger.info(f"Job store initialized at {self.db_path}")

    # =========================================================================
    # Drive connections
    # =========================================================================

    @staticmethod
    def _connection_from_row(row) -> DriveConnection:
        return DriveConnection(**dict(row))

    async def create_drive_connection(self, user_id: int, root_folder_id: str) -> DriveConnection:
        now = utc_now()
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "INSERT INTO drive_connections (user_id, root_folder_id, status, created_at) VALUES (?, ?, ?, ?)",
                (user_id, root_folder_id, DriveConnectionStatus.ACTIVE.value, _ts(now)),
            )
            connection_id = cursor.lastrowid
        return await self.get_drive_connection(connection_id)

    async def get_drive_connection(self, connection_id: int) -> Optional[DriveConnection]:
        row = await self._fetchone("SELECT * FROM drive_connections WHERE id = ?", (connection_id,))
        return self._connection_from_row(row) if row else None

    async def list_drive_connections(
        self,
        status: Optional[DriveConnectionStatus] = DriveConnectionStatus.ACTIVE,
        user_id: Optional[int] = None,
    ) -> List[DriveConnection]:
        query = "SELECT * FROM drive_connections WHERE 1 = 1"
        params: list = []
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        query += " ORDER BY id"
        return [self._connection_from_row(row) for row in await self._fetchall(query, params)]

    async def mark_drive_connection_status(
        self,
        connection_id: int,
        status: DriveConnectionStatus,
        error_message: Optional[str] = None,
    ):
        async with self._transaction() as conn:
            await conn.execute(
                "UPDATE drive_connections SET status = ?, error_message = ? WHERE id = ?",
                (status.value, error_message, connection_id),
            )

    async def touch_drive_connection_synced(self, connection_id: int, when: datetime):
        async with self._transaction() as conn:
            await conn.execute(
                "UPDATE drive_connections SET last_synced_at = ?, error_message = NULL WHERE id = ?",
                (_ts(when), connection_id),
            )

    # =========================================================================
    # Media items
    # =========================================================================

    @staticmethod
    def _media_from_row(row) -> MediaItem:
        return MediaItem(**dict(row))

    async def create_media_item(
        self,
        drive_file_id: str,
        name: str,
        mime_type: str,
        drive_connection_id: Optional[int] = None,
        folder_path: Optional[str] = None,
        status: MediaStatus = MediaStatus.ACTIVE,
    ) -> MediaItem:
        now = _ts(utc_now())
        async with self._transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO media_items
                    (drive_file_id, name, mime_type, folder_path, drive_connection_id, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (drive_file_id, name, mime_type, folder_path, drive_connection_id, status.value, now, now),
            )
            media_id = cursor.lastrowid
        return await self.get_media_item(media_id)

    async def upsert_media_item(
        self,
        drive_file_id: str,
        name: str,
        mime_type: str,
        drive_connection_id: int,
        size_bytes: Optional[int] = None,
        folder_id: Optional[str] = None,
        folder_path: Optional[str] = None,
        modified_time: Optional[str] = None,
    ):
        """Insert or refresh a synced file, keyed by its Drive id."""
        now = _ts(utc_now())
        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO media_items
                    (drive_file_id, name, mime_type, size_bytes, folder_id, folder_path,
                     modified_time, drive_connection_id, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(drive_file_id) DO UPDATE SET
                    name = excluded.name,
                    mime_type = excluded.mime_type,
                    size_bytes = excluded.size_bytes,
                    folder_id = excluded.folder_id,
                    folder_path = excluded.folder_path,
                    modified_time = excluded.modified_time,
                    drive_connection_id = excluded.drive_connection_id,
                    status = excluded.status,
                    updated_at = excluded.updated_at
                """,
                (
                    drive_file_id, name, mime_type, size_bytes, folder_id, folder_path,
                    modified_time, drive_connection_id, MediaStatus.ACTIVE.value, now, now,
                ),
            )

    async def get_media_item(self, media_id: int) -> Optional[MediaItem]:
        row = await self._fetchone("SELECT * FROM media_items WHERE id = ?", (media_id,))
        return self._media_from_row(row) if row else None

    async def get_media_item_by_drive_id(self, drive_file_id: str) -> Optional[MediaItem]:
        row = await self._fetchone("SELECT * FROM media_items WHERE drive_file_id = ?", (drive_file_id,))
        return self._media_from_row(row) if row else None

    async def get_media_items(self, media_ids: Iterable[int]) -> Dict[int, MediaItem]:
        """Batch lookup by id; unknown ids are simply absent from the result."""
        ids = list(dict.fromkeys(media_ids))
        found: Dict[int, MediaItem] = {}
        for chunk in _chunks(ids):
            rows = await self._fetchall(
                f"SELECT * FROM media_items WHERE id IN ({_placeholders(chunk)})", chunk
            )
            for row in rows:
                item = self._media_from_row(row)
                found[item.id] = item
        return found

    async def count_active_media(self, connection_id: int) -> int:
        row = await self._fetchone(
            "SELECT COUNT(*) AS n FROM media_items WHERE drive_connection_id = ? AND status = ?",
            (connection_id, MediaStatus.ACTIVE.value),
        )
        return row["n"] if row else 0

    async def mark_missing_media(self, connection_id: int, seen_drive_ids: Iterable[str]) -> int:
        """Mark synced ACTIVE items of a connection whose Drive id was not seen."""
        seen = set(seen_drive_ids)
        async with self._transaction() as conn:
            cursor = await conn.execute(
                """
                SELECT id, drive_file_id FROM media_items
                WHERE status = ? AND folder_path IS NOT NULL AND drive_connection_id = ?
                """,
                (MediaStatus.ACTIVE.value, connection_id),
            )
            rows = await cursor.fetchall()
            await cursor.close()
            missing_ids = [row["id"] for row in rows if row["drive_file_id"] not in seen]

            marked = 0
            now = _ts(utc_now())
            for chunk in _chunks(missing_ids):
                cursor = await conn.execute(
                    f"""
                    UPDATE media_items SET status = ?, updated_at = ?
                    WHERE status = ? AND id IN ({_placeholders(chunk)})
                    """,
                    (MediaStatus.MISSING.value, now, MediaStatus.ACTIVE.value, *chunk),
                )
                marked += cursor.rowcount
        return marked

    # =========================================================================
    # Jobs: creation and lookup
    # =========================================================================

    async def create_render_job(
        self,
        requested_by_user_id: int,
        audio_media_item_id: int,
        render_spec: Optional[str] = None,
        image_media_item_id: Optional[int] = None,
        drive_connection_id: Optional[int] = None,
        scheduled_for: Optional[datetime] = None,
    ) -> RenderJob:
        now = _ts(utc_now())
        async with self._transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO render_jobs
                    (render_spec, audio_media_item_id, image_media_item_id, drive_connection_id,
                     requested_by_user_id, status, scheduled_for, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    render_spec, audio_media_item_id, image_media_item_id, drive_connection_id,
                    requested_by_user_id, JobStatus.PENDING.value, _ts(scheduled_for), now, now,
                ),
            )
            job_id = cursor.lastrowid
        return await self.get_render_job(job_id)

    async def create_upload_job(
        self,
        requested_by_user_id: int,
        media_item_id: int,
        title: str,
        description: str = "",
        tags: Optional[List[str]] = None,
        privacy_status: str = "private",
        scheduled_for: Optional[datetime] = None,
    ) -> UploadJob:
        now = _ts(utc_now())
        async with self._transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO upload_jobs
                    (media_item_id, title, description, tags, privacy_status, requested_by_user_id,
                     status, scheduled_for, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    media_item_id, title, description, json.dumps(tags or []), privacy_status,
                    requested_by_user_id, JobStatus.PENDING.value, _ts(scheduled_for), now, now,
                ),
            )
            job_id = cursor.lastrowid
        return await self.get_upload_job(job_id)

    async def _jobs_from_rows(self, kind: JobKind, rows: Sequence, with_relations: bool = True) -> List[Job]:
        records = [dict(row) for row in rows]
        for record in records:
            record.pop("claim_token", None)

        if kind is JobKind.UPLOAD:
            for record in records:
                record["tags"] = json.loads(record.get("tags") or "[]")
            jobs: List[Job] = [UploadJob(**record) for record in records]
            if with_relations:
                media = await self.get_media_items(job.media_item_id for job in jobs)
                for job in jobs:
                    job.media_item = media.get(job.media_item_id)
            return jobs

        jobs = [RenderJob(**record) for record in records]
        if with_relations:
            wanted = [job.audio_media_item_id for job in jobs]
            wanted += [job.image_media_item_id for job in jobs if job.image_media_item_id]
            media = await self.get_media_items(wanted)
            for job in jobs:
                job.audio_media_item = media.get(job.audio_media_item_id)
                if job.image_media_item_id:
                    job.image_media_item = media.get(job.image_media_item_id)
        return jobs

    async def get_job(self, kind: JobKind, job_id: int, with_relations: bool = True) -> Optional[Job]:
        rows = await self._fetchall(f"SELECT * FROM {kind.table} WHERE id = ?", (job_id,))
        jobs = await self._jobs_from_rows(kind, rows, with_relations)
        return jobs[0] if jobs else None

    async def get_render_job(self, job_id: int, with_relations: bool = True) -> Optional[RenderJob]:
        return await self.get_job(JobKind.RENDER, job_id, with_relations)

    async def get_upload_job(self, job_id: int, with_relations: bool = True) -> Optional[UploadJob]:
        return await self.get_job(JobKind.UPLOAD, job_id, with_relations)

    async def list_render_jobs(self, user_id: int, limit: int = 100) -> List[RenderJob]:
        rows = await self._fetchall(
            "SELECT * FROM render_jobs WHERE requested_by_user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (user_id, limit),
        )
        return await self._jobs_from_rows(JobKind.RENDER, rows, with_relations=False)

    async def list_upload_jobs(self, user_id: int, limit: int = 100) -> List[UploadJob]:
        rows = await self._fetchall(
            "SELECT * FROM upload_jobs WHERE requested_by_user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (user_id, limit),
        )
        return await self._jobs_from_rows(JobKind.UPLOAD, rows)

    async def delete_pending_job(self, kind: JobKind, job_id: int) -> bool:
        """Delete a job only while it is still PENDING; False if it has moved on."""
        async with self._transaction() as conn:
            cursor = await conn.execute(
                f"DELETE FROM {kind.table} WHERE id = ? AND status = ?",
                (job_id, JobStatus.PENDING.value),
            )
            return cursor.rowcount > 0

    # =========================================================================
    # Jobs: claim protocol
    # =========================================================================

    async def count_jobs(self, kind: JobKind, status: JobStatus, requester_id: Optional[int] = None) -> int:
        query = f"SELECT COUNT(*) AS n FROM {kind.table} WHERE status = ?"
        params: list = [status.value]
        if requester_id is not None:
            query += " AND requested_by_user_id = ?"
            params.append(requester_id)
        row = await self._fetchone(query, params)
        return row["n"] if row else 0

    async def select_due_pending_ids(
        self, kind: JobKind, requester_id: int, limit: int, now: datetime
    ) -> List[int]:
        """Oldest-first PENDING ids whose schedule is empty or due."""
        rows = await self._fetchall(
            f"""
            SELECT id FROM {kind.table}
            WHERE status = ? AND requested_by_user_id = ?
              AND (scheduled_for IS NULL OR scheduled_for <= ?)
            ORDER BY created_at ASC, id ASC
            LIMIT ?
            """,
            (JobStatus.PENDING.value, requester_id, _ts(now), limit),
        )
        return [row["id"] for row in rows]

    async def transition_pending_to_running(self, kind: JobKind, job_ids: Sequence[int]) -> List[int]:
        """
        Atomically move the given ids from PENDING to RUNNING.

        Returns:
            Ids this call transitioned; rows another claimer won are left out
        """
        if not job_ids:
            return []
        token = uuid.uuid4().hex
        now = _ts(utc_now())
        async with self._transaction() as conn:
            await conn.execute(
                f"""
                UPDATE {kind.table}
                SET status = ?, claim_token = ?, error_message = NULL, updated_at = ?
                WHERE status = ? AND id IN ({_placeholders(job_ids)})
                """,
                (JobStatus.RUNNING.value, token, now, JobStatus.PENDING.value, *job_ids),
            )
            cursor = await conn.execute(
                f"SELECT id FROM {kind.table} WHERE claim_token = ? ORDER BY created_at ASC, id ASC",
                (token,),
            )
            rows = await cursor.fetchall()
            await cursor.close()
        return [row["id"] for row in rows]

    async def get_jobs(self, kind: JobKind, job_ids: Sequence[int], with_relations: bool = True) -> List[Job]:
        """Jobs for the given ids, preserving the order of ``job_ids``."""
        if not job_ids:
            return []
        rows = await self._fetchall(
            f"SELECT * FROM {kind.table} WHERE id IN ({_placeholders(job_ids)})", job_ids
        )
        jobs = await self._jobs_from_rows(kind, rows, with_relations)
        by_id = {job.id: job for job in jobs}
        return [by_id[job_id] for job_id in job_ids if job_id in by_id]

    async def requesters_with_due_jobs(self, kind: JobKind, now: datetime) -> List[int]:
        rows = await self._fetchall(
            f"""
            SELECT requested_by_user_id, MIN(created_at) AS oldest FROM {kind.table}
            WHERE status = ? AND (scheduled_for IS NULL OR scheduled_for <= ?)
            GROUP BY requested_by_user_id
            ORDER BY oldest ASC
            """,
            (JobStatus.PENDING.value, _ts(now)),
        )
        return [row["requested_by_user_id"] for row in rows]

    async def has_due_jobs(self, kind: JobKind, requester_id: int, now: datetime) -> bool:
        row = await self._fetchone(
            f"""
            SELECT 1 FROM {kind.table}
            WHERE status = ? AND requested_by_user_id = ?
              AND (scheduled_for IS NULL OR scheduled_for <= ?)
            LIMIT 1
            """,
            (JobStatus.PENDING.value, requester_id, _ts(now)),
        )
        return row is not None

    async def job_status_counts(self, kind: JobKind, requester_id: Optional[int] = None) -> Dict[str, int]:
        query = f"SELECT status, COUNT(*) AS n FROM {kind.table}"
        params: list = []
        if requester_id is not None:
            query += " WHERE requested_by_user_id = ?"
            params.append(requester_id)
        query += " GROUP BY status"
        counts = {status.value: 0 for status in JobStatus}
        for row in await self._fetchall(query, params):
            counts[row["status"]] = row["n"]
        return counts

    # =========================================================================
    # Jobs: status transitions
    # =========================================================================

    async def mark_job_running(self, kind: JobKind, job_id: int) -> bool:
        """RUNNING only if still eligible; False means someone else moved it on."""
        async with self._transaction() as conn:
            cursor = await conn.execute(
                f"""
                UPDATE {kind.table} SET status = ?, error_message = NULL, updated_at = ?
                WHERE id = ? AND status IN (?, ?)
                """,
                (
                    JobStatus.RUNNING.value, _ts(utc_now()), job_id,
                    JobStatus.PENDING.value, JobStatus.RUNNING.value,
                ),
            )
            return cursor.rowcount > 0

    async def settle_completed_job(self, kind: JobKind, job_id: int) -> bool:
        """
        SUCCESS for a job whose result is already recorded but whose status
        still says PENDING or RUNNING (a re-claimed finished job).
        """
        async with self._transaction() as conn:
            cursor = await conn.execute(
                f"""
                UPDATE {kind.table} SET status = ?, error_message = NULL, updated_at = ?
                WHERE id = ? AND {kind.result_column} IS NOT NULL AND status IN (?, ?)
                """,
                (
                    JobStatus.SUCCESS.value, _ts(utc_now()), job_id,
                    JobStatus.PENDING.value, JobStatus.RUNNING.value,
                ),
            )
            return cursor.rowcount > 0

    async def fail_job(
        self,
        kind: JobKind,
        job_id: int,
        error_message: str,
        only_if: Optional[Sequence[JobStatus]] = None,
    ) -> bool:
        query = f"UPDATE {kind.table} SET status = ?, error_message = ?, updated_at = ? WHERE id = ?"
        params: list = [JobStatus.FAILED.value, error_message, _ts(utc_now()), job_id]
        if only_if:
            query += f" AND status IN ({_placeholders(only_if)})"
            params.extend(status.value for status in only_if)
        async with self._transaction() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount > 0

    async def set_render_job_connection(self, job_id: int, drive_connection_id: int):
        async with self._transaction() as conn:
            await conn.execute(
                "UPDATE render_jobs SET drive_connection_id = ? WHERE id = ? AND drive_connection_id IS NULL",
                (drive_connection_id, job_id),
            )

    async def complete_render_job(
        self,
        job_id: int,
        drive_file_id: str,
        name: str,
        drive_connection_id: Optional[int],
        mime_type: str = "video/mp4",
    ) -> MediaItem:
        """
        Create the output media item and link it to the job with SUCCESS.

        Both writes share one transaction. If the job already has an output,
        that item is returned and nothing is written.
        """
        now = _ts(utc_now())
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "SELECT output_media_item_id FROM render_jobs WHERE id = ?", (job_id,)
            )
            existing = await cursor.fetchone()
            await cursor.close()
            if existing and existing["output_media_item_id"]:
                cursor = await conn.execute(
                    "SELECT * FROM media_items WHERE id = ?", (existing["output_media_item_id"],)
                )
                row = await cursor.fetchone()
                await cursor.close()
                if row:
                    return self._media_from_row(row)

            cursor = await conn.execute(
                """
                INSERT INTO media_items
                    (drive_file_id, name, mime_type, drive_connection_id, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (drive_file_id, name, mime_type, drive_connection_id, MediaStatus.ACTIVE.value, now, now),
            )
            media_id = cursor.lastrowid
            await conn.execute(
                """
                UPDATE render_jobs
                SET output_media_item_id = ?, status = ?, error_message = NULL, updated_at = ?
                WHERE id = ?
                """,
                (media_id, JobStatus.SUCCESS.value, now, job_id),
            )
            cursor = await conn.execute("SELECT * FROM media_items WHERE id = ?", (media_id,))
            row = await cursor.fetchone()
            await cursor.close()
        return self._media_from_row(row)

    async def complete_upload_job(self, job_id: int, media_item_id: int, youtube_video_id: str):
        """Record the published video id and mark the source media UPLOADED."""
        now = _ts(utc_now())
        async with self._transaction() as conn:
            await conn.execute(
                """
                UPDATE upload_jobs
                SET youtube_video_id = ?, status = ?, error_message = NULL, updated_at = ?
                WHERE id = ?
                """,
                (youtube_video_id, JobStatus.SUCCESS.value, now, job_id),
            )
            await conn.execute(
                "UPDATE media_items SET status = ?, updated_at = ? WHERE id = ?",
                (MediaStatus.UPLOADED.value, now, media_item_id),
            )

    # =========================================================================
    # Scheduler lease
    # =========================================================================

    async def try_acquire_lease(self, name: str, holder: str, ttl_seconds: float, now: float) -> bool:
        """
        Claim the lease when it is ours already or has expired.

        A live lease held by another instance is never overwritten.
        """
        async with self._transaction() as conn:
            await conn.execute(
                "INSERT OR IGNORE INTO scheduler_leases (name, holder, expires_at, updated_at) VALUES (?, '', 0, ?)",
                (name, now),
            )
            cursor = await conn.execute(
                """
                UPDATE scheduler_leases SET holder = ?, expires_at = ?, updated_at = ?
                WHERE name = ? AND (holder = ? OR expires_at < ?)
                """,
                (holder, now + ttl_seconds, now, name, holder, now),
            )
            return cursor.rowcount > 0

    async def renew_lease(self, name: str, holder: str, ttl_seconds: float, now: float) -> bool:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "UPDATE scheduler_leases SET expires_at = ?, updated_at = ? WHERE name = ? AND holder = ?",
                (now + ttl_seconds, now, name, holder),
            )
            return cursor.rowcount > 0

    async def release_lease(self, name: str, holder: str, now: float) -> bool:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "UPDATE scheduler_leases SET holder = '', expires_at = 0, updated_at = ? WHERE name = ? AND holder = ?",
                (now, name, holder),
            )
            return cursor.rowcount > 0

    async def get_lease(self, name: str) -> Optional[dict]:
        row = await self._fetchone("SELECT * FROM scheduler_leases WHERE name = ?", (name,))
        return dict(row) if row else None


_job_store: Optional[JobStore] = None


def get_job_store() -> JobStore:
    """Return singleton job store."""
    global _job_store
    if _job_store is None:
        settings = get_settings()
        _job_store = JobStore(settings.database_path)
    return _job_store
