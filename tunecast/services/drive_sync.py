"""
Drive Sync Service
Breadth-first crawl of each connected Drive root into media_items
"""

import time
from collections import deque
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from ..config import Settings, get_settings
from ..models.media_item import DriveConnection, DriveConnectionStatus
from ..utils.clock import utc_now
from ..utils.exceptions import format_error
from ..utils.logger import get_logger
from .drive_client import DriveClient, DriveFile, get_drive_client
from .job_store import JobStore, get_job_store

logger = get_logger()

LOW_COUNT_THRESHOLD = 3


@dataclass
class SyncStats:
    upserted: int = 0
    marked_missing: int = 0
    truncated: bool = False
    connections: int = 0

    def add(self, other: "SyncStats"):
        self.upserted += other.upserted
        self.marked_missing += other.marked_missing
        self.truncated = self.truncated or other.truncated
        self.connections += 1


class FolderPathResolver:
    """Memoized `/A/B` paths of folders relative to one sync root"""

    def __init__(self, drive: DriveClient, root_folder_id: str):
        self.drive = drive
        self.root_folder_id = root_folder_id
        self._cache: Dict[str, str] = {}

    async def path_for(self, folder_id: Optional[str]) -> Optional[str]:
        if not folder_id:
            return None
        if folder_id in self._cache:
            return self._cache[folder_id]

        segments: List[str] = []
        current: Optional[str] = folder_id
        while current and current != self.root_folder_id:
            cached = self._cache.get(current)
            if cached is not None:
                if cached != "/":
                    segments.extend(reversed(cached.lstrip("/").split("/")))
                break

            folder = await self.drive.get(current)
            if not folder.name:
                break
            segments.append(folder.name)
            current = folder.parents[0] if folder.parents else None

        path = "/" + "/".join(reversed(segments)) if segments else "/"
        self._cache[folder_id] = path
        return path


class DriveSync:
    """Keeps media_items in step with each active Drive connection"""

    def __init__(
        self,
        store: Optional[JobStore] = None,
        drive: Optional[DriveClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store or get_job_store()
        self.drive = drive or get_drive_client()
        self.settings = settings or get_settings()
        self._syncing: Set[int] = set()
        self._last_attempt: Dict[int, float] = {}

    # =========================================================================
    # Crawl
    # =========================================================================

    async def _crawl(self, root_folder_id: str):
        """BFS over folders; returns (files, truncated)."""
        max_files = self.settings.sync_max_files
        files: List[DriveFile] = []
        queue = deque([root_folder_id])

        while queue:
            folder_id = queue.popleft()
            page_token = None
            while True:
                page = await self.drive.list_children(folder_id, page_token)
                for item in page.files:
                    if item.is_folder:
                        queue.append(item.id)
                    else:
                        files.append(item)
                    if len(files) >= max_files:
                        return files, True
                page_token = page.next_page_token
                if not page_token:
                    break

        return files, False

    async def sync(self, connection: DriveConnection) -> SyncStats:
        """
        Crawl one connection and upsert every file found

        Raises:
            Any Drive or store error; sync_all records it on the connection
        """
        logger.info(f"Drive sync start: connection {connection.id} (root {connection.root_folder_id})")
        existing_active = await self.store.count_active_media(connection.id)

        files, truncated = await self._crawl(connection.root_folder_id)
        logger.info(f"Drive sync fetched {len(files)} files for connection {connection.id} (truncated={truncated})")

        if not files:
            logger.warning(f"Zero files returned from Drive for connection {connection.id}")
        elif len(files) < LOW_COUNT_THRESHOLD and existing_active > 0:
            logger.warning(
                f"Unusually low file count for connection {connection.id}: "
                f"{len(files)} fetched vs {existing_active} active"
            )

        paths = FolderPathResolver(self.drive, connection.root_folder_id)
        seen: Set[str] = set()
        for item in files:
            seen.add(item.id)
            parent_id = item.parents[0] if item.parents else None
            await self.store.upsert_media_item(
                drive_file_id=item.id,
                name=item.name,
                mime_type=item.mime_type,
                drive_connection_id=connection.id,
                size_bytes=item.size,
                folder_id=parent_id,
                folder_path=await paths.path_for(parent_id),
                modified_time=item.modified_time,
            )

        marked = 0 if truncated else await self.mark_missing_files(seen, connection.id)
        logger.info(
            f"Drive sync complete: connection {connection.id}, "
            f"upserted={len(seen)}, marked_missing={marked}, truncated={truncated}"
        )
        return SyncStats(upserted=len(seen), marked_missing=marked, truncated=truncated)

    async def mark_missing_files(self, seen_ids: Set[str], connection_id: int) -> int:
        if not seen_ids:
            logger.warning(
                f"No files seen for connection {connection_id}; skipping missing marking"
            )
            return 0
        return await self.store.mark_missing_media(connection_id, seen_ids)

    # =========================================================================
    # Scheduling
    # =========================================================================

    def _throttled(self, connection: DriveConnection, now: float) -> bool:
        window = self.settings.sync_min_interval_seconds
        last = self._last_attempt.get(connection.id)
        if last is not None and now - last < window:
            return True
        if connection.last_synced_at is not None:
            age = (utc_now() - connection.last_synced_at).total_seconds()
            if age < window:
                return True
        return False

    async def sync_due(self, user_id: Optional[int] = None) -> bool:
        """Whether sync_all would crawl at least one connection now."""
        now = time.monotonic()
        for connection in await self.store.list_drive_connections(user_id=user_id):
            if connection.id not in self._syncing and not self._throttled(connection, now):
                return True
        return False

    async def sync_all(self, user_id: Optional[int] = None) -> SyncStats:
        """Sync every active connection (optionally one user's)."""
        totals = SyncStats()
        connections = await self.store.list_drive_connections(user_id=user_id)

        for connection in connections:
            now = time.monotonic()
            if self._throttled(connection, now):
                logger.info(f"Skipping Drive sync for connection {connection.id}: throttled")
                continue
            if connection.id in self._syncing:
                logger.info(f"Skipping Drive sync for connection {connection.id}: already running")
                continue

            self._syncing.add(connection.id)
            self._last_attempt[connection.id] = now
            try:
                stats = await self.sync(connection)
                await self.store.touch_drive_connection_synced(connection.id, utc_now())
                totals.add(stats)
            except Exception as e:
                logger.exception(f"Drive sync failed for connection {connection.id}: {e}")
                await self.store.mark_drive_connection_status(
                    connection.id, DriveConnectionStatus.ERROR, format_error(e)
                )
            finally:
                self._syncing.discard(connection.id)

        return totals


_drive_sync: Optional[DriveSync] = None


def get_drive_sync() -> DriveSync:
    """Return singleton Drive sync service."""
    global _drive_sync
    if _drive_sync is None:
        _drive_sync = DriveSync()
    return _drive_sync
