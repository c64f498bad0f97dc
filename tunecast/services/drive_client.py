"""
Google Drive Client
Listing, metadata, download and upload against the Drive v3 API
"""

import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from googleapiclient.http import MediaFileUpload, MediaIoBaseDownload

from ..config import get_settings
from ..utils.exceptions import DownloadFailedError, UploadFailedError
from ..utils.logger import get_logger
from .google_api import build_service, execute_request

logger = get_logger()

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DEFAULT_MIME_TYPE = "application/octet-stream"

_FILE_FIELDS = "id, name, mimeType, size, parents, modifiedTime"
_DOWNLOAD_CHUNK = 8 * 1024 * 1024


@dataclass
class DriveFile:
    """Metadata for one Drive file or folder"""
    id: str
    name: str
    mime_type: str = DEFAULT_MIME_TYPE
    size: Optional[int] = None
    parents: List[str] = field(default_factory=list)
    modified_time: Optional[str] = None

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @classmethod
    def from_api(cls, data: dict) -> "DriveFile":
        size = data.get("size")
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            mime_type=data.get("mimeType") or DEFAULT_MIME_TYPE,
            size=int(size) if size is not None else None,
            parents=list(data.get("parents") or []),
            modified_time=data.get("modifiedTime"),
        )


@dataclass
class DrivePage:
    files: List[DriveFile]
    next_page_token: Optional[str] = None


@dataclass
class UploadedFile:
    id: str
    name: str


class DriveClient:
    """Async facade over the blocking googleapiclient Drive service"""

    def __init__(self, service=None, token_file: Optional[str] = None, page_size: int = 100):
        self._service = service
        self.token_file = token_file
        self.page_size = page_size

    @property
    def service(self):
        if self._service is None:
            self._service = build_service("drive", "v3", self.token_file or get_settings().google_token_file)
        return self._service

    async def list_children(self, folder_id: str, page_token: Optional[str] = None) -> DrivePage:
        """One page of the non-trashed children of a folder."""
        request = self.service.files().list(
            q=f"'{folder_id}' in parents and trashed = false",
            fields=f"nextPageToken, files({_FILE_FIELDS})",
            pageSize=self.page_size,
            pageToken=page_token,
            supportsAllDrives=True,
            includeItemsFromAllDrives=True,
        )
        try:
            response = await execute_request(request.execute)
        except Exception as e:
            raise DownloadFailedError(f"Failed to list Drive folder {folder_id}: {e}", folder_id) from e

        files = [DriveFile.from_api(item) for item in response.get("files", [])]
        return DrivePage(files=files, next_page_token=response.get("nextPageToken"))

    async def get(self, file_id: str) -> DriveFile:
        request = self.service.files().get(fileId=file_id, fields=_FILE_FIELDS, supportsAllDrives=True)
        try:
            response = await execute_request(request.execute)
        except Exception as e:
            raise DownloadFailedError(f"Failed to fetch Drive metadata for {file_id}: {e}", file_id) from e
        return DriveFile.from_api(response)

    def _download_blocking(self, file_id: str, dest: Path):
        request = self.service.files().get_media(fileId=file_id, supportsAllDrives=True)
        with io.FileIO(str(dest), "wb") as handle:
            downloader = MediaIoBaseDownload(handle, request, chunksize=_DOWNLOAD_CHUNK)
            done = False
            while not done:
                _status, done = downloader.next_chunk()

    async def download(self, file_id: str, dest: Path) -> Path:
        """
        Download file content to a local path

        Args:
            file_id: Drive file id
            dest: Local destination (parent must exist)

        Returns:
            The destination path

        Raises:
            DownloadFailedError: if the download fails after retries
        """
        dest = Path(dest)
        logger.info(f"Downloading Drive file {file_id} -> {dest.name}")
        try:
            await execute_request(lambda: self._download_blocking(file_id, dest))
        except Exception as e:
            raise DownloadFailedError(f"Failed to download Drive file {file_id}: {e}", file_id) from e
        return dest

    async def upload(self, folder_id: str, name: str, mime_type: str, path: Path) -> UploadedFile:
        """Resumable upload of a local file into a Drive folder."""
        logger.info(f"Uploading {name} to Drive folder {folder_id}")
        media = MediaFileUpload(str(path), mimetype=mime_type, resumable=True)
        request = self.service.files().create(
            body={"name": name, "parents": [folder_id], "mimeType": mime_type},
            media_body=media,
            fields="id, name",
            supportsAllDrives=True,
        )
        try:
            response = await execute_request(request.execute)
        except Exception as e:
            raise UploadFailedError(f"Failed to upload {name} to Drive: {e}", folder_id) from e

        uploaded = UploadedFile(id=response["id"], name=response.get("name") or name)
        logger.info(f"Drive upload complete: {uploaded.id}")
        return uploaded


_drive_client: Optional[DriveClient] = None


def get_drive_client() -> DriveClient:
    """Return singleton Drive client."""
    global _drive_client
    if _drive_client is None:
        settings = get_settings()
        _drive_client = DriveClient(token_file=settings.google_token_file, page_size=settings.sync_page_size)
    return _drive_client
