"""
YouTube Client
Resumable video uploads through the YouTube Data API v3
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload

from ..config import get_settings
from ..utils.exceptions import UploadFailedError
from ..utils.logger import get_logger
from .google_api import RETRIABLE_STATUS_CODES, build_service, http_status, run_blocking

logger = get_logger()

MAX_CHUNK_RETRIES = 5
UPLOAD_CHUNK_SIZE = 16 * 1024 * 1024
TITLE_LIMIT = 100
DESCRIPTION_LIMIT = 5000


def format_publish_at(when: datetime) -> str:
    """RFC 3339 UTC timestamp as required by status.publishAt."""
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


class YouTubeClient:
    """Uploads videos to the authenticated channel"""

    def __init__(self, service=None, token_file: Optional[str] = None):
        self._service = service
        self.token_file = token_file

    @property
    def service(self):
        if self._service is None:
            self._service = build_service("youtube", "v3", self.token_file or get_settings().google_token_file)
        return self._service

    def _execute_upload(self, request) -> dict:
        response = None
        retries = 0
        while response is None:
            try:
                status, response = request.next_chunk()
                if status is not None:
                    logger.debug(f"YouTube upload progress: {int(status.progress() * 100)}%")
            except HttpError as e:
                if http_status(e) in RETRIABLE_STATUS_CODES and retries < MAX_CHUNK_RETRIES:
                    retries += 1
                    logger.warning(f"Retriable error {http_status(e)}, retry {retries}/{MAX_CHUNK_RETRIES}")
                    continue
                raise
        return response

    async def upload_video(
        self,
        path: Path,
        title: str,
        description: str = "",
        tags: Optional[List[str]] = None,
        privacy_status: str = "private",
        publish_at: Optional[datetime] = None,
    ) -> str:
        """
        Upload a local video file

        Args:
            path: Video file path
            title: Video title (truncated to the API limit)
            description: Video description
            tags: Keyword tags
            privacy_status: public, unlisted or private
            publish_at: Scheduled publish time; forces private until then

        Returns:
            The YouTube video id
        """
        status = {"privacyStatus": privacy_status, "selfDeclaredMadeForKids": False}
        if publish_at is not None:
            status["privacyStatus"] = "private"
            status["publishAt"] = format_publish_at(publish_at)

        body = {
            "snippet": {
                "title": title[:TITLE_LIMIT],
                "description": description[:DESCRIPTION_LIMIT],
                "tags": tags or [],
            },
            "status": status,
        }

        logger.info(f"Uploading {Path(path).name} to YouTube: {title}")
        media = MediaFileUpload(str(path), chunksize=UPLOAD_CHUNK_SIZE, resumable=True, mimetype="video/*")
        request = self.service.videos().insert(part="snippet,status", body=body, media_body=media)

        try:
            response = await run_blocking(self._execute_upload, request)
        except Exception as e:
            raise UploadFailedError(f"YouTube upload failed: {e}", "youtube") from e

        video_id = response.get("id")
        if not video_id:
            raise UploadFailedError("YouTube upload returned no video id", "youtube")

        logger.info(f"YouTube upload complete: {video_id}")
        return video_id


_youtube_client: Optional[YouTubeClient] = None


def get_youtube_client() -> YouTubeClient:
    """Return singleton YouTube client."""
    global _youtube_client
    if _youtube_client is None:
        _youtube_client = YouTubeClient(token_file=get_settings().google_token_file)
    return _youtube_client
