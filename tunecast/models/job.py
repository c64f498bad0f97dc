"""
Job Data Models
Render and upload jobs sharing one claim/status state machine
"""

from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from enum import Enum
from datetime import datetime

from ..utils.clock import utc_now
from .media_item import MediaItem


class JobStatus(str, Enum):
    """Job processing status"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class JobKind(str, Enum):
    """Job tables sharing the claim protocol"""
    RENDER = "render"
    UPLOAD = "upload"

    @property
    def table(self) -> str:
        return f"{self.value}_jobs"

    @property
    def result_column(self) -> str:
        """Column that is set once the job has produced its result"""
        return "output_media_item_id" if self is JobKind.RENDER else "youtube_video_id"


class RenderJob(BaseModel):
    """Request to render a video from Drive media"""
    id: int
    render_spec: Optional[str] = None
    audio_media_item_id: int
    image_media_item_id: Optional[int] = None
    output_media_item_id: Optional[int] = None
    drive_connection_id: Optional[int] = None
    requested_by_user_id: int
    status: JobStatus = JobStatus.PENDING
    error_message: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    # Relations, loaded on claim / lookup
    audio_media_item: Optional[MediaItem] = None
    image_media_item: Optional[MediaItem] = None


class UploadJob(BaseModel):
    """Request to publish a Drive video to YouTube"""
    id: int
    media_item_id: int
    title: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    privacy_status: str = "private"
    requested_by_user_id: int
    status: JobStatus = JobStatus.PENDING
    error_message: Optional[str] = None
    youtube_video_id: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    media_item: Optional[MediaItem] = None


class RenderJobCreate(BaseModel):
    """Request model for creating a render job"""
    render_spec: dict = Field(..., alias="renderSpec", description="Slideshow or waveform spec")
    scheduled_for: Optional[datetime] = Field(None, alias="scheduledFor")
    drive_connection_id: Optional[int] = Field(None, alias="driveConnectionId")

    model_config = {"populate_by_name": True}


class UploadJobCreate(BaseModel):
    """Request model for publishing a Drive video"""
    media_item_id: int = Field(..., alias="mediaItemId")
    title: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    privacy_status: Literal["public", "unlisted", "private"] = Field("private", alias="privacyStatus")
    scheduled_for: Optional[datetime] = Field(None, alias="scheduledFor")

    model_config = {"populate_by_name": True}
