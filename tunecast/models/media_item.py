"""
Media Item Models
Records for files discovered in Drive and the user's Drive connection
"""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum
from datetime import datetime

from ..utils.clock import utc_now


class MediaStatus(str, Enum):
    """Lifecycle of a synced Drive file"""
    ACTIVE = "active"
    MISSING = "missing"
    DELETED = "deleted"
    UPLOADED = "uploaded"


class DriveConnectionStatus(str, Enum):
    ACTIVE = "active"
    ERROR = "error"
    REVOKED = "revoked"


class MediaItem(BaseModel):
    """A remote file known to the system"""
    id: int
    drive_file_id: str
    name: str
    mime_type: str
    size_bytes: Optional[int] = None
    folder_id: Optional[str] = None
    folder_path: Optional[str] = None
    modified_time: Optional[str] = None
    drive_connection_id: Optional[int] = None
    status: MediaStatus = MediaStatus.ACTIVE
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class DriveConnection(BaseModel):
    """A user's connected Drive root folder"""
    id: int
    user_id: int
    root_folder_id: str
    status: DriveConnectionStatus = DriveConnectionStatus.ACTIVE
    error_message: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
