"""
Tunecast Configuration
Centralized settings management using Pydantic Settings
"""

import os
import socket
import uuid
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List
from functools import lru_cache


def _default_instance_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # ==========================================================================
    # Application
    # ==========================================================================
    app_name: str = "Tunecast"
    debug: bool = False
    app_version: str = "0.4.0"
    instance_id: str = Field(default_factory=_default_instance_id, description="Identity used as lease holder")

    # ==========================================================================
    # Google Drive / YouTube
    # ==========================================================================
    google_token_file: str = Field(default="token.json", description="Authorized user OAuth token JSON")
    drive_output_folder_id: str = Field(default="", description="Upload folder override for rendered videos")

    # ==========================================================================
    # Scheduler
    # ==========================================================================
    scheduler_enabled: bool = Field(default=False, description="Run the leader-elected background scheduler")
    scheduler_lease_name: str = Field(default="global-scheduler")
    scheduler_lease_ttl_seconds: float = Field(default=60, gt=0)
    scheduler_inactivity_seconds: float = Field(default=300, ge=0, description="Idle time before the scheduler stops (0 = never)")
    sync_interval_seconds: float = Field(default=60, gt=0)
    upload_interval_seconds: float = Field(default=60, gt=0)
    render_interval_seconds: float = Field(default=60, gt=0)

    # ==========================================================================
    # Dispatch
    # ==========================================================================
    max_running_upload_jobs: int = Field(default=5, ge=1, le=50, description="Concurrent RUNNING upload jobs per user")
    max_running_render_jobs: int = Field(default=5, ge=1, le=50, description="Concurrent RUNNING render jobs per user")
    trigger_cooldown_seconds: float = Field(default=30, ge=0, description="Per-user cooldown for manual triggers")

    # ==========================================================================
    # Drive Sync
    # ==========================================================================
    sync_min_interval_seconds: float = Field(default=300, ge=0)
    sync_max_files: int = Field(default=5000, ge=1)
    sync_page_size: int = Field(default=100, ge=1, le=1000)

    # ==========================================================================
    # Rendering
    # ==========================================================================
    render_isolation: bool = Field(default=True, description="Run each render job in its own process")
    render_worker_memory_mb: int = Field(default=1024, ge=128, description="Address space ceiling for render workers")
    render_width: int = 1280
    render_height: int = 720
    render_fps: int = 30
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # ==========================================================================
    # Security
    # ==========================================================================
    api_key: str = Field(default="", description="Optional API key for /api routes")
    cors_allowed_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000"
        ],
        description="Allowed CORS origins"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================
    temp_dir: str = Field(default="temp", description="Scratch root for render jobs")
    data_dir: str = Field(default="data", description="Persistent application data directory")

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def database_path(self) -> str:
        return os.path.join(self.data_dir, "tunecast.db")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
