"""Services package initialization"""
from .job_store import JobStore, get_job_store
from .encoder import Encoder, EncoderConfig, get_encoder
from .drive_client import DriveClient, DriveFile, DrivePage, UploadedFile, get_drive_client
from .youtube_client import YouTubeClient, get_youtube_client
from .media_resolver import MediaResolver, ResolvedMedia
from .render_pipeline import RenderPipeline
from .render_isolation import RenderJobIsolation, IsolationResult
from .job_claim import JobClaimer
from .upload_processor import UploadProcessor
from .drive_sync import DriveSync, SyncStats, get_drive_sync
from .job_dispatch import JobDispatcher, get_job_dispatcher
from .scheduler import DistributedScheduler, SchedulerState, get_scheduler

__all__ = [
    "JobStore",
    "get_job_store",
    "Encoder",
    "EncoderConfig",
    "get_encoder",
    "DriveClient",
    "DriveFile",
    "DrivePage",
    "UploadedFile",
    "get_drive_client",
    "YouTubeClient",
    "get_youtube_client",
    "MediaResolver",
    "ResolvedMedia",
    "RenderPipeline",
    "RenderJobIsolation",
    "IsolationResult",
    "JobClaimer",
    "UploadProcessor",
    "DriveSync",
    "SyncStats",
    "get_drive_sync",
    "JobDispatcher",
    "get_job_dispatcher",
    "DistributedScheduler",
    "SchedulerState",
    "get_scheduler"
]
