"""Utils package initialization"""
from .logger import setup_logger, get_logger
from .exceptions import (
    ErrorKind,
    TunecastError,
    InvalidSpecError,
    MediaNotFoundError,
    JobNotFoundError,
    InvalidMimeTypeError,
    DownloadFailedError,
    UploadFailedError,
    EncodeFailedError,
    LeaseLostError,
    format_error
)
from .retry import backoff_delay, retry_async
from .clock import utc_now

__all__ = [
    "setup_logger",
    "get_logger",
    "ErrorKind",
    "TunecastError",
    "InvalidSpecError",
    "MediaNotFoundError",
    "JobNotFoundError",
    "InvalidMimeTypeError",
    "DownloadFailedError",
    "UploadFailedError",
    "EncodeFailedError",
    "LeaseLostError",
    "format_error",
    "backoff_delay",
    "retry_async",
    "utc_now"
]
