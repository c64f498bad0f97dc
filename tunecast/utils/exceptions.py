"""
Custom Exceptions for Tunecast
Structured error handling with recovery hints
"""

import traceback
from enum import Enum
from typing import Optional, Dict, Any


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced by the pipeline and scheduler"""
    INVALID_SPEC = "INVALID_SPEC"
    NOT_FOUND = "NOT_FOUND"
    INVALID_MIME_TYPE = "INVALID_MIME_TYPE"
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    ENCODE_FAILED = "ENCODE_FAILED"
    CLAIM_CONFLICT = "CLAIM_CONFLICT"
    LEASE_LOST = "LEASE_LOST"


class TunecastError(Exception):
    """Base exception for all Tunecast errors"""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        recoverable: bool = False,
        recovery_hint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.recoverable = recoverable
        self.recovery_hint = recovery_hint
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to JSON-serializable dict"""
        return {
            "error": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "recovery_hint": self.recovery_hint,
            "details": self.details
        }


# ============================================================================
# Render Request Errors
# ============================================================================

class InvalidSpecError(TunecastError):
    """Render spec is malformed or has an unsupported shape"""

    def __init__(self, reason: str):
        super().__init__(
            message=reason,
            code=ErrorKind.INVALID_SPEC.value,
            recoverable=True,
            recovery_hint="Send a slideshow or waveform renderSpec with at least one audio id.",
            details={"reason": reason}
        )


class MediaNotFoundError(TunecastError):
    """Referenced media item has no backing record"""

    def __init__(self, media_id: int, label: str = "Media"):
        super().__init__(
            message=f"{label} media item {media_id} not found",
            code=ErrorKind.NOT_FOUND.value,
            recoverable=False,
            recovery_hint="Re-sync Drive or pick another media item.",
            details={"media_id": media_id}
        )


class JobNotFoundError(TunecastError):
    """Job not found"""

    def __init__(self, job_id: int, kind: str = "render"):
        super().__init__(
            message=f"{kind.capitalize()} job not found: {job_id}",
            code=ErrorKind.NOT_FOUND.value,
            recoverable=False,
            details={"job_id": job_id, "kind": kind}
        )


class InvalidMimeTypeError(TunecastError):
    """Referenced media has the wrong kind"""

    def __init__(self, media_id: int, expected: str, actual: str):
        super().__init__(
            message=f"Media item {media_id} has mimeType={actual}, expected to start with {expected}",
            code=ErrorKind.INVALID_MIME_TYPE.value,
            recoverable=False,
            recovery_hint="Use audio files for audio tracks and images for slides.",
            details={"media_id": media_id, "expected": expected, "actual": actual}
        )


# ============================================================================
# Remote Storage Errors
# ============================================================================

class DownloadFailedError(TunecastError):
    """Error downloading from remote storage"""

    def __init__(self, message: str, file_id: Optional[str] = None):
        super().__init__(
            message=message,
            code=ErrorKind.DOWNLOAD_FAILED.value,
            recoverable=True,
            recovery_hint="Check that the file still exists in Drive and the token is valid.",
            details={"file_id": file_id}
        )


class UploadFailedError(TunecastError):
    """Error uploading to remote storage or the video platform"""

    def __init__(self, message: str, target: Optional[str] = None):
        super().__init__(
            message=message,
            code=ErrorKind.UPLOAD_FAILED.value,
            recoverable=True,
            recovery_hint="Check the OAuth token and folder/channel permissions, then resubmit.",
            details={"target": target}
        )


# ============================================================================
# Encoder Errors
# ============================================================================

class EncodeFailedError(TunecastError):
    """Encoder exited with a non-zero status"""

    def __init__(self, step: str, exit_code: Optional[int], stderr_tail: str = ""):
        super().__init__(
            message=f"ffmpeg {step} exited with code {exit_code}",
            code=ErrorKind.ENCODE_FAILED.value,
            recoverable=True,
            recovery_hint="Check that FFmpeg is installed and the source media is readable.",
            details={"step": step, "exit_code": exit_code, "stderr": stderr_tail}
        )


# ============================================================================
# Scheduler Errors
# ============================================================================

class LeaseLostError(TunecastError):
    """Scheduler lease renewal affected no rows"""

    def __init__(self, lease_name: str, holder: str):
        super().__init__(
            message=f"Lease {lease_name} is no longer held by {holder}",
            code=ErrorKind.LEASE_LOST.value,
            recoverable=True,
            details={"lease": lease_name, "holder": holder}
        )


def format_error(exc: BaseException) -> str:
    """Message plus the frame that raised, for job error_message columns"""
    message = str(exc) or exc.__class__.__name__
    frames = traceback.extract_tb(exc.__traceback__) if exc.__traceback__ else []
    if not frames:
        return message
    frame = frames[-1]
    return f"{message} | at {frame.filename}:{frame.lineno} in {frame.name}"
