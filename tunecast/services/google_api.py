"""
Google API Helpers
OAuth credential loading and executor-backed request execution
"""

import asyncio
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..utils.logger import get_logger
from ..utils.retry import retry_async

logger = get_logger()

SCOPES = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/youtube.upload",
]

RETRIABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class TransientApiError(Exception):
    """Google API failure worth retrying (rate limit or server error)"""


def load_credentials(token_file: str, scopes: Sequence[str] = SCOPES) -> Credentials:
    """
    Load authorized-user credentials, refreshing them when expired

    Raises:
        FileNotFoundError: if the token file does not exist
    """
    token_path = Path(token_file)
    if not token_path.exists():
        raise FileNotFoundError(f"Google token file not found: {token_path}")

    credentials = Credentials.from_authorized_user_file(str(token_path), list(scopes))
    if credentials.expired and credentials.refresh_token:
        logger.info("Refreshing expired Google credentials...")
        credentials.refresh(Request())
    return credentials


def build_service(api: str, version: str, token_file: str):
    credentials = load_credentials(token_file)
    return build(api, version, credentials=credentials, cache_discovery=False)


async def run_blocking(func: Callable[..., Any], *args) -> Any:
    """Run a blocking client call in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)


def http_status(exc: BaseException) -> Optional[int]:
    if isinstance(exc, HttpError):
        return getattr(exc.resp, "status", None)
    return None


@retry_async(
    max_retries=3,
    base_delay=1.0,
    retryable_exceptions=(TransientApiError, ConnectionError, TimeoutError),
)
async def execute_request(func: Callable[[], Any]) -> Any:
    """
    Execute a blocking API call with retries on transient failures

    Args:
        func: Zero-argument callable performing the request

    Returns:
        The call's result
    """
    try:
        return await run_blocking(func)
    except HttpError as e:
        if http_status(e) in RETRIABLE_STATUS_CODES:
            raise TransientApiError(f"Google API {http_status(e)}: {e}") from e
        raise
