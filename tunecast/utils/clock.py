"""
Clock Helpers
Naive UTC timestamps, the form every stored datetime uses
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current UTC time without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
