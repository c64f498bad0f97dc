"""
Router Dependencies
Requester identity for route handlers
"""

from typing import Optional

from fastapi import Header, HTTPException, status


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> int:
    """Authenticated user id forwarded by the auth layer in X-User-Id."""
    try:
        user_id = int((x_user_id or "").strip())
    except ValueError:
        user_id = 0
    if user_id <= 0:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user_id
