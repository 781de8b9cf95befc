"""
Authentication dependencies
The upstream auth layer forwards the caller's internal user id
"""

from typing import Optional
from fastapi import Header

from app.core.exceptions import UnauthorizedException

async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id")
) -> str:
    """
    Get the authenticated caller's user id (required)
    Raises 401 if the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedException("Missing user identity")
    return x_user_id.strip()
