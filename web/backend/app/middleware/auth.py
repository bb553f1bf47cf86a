"""Auth middleware -- FastAPI dependency for extracting the calling identity.

Sessions and OAuth are handled by the fronting auth layer, which forwards
the authenticated user's ID in the ``X-User-ID`` header.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, status


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
) -> str:
    """FastAPI dependency returning the authenticated user ID.

    Raises ``401 Unauthorized`` when the request carries no identity; guest
    sessions cannot sync.
    """
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="authentication required for sync",
    )
