"""Sync router -- multi-device change exchange and change feed."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from habitsync.config import Settings
from habitsync.sync.service import SyncError, SyncService
from habitsync.tracking.models import ensure_utc
from web.backend.app.middleware.auth import get_current_user_id
from web.backend.app.models.api import SyncRequestBody, SyncResponseBody

router = APIRouter(prefix="/api/v1/sync", tags=["sync"])


# ---------------------------------------------------------------------------
# Service singleton
# ---------------------------------------------------------------------------

_service: SyncService | None = None


def get_sync_service() -> SyncService:
    """Return the singleton SyncService built from environment settings."""
    global _service
    if _service is None:
        _service = SyncService(Settings.from_env().build_storage())
    return _service


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=SyncResponseBody,
    summary="Exchange local changes with the server",
)
def sync(
    body: SyncRequestBody,
    user_id: str = Depends(get_current_user_id),
    service: SyncService = Depends(get_sync_service),
):
    """Merge the client's batch using Last-Write-Wins.

    The response lists records where the server copy won, plus changes made
    on other devices since ``last_synced_at``. Empty lists mean the client
    is fully in agreement. ``server_time`` is the client's next checkpoint.
    """
    try:
        result = service.apply_changes(user_id, body.to_request())
    except SyncError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="sync failed",
        )
    return SyncResponseBody.from_response(result)


@router.get(
    "/changes",
    response_model=SyncResponseBody,
    summary="List changes since a checkpoint",
)
def get_changes(
    since: Optional[datetime] = None,
    user_id: str = Depends(get_current_user_id),
    service: SyncService = Depends(get_sync_service),
):
    """Return every goal and completion changed after ``since``, tombstones included.

    Without ``since`` the full state is returned.
    """
    try:
        result = service.get_changes_since(user_id, ensure_utc(since) if since else None)
    except SyncError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="sync failed",
        )
    return SyncResponseBody.from_response(result)
