"""Pydantic models for API request/response serialization.

These models mirror the habitsync sync dataclasses and provide JSON
validation and serialization for the FastAPI endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from habitsync.sync.types import (
    CompletionChange,
    GoalChange,
    SyncRequest,
    SyncResponse,
)
from habitsync.tracking.models import ensure_utc


# ---------------------------------------------------------------------------
# Change records
# ---------------------------------------------------------------------------


class GoalChangeModel(BaseModel):
    """Mirrors habitsync.sync.types.GoalChange."""

    id: str
    name: str
    color: str
    position: int
    updated_at: datetime
    deleted: bool = False

    def to_change(self) -> GoalChange:
        return GoalChange(
            id=self.id,
            name=self.name,
            color=self.color,
            position=self.position,
            updated_at=ensure_utc(self.updated_at),
            deleted=self.deleted,
        )

    @classmethod
    def from_change(cls, change: GoalChange) -> GoalChangeModel:
        return cls(
            id=change.id,
            name=change.name,
            color=change.color,
            position=change.position,
            updated_at=change.updated_at,
            deleted=change.deleted,
        )


class CompletionChangeModel(BaseModel):
    """Mirrors habitsync.sync.types.CompletionChange."""

    goal_id: str
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$", description="Calendar day, YYYY-MM-DD")
    completed: bool
    updated_at: datetime

    def to_change(self) -> CompletionChange:
        return CompletionChange(
            goal_id=self.goal_id,
            date=self.date,
            completed=self.completed,
            updated_at=ensure_utc(self.updated_at),
        )

    @classmethod
    def from_change(cls, change: CompletionChange) -> CompletionChangeModel:
        return cls(
            goal_id=change.goal_id,
            date=change.date,
            completed=change.completed,
            updated_at=change.updated_at,
        )


# ---------------------------------------------------------------------------
# Sync exchange
# ---------------------------------------------------------------------------


class SyncRequestBody(BaseModel):
    """Mirrors habitsync.sync.types.SyncRequest."""

    last_synced_at: Optional[datetime] = None
    goals: list[GoalChangeModel] = Field(default_factory=list)
    completions: list[CompletionChangeModel] = Field(default_factory=list)

    def to_request(self) -> SyncRequest:
        return SyncRequest(
            last_synced_at=ensure_utc(self.last_synced_at) if self.last_synced_at else None,
            goals=[g.to_change() for g in self.goals],
            completions=[c.to_change() for c in self.completions],
        )


class SyncResponseBody(BaseModel):
    """Mirrors habitsync.sync.types.SyncResponse."""

    server_time: datetime
    goals: list[GoalChangeModel] = Field(default_factory=list)
    completions: list[CompletionChangeModel] = Field(default_factory=list)

    @classmethod
    def from_response(cls, response: SyncResponse) -> SyncResponseBody:
        return cls(
            server_time=response.server_time,
            goals=[GoalChangeModel.from_change(g) for g in response.goals],
            completions=[CompletionChangeModel.from_change(c) for c in response.completions],
        )
