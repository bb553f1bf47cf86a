"""Tracking domain models for goals and daily completions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp. A trailing ``Z`` and naive values are UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(value))


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def completion_id(goal_id: str, date: str) -> str:
    """Return the deterministic ID of the completion for ``goal_id`` on ``date``.

    Two devices marking the same day independently always produce the same
    identifier, so no ID allocation is needed.
    """
    return f"{goal_id}-{date}"


@dataclass
class Goal:
    """A named, colored, ordered habit definition."""

    id: str
    name: str
    color: str
    position: int = 0
    owner: Optional[str] = None  # None in guest mode
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None  # logical clock for LWW
    archived_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None  # sync tombstone

    def __post_init__(self) -> None:
        if self.created_at is None:
            self.created_at = utcnow()
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None


@dataclass
class Completion:
    """A "done" mark for one goal on one calendar day (``YYYY-MM-DD``)."""

    goal_id: str
    date: str
    id: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.id:
            self.id = completion_id(self.goal_id, self.date)
        if self.created_at is None:
            self.created_at = utcnow()
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
