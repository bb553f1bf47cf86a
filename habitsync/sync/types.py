"""Sync wire types — change records exchanged during a sync round.

Change records are flattened snapshots of a goal or completion. They are
never persisted as such, only mapped to and from the tracking entities.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from habitsync.tracking.models import (
    Completion,
    Goal,
    ensure_utc,
    format_timestamp,
    parse_timestamp,
)


def _require(data: dict, *keys: str) -> None:
    missing = [k for k in keys if k not in data]
    if missing:
        raise ValueError(f"missing field(s): {', '.join(missing)}")


def _timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"invalid timestamp: {value!r}")
    return parse_timestamp(value)


@dataclass
class GoalChange:
    """Snapshot of a goal as held by one side of the sync."""

    id: str
    name: str
    color: str
    position: int
    updated_at: datetime
    deleted: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> GoalChange:
        _require(data, "id", "name", "color", "position", "updated_at")
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            color=str(data["color"]),
            position=int(data["position"]),
            updated_at=_timestamp(data["updated_at"]),
            deleted=bool(data.get("deleted", False)),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "position": self.position,
            "updated_at": format_timestamp(self.updated_at),
            "deleted": self.deleted,
        }


@dataclass
class CompletionChange:
    """Snapshot of one goal's done/not-done state on one day."""

    goal_id: str
    date: str  # YYYY-MM-DD
    completed: bool
    updated_at: datetime

    @property
    def key(self) -> tuple[str, str]:
        return (self.goal_id, self.date)

    @classmethod
    def from_dict(cls, data: dict) -> CompletionChange:
        _require(data, "goal_id", "date", "completed", "updated_at")
        return cls(
            goal_id=str(data["goal_id"]),
            date=str(data["date"]),
            completed=bool(data["completed"]),
            updated_at=_timestamp(data["updated_at"]),
        )

    def to_dict(self) -> dict:
        return {
            "goal_id": self.goal_id,
            "date": self.date,
            "completed": self.completed,
            "updated_at": format_timestamp(self.updated_at),
        }


@dataclass
class SyncRequest:
    """A client's batch of local changes plus its last checkpoint."""

    last_synced_at: Optional[datetime] = None
    goals: list[GoalChange] = field(default_factory=list)
    completions: list[CompletionChange] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> SyncRequest:
        last = data.get("last_synced_at")
        return cls(
            last_synced_at=_timestamp(last) if last else None,
            goals=[GoalChange.from_dict(g) for g in data.get("goals") or []],
            completions=[CompletionChange.from_dict(c) for c in data.get("completions") or []],
        )

    def to_dict(self) -> dict:
        return {
            "last_synced_at": format_timestamp(self.last_synced_at),
            "goals": [g.to_dict() for g in self.goals],
            "completions": [c.to_dict() for c in self.completions],
        }


@dataclass
class SyncStats:
    """Bookkeeping for one sync round. Not part of the wire format."""

    goals_applied: int = 0
    completions_applied: int = 0
    skipped: int = 0
    overrides: int = 0
    catch_up: int = 0


@dataclass
class SyncResponse:
    """The server's authoritative answer to a sync round.

    ``goals`` and ``completions`` hold the overrides the client must
    reconcile into its local store; both empty means full agreement.
    """

    server_time: datetime
    goals: list[GoalChange] = field(default_factory=list)
    completions: list[CompletionChange] = field(default_factory=list)
    stats: SyncStats = field(default_factory=SyncStats, compare=False)

    @property
    def is_empty(self) -> bool:
        return not self.goals and not self.completions

    def to_dict(self) -> dict:
        return {
            "server_time": format_timestamp(self.server_time),
            "goals": [g.to_dict() for g in self.goals],
            "completions": [c.to_dict() for c in self.completions],
        }


def goal_to_change(goal: Goal) -> GoalChange:
    return GoalChange(
        id=goal.id,
        name=goal.name,
        color=goal.color,
        position=goal.position,
        updated_at=goal.updated_at,
        deleted=goal.deleted_at is not None,
    )


def completion_to_change(completion: Completion) -> CompletionChange:
    """Convert a stored completion. Its ``id`` and ``created_at`` stay server-side."""
    return CompletionChange(
        goal_id=completion.goal_id,
        date=completion.date,
        completed=completion.deleted_at is None,
        updated_at=completion.updated_at,
    )
