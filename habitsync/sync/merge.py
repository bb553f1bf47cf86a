"""Last-Write-Wins merge rules for goals and completions.

Both functions are pure: they never mutate their arguments, perform no I/O
and return the same decision for the same inputs. ``now`` is the server time
stamped on records created by the merge; it defaults to the current UTC time.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Optional

from habitsync.sync.types import CompletionChange, GoalChange
from habitsync.tracking.models import Completion, Goal, completion_id, utcnow


def merge_goal(
    change: GoalChange,
    server_goal: Optional[Goal],
    now: Optional[datetime] = None,
) -> tuple[Goal, bool]:
    """Merge a client goal change into the server goal.

    Returns ``(goal, should_apply)``. An absent server goal is always
    created. Otherwise the client wins only with a strictly newer
    ``updated_at``; on a tie the server copy stands. The whole snapshot is
    replaced, never individual fields.
    """
    deleted_at = change.updated_at if change.deleted else None

    if server_goal is None:
        goal = Goal(
            id=change.id,
            name=change.name,
            color=change.color,
            position=change.position,
            created_at=now or utcnow(),
            updated_at=change.updated_at,
            deleted_at=deleted_at,
        )
        return goal, True

    if change.updated_at > server_goal.updated_at:
        merged = replace(
            server_goal,
            name=change.name,
            color=change.color,
            position=change.position,
            updated_at=change.updated_at,
            deleted_at=deleted_at,
        )
        return merged, True

    return server_goal, False


def merge_completion(
    change: CompletionChange,
    server_completion: Optional[Completion],
    now: Optional[datetime] = None,
) -> tuple[Optional[Completion], bool]:
    """Merge a client completion change into the server completion.

    A completion moves between three states: absent, active and tombstoned.
    ``absent -> active`` happens when the client marks the day done; an
    absent row is never created just to be tombstoned. On equal timestamps a
    "completed" change revives a tombstoned row (marking done wins ties).
    """
    if server_completion is None:
        if not change.completed:
            return None, False
        completion = Completion(
            id=completion_id(change.goal_id, change.date),
            goal_id=change.goal_id,
            date=change.date,
            created_at=now or utcnow(),
            updated_at=change.updated_at,
        )
        return completion, True

    client_newer = change.updated_at > server_completion.updated_at
    same_time = change.updated_at == server_completion.updated_at
    server_deleted = server_completion.deleted_at is not None

    if client_newer or (same_time and change.completed and server_deleted):
        merged = replace(
            server_completion,
            updated_at=change.updated_at,
            deleted_at=None if change.completed else change.updated_at,
        )
        return merged, True

    return server_completion, False
