"""In-memory storage backend, used for tests and ephemeral servers."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Optional

from habitsync.storage.base import SyncStorage, completion_wins, is_newer
from habitsync.tracking.models import Completion, Goal


class InMemoryStorage(SyncStorage):
    """Dict-backed store. Records are copied in and out so callers never
    share state with the store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._goals: dict[str, Goal] = {}
        self._completions: dict[str, Completion] = {}

    def get_goal_by_id(self, goal_id: str) -> Optional[Goal]:
        with self._lock:
            goal = self._goals.get(goal_id)
            return replace(goal) if goal else None

    def get_completion_by_goal_and_date(
        self, goal_id: str, date: str, include_deleted: bool = False
    ) -> Optional[Completion]:
        with self._lock:
            for c in self._completions.values():
                if c.goal_id == goal_id and c.date == date:
                    if c.is_deleted and not include_deleted:
                        return None
                    return replace(c)
        return None

    def upsert_goal(self, goal: Goal) -> bool:
        with self._lock:
            stored = self._goals.get(goal.id)
            if stored is None:
                self._goals[goal.id] = replace(goal)
                return True
            if stored.owner != goal.owner or not is_newer(goal.updated_at, stored.updated_at):
                return False
            self._goals[goal.id] = replace(goal, created_at=stored.created_at)
            return True

    def upsert_completion(self, completion: Completion) -> bool:
        with self._lock:
            stored = self._completions.get(completion.id)
            if stored is None:
                self._completions[completion.id] = replace(completion)
                return True
            if not completion_wins(completion, stored):
                return False
            self._completions[completion.id] = replace(completion, created_at=stored.created_at)
            return True

    def get_goal_changes_since(self, owner: Optional[str], since: Optional[datetime]) -> list[Goal]:
        with self._lock:
            goals = [
                replace(g)
                for g in self._goals.values()
                if g.owner == owner and (since is None or g.updated_at > since)
            ]
        return sorted(goals, key=lambda g: g.updated_at)

    def get_completion_changes_since(
        self, owner: Optional[str], since: Optional[datetime]
    ) -> list[Completion]:
        with self._lock:
            owned = {gid for gid, g in self._goals.items() if g.owner == owner}
            completions = [
                replace(c)
                for c in self._completions.values()
                if c.goal_id in owned and (since is None or c.updated_at > since)
            ]
        return sorted(completions, key=lambda c: c.updated_at)

    def list_goals(
        self,
        owner: Optional[str],
        include_archived: bool = False,
        include_deleted: bool = False,
    ) -> list[Goal]:
        with self._lock:
            goals = [
                replace(g)
                for g in self._goals.values()
                if g.owner == owner
                and (include_archived or not g.is_archived)
                and (include_deleted or not g.is_deleted)
            ]
        return sorted(goals, key=lambda g: (g.position, g.created_at))
