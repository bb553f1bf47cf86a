"""Sync orchestrator — drives one sync round against a storage backend.

A round authorises each submitted change against the caller, merges it with
the server copy, persists accepted records through the storage backend's
conditional upserts and assembles the response: the overrides the server won
plus the catch-up feed of changes made on other devices since the client's
last checkpoint.

The batch is not atomic. A storage failure aborts the round with
:class:`SyncError` and leaves earlier writes in place; because every merge is
idempotent the client can simply retry the whole batch.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from habitsync.storage.base import StorageError, SyncStorage
from habitsync.sync.merge import merge_completion, merge_goal
from habitsync.sync.types import (
    CompletionChange,
    GoalChange,
    SyncRequest,
    SyncResponse,
    SyncStats,
    completion_to_change,
    goal_to_change,
)
from habitsync.tracking.models import utcnow

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """A sync round failed; the client should retry the whole batch."""


class SyncService:
    """Applies client change-sets with Last-Write-Wins resolution."""

    def __init__(self, storage: SyncStorage):
        self.storage = storage

    def get_changes_since(self, user_id: str, since: Optional[datetime] = None) -> SyncResponse:
        """Return every goal and completion of ``user_id`` changed after ``since``.

        Tombstoned records are included so deletions propagate. With no
        ``since`` the full state is returned (first sync on a new device).
        """
        server_time = utcnow()
        try:
            goals = self.storage.get_goal_changes_since(user_id, since)
            completions = self.storage.get_completion_changes_since(user_id, since)
        except StorageError as exc:
            logger.error("Change feed failed for user %s: %s", user_id, exc, exc_info=True)
            raise SyncError("sync failed") from exc

        return SyncResponse(
            server_time=server_time,
            goals=[goal_to_change(g) for g in goals],
            completions=[completion_to_change(c) for c in completions],
        )

    def apply_changes(self, user_id: str, request: SyncRequest) -> SyncResponse:
        """Merge a client's batch and return the authoritative overrides."""
        server_time = utcnow()
        stats = SyncStats()

        try:
            goal_overrides = self._apply_goals(user_id, request.goals, server_time, stats)
            completion_overrides = self._apply_completions(
                user_id, request.completions, server_time, stats
            )
        except StorageError as exc:
            logger.error(
                "Sync aborted for user %s after %d goal(s) and %d completion(s) applied: %s",
                user_id,
                stats.goals_applied,
                stats.completions_applied,
                exc,
                exc_info=True,
            )
            raise SyncError("sync failed") from exc

        stats.overrides = len(goal_overrides) + len(completion_overrides)

        if request.last_synced_at is not None:
            feed = self.get_changes_since(user_id, request.last_synced_at)

            queued_goals = {g.id for g in goal_overrides}
            for change in feed.goals:
                if change.id not in queued_goals:
                    goal_overrides.append(change)
                    queued_goals.add(change.id)
                    stats.catch_up += 1

            queued_completions = {c.key for c in completion_overrides}
            for change in feed.completions:
                if change.key not in queued_completions:
                    completion_overrides.append(change)
                    queued_completions.add(change.key)
                    stats.catch_up += 1

        logger.info(
            "Sync for user %s: %d goal(s) and %d completion(s) applied, "
            "%d skipped, %d override(s), %d catch-up change(s)",
            user_id,
            stats.goals_applied,
            stats.completions_applied,
            stats.skipped,
            stats.overrides,
            stats.catch_up,
        )

        return SyncResponse(
            server_time=server_time,
            goals=goal_overrides,
            completions=completion_overrides,
            stats=stats,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apply_goals(
        self,
        user_id: str,
        changes: list[GoalChange],
        now: datetime,
        stats: SyncStats,
    ) -> list[GoalChange]:
        overrides: list[GoalChange] = []

        for change in changes:
            server_goal = self.storage.get_goal_by_id(change.id)

            if server_goal is not None and server_goal.owner != user_id:
                logger.debug("Skipping goal %s: not owned by user %s", change.id, user_id)
                stats.skipped += 1
                continue

            merged, should_apply = merge_goal(change, server_goal, now=now)
            if should_apply:
                if server_goal is None:
                    merged.owner = user_id
                if self.storage.upsert_goal(merged):
                    stats.goals_applied += 1
                    logger.debug("Applied goal %s at %s", change.id, change.updated_at)
                    continue

                # Refused by the storage gate: a concurrent round wrote first.
                winner = self.storage.get_goal_by_id(change.id)
                if winner is None or winner.owner != user_id:
                    logger.debug("Skipping goal %s: claimed concurrently by another user", change.id)
                    stats.skipped += 1
                    continue
                logger.debug("Goal %s superseded by a concurrent write", change.id)
                current = goal_to_change(winner)
                if current != change:
                    overrides.append(current)
            elif server_goal is not None:
                current = goal_to_change(server_goal)
                if current != change:
                    overrides.append(current)

        return overrides

    def _apply_completions(
        self,
        user_id: str,
        changes: list[CompletionChange],
        now: datetime,
        stats: SyncStats,
    ) -> list[CompletionChange]:
        overrides: list[CompletionChange] = []

        for change in changes:
            goal = self.storage.get_goal_by_id(change.goal_id)
            if goal is None or goal.owner != user_id:
                logger.debug(
                    "Skipping completion %s/%s: goal not owned by user %s",
                    change.goal_id,
                    change.date,
                    user_id,
                )
                stats.skipped += 1
                continue

            server_completion = self.storage.get_completion_by_goal_and_date(
                change.goal_id, change.date, include_deleted=True
            )

            merged, should_apply = merge_completion(change, server_completion, now=now)
            if should_apply and merged is not None:
                if self.storage.upsert_completion(merged):
                    stats.completions_applied += 1
                    logger.debug(
                        "Applied completion %s (completed=%s)", merged.id, change.completed
                    )
                    continue

                logger.debug("Completion %s superseded by a concurrent write", merged.id)
                winner = self.storage.get_completion_by_goal_and_date(
                    change.goal_id, change.date, include_deleted=True
                )
                if winner is not None:
                    current = completion_to_change(winner)
                    if current != change:
                        overrides.append(current)
            elif server_completion is not None:
                current = completion_to_change(server_completion)
                if current != change:
                    overrides.append(current)

        return overrides
