"""Multi-device sync — Last-Write-Wins reconciliation of offline edits.

This package provides:
- Change records: flattened goal/completion snapshots for the wire
- Merge rules: pure per-record LWW decisions
- The orchestrator: authorises, merges and persists a client batch, then
  reports overrides and the catch-up feed
"""

from habitsync.sync.merge import merge_completion, merge_goal
from habitsync.sync.service import SyncError, SyncService
from habitsync.sync.types import (
    CompletionChange,
    GoalChange,
    SyncRequest,
    SyncResponse,
    SyncStats,
    completion_to_change,
    goal_to_change,
)

__all__ = [
    "CompletionChange",
    "GoalChange",
    "SyncError",
    "SyncRequest",
    "SyncResponse",
    "SyncService",
    "SyncStats",
    "completion_to_change",
    "goal_to_change",
    "merge_completion",
    "merge_goal",
]
