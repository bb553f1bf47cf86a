"""Tracking domain — goals and their daily completions."""

from habitsync.tracking.models import Completion, Goal, completion_id

__all__ = ["Completion", "Goal", "completion_id"]
