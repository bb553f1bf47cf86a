"""Storage port consumed by the sync engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from habitsync.tracking.models import Completion, Goal


class StorageError(Exception):
    """Raised when a backend cannot read or write its records."""


def is_newer(incoming: datetime, stored: Optional[datetime]) -> bool:
    """Return True when ``incoming`` should replace a row stamped ``stored``."""
    return stored is None or incoming > stored


def completion_wins(incoming: Completion, stored: Optional[Completion]) -> bool:
    """Storage-side gate for completions.

    Newer rows replace older ones. On equal timestamps a live row replaces a
    tombstone, mirroring the merge tie-break.
    """
    if stored is None or is_newer(incoming.updated_at, stored.updated_at):
        return True
    return (
        incoming.updated_at == stored.updated_at
        and not incoming.is_deleted
        and stored.is_deleted
    )


class SyncStorage(ABC):
    """Key-indexed store for goals and completions.

    Upserts are conditional and atomic per record. A goal is only written
    when it is new, or when the stored copy has the same owner and an older
    ``updated_at``. Completions follow :func:`completion_wins`.
    """

    @abstractmethod
    def get_goal_by_id(self, goal_id: str) -> Optional[Goal]:
        """Look up a goal regardless of owner, archive or tombstone state."""

    @abstractmethod
    def get_completion_by_goal_and_date(
        self, goal_id: str, date: str, include_deleted: bool = False
    ) -> Optional[Completion]:
        """Look up the completion for a goal and day.

        Tombstoned rows are only returned when ``include_deleted`` is set.
        """

    @abstractmethod
    def upsert_goal(self, goal: Goal) -> bool:
        """Insert or update a goal per the ownership and recency gate.

        Returns True if written. ``created_at`` of a stored goal is kept.
        """

    @abstractmethod
    def upsert_completion(self, completion: Completion) -> bool:
        """Insert or update a completion per :func:`completion_wins`. Returns True if written."""

    @abstractmethod
    def get_goal_changes_since(self, owner: Optional[str], since: Optional[datetime]) -> list[Goal]:
        """Goals of ``owner`` with ``updated_at`` after ``since`` (all if None)."""

    @abstractmethod
    def get_completion_changes_since(
        self, owner: Optional[str], since: Optional[datetime]
    ) -> list[Completion]:
        """Completions of goals owned by ``owner`` changed after ``since``."""

    @abstractmethod
    def list_goals(
        self,
        owner: Optional[str],
        include_archived: bool = False,
        include_deleted: bool = False,
    ) -> list[Goal]:
        """Goals of ``owner`` ordered by position."""
