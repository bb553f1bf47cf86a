"""File-based JSON storage for goals and completions.

Provides the :class:`SyncStorage` interface backed by simple JSON files
under ``~/.habitsync/``.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Union

from habitsync.storage.base import StorageError, SyncStorage, completion_wins, is_newer
from habitsync.tracking.models import Completion, Goal, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)


def _ts(value: Optional[str]) -> Optional[datetime]:
    return parse_timestamp(value) if value else None


class JsonFileStorage(SyncStorage):
    """File-based storage for goals and completions.

    Storage path: ``~/.habitsync/`` with:
    - ``goals.json`` -- list of goal dicts
    - ``completions.json`` -- list of completion dicts

    Every access holds an exclusive ``flock`` on ``.lock`` in the data
    directory, so conditional upserts stay atomic across threads, instances
    and processes sharing the directory.
    """

    def __init__(self, base_dir: Optional[Union[str, Path]] = None) -> None:
        if base_dir is None:
            self._base = Path.home() / ".habitsync"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._goals_path = self._base / "goals.json"
        self._completions_path = self._base / "completions.json"
        self._lock_path = self._base / ".lock"
        self._thread_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _lock(self) -> Iterator[None]:
        with self._thread_lock:
            try:
                lock_file = open(self._lock_path, "a")
            except OSError as exc:
                raise StorageError(f"cannot open lock file: {exc}") from exc
            with lock_file:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _read_json(self, path: Path) -> list[dict]:
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            raise StorageError(f"cannot read {path.name}: {exc}") from exc
        if not isinstance(data, list):
            raise StorageError(f"{path.name} does not contain a list")
        return data

    def _write_json(self, path: Path, data: list[dict]) -> None:
        try:
            fd, tmp = tempfile.mkstemp(dir=self._base, prefix=".tmp_", suffix=".json")
        except OSError as exc:
            raise StorageError(f"cannot write {path.name}: {exc}") from exc
        try:
            with os.fdopen(fd, "w") as f:
                f.write(json.dumps(data, indent=2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError as exc:
            Path(tmp).unlink(missing_ok=True)
            raise StorageError(f"cannot write {path.name}: {exc}") from exc

    @staticmethod
    def _goal_from_dict(d: dict) -> Goal:
        return Goal(
            id=d["id"],
            name=d.get("name", ""),
            color=d.get("color", ""),
            position=d.get("position", 0),
            owner=d.get("owner"),
            created_at=_ts(d.get("created_at")),
            updated_at=_ts(d.get("updated_at")),
            archived_at=_ts(d.get("archived_at")),
            deleted_at=_ts(d.get("deleted_at")),
        )

    @staticmethod
    def _goal_to_dict(g: Goal) -> dict:
        return {
            "id": g.id,
            "name": g.name,
            "color": g.color,
            "position": g.position,
            "owner": g.owner,
            "created_at": format_timestamp(g.created_at),
            "updated_at": format_timestamp(g.updated_at),
            "archived_at": format_timestamp(g.archived_at),
            "deleted_at": format_timestamp(g.deleted_at),
        }

    @staticmethod
    def _completion_from_dict(d: dict) -> Completion:
        return Completion(
            id=d.get("id", ""),
            goal_id=d["goal_id"],
            date=d["date"],
            created_at=_ts(d.get("created_at")),
            updated_at=_ts(d.get("updated_at")),
            deleted_at=_ts(d.get("deleted_at")),
        )

    @staticmethod
    def _completion_to_dict(c: Completion) -> dict:
        return {
            "id": c.id,
            "goal_id": c.goal_id,
            "date": c.date,
            "created_at": format_timestamp(c.created_at),
            "updated_at": format_timestamp(c.updated_at),
            "deleted_at": format_timestamp(c.deleted_at),
        }

    def _owned_goal_ids(self, owner: Optional[str]) -> set[str]:
        return {d["id"] for d in self._read_json(self._goals_path) if d.get("owner") == owner}

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_goal_by_id(self, goal_id: str) -> Optional[Goal]:
        with self._lock():
            for d in self._read_json(self._goals_path):
                if d["id"] == goal_id:
                    return self._goal_from_dict(d)
        return None

    def get_completion_by_goal_and_date(
        self, goal_id: str, date: str, include_deleted: bool = False
    ) -> Optional[Completion]:
        with self._lock():
            for d in self._read_json(self._completions_path):
                if d["goal_id"] == goal_id and d["date"] == date:
                    if d.get("deleted_at") and not include_deleted:
                        return None
                    return self._completion_from_dict(d)
        return None

    def list_goals(
        self,
        owner: Optional[str],
        include_archived: bool = False,
        include_deleted: bool = False,
    ) -> list[Goal]:
        with self._lock():
            goals = [
                self._goal_from_dict(d)
                for d in self._read_json(self._goals_path)
                if d.get("owner") == owner
            ]
        goals = [
            g for g in goals
            if (include_archived or not g.is_archived) and (include_deleted or not g.is_deleted)
        ]
        return sorted(goals, key=lambda g: (g.position, g.created_at))

    # ------------------------------------------------------------------
    # Conditional upserts
    # ------------------------------------------------------------------

    def upsert_goal(self, goal: Goal) -> bool:
        with self._lock():
            goals = self._read_json(self._goals_path)
            for i, d in enumerate(goals):
                if d["id"] != goal.id:
                    continue
                stored = self._goal_from_dict(d)
                if stored.owner != goal.owner:
                    logger.debug("Goal %s not written: owned by %s", goal.id, stored.owner)
                    return False
                if not is_newer(goal.updated_at, stored.updated_at):
                    logger.debug("Goal %s not written: stored copy is as new", goal.id)
                    return False
                row = self._goal_to_dict(goal)
                row["created_at"] = d.get("created_at")
                row["owner"] = d.get("owner")
                goals[i] = row
                break
            else:
                goals.append(self._goal_to_dict(goal))
            self._write_json(self._goals_path, goals)
            return True

    def upsert_completion(self, completion: Completion) -> bool:
        with self._lock():
            completions = self._read_json(self._completions_path)
            for i, d in enumerate(completions):
                if d.get("id") != completion.id:
                    continue
                stored = self._completion_from_dict(d)
                if not completion_wins(completion, stored):
                    logger.debug("Completion %s not written: stored copy is as new", completion.id)
                    return False
                row = self._completion_to_dict(completion)
                row["created_at"] = d.get("created_at")
                completions[i] = row
                break
            else:
                completions.append(self._completion_to_dict(completion))
            self._write_json(self._completions_path, completions)
            return True

    # ------------------------------------------------------------------
    # Change feeds
    # ------------------------------------------------------------------

    def get_goal_changes_since(self, owner: Optional[str], since: Optional[datetime]) -> list[Goal]:
        with self._lock():
            goals = [
                self._goal_from_dict(d)
                for d in self._read_json(self._goals_path)
                if d.get("owner") == owner
            ]
        if since is not None:
            goals = [g for g in goals if g.updated_at > since]
        return sorted(goals, key=lambda g: g.updated_at)

    def get_completion_changes_since(
        self, owner: Optional[str], since: Optional[datetime]
    ) -> list[Completion]:
        with self._lock():
            owned = self._owned_goal_ids(owner)
            completions = [
                self._completion_from_dict(d)
                for d in self._read_json(self._completions_path)
                if d["goal_id"] in owned
            ]
        if since is not None:
            completions = [c for c in completions if c.updated_at > since]
        return sorted(completions, key=lambda c: c.updated_at)
