"""Tests for the storage backends and their conditional upserts."""

import json
import tempfile
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from habitsync.storage.base import StorageError
from habitsync.storage.json_store import JsonFileStorage
from habitsync.storage.memory import InMemoryStorage
from habitsync.tracking.models import Completion, Goal

BASE = datetime(2026, 1, 1, tzinfo=timezone.utc)

BACKENDS = ["memory", "json"]


def t(seconds: int) -> datetime:
    return BASE + timedelta(seconds=seconds)


def _make(backend: str, tmpdir: str):
    if backend == "memory":
        return InMemoryStorage()
    return JsonFileStorage(tmpdir)


def _goal(updated: int, goal_id: str = "g1", owner: str = "alice", **overrides) -> Goal:
    data = dict(
        id=goal_id,
        name="Read",
        color="#ff0000",
        position=0,
        owner=owner,
        created_at=t(0),
        updated_at=t(updated),
    )
    data.update(overrides)
    return Goal(**data)


def _completion(updated: int, goal_id: str = "g1", date: str = "2026-01-05", deleted: bool = False) -> Completion:
    return Completion(
        goal_id=goal_id,
        date=date,
        created_at=t(0),
        updated_at=t(updated),
        deleted_at=t(updated) if deleted else None,
    )


@pytest.mark.parametrize("backend", BACKENDS)
def test_upsert_goal_only_if_newer(backend):
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _make(backend, tmpdir)
        assert store.upsert_goal(_goal(100))
        assert not store.upsert_goal(_goal(100, name="Same time"))
        assert not store.upsert_goal(_goal(50, name="Older"))
        assert store.upsert_goal(_goal(200, name="Newer"))

        stored = store.get_goal_by_id("g1")
        assert stored.name == "Newer"
        assert stored.updated_at == t(200)


@pytest.mark.parametrize("backend", BACKENDS)
def test_upsert_goal_keeps_created_at(backend):
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _make(backend, tmpdir)
        store.upsert_goal(_goal(100, created_at=t(1)))
        assert store.upsert_goal(_goal(200, name="Renamed", created_at=t(150)))

        stored = store.get_goal_by_id("g1")
        assert stored.name == "Renamed"
        assert stored.created_at == t(1)


@pytest.mark.parametrize("backend", BACKENDS)
def test_upsert_goal_refuses_other_owner(backend):
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _make(backend, tmpdir)
        store.upsert_goal(_goal(100, name="Alice's"))

        assert not store.upsert_goal(_goal(200, owner="mallory", name="Mallory's"))

        stored = store.get_goal_by_id("g1")
        assert stored.owner == "alice"
        assert stored.name == "Alice's"
        assert stored.updated_at == t(100)


@pytest.mark.parametrize("backend", BACKENDS)
def test_completion_lookup_hides_tombstones_by_default(backend):
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _make(backend, tmpdir)
        store.upsert_completion(_completion(100, deleted=True))

        assert store.get_completion_by_goal_and_date("g1", "2026-01-05") is None
        found = store.get_completion_by_goal_and_date("g1", "2026-01-05", include_deleted=True)
        assert found.id == "g1-2026-01-05"
        assert found.deleted_at == t(100)


@pytest.mark.parametrize("backend", BACKENDS)
def test_upsert_completion_tie_revives_tombstone(backend):
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _make(backend, tmpdir)
        store.upsert_completion(_completion(100, deleted=True))

        assert not store.upsert_completion(_completion(100, deleted=True))
        assert store.upsert_completion(_completion(100))
        # An equal-time tombstone never replaces a live row.
        assert not store.upsert_completion(_completion(100, deleted=True))

        assert store.get_completion_by_goal_and_date("g1", "2026-01-05") is not None


@pytest.mark.parametrize("backend", BACKENDS)
def test_changes_since_filters_by_owner_and_time(backend):
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _make(backend, tmpdir)
        store.upsert_goal(_goal(100, goal_id="a1"))
        store.upsert_goal(_goal(300, goal_id="a2", deleted_at=t(300)))
        store.upsert_goal(_goal(400, goal_id="b1", owner="bob"))
        store.upsert_completion(_completion(150, goal_id="a1"))
        store.upsert_completion(_completion(250, goal_id="a1", date="2026-01-06", deleted=True))
        store.upsert_completion(_completion(500, goal_id="b1"))

        assert [g.id for g in store.get_goal_changes_since("alice", None)] == ["a1", "a2"]
        assert [g.id for g in store.get_goal_changes_since("alice", t(100))] == ["a2"]
        assert [c.date for c in store.get_completion_changes_since("alice", t(150))] == ["2026-01-06"]
        assert len(store.get_completion_changes_since("alice", None)) == 2
        assert [c.goal_id for c in store.get_completion_changes_since("bob", None)] == ["b1"]


@pytest.mark.parametrize("backend", BACKENDS)
def test_list_goals_orders_and_filters(backend):
    with tempfile.TemporaryDirectory() as tmpdir:
        store = _make(backend, tmpdir)
        store.upsert_goal(_goal(100, goal_id="g1", position=2))
        store.upsert_goal(_goal(100, goal_id="g2", position=1))
        store.upsert_goal(_goal(100, goal_id="g3", position=0, archived_at=t(50)))
        store.upsert_goal(_goal(100, goal_id="g4", position=3, deleted_at=t(100)))

        assert [g.id for g in store.list_goals("alice")] == ["g2", "g1"]
        everything = store.list_goals("alice", include_archived=True, include_deleted=True)
        assert [g.id for g in everything] == ["g3", "g2", "g1", "g4"]


def test_json_store_persists_across_instances():
    with tempfile.TemporaryDirectory() as tmpdir:
        JsonFileStorage(tmpdir).upsert_goal(_goal(100))
        JsonFileStorage(tmpdir).upsert_completion(_completion(105))

        reopened = JsonFileStorage(tmpdir)
        assert reopened.get_goal_by_id("g1").updated_at == t(100)
        assert reopened.get_completion_by_goal_and_date("g1", "2026-01-05").updated_at == t(105)

        rows = json.loads((Path(tmpdir) / "completions.json").read_text())
        assert rows[0]["id"] == "g1-2026-01-05"


def test_json_store_corrupt_file_raises():
    with tempfile.TemporaryDirectory() as tmpdir:
        (Path(tmpdir) / "goals.json").write_text("{not json")
        store = JsonFileStorage(tmpdir)

        with pytest.raises(StorageError):
            store.get_goal_by_id("g1")
        with pytest.raises(StorageError):
            store.upsert_goal(_goal(100))


def test_memory_store_returns_copies():
    store = InMemoryStorage()
    store.upsert_goal(_goal(100))

    fetched = store.get_goal_by_id("g1")
    fetched.name = "Mutated"
    assert store.get_goal_by_id("g1").name == "Read"


# --- Concurrent writers ---


def _race_upserts(stores: list, writers: int = 16) -> None:
    """Each writer upserts the shared goal g1 plus a goal of its own."""
    start = threading.Barrier(writers)

    def write(n: int) -> None:
        store = stores[n % len(stores)]
        start.wait()
        store.upsert_goal(_goal(100 + n, name=f"writer-{n}"))
        store.upsert_goal(_goal(100 + n, goal_id=f"own-{n}"))
        store.upsert_completion(_completion(100 + n))

    threads = [threading.Thread(target=write, args=(n,)) for n in range(writers)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()


def test_memory_store_concurrent_upserts_keep_newest():
    store = InMemoryStorage()
    _race_upserts([store])

    shared = store.get_goal_by_id("g1")
    assert shared.name == "writer-15"
    assert shared.updated_at == t(115)
    ids = {g.id for g in store.get_goal_changes_since("alice", None)}
    assert ids == {"g1"} | {f"own-{n}" for n in range(16)}
    assert store.get_completion_by_goal_and_date("g1", "2026-01-05").updated_at == t(115)


def test_json_store_instances_sharing_a_directory_lose_no_writes():
    with tempfile.TemporaryDirectory() as tmpdir:
        _race_upserts([JsonFileStorage(tmpdir), JsonFileStorage(tmpdir)])

        reopened = JsonFileStorage(tmpdir)
        shared = reopened.get_goal_by_id("g1")
        assert shared.name == "writer-15"
        assert shared.updated_at == t(115)
        ids = {g.id for g in reopened.get_goal_changes_since("alice", None)}
        assert ids == {"g1"} | {f"own-{n}" for n in range(16)}
        assert reopened.get_completion_by_goal_and_date("g1", "2026-01-05").updated_at == t(115)
        assert not list(Path(tmpdir).glob(".tmp_*"))


class SlowGoalReader(JsonFileStorage):
    """Pauses between reading and rewriting goals.json on its first upsert."""

    def __init__(self, base_dir, reading: threading.Event):
        super().__init__(base_dir)
        self._reading = reading

    def _read_json(self, path):
        data = super()._read_json(path)
        if path.name == "goals.json" and not self._reading.is_set():
            self._reading.set()
            time.sleep(0.2)
        return data


def test_json_store_write_from_another_instance_is_not_overwritten():
    with tempfile.TemporaryDirectory() as tmpdir:
        reading = threading.Event()
        slow = SlowGoalReader(tmpdir, reading)
        other = JsonFileStorage(tmpdir)

        def write_other() -> None:
            reading.wait()
            other.upsert_goal(_goal(100, goal_id="g2"))

        th = threading.Thread(target=write_other)
        th.start()
        slow.upsert_goal(_goal(100, goal_id="g1"))
        th.join()

        ids = [g.id for g in JsonFileStorage(tmpdir).get_goal_changes_since("alice", None)]
        assert sorted(ids) == ["g1", "g2"]
