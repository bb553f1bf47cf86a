"""Storage — record stores backing the sync engine.

Every backend implements :class:`SyncStorage` with per-record conditional
upserts ("write only if newer"), which is the sole concurrency-control
primitive the sync engine relies on.
"""

from habitsync.storage.base import StorageError, SyncStorage

__all__ = ["StorageError", "SyncStorage"]
