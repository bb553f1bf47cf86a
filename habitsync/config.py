"""Runtime configuration loaded from environment variables.

Recognised variables:
- ``HABITSYNC_DATA_DIR`` -- directory for the JSON file store (default ``~/.habitsync``)
- ``HABITSYNC_STORAGE`` -- ``json`` or ``memory`` (default ``json``)
- ``HABITSYNC_LOG_LEVEL`` -- stdlib logging level name (default ``INFO``)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from habitsync.storage.base import SyncStorage

STORAGE_BACKENDS = ("json", "memory")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Settings:
    """Service settings."""

    data_dir: Path
    storage: str = "json"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir).expanduser()
        self.storage = self.storage.lower()
        if self.storage not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unknown storage backend '{self.storage}', "
                f"expected one of: {', '.join(STORAGE_BACKENDS)}"
            )
        self.log_level = self.log_level.upper()

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            data_dir=Path(os.environ.get("HABITSYNC_DATA_DIR", Path.home() / ".habitsync")),
            storage=os.environ.get("HABITSYNC_STORAGE", "json"),
            log_level=os.environ.get("HABITSYNC_LOG_LEVEL", "INFO"),
        )

    def build_storage(self) -> SyncStorage:
        """Instantiate the configured storage backend."""
        if self.storage == "memory":
            from habitsync.storage.memory import InMemoryStorage

            return InMemoryStorage()

        from habitsync.storage.json_store import JsonFileStorage

        return JsonFileStorage(self.data_dir)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the CLI and the web app."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
