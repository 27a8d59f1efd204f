"""Browser-style key/value storage persisted as one JSON file per key."""

import fcntl
import json
import os
import tempfile
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger()

PROFILE_KEY = "muzgpt_profile"
SAVED_CHATS_KEY = "muzgpt_saved_chats"


class LocalStorage:
    """Durable client state for a single browser/client.

    Args:
        root: Directory holding this client's records.
    """

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / f"{key}.json"

    def get_item(self, key: str) -> Any | None:
        """Return the decoded record, or None when missing or unreadable."""
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                data = json.load(f)
                fcntl.flock(f, fcntl.LOCK_UN)
        except (OSError, ValueError):
            logger.exception("local_storage_read_failed", key=key)
            return None
        return data

    def set_item(self, key: str, value: Any) -> bool:
        """Write the record atomically. A failed write is logged and dropped."""
        path = self._path(key)
        tmp_name: str | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self.root, delete=False, suffix=".json", encoding="utf-8"
            ) as tmp:
                tmp_name = tmp.name
                json.dump(value, tmp, default=str)
            os.replace(tmp_name, path)
        except OSError:
            logger.exception("local_storage_write_failed", key=key)
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            return False
        return True

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def clear(self) -> None:
        for path in self.root.glob("*.json"):
            path.unlink(missing_ok=True)
