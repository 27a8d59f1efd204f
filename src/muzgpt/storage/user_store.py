"""Flat-file user database (JSON + fcntl.flock + atomic write).

Every read-modify-write runs inside a per-process lock and an exclusive
``flock`` on a sidecar lock file, so concurrent requests never overwrite each
other's changes. The file is replaced atomically on every write.
"""

import fcntl
import json
import os
import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

import structlog
from pydantic import ValidationError

from muzgpt.models.mode import Tier
from muzgpt.models.user import UserRecord

logger = structlog.get_logger()

T = TypeVar("T")


class DuplicateEmailError(Exception):
    """An account with this email already exists."""


class StoreWriteError(Exception):
    """A transaction's changes could not be persisted."""


@dataclass
class UserTable:
    """In-memory view of the database file for one transaction."""

    users: list[UserRecord] = field(default_factory=list)
    processed_events: list[str] = field(default_factory=list)
    readable: bool = True

    def by_id(self, user_id: str) -> UserRecord | None:
        return next((u for u in self.users if u.id == user_id), None)

    def by_email(self, email: str) -> UserRecord | None:
        email = email.lower()
        return next((u for u in self.users if u.email.lower() == email), None)


class UserStore:
    """JSON-file backed user records.

    Args:
        path: Location of the users file. Parent directories are created.
    """

    def __init__(self, path: Path):
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock_path = path.with_name(path.name + ".lock")
        self._thread_lock = threading.Lock()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._thread_lock, open(self._lock_path, "w") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)

    def _read(self) -> UserTable:
        if not self.path.exists():
            return UserTable()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if isinstance(data, list):
                data = {"users": data}
            return UserTable(
                users=[UserRecord.model_validate(u) for u in data.get("users", [])],
                processed_events=list(data.get("processedEvents", [])),
            )
        except (OSError, ValueError, ValidationError):
            # Unreadable file reads as empty and is never overwritten.
            logger.exception("user_store_read_failed", path=str(self.path))
            return UserTable(readable=False)

    def _write(self, table: UserTable) -> bool:
        if not table.readable:
            logger.error("user_store_write_skipped", path=str(self.path))
            return False
        payload = {
            "users": [
                u.model_dump(mode="json", by_alias=True) for u in table.users
            ],
            "processedEvents": table.processed_events,
        }
        tmp_name: str | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self.path.parent, delete=False, suffix=".json", encoding="utf-8"
            ) as tmp:
                tmp_name = tmp.name
                json.dump(payload, tmp, indent=2)
            os.replace(tmp_name, self.path)
        except OSError:
            logger.exception("user_store_write_failed", path=str(self.path))
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            return False
        return True

    @contextmanager
    def transaction(self) -> Iterator[UserTable]:
        """Lock, load, yield the table and write it back on clean exit.

        Raises:
            StoreWriteError: The table could not be written back.
        """
        with self._locked():
            table = self._read()
            yield table
            if not self._write(table):
                raise StoreWriteError(str(self.path))

    def all(self) -> list[UserRecord]:
        with self._locked():
            return self._read().users

    def get(self, user_id: str) -> UserRecord | None:
        with self._locked():
            return self._read().by_id(user_id)

    def find_by_email(self, email: str) -> UserRecord | None:
        with self._locked():
            return self._read().by_email(email)

    def add(self, user: UserRecord) -> UserRecord:
        """Insert a new account.

        Raises:
            DuplicateEmailError: If the email is already registered.
        """
        with self.transaction() as table:
            if table.by_email(user.email) is not None:
                raise DuplicateEmailError(user.email)
            table.users.append(user)
        logger.info("user_created", user_id=user.id, provider=user.auth_provider.value)
        return user

    def get_or_create(self, email: str, factory: Callable[[], UserRecord]) -> UserRecord:
        """Return the account for ``email``, creating it with ``factory`` if absent."""
        with self.transaction() as table:
            user = table.by_email(email)
            if user is None:
                user = factory()
                table.users.append(user)
                logger.info("user_created", user_id=user.id, provider=user.auth_provider.value)
            return user

    def update(self, user_id: str, mutate: Callable[[UserRecord], T]) -> UserRecord | None:
        """Apply ``mutate`` to one record and persist it. Returns None if missing."""
        with self.transaction() as table:
            user = table.by_id(user_id)
            if user is None:
                return None
            mutate(user)
            return user

    def elevate_tier(
        self, user_id: str, event_id: str | None = None
    ) -> tuple[UserRecord | None, bool]:
        """Set a user's tier to premium.

        When ``event_id`` is given it is recorded in the same write, and a
        replay of an already processed event changes nothing.

        Returns:
            The user (None if unknown) and whether the tier actually changed.
        """
        with self.transaction() as table:
            user = table.by_id(user_id)
            if event_id is not None:
                if event_id in table.processed_events:
                    return user, False
                table.processed_events.append(event_id)
            if user is None or user.tier == Tier.PREMIUM:
                return user, False
            user.tier = Tier.PREMIUM
        logger.info("user_upgraded", user_id=user_id, event_id=event_id)
        return user, True
