"""In-memory pending email verifications.

Entries live only as long as the process; a restart drops every pending
signup and users simply request a new code.
"""

import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass


def generate_code() -> str:
    """Six-digit numeric verification code."""
    return str(100000 + secrets.randbelow(900000))


@dataclass
class PendingVerification:
    email: str
    code: str
    expires_at: float
    username: str
    password_hash: str

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class PendingVerifications:
    """Email-keyed signup codes with a fixed time-to-live.

    Args:
        ttl_seconds: Lifetime of each code.
        clock: Time source returning seconds; injectable for tests.
    """

    def __init__(self, ttl_seconds: float = 600, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, PendingVerification] = {}
        self._lock = threading.Lock()

    def create(self, email: str, username: str, password_hash: str) -> PendingVerification:
        """Store (or replace) the pending signup for ``email``."""
        entry = PendingVerification(
            email=email.lower(),
            code=generate_code(),
            expires_at=self._clock() + self.ttl_seconds,
            username=username,
            password_hash=password_hash,
        )
        with self._lock:
            self._entries[entry.email] = entry
        return entry

    def get(self, email: str) -> PendingVerification | None:
        with self._lock:
            return self._entries.get(email.lower())

    def is_expired(self, entry: PendingVerification) -> bool:
        return entry.expired(self._clock())

    def discard(self, email: str) -> None:
        with self._lock:
            self._entries.pop(email.lower(), None)

    def purge_expired(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [k for k, v in self._entries.items() if v.expired(now)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)
