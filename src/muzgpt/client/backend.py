"""HTTP client for the auth/billing service and profile mirroring."""

from datetime import date
from enum import StrEnum
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from muzgpt.models.mode import Tier

logger = structlog.get_logger()


class BackendError(Exception):
    """The service answered with an error or could not be reached.

    Attributes:
        status_code: HTTP status, 0 for transport failures.
        detail: Error message from the service.
    """

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class RemoteUser(BaseModel):
    """The backend's authoritative view of an account."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    username: str
    email: str | None = None
    xp: int = 0
    streak: int = 1
    tier: Tier = Tier.FREE
    daily_usage: int = 0
    last_usage_reset: date


class BackendClient:
    """Async client for the MUZGPT service.

    Args:
        base_url: Service root, e.g. ``http://localhost:4242``.
        client: Optional preconfigured ``httpx.AsyncClient``.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _request(self, method: str, path: str, json: dict | None = None) -> Any:
        try:
            resp = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise BackendError(0, str(e)) from e
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("detail", resp.text)
            except ValueError:
                detail = resp.text
            raise BackendError(resp.status_code, str(detail))
        return resp.json()

    async def get_user(self, user_id: str) -> RemoteUser:
        data = await self._request("GET", f"/auth/user/{user_id}")
        return RemoteUser.model_validate(data)

    async def update_user(self, user_id: str, updates: dict[str, Any]) -> None:
        await self._request(
            "POST", "/auth/update-user", json={"userId": user_id, "updates": updates}
        )

    async def create_checkout_session(self, user_id: str) -> str:
        data = await self._request("POST", "/create-checkout-session", json={"userId": user_id})
        return data["url"]

    async def upgrade_premium(self, user_id: str, session_id: str | None = None) -> Tier:
        payload: dict[str, Any] = {"userId": user_id}
        if session_id:
            payload["sessionId"] = session_id
        data = await self._request("POST", "/auth/upgrade-premium", json=payload)
        return Tier(data["tier"])

    async def aclose(self) -> None:
        await self._client.aclose()


class SyncStatus(StrEnum):
    """State of the profile mirror."""

    IDLE = "idle"
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class ProfileSync:
    """Queue of profile field changes awaiting the backend.

    Updates are merged (last value wins per field) and sent together by
    :meth:`push`. A failed push keeps everything queued for the next attempt.

    Args:
        backend: Service client; without one, nothing is queued.
    """

    def __init__(self, backend: BackendClient | None):
        self.backend = backend
        self.status = SyncStatus.IDLE
        self.last_error: str | None = None
        self._pending: dict[str, Any] = {}

    @property
    def pending(self) -> dict[str, Any]:
        return dict(self._pending)

    def queue(self, **updates: Any) -> None:
        if self.backend is None:
            return
        self._pending.update(updates)
        self.status = SyncStatus.PENDING

    async def push(self, user_id: str) -> bool:
        """Send queued updates. Returns True when nothing is left pending."""
        if self.backend is None or not self._pending:
            return True
        if not user_id:
            return False
        batch = dict(self._pending)
        try:
            await self.backend.update_user(user_id, batch)
        except BackendError as e:
            self.status = SyncStatus.FAILED
            self.last_error = e.detail
            logger.warning("profile_sync_failed", user_id=user_id, status_code=e.status_code)
            return False
        for key, value in batch.items():
            if self._pending.get(key) == value:
                del self._pending[key]
        self.status = SyncStatus.SYNCED if not self._pending else SyncStatus.PENDING
        self.last_error = None
        return not self._pending

    def clear(self) -> None:
        self._pending.clear()
        self.status = SyncStatus.IDLE
        self.last_error = None
