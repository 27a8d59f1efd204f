"""Tests for the service client and profile mirroring."""

import httpx
import pytest

from muzgpt.client.backend import BackendClient, BackendError, ProfileSync, SyncStatus
from muzgpt.models.mode import Tier

USER = {
    "id": "u-1",
    "username": "alice",
    "email": "alice@example.com",
    "xp": 50,
    "level": 1,
    "streak": 1,
    "tier": "free",
    "dailyUsage": 2,
    "lastUsageReset": "2025-06-02",
}


def _backend(handler):
    transport = httpx.MockTransport(handler)
    return BackendClient(
        "http://test", client=httpx.AsyncClient(transport=transport, base_url="http://test")
    )


class TestBackendClient:
    async def test_get_user(self):
        backend = _backend(lambda request: httpx.Response(200, json=USER))
        user = await backend.get_user("u-1")
        assert user.id == "u-1"
        assert user.daily_usage == 2
        assert user.tier == Tier.FREE

    async def test_error_detail(self):
        backend = _backend(
            lambda request: httpx.Response(404, json={"detail": "User not found"})
        )
        with pytest.raises(BackendError) as exc:
            await backend.get_user("ghost")
        assert exc.value.status_code == 404
        assert exc.value.detail == "User not found"

    async def test_non_json_error(self):
        backend = _backend(lambda request: httpx.Response(502, text="Bad Gateway"))
        with pytest.raises(BackendError) as exc:
            await backend.get_user("u-1")
        assert exc.value.detail == "Bad Gateway"

    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(BackendError) as exc:
            await _backend(handler).get_user("u-1")
        assert exc.value.status_code == 0

    async def test_upgrade_sends_session(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"success": True, "tier": "premium"})

        tier = await _backend(handler).upgrade_premium("u-1", "cs_1")
        assert tier == Tier.PREMIUM
        assert seen[0].url.path == "/auth/upgrade-premium"
        assert b'"sessionId":"cs_1"' in seen[0].content.replace(b" ", b"")

    async def test_checkout_url(self):
        backend = _backend(lambda request: httpx.Response(200, json={"url": "http://pay"}))
        assert await backend.create_checkout_session("u-1") == "http://pay"


class TestProfileSync:
    async def test_push_sends_merged_batch(self):
        bodies = []

        def handler(request):
            bodies.append(request.content)
            return httpx.Response(200, json={"success": True})

        sync = ProfileSync(_backend(handler))
        sync.queue(xp=65)
        sync.queue(xp=80, dailyUsage=1)
        assert sync.status == SyncStatus.PENDING

        assert await sync.push("u-1") is True
        assert len(bodies) == 1
        assert sync.pending == {}
        assert sync.status == SyncStatus.SYNCED

    async def test_failure_keeps_queue_for_retry(self):
        responses = [httpx.Response(503, json={"detail": "down"}), httpx.Response(200, json={})]
        sync = ProfileSync(_backend(lambda request: responses.pop(0)))
        sync.queue(xp=65)

        assert await sync.push("u-1") is False
        assert sync.status == SyncStatus.FAILED
        assert sync.last_error == "down"
        assert sync.pending == {"xp": 65}

        assert await sync.push("u-1") is True
        assert sync.status == SyncStatus.SYNCED
        assert sync.last_error is None

    async def test_nothing_queued(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert await ProfileSync(_backend(handler)).push("u-1") is True

    async def test_anonymous_push_waits(self):
        sync = ProfileSync(_backend(lambda request: httpx.Response(200, json={})))
        sync.queue(xp=1)
        assert await sync.push("") is False
        assert sync.pending == {"xp": 1}

    async def test_offline_ignores_queue(self):
        sync = ProfileSync(None)
        sync.queue(xp=1)
        assert sync.pending == {}
        assert await sync.push("u-1") is True
