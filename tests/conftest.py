"""Shared fixtures."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from muzgpt.api import auth, billing
from muzgpt.api.deps import get_pending_verifications, get_user_store
from muzgpt.api.routes import router
from muzgpt.config import Settings, get_settings
from muzgpt.storage.local_storage import LocalStorage
from muzgpt.storage.pending import PendingVerifications
from muzgpt.storage.user_store import UserStore


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        project_root=tmp_path,
        openai_api_key="",
        stripe_secret_key=None,
        stripe_webhook_secret=None,
        resend_api_key=None,
    )


@pytest.fixture
def store(tmp_path):
    return UserStore(tmp_path / "db" / "users.json")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def pending(clock):
    return PendingVerifications(ttl_seconds=600, clock=clock)


@pytest.fixture
def local_storage(tmp_path):
    return LocalStorage(tmp_path / "client")


@pytest.fixture
def app(settings, store, pending):
    app = FastAPI()
    app.include_router(router)
    app.include_router(auth.router)
    app.include_router(billing.router)
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_user_store] = lambda: store
    app.dependency_overrides[get_pending_verifications] = lambda: pending
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def signup(client):
    """Register an account through the verification flow and return it."""

    def _signup(email: str = "alice@example.com", password: str = "s3cret-pass", **extra):
        sent = client.post(
            "/auth/send-verification", json={"email": email, "password": password, **extra}
        )
        assert sent.status_code == 200
        verified = client.post(
            "/auth/verify-code", json={"email": email, "code": sent.json()["demoCode"]}
        )
        assert verified.status_code == 200
        return verified.json()["user"]

    return _signup
