"""Shared FastAPI dependencies."""

import functools

from fastapi import Depends

from muzgpt.config import Settings, get_settings
from muzgpt.services.billing import BillingService
from muzgpt.storage.pending import PendingVerifications
from muzgpt.storage.user_store import UserStore


@functools.lru_cache
def get_user_store() -> UserStore:
    """Process-wide user database."""
    return UserStore(get_settings().users_db_path)


@functools.lru_cache
def get_pending_verifications() -> PendingVerifications:
    """Process-wide pending signup codes."""
    return PendingVerifications(ttl_seconds=get_settings().verification_ttl_seconds)


def get_billing_service(settings: Settings = Depends(get_settings)) -> BillingService:
    return BillingService(settings)
