"""Account endpoints: email verification signup, login, Google sign-in, record sync."""

import asyncio
import secrets
from datetime import datetime

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from muzgpt.api.deps import get_pending_verifications, get_user_store
from muzgpt.api.schemas import (
    GoogleAuthRequest,
    LoginRequest,
    SendVerificationRequest,
    UpdateUserRequest,
    VerifyCodeRequest,
)
from muzgpt.config import Settings, get_settings
from muzgpt.models.user import UPDATABLE_FIELDS, AuthProvider, UserRecord, UserUpdates
from muzgpt.services.email import send_verification_email
from muzgpt.services.google import GoogleAuthError, fetch_google_profile
from muzgpt.services.passwords import hash_password, verify_password
from muzgpt.storage.pending import PendingVerifications
from muzgpt.storage.user_store import DuplicateEmailError, StoreWriteError, UserStore

logger = structlog.get_logger()
router = APIRouter(prefix="/auth", tags=["auth"])

STORE_UNAVAILABLE = "User database unavailable"


def _touch(user: UserRecord) -> None:
    user.reset_daily_usage_if_stale()
    user.last_active = datetime.now()


@router.post("/send-verification")
async def send_verification(
    body: SendVerificationRequest,
    settings: Settings = Depends(get_settings),
    store: UserStore = Depends(get_user_store),
    pending: PendingVerifications = Depends(get_pending_verifications),
) -> dict:
    """Start signup by issuing a six-digit code for ``email``."""
    email = body.email.strip().lower()
    if not email or not body.password:
        raise HTTPException(status_code=400, detail="Email and password required")
    if store.find_by_email(email) is not None:
        raise HTTPException(
            status_code=409, detail="Email already registered. Please login instead."
        )

    username = (body.username or "").strip() or email.split("@")[0]
    password_hash = await asyncio.to_thread(hash_password, body.password)
    entry = pending.create(email, username, password_hash)
    delivered = await send_verification_email(settings, email, entry.code)
    logger.info("verification_code_issued", email=email, delivered=delivered)

    response: dict = {"success": True, "message": "Verification code sent"}
    if not settings.email_configured:
        response["demoCode"] = entry.code
    return response


@router.post("/verify-code")
async def verify_code(
    body: VerifyCodeRequest,
    store: UserStore = Depends(get_user_store),
    pending: PendingVerifications = Depends(get_pending_verifications),
) -> dict:
    """Finish signup: check the code and create the account."""
    email = body.email.strip().lower()
    entry = pending.get(email)
    if entry is None:
        raise HTTPException(status_code=404, detail="No pending verification for this email.")
    if pending.is_expired(entry):
        pending.discard(email)
        raise HTTPException(
            status_code=410, detail="Verification code expired. Please request a new one."
        )
    if not secrets.compare_digest(entry.code, body.code.strip()):
        raise HTTPException(status_code=400, detail="Invalid verification code.")

    user = UserRecord(
        email=entry.email,
        password_hash=entry.password_hash,
        username=entry.username,
    )
    try:
        store.add(user)
    except DuplicateEmailError:
        pending.discard(email)
        raise HTTPException(
            status_code=409, detail="Email already registered. Please login instead."
        )
    except StoreWriteError:
        raise HTTPException(
            status_code=500, detail="Account could not be saved. Please retry."
        )
    pending.discard(email)
    return {"success": True, "user": user.public()}


@router.post("/login")
async def login(body: LoginRequest, store: UserStore = Depends(get_user_store)) -> dict:
    email = body.email.strip().lower()
    if not email or not body.password:
        raise HTTPException(status_code=400, detail="Email and password required")

    user = store.find_by_email(email)
    if user is None:
        raise HTTPException(status_code=404, detail="No account found for this email.")
    if not await asyncio.to_thread(verify_password, body.password, user.password_hash):
        logger.info("login_rejected", user_id=user.id)
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    try:
        user = store.update(user.id, _touch)
    except StoreWriteError:
        raise HTTPException(status_code=500, detail=STORE_UNAVAILABLE)
    if user is None:
        raise HTTPException(status_code=404, detail="No account found for this email.")
    logger.info("user_logged_in", user_id=user.id)
    return {"success": True, "user": user.public()}


@router.post("/google")
async def google_auth(
    body: GoogleAuthRequest, store: UserStore = Depends(get_user_store)
) -> dict:
    """Sign in with a Google access token, creating the account on first use."""
    if not body.access_token:
        raise HTTPException(status_code=401, detail="Google authentication failed.")
    try:
        profile = await fetch_google_profile(body.access_token)
    except GoogleAuthError:
        logger.info("google_token_rejected")
        raise HTTPException(status_code=401, detail="Google authentication failed.")
    except httpx.HTTPError:
        logger.exception("google_userinfo_failed")
        raise HTTPException(status_code=500, detail="Google auth failed")

    try:
        user = store.get_or_create(
            profile.email,
            lambda: UserRecord(
                email=profile.email,
                username=profile.name or profile.email.split("@")[0],
                auth_provider=AuthProvider.GOOGLE,
            ),
        )
        user = store.update(user.id, _touch) or user
    except StoreWriteError:
        raise HTTPException(status_code=500, detail=STORE_UNAVAILABLE)
    return {"success": True, "user": user.public()}


@router.post("/update-user")
async def update_user(
    body: UpdateUserRequest, store: UserStore = Depends(get_user_store)
) -> dict:
    """Mirror client-side counters. Tier can never be set through here."""
    rejected = sorted(set(body.updates) - UPDATABLE_FIELDS)
    if rejected:
        logger.warning("update_user_rejected", user_id=body.user_id, fields=rejected)
        raise HTTPException(
            status_code=400, detail=f"Fields not updatable: {', '.join(rejected)}"
        )
    try:
        updates = UserUpdates.model_validate(body.updates)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid update values")

    try:
        updated = store.update(body.user_id, updates.apply_to)
    except StoreWriteError:
        raise HTTPException(status_code=500, detail=STORE_UNAVAILABLE)
    if updated is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True}


@router.get("/user/{user_id}")
async def get_user(user_id: str, store: UserStore = Depends(get_user_store)) -> dict:
    user = store.get(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user.public()
