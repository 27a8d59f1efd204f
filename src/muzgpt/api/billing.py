"""Premium checkout, upgrade confirmation and payment webhook."""

import asyncio

import stripe
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from muzgpt.api.deps import get_billing_service, get_user_store
from muzgpt.api.schemas import CheckoutRequest, UpgradeRequest
from muzgpt.services.billing import (
    BillingService,
    BillingUnavailableError,
    PaymentVerificationError,
    completed_checkout,
)
from muzgpt.storage.user_store import StoreWriteError, UserStore

logger = structlog.get_logger()
router = APIRouter(tags=["billing"])


@router.post("/create-checkout-session")
async def create_checkout_session(
    body: CheckoutRequest, billing: BillingService = Depends(get_billing_service)
) -> dict:
    try:
        url = await asyncio.to_thread(billing.create_checkout_url, body.user_id)
    except BillingUnavailableError:
        raise HTTPException(status_code=500, detail="Internal Server Error")
    return {"url": url}


@router.post("/auth/upgrade-premium")
async def upgrade_premium(
    body: UpgradeRequest,
    store: UserStore = Depends(get_user_store),
    billing: BillingService = Depends(get_billing_service),
) -> dict:
    """Redirect-based upgrade confirmation.

    In live mode the referenced checkout session must be paid and belong to
    the user. Repeating a confirmation leaves the tier unchanged.
    """
    if store.get(body.user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    try:
        await asyncio.to_thread(billing.verify_paid_session, body.session_id, body.user_id)
    except PaymentVerificationError as e:
        logger.warning("upgrade_rejected", user_id=body.user_id, reason=str(e))
        raise HTTPException(status_code=400, detail=str(e))
    except BillingUnavailableError:
        raise HTTPException(status_code=500, detail="Payment verification unavailable")

    try:
        user, _ = store.elevate_tier(body.user_id)
    except StoreWriteError:
        raise HTTPException(status_code=500, detail="User database unavailable")
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "tier": user.tier.value}


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    store: UserStore = Depends(get_user_store),
    billing: BillingService = Depends(get_billing_service),
) -> dict:
    """Authoritative upgrade path for signed ``checkout.session.completed`` events."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")
    try:
        event = billing.construct_event(payload, signature)
    except BillingUnavailableError:
        raise HTTPException(status_code=503, detail="Webhook not configured")
    except (ValueError, stripe.SignatureVerificationError):
        logger.warning("webhook_signature_invalid")
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    completed = completed_checkout(event)
    if completed is None:
        return {"received": True}

    event_id, user_id = completed
    if not user_id:
        logger.warning("webhook_missing_user", event_id=event_id)
        return {"received": True}

    try:
        user, changed = store.elevate_tier(user_id, event_id=event_id)
    except StoreWriteError:
        # Non-2xx makes Stripe redeliver the event.
        logger.error("webhook_upgrade_not_saved", event_id=event_id, user_id=user_id)
        raise HTTPException(status_code=500, detail="User database unavailable")
    if user is None:
        logger.warning("webhook_unknown_user", event_id=event_id, user_id=user_id)
    elif not changed:
        logger.info("webhook_replay_ignored", event_id=event_id, user_id=user_id)
    return {"received": True}
