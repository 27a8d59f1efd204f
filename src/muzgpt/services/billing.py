"""Stripe checkout and payment verification."""

from typing import Any
from urllib.parse import urlencode

import stripe
import structlog

from muzgpt.config import Settings

logger = structlog.get_logger()

PRODUCT_NAME = "MUZGPT Premium"
PRODUCT_DESCRIPTION = "Unlock unlimited messages, Startup Mode, and Private Compute."
CHECKOUT_COMPLETED = "checkout.session.completed"


class BillingUnavailableError(Exception):
    """The payment processor could not be reached or is not configured."""


class PaymentVerificationError(Exception):
    """A checkout session does not prove payment for this user."""


def _field(obj: Any, name: str) -> Any:
    """Read a key from a Stripe object or plain dict."""
    try:
        return obj[name]
    except (KeyError, TypeError):
        return getattr(obj, name, None)


def metadata_user_id(obj: Any) -> str | None:
    metadata = _field(obj, "metadata")
    if not metadata:
        return None
    return _field(metadata, "userId") or None


class BillingService:
    """Creates checkout sessions and confirms payments.

    Without a Stripe secret key the service runs in demo mode: checkout
    redirects straight to the success URL and upgrades need no proof.

    Args:
        settings: Application settings.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def demo_mode(self) -> bool:
        return not self.settings.stripe_configured

    def _redirect(self, **params: str) -> str:
        return f"{self.settings.domain}?{urlencode(params)}"

    def create_checkout_url(self, user_id: str) -> str:
        """Return the URL the browser should visit to pay.

        Raises:
            BillingUnavailableError: Stripe rejected the request.
        """
        if self.demo_mode:
            logger.warning("stripe_demo_mode", user_id=user_id)
            return self._redirect(success="true", demo="true", userId=user_id)

        # Stripe substitutes the real id for the literal placeholder.
        success_url = (
            self._redirect(success="true", userId=user_id)
            + "&session_id={CHECKOUT_SESSION_ID}"
        )
        try:
            session = stripe.checkout.Session.create(
                api_key=self.settings.stripe_secret_key,
                line_items=[
                    {
                        "price_data": {
                            "currency": self.settings.premium_currency,
                            "product_data": {
                                "name": PRODUCT_NAME,
                                "description": PRODUCT_DESCRIPTION,
                            },
                            "unit_amount": self.settings.premium_price_cents,
                        },
                        "quantity": 1,
                    }
                ],
                mode="payment",
                success_url=success_url,
                cancel_url=self._redirect(canceled="true"),
                metadata={"userId": user_id},
            )
        except stripe.StripeError as e:
            logger.exception("checkout_session_failed", user_id=user_id)
            raise BillingUnavailableError(str(e)) from e
        logger.info("checkout_session_created", user_id=user_id, session_id=session.id)
        return session.url

    def verify_paid_session(self, session_id: str | None, user_id: str) -> None:
        """Confirm that ``session_id`` is a paid checkout for ``user_id``.

        Raises:
            PaymentVerificationError: Missing, unpaid or foreign session.
            BillingUnavailableError: Stripe could not be queried.
        """
        if self.demo_mode:
            return
        if not session_id:
            raise PaymentVerificationError("sessionId is required")
        try:
            session = stripe.checkout.Session.retrieve(
                session_id, api_key=self.settings.stripe_secret_key
            )
        except stripe.InvalidRequestError as e:
            raise PaymentVerificationError("Unknown checkout session") from e
        except stripe.StripeError as e:
            logger.exception("checkout_session_lookup_failed", session_id=session_id)
            raise BillingUnavailableError(str(e)) from e

        if _field(session, "payment_status") != "paid":
            raise PaymentVerificationError("Payment not completed")
        owner = metadata_user_id(session)
        if owner is None:
            raise PaymentVerificationError("Checkout session has no owner")
        if owner != user_id:
            raise PaymentVerificationError("Checkout session belongs to another user")

    def construct_event(self, payload: bytes, signature: str) -> Any:
        """Verify a webhook delivery and return the parsed event.

        Raises:
            BillingUnavailableError: No webhook secret configured.
            ValueError: Malformed payload.
            stripe.SignatureVerificationError: Bad signature.
        """
        secret = self.settings.stripe_webhook_secret
        if not secret:
            raise BillingUnavailableError("Webhook secret not configured")
        return stripe.Webhook.construct_event(payload, signature, secret)


def completed_checkout(event: Any) -> tuple[str, str | None] | None:
    """Extract ``(event_id, user_id)`` from a paid checkout-completed event."""
    if _field(event, "type") != CHECKOUT_COMPLETED:
        return None
    obj = _field(_field(event, "data"), "object")
    if obj is None or _field(obj, "payment_status") != "paid":
        return None
    return _field(event, "id"), metadata_user_id(obj)
