"""Verification email delivery through Resend."""

import asyncio

import resend
import structlog

from muzgpt.config import Settings

logger = structlog.get_logger()

SUBJECT = "Your MUZGPT Verification Code"


def _render(code: str, ttl_minutes: int) -> str:
    return (
        "<p>Welcome to MUZGPT.</p>"
        f"<h1>{code}</h1>"
        f"<p>This code expires in {ttl_minutes} minutes.</p>"
    )


async def send_verification_email(settings: Settings, email: str, code: str) -> bool:
    """Send the signup code. Failures are logged and reported as False."""
    if not settings.email_configured:
        return False
    resend.api_key = settings.resend_api_key
    params = {
        "from": settings.email_from,
        "to": [email],
        "subject": SUBJECT,
        "html": _render(code, settings.verification_ttl_seconds // 60),
    }
    try:
        await asyncio.to_thread(resend.Emails.send, params)
    except Exception:
        logger.exception("verification_email_failed", email=email)
        return False
    logger.info("verification_email_sent", email=email)
    return True
