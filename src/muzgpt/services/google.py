"""Google OAuth access-token exchange."""

import httpx
import structlog
from pydantic import BaseModel

logger = structlog.get_logger()

GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"


class GoogleAuthError(Exception):
    """Google rejected the access token or returned no usable identity."""


class GoogleProfile(BaseModel):
    email: str
    name: str | None = None


async def fetch_google_profile(
    access_token: str, client: httpx.AsyncClient | None = None
) -> GoogleProfile:
    """Resolve an OAuth access token to the user's Google identity.

    Args:
        access_token: Token obtained by the browser's Google sign-in.
        client: Optional HTTP client (tests inject one with a mock transport).

    Raises:
        GoogleAuthError: Token rejected or profile lacks an email.
        httpx.HTTPError: Transport failure talking to Google.
    """
    headers = {"Authorization": f"Bearer {access_token}"}
    if client is None:
        async with httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0)) as c:
            resp = await c.get(GOOGLE_USERINFO_URL, headers=headers)
    else:
        resp = await client.get(GOOGLE_USERINFO_URL, headers=headers)

    if resp.status_code in (400, 401, 403):
        raise GoogleAuthError(f"token rejected ({resp.status_code})")
    resp.raise_for_status()

    data = resp.json()
    if not data.get("email"):
        raise GoogleAuthError("profile has no email")
    return GoogleProfile(email=data["email"].lower(), name=data.get("name"))
