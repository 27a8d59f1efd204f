"""Event builders for messages pushed to the browser."""

from typing import Any

from muzgpt.models.chat import Message
from muzgpt.models.profile import XPEvent

# Server → Browser event builders


def state_event(snapshot: dict[str, Any]) -> dict[str, Any]:
    """Build a full state snapshot event."""
    return {"type": "state", **snapshot}


def chunk_event(message_id: str, fragment: str, text: str) -> dict[str, Any]:
    """Build a streaming fragment event carrying the accumulated text."""
    return {
        "type": "chunk",
        "message_id": message_id,
        "fragment": fragment,
        "text": text,
    }


def turn_complete_event(
    message: Message, chat_id: str | None, daily_usage: int, xp: int, level: int
) -> dict[str, Any]:
    return {
        "type": "turn_complete",
        "message": message.model_dump(mode="json", by_alias=True),
        "chat_id": chat_id,
        "daily_usage": daily_usage,
        "xp": xp,
        "level": level,
    }


def upgrade_prompt_event(reason: str, tier: str, limit: int | None = None) -> dict[str, Any]:
    """Build an event asking the browser to open the premium dialog."""
    event: dict[str, Any] = {"type": "upgrade_prompt", "reason": reason, "tier": tier}
    if limit is not None:
        event["limit"] = limit
    return event


def xp_event(event: XPEvent) -> dict[str, Any]:
    return {"type": "xp_event", **event.model_dump()}


def xp_event_expired(event_id: str) -> dict[str, Any]:
    return {"type": "xp_event_expired", "id": event_id}


def checkout_event(url: str) -> dict[str, Any]:
    return {"type": "checkout", "url": url}


def error_event(message: str, code: str = "error") -> dict[str, Any]:
    return {"type": "error", "code": code, "message": message}
