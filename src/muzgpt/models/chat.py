"""Chat message and conversation models."""

import uuid
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from muzgpt.models.mode import Mode

TITLE_LENGTH = 35
UNTITLED = "New Link"


def new_id() -> str:
    return uuid.uuid4().hex


class Role(StrEnum):
    """Message author."""

    USER = "user"
    MODEL = "model"


class Message(BaseModel):
    """A single chat message."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=new_id)
    role: Role
    text: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)
    mode: Mode | None = None


def derive_title(messages: list[Message]) -> str:
    """Conversation title from the first message's text."""
    if not messages or not messages[0].text:
        return UNTITLED
    return messages[0].text[:TITLE_LENGTH] + "..."


class ChatSession(BaseModel):
    """A saved conversation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=new_id)
    title: str = UNTITLED
    messages: list[Message] = Field(default_factory=list)
    mode: Mode = Mode.GENERAL
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def start(cls, messages: list[Message], mode: Mode) -> "ChatSession":
        """Create a new session titled after its first message."""
        return cls(title=derive_title(messages), messages=list(messages), mode=mode)
