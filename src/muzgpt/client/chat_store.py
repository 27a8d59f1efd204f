"""Saved conversations, most recent first."""

from datetime import datetime

import structlog
from pydantic import TypeAdapter, ValidationError

from muzgpt.models.chat import ChatSession, Message
from muzgpt.models.mode import Mode
from muzgpt.storage.local_storage import SAVED_CHATS_KEY, LocalStorage

logger = structlog.get_logger()

_sessions_adapter = TypeAdapter(list[ChatSession])


class ChatSessionStore:
    """Collection of chat sessions persisted after every mutation.

    Args:
        storage: Client local storage.
    """

    def __init__(self, storage: LocalStorage):
        self.storage = storage
        self._sessions: list[ChatSession] = self._load()

    def _load(self) -> list[ChatSession]:
        data = self.storage.get_item(SAVED_CHATS_KEY)
        if not data:
            return []
        try:
            return _sessions_adapter.validate_python(data)
        except ValidationError:
            logger.exception("saved_chats_invalid")
            return []

    def _save(self) -> None:
        self.storage.set_item(
            SAVED_CHATS_KEY,
            _sessions_adapter.dump_python(self._sessions, mode="json", by_alias=True),
        )

    @property
    def sessions(self) -> list[ChatSession]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> ChatSession | None:
        return next((s for s in self._sessions if s.id == session_id), None)

    def upsert(self, session_id: str | None, messages: list[Message], mode: Mode) -> str:
        """Replace a known session's messages or start a new one.

        Returns:
            The id of the updated or created session.
        """
        session = self.get(session_id) if session_id else None
        if session is not None:
            session.messages = list(messages)
            session.mode = mode
            session.updated_at = datetime.now()
        else:
            session = ChatSession.start(messages, mode)
            self._sessions.insert(0, session)
            logger.info("chat_session_created", session_id=session.id)
        self._save()
        return session.id

    def delete(self, session_id: str) -> bool:
        before = len(self._sessions)
        self._sessions = [s for s in self._sessions if s.id != session_id]
        if len(self._sessions) == before:
            return False
        self._save()
        return True

    def clear(self) -> None:
        self._sessions = []
        self.storage.remove_item(SAVED_CHATS_KEY)
