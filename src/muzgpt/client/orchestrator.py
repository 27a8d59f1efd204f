"""Chat application root: owns client state and wires every chat turn."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from enum import StrEnum
from typing import Any

import structlog

from muzgpt.client import events
from muzgpt.client.backend import BackendClient, BackendError, ProfileSync
from muzgpt.client.chat_store import ChatSessionStore
from muzgpt.client.gamification import (
    TURN_REWARD,
    UPGRADE_REWARD,
    WELCOME_REASON,
    GamificationEngine,
)
from muzgpt.client.profile_store import ProfileStore
from muzgpt.client.relay import StreamingRelay, history_for_tier
from muzgpt.client.usage_gate import UsageGate
from muzgpt.models.chat import Message, Role
from muzgpt.models.mode import Mode, Tier, mode_config
from muzgpt.models.profile import Profile, XPEvent
from muzgpt.models.user import SIGNUP_BONUS_XP
from muzgpt.storage.local_storage import LocalStorage

logger = structlog.get_logger()

# Type alias for browser notification callbacks
Notifier = Callable[[dict[str, Any]], Awaitable[None]]


class TurnOutcome(StrEnum):
    COMPLETED = "completed"
    DENIED = "denied"
    IGNORED = "ignored"


class ModeLockedError(Exception):
    """A premium mode was selected on the free tier."""

    def __init__(self, mode: Mode):
        super().__init__(f"Mode '{mode.value}' requires premium")
        self.mode = mode


class ChatOrchestrator:
    """Owns the profile, saved chats and the open conversation.

    Every mutation is saved to local storage immediately; profile counters
    are additionally queued for the backend and pushed after each turn.

    Args:
        storage: Client local storage.
        relay: Reply generator.
        backend: Auth/billing service client (None runs fully offline).
        notify: Async callback receiving browser events.
        gate: Daily usage policy.
        gamification: XP engine.
        today: Source of the client-local calendar date.
    """

    def __init__(
        self,
        storage: LocalStorage,
        relay: StreamingRelay,
        backend: BackendClient | None = None,
        notify: Notifier | None = None,
        gate: UsageGate | None = None,
        gamification: GamificationEngine | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.storage = storage
        self.relay = relay
        self.backend = backend
        self.gate = gate or UsageGate()
        self.gamification = gamification or GamificationEngine()
        self.profile_store = ProfileStore(storage, today)
        self.chats = ChatSessionStore(storage)
        self.profile: Profile = self.profile_store.load()
        self.sync_state = ProfileSync(backend)
        self.current_chat_id: str | None = None
        self.messages: list[Message] = []
        self.is_loading = False
        self._today = today
        self._notify = notify
        self._background: set[asyncio.Task] = set()
        self.gamification.on_expire(self._on_xp_expired)

    # Notifications

    async def _emit(self, event: dict[str, Any]) -> None:
        if self._notify is not None:
            await self._notify(event)

    def _on_xp_expired(self, event: XPEvent) -> None:
        if self._notify is None:
            return
        task = asyncio.ensure_future(self._emit(events.xp_event_expired(event.id)))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def snapshot(self) -> dict[str, Any]:
        """Serializable view of everything the UI renders."""
        return {
            "profile": self.profile.model_dump(mode="json", by_alias=True),
            "daily_limit": self.gate.limit_for(self.profile.tier),
            "sessions": [
                {
                    "id": s.id,
                    "title": s.title,
                    "mode": s.mode.value,
                    "updatedAt": s.updated_at.isoformat(),
                }
                for s in self.chats.sessions
            ],
            "current_chat_id": self.current_chat_id,
            "messages": [m.model_dump(mode="json", by_alias=True) for m in self.messages],
            "xp_events": [e.model_dump() for e in self.gamification.events],
            "sync_status": self.sync_state.status.value,
        }

    async def publish_state(self) -> None:
        await self._emit(events.state_event(self.snapshot()))

    # Profile bookkeeping

    def _save_profile(self) -> None:
        self.profile_store.save(self.profile)

    async def award(self, amount: int, reason: str) -> XPEvent:
        """Apply an XP award, persist it and announce the notification."""
        event = self.gamification.award(self.profile, amount, reason)
        if amount > 0:
            self._save_profile()
            self.sync_state.queue(xp=self.profile.xp, level=self.profile.level)
        await self._emit(events.xp_event(event))
        return event

    async def sync(self) -> bool:
        """Push queued profile changes to the backend. Safe to retry."""
        return await self.sync_state.push(self.profile.id)

    # Session lifecycle

    def _require_backend(self) -> BackendClient:
        if self.backend is None:
            raise BackendError(0, "No backend configured")
        return self.backend

    async def login(self, user_id: str) -> Profile:
        """Adopt the backend record for ``user_id`` as the local profile.

        Tier, XP and usage always come from the backend, never from the
        client's own cache.
        """
        remote = await self._require_backend().get_user(user_id)
        p = self.profile
        if p.id != remote.id:
            p.completed_tasks = 0
        p.id = remote.id
        p.username = remote.username
        p.email = remote.email
        p.xp = remote.xp
        p.streak = remote.streak
        p.tier = remote.tier
        p.daily_usage = remote.daily_usage
        p.last_usage_reset = remote.last_usage_reset
        p.is_logged_in = True
        p.last_active = datetime.now()
        p.reset_daily_usage_if_stale(self._today())
        if not mode_config(p.selected_mode).available_to(p.tier):
            p.selected_mode = Mode.GENERAL
        self._save_profile()
        self.sync_state.clear()
        logger.info("client_logged_in", user_id=p.id, tier=p.tier.value)

        if remote.xp == SIGNUP_BONUS_XP:
            await self.award(0, WELCOME_REASON)
        await self.publish_state()
        return p

    def logout(self) -> None:
        self.profile.is_logged_in = False
        self.current_chat_id = None
        self.messages = []
        self._save_profile()

    def reset(self) -> None:
        """Erase all local state and return to a fresh anonymous profile."""
        self.storage.clear()
        self.gamification.clear()
        self.sync_state.clear()
        self.profile = Profile()
        self.chats = ChatSessionStore(self.storage)
        self.current_chat_id = None
        self.messages = []
        logger.info("client_reset")

    # Modes and conversations

    def select_mode(self, mode: Mode) -> None:
        """Switch persona.

        Raises:
            ModeLockedError: Premium mode while on the free tier.
        """
        mode = Mode(mode)
        if not mode_config(mode).available_to(self.profile.tier):
            raise ModeLockedError(mode)
        self.profile.selected_mode = mode
        self._save_profile()

    def new_chat(self) -> None:
        self.current_chat_id = None
        self.messages = []

    def select_chat(self, chat_id: str) -> bool:
        """Open a saved conversation and restore its mode."""
        session = self.chats.get(chat_id)
        if session is None:
            return False
        self.current_chat_id = session.id
        self.messages = list(session.messages)
        if mode_config(session.mode).available_to(self.profile.tier):
            self.profile.selected_mode = session.mode
            self._save_profile()
        return True

    def delete_chat(self, chat_id: str) -> bool:
        deleted = self.chats.delete(chat_id)
        if deleted and self.current_chat_id == chat_id:
            self.new_chat()
        return deleted

    # Turns

    async def send(self, text: str) -> TurnOutcome:
        """Run one chat turn through the gate, relay and reward pipeline."""
        text = text.strip()
        if not text or self.is_loading:
            return TurnOutcome.IGNORED

        tier = self.profile.tier
        if not self.gate.allow(tier, self.profile.daily_usage):
            logger.info(
                "usage_limit_reached", user_id=self.profile.id, usage=self.profile.daily_usage
            )
            await self._emit(
                events.upgrade_prompt_event("daily_limit", tier.value, self.gate.limit_for(tier))
            )
            return TurnOutcome.DENIED

        mode = self.profile.selected_mode
        history = history_for_tier(self.messages, tier)
        user_msg = Message(role=Role.USER, text=text)
        model_msg = Message(role=Role.MODEL, text="", mode=mode)
        self.messages.extend([user_msg, model_msg])
        self.is_loading = True

        async def on_chunk(fragment: str) -> None:
            model_msg.text += fragment
            await self._emit(events.chunk_event(model_msg.id, fragment, model_msg.text))

        try:
            await self.relay.stream(mode, text, history, on_chunk)
        finally:
            self.is_loading = False

        self.profile.daily_usage += 1
        self.profile.last_active = datetime.now()
        self._save_profile()
        self.sync_state.queue(
            dailyUsage=self.profile.daily_usage,
            lastUsageReset=self.profile.last_usage_reset.isoformat(),
        )

        await self.award(*TURN_REWARD)

        if self.profile.is_logged_in:
            self.current_chat_id = self.chats.upsert(self.current_chat_id, self.messages, mode)

        await self.sync()
        await self._emit(
            events.turn_complete_event(
                model_msg,
                self.current_chat_id,
                self.profile.daily_usage,
                self.profile.xp,
                self.profile.level,
            )
        )
        return TurnOutcome.COMPLETED

    # Premium

    async def start_checkout(self) -> str:
        """Ask the backend for a checkout URL for the current user."""
        url = await self._require_backend().create_checkout_session(self.profile.id)
        await self._emit(events.checkout_event(url))
        return url

    async def confirm_upgrade(
        self, session_id: str | None = None, user_id: str | None = None
    ) -> bool:
        """Confirm a completed checkout with the backend.

        The local tier changes only when the backend reports premium, and
        the upgrade reward is granted only on the free → premium transition,
        so replaying a confirmation is harmless.
        """
        uid = user_id or self.profile.id
        if not uid:
            return False
        try:
            tier = await self._require_backend().upgrade_premium(uid, session_id)
        except BackendError as e:
            logger.warning("upgrade_confirmation_failed", user_id=uid, status_code=e.status_code)
            await self._emit(events.error_event(e.detail, code="upgrade_failed"))
            return False
        if tier != Tier.PREMIUM or uid != self.profile.id:
            return tier == Tier.PREMIUM

        was_free = self.profile.tier == Tier.FREE
        self.profile.tier = Tier.PREMIUM
        self._save_profile()
        if was_free:
            await self.award(*UPGRADE_REWARD)
            await self.sync()
        await self.publish_state()
        return True
