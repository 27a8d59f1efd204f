"""XP awards, level progression and self-expiring reward notifications."""

import asyncio
from collections.abc import Callable

import structlog

from muzgpt.models.profile import Profile, XPEvent

logger = structlog.get_logger()

XP_EVENT_DISPLAY_SECONDS = 4.0
# Awards at or above this size count as a completed task.
TASK_XP_THRESHOLD = 20

TURN_REWARD = (15, "Neural Sync Success")
UPGRADE_REWARD = (250, "Premium Status Active")
WELCOME_REASON = "Neural Link Established"

XPListener = Callable[[XPEvent], None]


class GamificationEngine:
    """Applies XP awards to a profile and tracks visible notifications.

    Each notification expires on its own timer ``display_seconds`` after it
    was awarded. Outside a running event loop no timer is armed and
    notifications stay until :meth:`expire` is called.

    Args:
        display_seconds: Lifetime of a notification.
    """

    def __init__(self, display_seconds: float = XP_EVENT_DISPLAY_SECONDS):
        self.display_seconds = display_seconds
        self._events: list[XPEvent] = []
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._expire_listeners: list[XPListener] = []

    @property
    def events(self) -> list[XPEvent]:
        """Currently visible notifications, oldest first."""
        return list(self._events)

    def on_expire(self, listener: XPListener) -> None:
        self._expire_listeners.append(listener)

    def award(self, profile: Profile, amount: int, reason: str) -> XPEvent:
        """Grant ``amount`` XP and queue a notification.

        Zero-amount awards only produce the notification.
        """
        if amount > 0:
            profile.xp += amount
            if amount >= TASK_XP_THRESHOLD:
                profile.completed_tasks += 1
            logger.info(
                "xp_awarded", amount=amount, reason=reason, xp=profile.xp, level=profile.level
            )

        event = XPEvent(amount=max(amount, 0), reason=reason)
        self._events.append(event)
        self._schedule_expiry(event)
        return event

    def _schedule_expiry(self, event: XPEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timers[event.id] = loop.call_later(self.display_seconds, self.expire, event.id)

    def expire(self, event_id: str) -> bool:
        """Remove one notification. Returns False if it was already gone."""
        timer = self._timers.pop(event_id, None)
        if timer is not None:
            timer.cancel()
        event = next((e for e in self._events if e.id == event_id), None)
        if event is None:
            return False
        self._events.remove(event)
        for listener in self._expire_listeners:
            listener(event)
        return True

    def clear(self) -> None:
        """Drop all notifications and cancel their timers."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._events.clear()
