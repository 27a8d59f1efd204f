"""Client-side user profile and XP notification models."""

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from muzgpt.models.mode import Mode, Tier

XP_PER_LEVEL = 100


def level_for_xp(xp: int) -> int:
    """Level derived from total experience points."""
    return xp // XP_PER_LEVEL + 1


class Profile(BaseModel):
    """Identity, tier, usage counters and gamification stats of one user.

    ``level`` is never stored independently; it is always derived from ``xp``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = ""
    username: str = ""
    email: str | None = None
    xp: int = Field(default=0, ge=0)
    streak: int = 1
    last_active: datetime = Field(default_factory=datetime.now)
    completed_tasks: int = 0
    selected_mode: Mode = Mode.GENERAL
    tier: Tier = Tier.FREE
    daily_usage: int = Field(default=0, ge=0)
    last_usage_reset: date = Field(default_factory=date.today)
    is_logged_in: bool = False

    @computed_field
    @property
    def level(self) -> int:
        return level_for_xp(self.xp)

    def reset_daily_usage_if_stale(self, today: date | None = None) -> bool:
        """Zero the usage counter when the stored reset date is not today.

        Returns True if a reset happened.
        """
        today = today or date.today()
        if self.last_usage_reset == today:
            return False
        self.daily_usage = 0
        self.last_usage_reset = today
        return True


class XPEvent(BaseModel):
    """Transient XP notification shown as a toast."""

    amount: int
    reason: str
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:8])
