"""Backend user record."""

import uuid
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from muzgpt.models.mode import Tier
from muzgpt.models.profile import level_for_xp

SIGNUP_BONUS_XP = 50

# Fields the generic update path may touch; tier is deliberately absent.
UPDATABLE_FIELDS = frozenset(
    {"xp", "level", "streak", "dailyUsage", "lastUsageReset", "lastActive"}
)


class AuthProvider(StrEnum):
    PASSWORD = "password"
    GOOGLE = "google"


class UserRecord(BaseModel):
    """A registered account as stored in the user database."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    email: str
    password_hash: str = ""
    username: str
    xp: int = Field(default=SIGNUP_BONUS_XP, ge=0)
    streak: int = 1
    tier: Tier = Tier.FREE
    daily_usage: int = Field(default=0, ge=0)
    last_usage_reset: date = Field(default_factory=date.today)
    created_at: datetime = Field(default_factory=datetime.now)
    last_active: datetime = Field(default_factory=datetime.now)
    email_verified: bool = True
    auth_provider: AuthProvider = AuthProvider.PASSWORD

    @computed_field
    @property
    def level(self) -> int:
        return level_for_xp(self.xp)

    def reset_daily_usage_if_stale(self, today: date | None = None) -> bool:
        today = today or date.today()
        if self.last_usage_reset == today:
            return False
        self.daily_usage = 0
        self.last_usage_reset = today
        return True

    def public(self) -> dict[str, Any]:
        """JSON-ready view without credentials."""
        return self.model_dump(mode="json", by_alias=True, exclude={"password_hash"})


class UserUpdates(BaseModel):
    """Validated subset of mutable user fields.

    ``level`` is accepted for compatibility but ignored: it follows ``xp``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    xp: int | None = Field(default=None, ge=0)
    level: int | None = None
    streak: int | None = Field(default=None, ge=0)
    daily_usage: int | None = Field(default=None, ge=0)
    last_usage_reset: date | None = None
    last_active: datetime | None = None

    def apply_to(self, user: UserRecord) -> None:
        for field, value in self.model_dump(exclude_none=True, exclude={"level"}).items():
            setattr(user, field, value)
