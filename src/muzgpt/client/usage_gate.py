"""Daily message limits per subscription tier."""

from muzgpt.models.mode import Tier

DAILY_LIMITS: dict[Tier, int] = {
    Tier.FREE: 15,
    Tier.PREMIUM: 500,
}


class UsageGate:
    """Decides whether another chat turn is allowed today.

    The check is advisory: the counter lives in the client profile and the
    backend only mirrors it.
    """

    def __init__(self, limits: dict[Tier, int] | None = None):
        self.limits = dict(limits or DAILY_LIMITS)

    def limit_for(self, tier: Tier) -> int:
        return self.limits[Tier(tier)]

    def allow(self, tier: Tier, daily_usage: int) -> bool:
        return daily_usage < self.limit_for(tier)

    def remaining(self, tier: Tier, daily_usage: int) -> int:
        return max(self.limit_for(tier) - daily_usage, 0)
