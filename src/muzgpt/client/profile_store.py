"""Profile persistence in client local storage."""

from collections.abc import Callable
from datetime import date

import structlog
from pydantic import ValidationError

from muzgpt.models.profile import Profile
from muzgpt.storage.local_storage import PROFILE_KEY, LocalStorage

logger = structlog.get_logger()


class ProfileStore:
    """Loads and saves the single client profile record.

    Args:
        storage: Client local storage.
        today: Source of the client-local calendar date.
    """

    def __init__(self, storage: LocalStorage, today: Callable[[], date] = date.today):
        self.storage = storage
        self._today = today

    def load(self) -> Profile:
        """Restore the profile, applying the once-per-day usage reset."""
        data = self.storage.get_item(PROFILE_KEY)
        profile = Profile()
        if data:
            try:
                profile = Profile.model_validate(data)
            except ValidationError:
                logger.exception("profile_record_invalid")
        if profile.reset_daily_usage_if_stale(self._today()):
            logger.info("daily_usage_reset", user_id=profile.id)
            self.save(profile)
        return profile

    def save(self, profile: Profile) -> None:
        self.storage.set_item(PROFILE_KEY, profile.model_dump(mode="json", by_alias=True))

    def clear(self) -> None:
        self.storage.remove_item(PROFILE_KEY)
