import logging
from typing import Optional

from waitlist.core.config import Settings
from waitlist.core.exceptions import STORE_ERRORS, AuthError, ConfigurationError, StoreError
from waitlist.repositories.unit_of_work import AbstractUnitOfWork
from waitlist.schemas.waitlist import WaitlistStats, clean_string

logger = logging.getLogger(__name__)

BY_DAY_LIMIT = 30
RECENT_LIMIT = 200


class StatsService:
    """Read-only signup statistics for operators."""

    def __init__(self, uow: AbstractUnitOfWork, settings: Settings):
        self.uow = uow
        self.settings = settings

    def authorize(self, provided: Optional[str]) -> None:
        """Compare the caller's token with WAITLIST_STATS_TOKEN."""
        expected = clean_string(self.settings.WAITLIST_STATS_TOKEN)
        if not expected:
            logger.error("WAITLIST_STATS_TOKEN is not configured")
            raise ConfigurationError("WAITLIST_STATS_TOKEN is not configured.")

        provided = clean_string(provided)
        if not provided or provided != expected:
            logger.warning("Rejected waitlist stats request with a bad or missing token")
            raise AuthError("Unauthorized.")

    async def get_stats(self, provided_token: Optional[str]) -> WaitlistStats:
        self.authorize(provided_token)

        signups = self.uow.signups
        try:
            await signups.ensure_schema()
            total = await signups.get_total_signups_count()
            by_day = await signups.get_daily_signup_counts(days=BY_DAY_LIMIT)
            recent = await signups.get_latest_signups(limit=RECENT_LIMIT)
        except STORE_ERRORS as e:
            await self.uow.rollback()
            logger.error(f"Error reading waitlist stats: {e}", exc_info=e)
            raise StoreError("Unable to load waitlist stats right now.") from e

        return WaitlistStats(total=total, by_day=by_day, recent=recent)
