from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from waitlist.models import BlockReason, SignupStatus
from waitlist.repositories.signup_repository import SignupRepository

logger = logging.getLogger(__name__)


class SignupRateLimiter:
    """
    Sliding-window limiter over stored signups, keyed by hashed source IP.

    The count and the later insert do not share a lock, so a burst of
    concurrent requests from one IP can exceed the limit slightly. This is an
    abuse throttle, not a quota.
    """

    def __init__(self, signups: SignupRepository, limit: int = 5, window_seconds: int = 600):
        self.signups = signups
        self.limit = limit
        self.window_seconds = window_seconds

    async def check(self, ip_hash: Optional[str], now: Optional[datetime] = None) -> tuple[str, Optional[str]]:
        """
        Return the (status, block_reason) to store for a new submission.

        Submissions without a known source IP are never limited.
        """
        if not ip_hash:
            return SignupStatus.ACCEPTED, None

        now = now or datetime.now(timezone.utc)
        window_start = now - timedelta(seconds=self.window_seconds)
        count = await self.signups.count_recent_by_ip(ip_hash, window_start)

        if count >= self.limit:
            logger.warning(
                f"Rate limit exceeded for ip hash {ip_hash[:12]}... "
                f"({count}/{self.limit} submissions in {self.window_seconds}s)"
            )
            return SignupStatus.BLOCKED, BlockReason.RATE_LIMIT

        return SignupStatus.ACCEPTED, None
