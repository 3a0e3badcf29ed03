"""
Usage Counter

Counts feature uses in the current calendar month (UTC) and resets them
when a user's tier changes or on explicit request.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from app.domain.subscription import Feature, FeatureCounts, as_utc, utcnow
from app.infrastructure.db.repositories.usage_repository import UsageRepository


logger = logging.getLogger(__name__)


def current_month_start(now: datetime) -> datetime:
    """First instant of the UTC calendar month containing `now`."""
    return as_utc(now).replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class UsageCounter:
    """
    Per-user, per-feature monthly usage.

    Events from earlier months simply fall outside the counting window;
    nothing purges them except reset() and account deletion.
    """

    def __init__(
        self,
        usage_repo: UsageRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._usage = usage_repo
        self._clock = clock

    async def count(
        self,
        user_id: str,
        feature: Feature,
        now: Optional[datetime] = None,
    ) -> int:
        """Uses of `feature` by `user_id` since the start of this month."""
        since = current_month_start(now or self._clock())
        return await self._usage.count_since(user_id, feature, since)

    async def snapshot(self, user_id: str, now: Optional[datetime] = None) -> FeatureCounts:
        """Current-month counts for every feature."""
        now = now or self._clock()
        counts = {}
        for feature in Feature:
            counts[feature.value] = await self.count(user_id, feature, now)
        return FeatureCounts(**counts)

    async def record(
        self,
        user_id: str,
        feature: Feature,
        payload: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Append one use of a feature."""
        await self._usage.record(user_id, feature, now or self._clock(), payload)

    async def reset(self, user_id: str, now: Optional[datetime] = None) -> int:
        """
        Delete this month's usage in all feature streams.

        Returns:
            Number of usage rows removed
        """
        since = current_month_start(now or self._clock())
        deleted = 0
        for feature in Feature:
            deleted += await self._usage.delete_since(user_id, feature, since)
        logger.info(f"Reset usage for user {user_id} ({deleted} events this month)")
        return deleted
