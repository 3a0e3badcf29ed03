"""
Feature Gate

Answers "may this user use this feature now" from the effective tier,
the monthly quota table and this month's usage count.

The check and the later record() are separate calls, so concurrent
requests near the boundary can each pass: the quota is a soft limit.
"""

import logging
from typing import Any, Optional

from app.domain.subscription import (
    FEATURE_DISPLAY_NAMES,
    TIER_DISPLAY_NAMES,
    UNLIMITED,
    Feature,
    FeatureAccess,
    get_feature_limit,
)
from app.infrastructure.services.subscription_status_service import SubscriptionStatusService
from app.infrastructure.services.usage_counter import UsageCounter


logger = logging.getLogger(__name__)


class FeatureGate:
    """Runtime authorization of metered features."""

    def __init__(self, status_service: SubscriptionStatusService, usage_counter: UsageCounter):
        self._status = status_service
        self._usage = usage_counter

    async def can_use(self, user_id: str, feature: Feature) -> FeatureAccess:
        """
        Check whether `user_id` may use `feature` once more this month.

        Returns:
            FeatureAccess; a rejection carries a reason for direct display
        """
        tier, _ = await self._status.resolve_tier(user_id)
        limit = get_feature_limit(tier, feature)

        if limit == UNLIMITED:
            return FeatureAccess(feature=feature, allowed=True, used=0, limit=UNLIMITED, tier=tier)

        used = await self._usage.count(user_id, feature)
        if used < limit:
            return FeatureAccess(feature=feature, allowed=True, used=used, limit=limit, tier=tier)

        reason = (
            f"Usage limit reached ({used}/{limit}) for {FEATURE_DISPLAY_NAMES[feature]} "
            f"on the {TIER_DISPLAY_NAMES[tier]} plan. Upgrade to get more access."
        )
        logger.info(f"Denied {feature.value} for user {user_id}: {used}/{limit}")
        return FeatureAccess(
            feature=feature,
            allowed=False,
            reason=reason,
            used=used,
            limit=limit,
            tier=tier,
        )

    async def consume(
        self,
        user_id: str,
        feature: Feature,
        payload: Optional[dict[str, Any]] = None,
    ) -> FeatureAccess:
        """Check, then record one use if allowed."""
        access = await self.can_use(user_id, feature)
        if not access.allowed:
            return access

        await self._usage.record(user_id, feature, payload)
        if access.limit != UNLIMITED:
            access.used += 1
        return access
