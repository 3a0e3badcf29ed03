"""
Subscription Status Service

Read path for a user's entitlement. The effective tier is computed by the
pure compute_effective_tier(); a record found past its ends_at is then
downgraded by the explicit reconcile_if_expired() command, which is the
backstop for expiries nobody notified us about.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from app.domain.subscription import (
    SubscriptionRecord,
    SubscriptionStatus,
    SubscriptionStatusView,
    SubscriptionSummary,
    SubscriptionTier,
    compute_effective_tier,
    days_remaining,
    get_tier_limits,
    is_record_expired,
    utcnow,
)
from app.infrastructure.db.repositories.subscription_repository import SubscriptionRepository
from app.infrastructure.db.repositories.user_profile_repository import UserProfileRepository
from app.infrastructure.exceptions import LedgerError
from app.infrastructure.services.subscription_reconciler import SubscriptionReconciler
from app.infrastructure.services.usage_counter import UsageCounter


logger = logging.getLogger(__name__)


class SubscriptionStatusService:
    """Effective subscription state for a user, with lazy expiry enforcement."""

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        profiles: UserProfileRepository,
        usage_counter: UsageCounter,
        reconciler: SubscriptionReconciler,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._subscriptions = subscriptions
        self._profiles = profiles
        self._usage = usage_counter
        self._reconciler = reconciler
        self._clock = clock

    async def reconcile_if_expired(self, record: SubscriptionRecord, now: datetime) -> bool:
        """
        Downgrade an active record whose ends_at has passed.

        Returns:
            True if a downgrade was attempted
        """
        if record.status != SubscriptionStatus.ACTIVE or not is_record_expired(record, now):
            return False
        await self._reconciler.downgrade_expired(record.user_id, now)
        return True

    async def resolve_tier(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> Tuple[SubscriptionTier, Optional[SubscriptionRecord]]:
        """
        Effective tier of a user right now.

        An expired record yields the free tier for this call even when the
        downgrade write fails; that failure is logged and left for the next
        read or the sweep to fix.
        """
        now = now or self._clock()
        record = await self._subscriptions.get_active_for_user(user_id)
        tier = compute_effective_tier(record, now)

        if record is not None:
            try:
                await self.reconcile_if_expired(record, now)
            except LedgerError as e:
                logger.error(f"Failed to downgrade expired subscription for user {user_id}: {e}")

        return tier, record

    async def get_status(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        email: Optional[str] = None,
    ) -> SubscriptionStatusView:
        """
        Full subscription status, creating a default profile on first contact.

        Args:
            user_id: External identity user id
            now: Evaluation instant (defaults to the service clock)
            email: Used only when the profile has to be created

        Returns:
            SubscriptionStatusView with subscription summary, usage and limits
        """
        now = now or self._clock()
        profile, created = await self._profiles.get_or_create(user_id, email)
        if created:
            logger.info(f"Provisioned profile for user {user_id} on status read")

        tier, record = await self.resolve_tier(user_id, now)
        if record is not None and is_record_expired(record, now) and profile.wants_premium:
            # Loaded before the downgrade cleared the flag
            profile = profile.model_copy(update={"wants_premium": False})
        usage = await self._usage.snapshot(user_id, now)

        summary = self._summarize(record, tier, now)
        if record is None and profile.wants_premium:
            summary.status = SubscriptionStatus.CANCELED

        return SubscriptionStatusView(
            subscription=summary,
            usage=usage,
            limits=get_tier_limits(tier),
            profile=profile,
        )

    @staticmethod
    def _summarize(
        record: Optional[SubscriptionRecord],
        tier: SubscriptionTier,
        now: datetime,
    ) -> SubscriptionSummary:
        if record is None:
            return SubscriptionSummary()

        expired = is_record_expired(record, now)
        return SubscriptionSummary(
            id=record.id or "",
            tier=tier,
            status=SubscriptionStatus.CANCELED if expired else record.status,
            is_premium=tier in (SubscriptionTier.PREMIUM, SubscriptionTier.UNLIMITED),
            is_unlimited=tier == SubscriptionTier.UNLIMITED,
            billing_cycle=record.billing_cycle,
            current_period_start=record.starts_at,
            current_period_end=record.ends_at,
            is_expired=expired,
            days_remaining=days_remaining(record, now),
        )
