"""
Subscription Reconciler

Turns billing provider subscription signals into local subscription
state. Every call re-derives the target state from the event's status
and price rather than applying a delta, so redelivering the same event
converges to the same result.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from app.domain.billing_events import (
    ACTIVATING_STATUSES,
    TERMINATING_STATUSES,
    BillingSubscriptionEvent,
)
from app.domain.subscription import (
    SubscriptionRecord,
    SubscriptionStatus,
    SubscriptionTier,
    add_billing_period,
    as_utc,
    utcnow,
)
from app.domain.tier_resolver import ResolvedPlan, TierResolver
from app.infrastructure.db.repositories.subscription_repository import SubscriptionRepository
from app.infrastructure.db.repositories.user_profile_repository import UserProfileRepository
from app.infrastructure.exceptions import (
    CorrelationError,
    PersistenceError,
    ReconciliationError,
)
from app.infrastructure.services.usage_counter import UsageCounter


logger = logging.getLogger(__name__)


class ReconcileAction(str, Enum):
    """What a reconciliation did."""
    ACTIVATED = "activated"
    UNCHANGED = "unchanged"
    CANCELED = "canceled"
    IGNORED = "ignored"


@dataclass
class ReconcileOutcome:
    """Result of applying one billing event."""
    action: ReconcileAction
    user_id: str
    tier: SubscriptionTier = SubscriptionTier.FREE
    tier_changed: bool = False
    usage_reset: bool = False
    canceled_count: int = 0
    record: Optional[SubscriptionRecord] = None


class SubscriptionReconciler:
    """
    State machine over a user's subscription records.

    Transitions:
    - active/trialing with a paid price: supersede any active record with a
      new one (reset usage when the tier changes)
    - canceled/incomplete_expired/past_due: cancel the active record
    - anything else: no-op

    Persistence failures are raised as ReconciliationError and never retried
    here; the webhook caller answers 5xx so the provider redelivers.
    """

    def __init__(
        self,
        resolver: TierResolver,
        subscriptions: SubscriptionRepository,
        profiles: UserProfileRepository,
        usage_counter: UsageCounter,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._resolver = resolver
        self._subscriptions = subscriptions
        self._profiles = profiles
        self._usage = usage_counter
        self._clock = clock

    # =========================================================================
    # Event Reconciliation
    # =========================================================================

    async def reconcile(self, event: BillingSubscriptionEvent) -> ReconcileOutcome:
        """
        Apply a subscription lifecycle event.

        Args:
            event: Normalized billing event

        Returns:
            ReconcileOutcome describing the transition

        Raises:
            CorrelationError: event carries no user correlation key
            ReconciliationError: a write failed part way
        """
        user_id = event.user_correlation_key
        if not user_id:
            logger.error(
                f"Subscription {event.subscription_id} ({event.type}) has no user "
                f"correlation metadata, transition aborted"
            )
            raise CorrelationError(
                "Billing event is missing the user correlation key",
                subscription_id=event.subscription_id,
            )

        item = event.primary_item
        plan = self._resolver.resolve(
            event.price_id,
            item.recurring_interval if item else None,
        )

        try:
            if event.status in ACTIVATING_STATUSES and plan.is_paid:
                return await self._activate(user_id, event, plan)

            if event.status in TERMINATING_STATUSES:
                canceled = await self.cancel_for_user(user_id)
                return ReconcileOutcome(
                    action=ReconcileAction.CANCELED,
                    user_id=user_id,
                    canceled_count=canceled,
                )
        except PersistenceError as e:
            raise ReconciliationError(
                f"Failed to reconcile subscription {event.subscription_id}: {e.message}",
                user_id=user_id,
                subscription_id=event.subscription_id,
                original_error=e,
            ) from e

        logger.info(
            f"No transition for subscription {event.subscription_id}: "
            f"status={event.status}, tier={plan.tier.value}"
        )
        return ReconcileOutcome(action=ReconcileAction.IGNORED, user_id=user_id)

    async def _activate(
        self,
        user_id: str,
        event: BillingSubscriptionEvent,
        plan: ResolvedPlan,
    ) -> ReconcileOutcome:
        now = self._clock()
        starts_at = as_utc(event.current_period_start) or now
        ends_at = as_utc(event.current_period_end) or add_billing_period(
            starts_at, plan.billing_cycle
        )

        await self._profiles.set_wants_premium(user_id, True)

        existing = await self._subscriptions.get_active_for_user(user_id)
        if existing and self._matches(existing, event, plan, starts_at, ends_at):
            # Older active rows left by a concurrent delivery are retired here.
            duplicates = await self._subscriptions.cancel_active_for_user(
                user_id, exclude_id=existing.id
            )
            if duplicates:
                logger.warning(
                    f"Canceled {duplicates} duplicate active subscription(s) for user {user_id}"
                )
            logger.info(f"Subscription {event.subscription_id} already applied for user {user_id}")
            return ReconcileOutcome(
                action=ReconcileAction.UNCHANGED,
                user_id=user_id,
                tier=plan.tier,
                canceled_count=duplicates,
                record=existing,
            )

        tier_changed = existing is not None and existing.tier != plan.tier

        canceled = await self._subscriptions.cancel_active_for_user(user_id)
        record = await self._subscriptions.create_active(
            SubscriptionRecord(
                user_id=user_id,
                tier=plan.tier,
                status=SubscriptionStatus.ACTIVE,
                billing_cycle=plan.billing_cycle,
                starts_at=starts_at,
                ends_at=ends_at,
                external_subscription_id=event.subscription_id,
                external_customer_id=event.customer_id,
            )
        )

        if tier_changed:
            logger.info(
                f"Tier change for user {user_id}: {existing.tier.value} -> {plan.tier.value}"
            )
            await self._usage.reset(user_id, now)

        logger.info(
            f"Activated {plan.tier.value} ({plan.billing_cycle.value}) for user {user_id} "
            f"until {ends_at.isoformat()}"
        )
        return ReconcileOutcome(
            action=ReconcileAction.ACTIVATED,
            user_id=user_id,
            tier=plan.tier,
            tier_changed=tier_changed,
            usage_reset=tier_changed,
            canceled_count=canceled,
            record=record,
        )

    @staticmethod
    def _matches(
        existing: SubscriptionRecord,
        event: BillingSubscriptionEvent,
        plan: ResolvedPlan,
        starts_at: datetime,
        ends_at: datetime,
    ) -> bool:
        """True when the active record already is the state this event describes."""
        return (
            existing.external_subscription_id == event.subscription_id
            and existing.tier == plan.tier
            and existing.billing_cycle == plan.billing_cycle
            and as_utc(existing.starts_at) == starts_at
            and as_utc(existing.ends_at) == ends_at
        )

    # =========================================================================
    # Downgrades
    # =========================================================================

    async def cancel_for_user(self, user_id: str) -> int:
        """
        Cancel the user's active record and clear the premium intent flag.

        Returns:
            Number of records canceled
        """
        await self._profiles.set_wants_premium(user_id, False)
        canceled = await self._subscriptions.cancel_active_for_user(user_id)
        logger.info(f"Canceled {canceled} active subscription(s) for user {user_id}")
        return canceled

    async def downgrade_expired(self, user_id: str, now: Optional[datetime] = None) -> int:
        """
        Cancel only active records already past their ends_at.

        A second call for the same user finds nothing to cancel.

        Returns:
            Number of records canceled
        """
        now = now or self._clock()
        canceled = await self._subscriptions.cancel_active_for_user(user_id, ended_before=now)
        if canceled:
            await self._profiles.set_wants_premium(user_id, False)
            logger.info(f"Downgraded expired subscription for user {user_id}")
        return canceled
