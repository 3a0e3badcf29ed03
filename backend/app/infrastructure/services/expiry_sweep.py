"""
Expiry Sweep

Externally scheduled batch job: downgrades every active paid record whose
ends_at has passed and reports records that expire soon. One user's
failure never stops the sweep; every user gets an entry in the report.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from pydantic import BaseModel, Field

from app.domain.subscription import SubscriptionRecord, SubscriptionTier, days_remaining, utcnow
from app.infrastructure.db.repositories.subscription_repository import SubscriptionRepository
from app.infrastructure.exceptions import LedgerError
from app.infrastructure.services.subscription_reconciler import SubscriptionReconciler


logger = logging.getLogger(__name__)


class SweepResult(BaseModel):
    """Outcome of one downgrade attempt."""
    user_id: str
    previous_tier: SubscriptionTier
    status: str
    error: Optional[str] = None


class ExpiringNotice(BaseModel):
    """A record that expires within the warning window."""
    user_id: str
    tier: SubscriptionTier
    ends_at: datetime
    days_until_expiry: int


class SweepReport(BaseModel):
    """Per-user outcome of a sweep run."""
    processed: int = 0
    expired: list[SweepResult] = Field(default_factory=list)
    expiring_soon: list[ExpiringNotice] = Field(default_factory=list)
    timestamp: datetime

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.expired if result.error is None)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.expired if result.error is not None)


class ExpirySweep:
    """
    Expiry and warning scan.

    Args:
        subscriptions: Record store
        reconciler: Performs the downgrade transition
        expiring_soon_days: Width of the informational warning window
    """

    DOWNGRADED = "downgraded_to_free"
    ERROR = "error"

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        reconciler: SubscriptionReconciler,
        expiring_soon_days: int = 7,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._subscriptions = subscriptions
        self._reconciler = reconciler
        self._expiring_soon_days = expiring_soon_days
        self._clock = clock

    async def run(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Run one sweep.

        Re-running is harmless: downgraded records no longer match the
        active-and-expired query.
        """
        now = now or self._clock()
        report = SweepReport(timestamp=now)

        expired = await self._subscriptions.list_expired_active(now)
        logger.info(f"Expiry sweep found {len(expired)} expired subscription(s)")

        # One downgrade per user; a user can hold several expired active rows.
        by_user: dict[str, SubscriptionRecord] = {}
        for record in expired:
            by_user.setdefault(record.user_id, record)

        for record in by_user.values():
            try:
                await self._reconciler.downgrade_expired(record.user_id, now)
                report.expired.append(
                    SweepResult(
                        user_id=record.user_id,
                        previous_tier=record.tier,
                        status=self.DOWNGRADED,
                    )
                )
            except LedgerError as e:
                logger.error(f"Sweep failed to downgrade user {record.user_id}: {e}")
                report.expired.append(
                    SweepResult(
                        user_id=record.user_id,
                        previous_tier=record.tier,
                        status=self.ERROR,
                        error=e.message,
                    )
                )
            report.processed += 1

        window_end = now + timedelta(days=self._expiring_soon_days)
        for record in await self._subscriptions.list_expiring_between(now, window_end):
            report.expiring_soon.append(
                ExpiringNotice(
                    user_id=record.user_id,
                    tier=record.tier,
                    ends_at=record.ends_at,
                    days_until_expiry=days_remaining(record, now),
                )
            )

        logger.info(
            f"Expiry sweep done: {report.succeeded} downgraded, {report.failed} failed, "
            f"{len(report.expiring_soon)} expiring soon"
        )
        return report
