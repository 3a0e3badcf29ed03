"""
Subscription Sync Service

Manual reconciliation against the billing provider for users whose
webhooks were missed or arrived before their metadata was stamped.
"""

import logging

from app.domain.billing_events import (
    ACTIVATING_STATUSES,
    LEGACY_CORRELATION_KEYS,
    USER_CORRELATION_KEY,
    BillingSubscriptionEvent,
)
from app.domain.subscription import SyncResponse
from app.infrastructure.db.repositories.subscription_repository import SubscriptionRepository
from app.infrastructure.exceptions import NotFoundError
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.services.subscription_reconciler import SubscriptionReconciler


logger = logging.getLogger(__name__)

SYNC_EVENT_TYPE = "subscription.sync"


def _correlated_user(subscription: dict) -> str:
    metadata = subscription.get("metadata") or {}
    for key in (USER_CORRELATION_KEY, *LEGACY_CORRELATION_KEYS):
        if metadata.get(key):
            return metadata[key]
    return ""


class SubscriptionSyncService:
    """Pulls a user's subscriptions from Stripe and reconciles the best match."""

    def __init__(
        self,
        stripe_service: StripeService,
        subscriptions: SubscriptionRepository,
        reconciler: SubscriptionReconciler,
    ):
        self._stripe = stripe_service
        self._subscriptions = subscriptions
        self._reconciler = reconciler

    async def sync_user(self, user_id: str) -> SyncResponse:
        """
        Sync one user.

        Picks the first active or trialing subscription of the user's
        customer (stamping the correlation key if it is missing), else one
        already correlated to the user. With neither, the user's local
        active record is canceled.

        Raises:
            NotFoundError: the user has no known billing customer
        """
        record = await self._subscriptions.get_latest_with_customer(user_id)
        if record is None or not record.external_customer_id:
            raise NotFoundError("No billing customer found for this user")

        customer_id = record.external_customer_id
        candidates = await self._stripe.list_customer_subscriptions(customer_id, limit=10)
        logger.info(f"Found {len(candidates)} subscription(s) for customer {customer_id}")

        chosen = None
        for subscription in candidates:
            if subscription.get("status") not in ACTIVATING_STATUSES:
                continue
            if not _correlated_user(subscription):
                logger.info(f"Stamping {USER_CORRELATION_KEY} on subscription {subscription['id']}")
                await self._stripe.update_subscription_metadata(
                    subscription["id"], {USER_CORRELATION_KEY: user_id}
                )
                subscription = {
                    **subscription,
                    "metadata": {**(subscription.get("metadata") or {}), USER_CORRELATION_KEY: user_id},
                }
            chosen = subscription
            break

        if chosen is None:
            chosen = next(
                (s for s in candidates if _correlated_user(s) == user_id),
                None,
            )

        if chosen is None:
            await self._reconciler.cancel_for_user(user_id)
            return SyncResponse(
                success=True,
                message="No active subscription found, user set to free tier",
            )

        event = BillingSubscriptionEvent.from_stripe_subscription(chosen, SYNC_EVENT_TYPE)
        await self._reconciler.reconcile(event)

        return SyncResponse(
            success=True,
            message="Subscription synced successfully",
            subscription_id=event.subscription_id,
            status=event.status,
            current_period_start=event.current_period_start,
            current_period_end=event.current_period_end,
        )
