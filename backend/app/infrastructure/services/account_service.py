"""
Account Service

Deletes everything the ledger stores about a user. Billing provider
cleanup is best-effort; local data is always removed.
"""

import logging

from pydantic import BaseModel

from app.domain.subscription import SubscriptionStatus
from app.infrastructure.db.repositories.subscription_repository import SubscriptionRepository
from app.infrastructure.db.repositories.usage_repository import UsageRepository
from app.infrastructure.db.repositories.user_profile_repository import UserProfileRepository
from app.infrastructure.exceptions import BillingProviderError, ConfigurationError
from app.infrastructure.payments.stripe_service import StripeService


logger = logging.getLogger(__name__)


class AccountDeletionResult(BaseModel):
    """What an account deletion removed."""
    success: bool = True
    message: str = "Account deleted successfully"
    billing_subscriptions_canceled: int = 0
    billing_customers_deleted: int = 0
    usage_events_deleted: int = 0
    subscriptions_deleted: int = 0
    profiles_deleted: int = 0


class AccountService:
    """Cascade deletion of a user's ledger data."""

    def __init__(
        self,
        stripe_service: StripeService,
        subscriptions: SubscriptionRepository,
        profiles: UserProfileRepository,
        usage: UsageRepository,
    ):
        self._stripe = stripe_service
        self._subscriptions = subscriptions
        self._profiles = profiles
        self._usage = usage

    async def delete_account(self, user_id: str) -> AccountDeletionResult:
        """
        Delete a user's usage events, subscriptions and profile.

        Active billing subscriptions are canceled and their customers
        deleted first; provider failures are logged and do not block
        the local deletion.
        """
        result = AccountDeletionResult()
        logger.info(f"Starting account deletion for user {user_id}")

        active = await self._subscriptions.list_for_user(user_id, SubscriptionStatus.ACTIVE)
        customer_ids: dict[str, None] = {}
        for record in active:
            if record.external_subscription_id:
                try:
                    await self._stripe.cancel_subscription(record.external_subscription_id)
                    result.billing_subscriptions_canceled += 1
                except (BillingProviderError, ConfigurationError) as e:
                    logger.error(
                        f"Could not cancel billing subscription {record.external_subscription_id}: {e}"
                    )
            if record.external_customer_id:
                customer_ids[record.external_customer_id] = None

        for customer_id in customer_ids:
            try:
                await self._stripe.delete_customer(customer_id)
                result.billing_customers_deleted += 1
            except (BillingProviderError, ConfigurationError) as e:
                logger.error(f"Could not delete billing customer {customer_id}: {e}")

        result.usage_events_deleted = await self._usage.delete_all_for_user(user_id)
        result.subscriptions_deleted = await self._subscriptions.delete_for_user(user_id)
        result.profiles_deleted = await self._profiles.delete_by_user_id(user_id)

        logger.info(f"Deleted account data for user {user_id}")
        return result
