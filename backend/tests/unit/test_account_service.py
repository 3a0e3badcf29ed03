"""
Unit tests for account deletion.
"""

import pytest

from app.domain.subscription import Feature, SubscriptionRecord, SubscriptionTier
from app.infrastructure.exceptions import BillingProviderError
from app.infrastructure.services.account_service import AccountService
from tests.conftest import NOW


@pytest.fixture
def account_service(mock_stripe_service, subscription_repo, profile_repo, usage_repo):
    return AccountService(mock_stripe_service, subscription_repo, profile_repo, usage_repo)


@pytest.fixture
async def populated(subscription_repo, profile_repo, usage_repo):
    await profile_repo.get_or_create("user_1")
    await profile_repo.get_or_create("user_2")
    subscription_repo.add(SubscriptionRecord(
        user_id="user_1",
        tier=SubscriptionTier.PREMIUM,
        starts_at=NOW,
        external_subscription_id="sub_123",
        external_customer_id="cus_123",
    ))
    usage_repo.seed("user_1", Feature.NUMEROLOGY, NOW, 2)
    usage_repo.seed("user_2", Feature.NUMEROLOGY, NOW)


class TestDeleteAccount:

    @pytest.mark.asyncio
    async def test_deletes_everything_for_user(
        self, account_service, mock_stripe_service, subscription_repo, profile_repo, usage_repo, populated
    ):
        result = await account_service.delete_account("user_1")

        mock_stripe_service.cancel_subscription.assert_awaited_once_with("sub_123")
        mock_stripe_service.delete_customer.assert_awaited_once_with("cus_123")
        assert result.billing_subscriptions_canceled == 1
        assert result.billing_customers_deleted == 1
        assert result.usage_events_deleted == 2
        assert result.subscriptions_deleted == 1
        assert result.profiles_deleted == 1
        assert "user_1" not in profile_repo.profiles
        assert "user_2" in profile_repo.profiles
        assert len(usage_repo.events) == 1

    @pytest.mark.asyncio
    async def test_shared_customer_deleted_once(
        self, account_service, mock_stripe_service, subscription_repo, populated
    ):
        subscription_repo.add(SubscriptionRecord(
            user_id="user_1",
            tier=SubscriptionTier.UNLIMITED,
            starts_at=NOW,
            external_subscription_id="sub_456",
            external_customer_id="cus_123",
        ))

        result = await account_service.delete_account("user_1")

        assert mock_stripe_service.cancel_subscription.await_count == 2
        mock_stripe_service.delete_customer.assert_awaited_once_with("cus_123")
        assert result.billing_customers_deleted == 1

    @pytest.mark.asyncio
    async def test_provider_failure_does_not_block_local_deletion(
        self, account_service, mock_stripe_service, subscription_repo, populated
    ):
        mock_stripe_service.cancel_subscription.side_effect = BillingProviderError(
            "Stripe cancel_subscription timed out", retryable=True
        )

        result = await account_service.delete_account("user_1")

        assert result.success is True
        assert result.billing_subscriptions_canceled == 0
        assert result.billing_customers_deleted == 1
        assert subscription_repo.records == []

    @pytest.mark.asyncio
    async def test_unknown_user(self, account_service, mock_stripe_service):
        result = await account_service.delete_account("nobody")

        mock_stripe_service.cancel_subscription.assert_not_awaited()
        assert result.profiles_deleted == 0
        assert result.subscriptions_deleted == 0
