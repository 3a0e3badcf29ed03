"""
Unit tests for normalizing Stripe subscriptions into billing events.
"""

from datetime import datetime, timezone

from app.domain.billing_events import BillingSubscriptionEvent
from tests.conftest import stripe_subscription


class TestFromStripeSubscription:

    def test_reads_price_period_and_customer(self):
        event = BillingSubscriptionEvent.from_stripe_subscription(
            stripe_subscription(), "customer.subscription.created"
        )

        assert event.type == "customer.subscription.created"
        assert event.subscription_id == "sub_123"
        assert event.customer_id == "cus_123"
        assert event.status == "active"
        assert event.price_id == "price_premium_monthly"
        assert event.primary_item.recurring_interval == "month"
        assert event.current_period_start == datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert event.current_period_end == datetime(2026, 4, 1, tzinfo=timezone.utc)
        assert event.user_correlation_key == "user_1"

    def test_period_bounds_on_items(self):
        subscription = stripe_subscription()
        start = subscription.pop("current_period_start")
        end = subscription.pop("current_period_end")
        subscription["items"]["data"][0]["current_period_start"] = start
        subscription["items"]["data"][0]["current_period_end"] = end

        event = BillingSubscriptionEvent.from_stripe_subscription(subscription)

        assert event.current_period_start == datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert event.current_period_end == datetime(2026, 4, 1, tzinfo=timezone.utc)

    def test_expanded_customer_object(self):
        subscription = stripe_subscription()
        subscription["customer"] = {"id": "cus_expanded", "object": "customer"}

        event = BillingSubscriptionEvent.from_stripe_subscription(subscription)

        assert event.customer_id == "cus_expanded"

    def test_without_items(self):
        subscription = stripe_subscription()
        subscription["items"] = {"data": []}

        event = BillingSubscriptionEvent.from_stripe_subscription(subscription)

        assert event.primary_item is None
        assert event.price_id is None


class TestCorrelationKey:

    def test_missing_metadata(self):
        event = BillingSubscriptionEvent.from_stripe_subscription(
            stripe_subscription(metadata={})
        )
        assert event.user_correlation_key is None

    def test_legacy_key(self):
        event = BillingSubscriptionEvent.from_stripe_subscription(
            stripe_subscription(metadata={"clerk_id": "user_legacy"})
        )
        assert event.user_correlation_key == "user_legacy"

    def test_current_key_wins_over_legacy(self):
        event = BillingSubscriptionEvent.from_stripe_subscription(
            stripe_subscription(metadata={"clerk_id": "user_old", "user_id": "user_new"})
        )
        assert event.user_correlation_key == "user_new"

    def test_empty_value_is_missing(self):
        event = BillingSubscriptionEvent.from_stripe_subscription(
            stripe_subscription(metadata={"user_id": ""})
        )
        assert event.user_correlation_key is None
