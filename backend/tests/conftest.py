"""
Test configuration and fixtures for the subscription ledger.

Settings are read at import time, so the environment is prepared here
before anything under app/ is imported.
"""

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("SUPABASE_URL", "https://testproject.supabase.co")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_dummy")
os.environ.setdefault("STRIPE_PREMIUM_MONTHLY_PRICE_ID", "price_premium_monthly")
os.environ.setdefault("STRIPE_PREMIUM_YEARLY_PRICE_ID", "price_premium_yearly")
os.environ.setdefault("STRIPE_UNLIMITED_MONTHLY_PRICE_ID", "price_unlimited_monthly")
os.environ.setdefault("STRIPE_UNLIMITED_YEARLY_PRICE_ID", "price_unlimited_yearly")
os.environ.setdefault("CRON_SECRET_TOKEN", "cron-test-token")

from datetime import datetime, timezone  # noqa: E402
from typing import AsyncGenerator  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.domain.tier_resolver import PriceCatalog, TierResolver  # noqa: E402
from app.domain.subscription import BillingCycle, SubscriptionTier  # noqa: E402
from app.infrastructure.services.subscription_reconciler import SubscriptionReconciler  # noqa: E402
from app.infrastructure.services.subscription_status_service import (  # noqa: E402
    SubscriptionStatusService,
)
from app.infrastructure.services.usage_counter import UsageCounter  # noqa: E402
from tests.fakes import (  # noqa: E402
    FakeSubscriptionRepository,
    FakeUsageRepository,
    FakeUserProfileRepository,
)


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app():
    """Get the FastAPI application with clean dependency overrides."""
    from app.main import app
    app.dependency_overrides.clear()
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    return TestClient(app)


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Get async test client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# =============================================================================
# Ledger Fixtures
# =============================================================================

@pytest.fixture
def clock():
    """Fixed clock; tests move time by assigning clock.now."""
    fixed = MagicMock()
    fixed.now = NOW
    fixed.side_effect = lambda: fixed.now
    return fixed


@pytest.fixture
def catalog():
    return PriceCatalog(
        prices={
            (SubscriptionTier.PREMIUM, BillingCycle.MONTHLY): "price_premium_monthly",
            (SubscriptionTier.PREMIUM, BillingCycle.YEARLY): "price_premium_yearly",
            (SubscriptionTier.UNLIMITED, BillingCycle.MONTHLY): "price_unlimited_monthly",
            (SubscriptionTier.UNLIMITED, BillingCycle.YEARLY): "price_unlimited_yearly",
        },
        test_price_prefix="price_test_",
        test_price_fallback=True,
    )


@pytest.fixture
def resolver(catalog):
    return TierResolver(catalog)


@pytest.fixture
def subscription_repo():
    return FakeSubscriptionRepository()


@pytest.fixture
def profile_repo():
    return FakeUserProfileRepository()


@pytest.fixture
def usage_repo():
    return FakeUsageRepository()


@pytest.fixture
def usage_counter(usage_repo, clock):
    return UsageCounter(usage_repo, clock=clock)


@pytest.fixture
def reconciler(resolver, subscription_repo, profile_repo, usage_counter, clock):
    return SubscriptionReconciler(
        resolver=resolver,
        subscriptions=subscription_repo,
        profiles=profile_repo,
        usage_counter=usage_counter,
        clock=clock,
    )


@pytest.fixture
def status_service(subscription_repo, profile_repo, usage_counter, reconciler, clock):
    return SubscriptionStatusService(
        subscriptions=subscription_repo,
        profiles=profile_repo,
        usage_counter=usage_counter,
        reconciler=reconciler,
        clock=clock,
    )


@pytest.fixture
def mock_stripe_service():
    """StripeService double: async calls return plain dicts."""
    mock = MagicMock()
    for name in (
        "retrieve_price",
        "create_checkout_session",
        "create_portal_session",
        "retrieve_subscription",
        "list_customer_subscriptions",
        "update_subscription_metadata",
        "change_subscription_price",
        "set_cancel_at_period_end",
        "cancel_subscription",
        "delete_customer",
    ):
        setattr(mock, name, AsyncMock())
    return mock


# =============================================================================
# Sample Data Fixtures
# =============================================================================

def stripe_subscription(
    subscription_id: str = "sub_123",
    status: str = "active",
    price_id: str = "price_premium_monthly",
    interval: str = "month",
    user_id: str = "user_1",
    customer: str = "cus_123",
    period_start: datetime = datetime(2026, 3, 1, tzinfo=timezone.utc),
    period_end: datetime = datetime(2026, 4, 1, tzinfo=timezone.utc),
    metadata: dict = None,
) -> dict:
    """A Stripe subscription object as a plain dict."""
    return {
        "id": subscription_id,
        "object": "subscription",
        "status": status,
        "customer": customer,
        "cancel_at_period_end": False,
        "current_period_start": int(period_start.timestamp()),
        "current_period_end": int(period_end.timestamp()),
        "metadata": metadata if metadata is not None else {"user_id": user_id},
        "items": {
            "data": [
                {
                    "id": "si_1",
                    "price": {"id": price_id, "recurring": {"interval": interval}},
                }
            ]
        },
    }


@pytest.fixture
def make_stripe_subscription():
    return stripe_subscription
