"""
Unit tests for FeatureGate.
"""

from datetime import timedelta

import pytest

from app.domain.subscription import (
    UNLIMITED,
    Feature,
    SubscriptionRecord,
    SubscriptionTier,
)
from app.infrastructure.services.feature_gate import FeatureGate
from tests.conftest import NOW


@pytest.fixture
def gate(status_service, usage_counter):
    return FeatureGate(status_service, usage_counter)


def grant(subscription_repo, tier: SubscriptionTier, ends_in_days: int = 20) -> None:
    subscription_repo.add(SubscriptionRecord(
        user_id="user_1",
        tier=tier,
        starts_at=NOW - timedelta(days=10),
        ends_at=NOW + timedelta(days=ends_in_days),
    ))


class TestCanUse:

    @pytest.mark.asyncio
    async def test_free_user_under_limit(self, gate, usage_repo):
        usage_repo.seed("user_1", Feature.NUMEROLOGY, NOW, 2)

        access = await gate.can_use("user_1", Feature.NUMEROLOGY)

        assert access.allowed is True
        assert access.used == 2
        assert access.limit == 3
        assert access.tier == SubscriptionTier.FREE
        assert access.reason is None

    @pytest.mark.asyncio
    async def test_free_user_at_limit(self, gate, usage_repo):
        usage_repo.seed("user_1", Feature.NUMEROLOGY, NOW, 3)

        access = await gate.can_use("user_1", Feature.NUMEROLOGY)

        assert access.allowed is False
        assert access.reason == (
            "Usage limit reached (3/3) for Numerology readings on the Free plan. "
            "Upgrade to get more access."
        )

    @pytest.mark.asyncio
    async def test_premium_limit_per_feature(self, gate, subscription_repo, usage_repo):
        grant(subscription_repo, SubscriptionTier.PREMIUM)
        usage_repo.seed("user_1", Feature.LOVE_MATCH, NOW, 10)
        usage_repo.seed("user_1", Feature.NUMEROLOGY, NOW, 10)

        love = await gate.can_use("user_1", Feature.LOVE_MATCH)
        numerology = await gate.can_use("user_1", Feature.NUMEROLOGY)

        assert love.allowed is False
        assert "on the Premium plan" in love.reason
        assert numerology.allowed is True
        assert numerology.limit == 25

    @pytest.mark.asyncio
    @pytest.mark.parametrize("used", [0, 10, 10000])
    async def test_unlimited_tier_never_counts(self, gate, subscription_repo, usage_repo, used):
        grant(subscription_repo, SubscriptionTier.UNLIMITED)
        usage_repo.seed("user_1", Feature.TRUST_ASSESSMENT, NOW, used)

        access = await gate.can_use("user_1", Feature.TRUST_ASSESSMENT)

        assert access.allowed is True
        assert access.used == 0
        assert access.limit == UNLIMITED

    @pytest.mark.asyncio
    async def test_expired_premium_falls_back_to_free_limits(self, gate, subscription_repo, usage_repo):
        grant(subscription_repo, SubscriptionTier.PREMIUM, ends_in_days=-1)
        usage_repo.seed("user_1", Feature.NUMEROLOGY, NOW, 5)

        access = await gate.can_use("user_1", Feature.NUMEROLOGY)

        assert access.allowed is False
        assert access.tier == SubscriptionTier.FREE
        assert subscription_repo.active_for("user_1") == []


class TestConsume:

    @pytest.mark.asyncio
    async def test_consume_records_use(self, gate, usage_repo):
        access = await gate.consume("user_1", Feature.LOVE_MATCH, {"partner": "x"})

        assert access.allowed is True
        assert access.used == 1
        assert len(usage_repo.events) == 1

    @pytest.mark.asyncio
    async def test_consume_denied_records_nothing(self, gate, usage_repo):
        usage_repo.seed("user_1", Feature.LOVE_MATCH, NOW, 3)

        access = await gate.consume("user_1", Feature.LOVE_MATCH)

        assert access.allowed is False
        assert len(usage_repo.events) == 3

    @pytest.mark.asyncio
    async def test_fourth_use_of_free_tier_is_denied(self, gate):
        results = [await gate.consume("user_1", Feature.NUMEROLOGY) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert results[-1].used == 3
