"""
Unit tests for price id resolution and the price catalog.
"""

import pytest

from app.domain.subscription import BillingCycle, SubscriptionTier
from app.domain.tier_resolver import FREE_PLAN, PriceCatalog, TierResolver
from app.infrastructure.exceptions import ConfigurationError


class TestTierResolver:
    """Tests for TierResolver.resolve."""

    @pytest.mark.parametrize(
        "price_id,tier,cycle",
        [
            ("price_premium_monthly", SubscriptionTier.PREMIUM, BillingCycle.MONTHLY),
            ("price_premium_yearly", SubscriptionTier.PREMIUM, BillingCycle.YEARLY),
            ("price_unlimited_monthly", SubscriptionTier.UNLIMITED, BillingCycle.MONTHLY),
            ("price_unlimited_yearly", SubscriptionTier.UNLIMITED, BillingCycle.YEARLY),
        ],
    )
    def test_catalog_prices(self, resolver, price_id, tier, cycle):
        plan = resolver.resolve(price_id)
        assert plan.tier == tier
        assert plan.billing_cycle == cycle
        assert plan.is_paid

    def test_unknown_price_is_free_monthly(self, resolver):
        plan = resolver.resolve("price_1NotInCatalog")
        assert plan == FREE_PLAN
        assert plan.tier == SubscriptionTier.FREE
        assert plan.billing_cycle == BillingCycle.MONTHLY

    def test_missing_price_is_free(self, resolver):
        assert resolver.resolve(None) == FREE_PLAN
        assert resolver.resolve("") == FREE_PLAN

    def test_sandbox_price_resolves_by_name(self, resolver):
        plan = resolver.resolve("price_test_premium_abc")
        assert plan.tier == SubscriptionTier.PREMIUM
        assert plan.billing_cycle == BillingCycle.MONTHLY

    def test_sandbox_yearly_uses_recurring_interval(self, resolver):
        plan = resolver.resolve("price_test_unlimited_xyz", recurring_interval="year")
        assert plan.tier == SubscriptionTier.UNLIMITED
        assert plan.billing_cycle == BillingCycle.YEARLY

    def test_sandbox_unlimited_checked_before_premium(self, resolver):
        plan = resolver.resolve("price_test_premium_to_unlimited")
        assert plan.tier == SubscriptionTier.UNLIMITED

    def test_sandbox_without_tier_name_is_free(self, resolver):
        assert resolver.resolve("price_test_something") == FREE_PLAN

    def test_name_match_requires_prefix(self, resolver):
        """Live ids mentioning a tier name are not guessed."""
        assert resolver.resolve("price_live_premium") == FREE_PLAN

    def test_fallback_disabled(self, catalog):
        strict = TierResolver(
            PriceCatalog(prices=catalog.prices, test_price_fallback=False)
        )
        assert strict.resolve("price_test_premium_abc") == FREE_PLAN
        assert strict.resolve("price_premium_monthly").tier == SubscriptionTier.PREMIUM


class TestPriceCatalog:
    """Tests for PriceCatalog configuration."""

    def test_validate_complete_catalog(self, catalog):
        assert catalog.validate() is catalog
        assert catalog.missing_keys == []

    def test_validate_lists_every_missing_key(self):
        catalog = PriceCatalog(
            prices={(SubscriptionTier.PREMIUM, BillingCycle.MONTHLY): "price_pm"}
        )
        with pytest.raises(ConfigurationError) as exc_info:
            catalog.validate()

        assert exc_info.value.details["missing_keys"] == [
            "STRIPE_PREMIUM_YEARLY_PRICE_ID",
            "STRIPE_UNLIMITED_MONTHLY_PRICE_ID",
            "STRIPE_UNLIMITED_YEARLY_PRICE_ID",
        ]

    def test_from_settings(self):
        from app.config.settings import get_settings

        catalog = PriceCatalog.from_settings(get_settings())
        assert catalog.price_id_for(
            SubscriptionTier.UNLIMITED, BillingCycle.YEARLY
        ) == "price_unlimited_yearly"
        # Non-production environments enable the sandbox fallback by default
        assert catalog.test_price_fallback is True

    def test_price_id_for_missing_plan(self):
        with pytest.raises(ConfigurationError):
            PriceCatalog().price_id_for(SubscriptionTier.PREMIUM, BillingCycle.MONTHLY)
