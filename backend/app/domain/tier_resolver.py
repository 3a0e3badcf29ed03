"""
Tier Resolver

Maps billing provider price identifiers to an internal (tier, billing cycle)
pair. The mapping lives in an explicit PriceCatalog built once from
settings and injected into the resolver.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from app.domain.subscription import BillingCycle, SubscriptionTier
from app.infrastructure.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedPlan:
    """Internal plan a price identifier stands for."""
    tier: SubscriptionTier
    billing_cycle: BillingCycle

    @property
    def is_paid(self) -> bool:
        return self.tier != SubscriptionTier.FREE


FREE_PLAN = ResolvedPlan(SubscriptionTier.FREE, BillingCycle.MONTHLY)

# (tier, cycle) -> settings attribute holding the price id
_PRICE_SETTINGS = {
    (SubscriptionTier.PREMIUM, BillingCycle.MONTHLY): "stripe_premium_monthly_price_id",
    (SubscriptionTier.PREMIUM, BillingCycle.YEARLY): "stripe_premium_yearly_price_id",
    (SubscriptionTier.UNLIMITED, BillingCycle.MONTHLY): "stripe_unlimited_monthly_price_id",
    (SubscriptionTier.UNLIMITED, BillingCycle.YEARLY): "stripe_unlimited_yearly_price_id",
}


@dataclass(frozen=True)
class PriceCatalog:
    """
    Price id configuration for every purchasable (tier, cycle) pair.

    Args:
        prices: (tier, cycle) -> provider price id
        test_price_prefix: prefix marking sandbox price ids
        test_price_fallback: resolve unregistered sandbox ids by name
    """
    prices: dict[tuple[SubscriptionTier, BillingCycle], str] = field(default_factory=dict)
    test_price_prefix: str = "price_test_"
    test_price_fallback: bool = False

    @classmethod
    def from_settings(cls, settings) -> "PriceCatalog":
        prices = {}
        for plan, attribute in _PRICE_SETTINGS.items():
            value = getattr(settings, attribute, None)
            if value:
                prices[plan] = value
        return cls(
            prices=prices,
            test_price_prefix=settings.stripe_test_price_prefix,
            test_price_fallback=bool(settings.stripe_test_price_fallback),
        )

    @property
    def missing_keys(self) -> list[str]:
        """Environment variable names of unconfigured price ids."""
        return [
            attribute.upper()
            for plan, attribute in _PRICE_SETTINGS.items()
            if not self.prices.get(plan)
        ]

    def validate(self) -> "PriceCatalog":
        """Fail fast if any purchasable plan has no price id."""
        missing = self.missing_keys
        if missing:
            raise ConfigurationError(
                "Price configuration incomplete",
                missing_keys=missing,
            )
        return self

    def price_id_for(self, tier: SubscriptionTier, billing_cycle: BillingCycle) -> str:
        price_id = self.prices.get((tier, billing_cycle))
        if not price_id:
            raise ConfigurationError(
                f"No price configured for {tier.value}/{billing_cycle.value}",
                missing_keys=[_PRICE_SETTINGS.get((tier, billing_cycle), "").upper()],
            )
        return price_id


class TierResolver:
    """
    Resolves price identifiers to plans.

    Unknown identifiers resolve to the free tier. When the catalog enables
    it, identifiers carrying the sandbox prefix resolve by substring
    ("unlimited" before "premium").
    """

    def __init__(self, catalog: PriceCatalog):
        self._catalog = catalog
        self._by_price_id = {
            price_id: ResolvedPlan(tier, cycle)
            for (tier, cycle), price_id in catalog.prices.items()
        }

    @property
    def catalog(self) -> PriceCatalog:
        return self._catalog

    def resolve(
        self,
        price_id: Optional[str],
        recurring_interval: Optional[str] = None,
    ) -> ResolvedPlan:
        """
        Map a price identifier to (tier, billing cycle).

        Args:
            price_id: Provider price identifier of the primary item
            recurring_interval: Provider interval ("month"/"year"), used for
                sandbox ids that are not in the catalog

        Returns:
            ResolvedPlan, FREE_PLAN when nothing matches
        """
        if not price_id:
            return FREE_PLAN

        plan = self._by_price_id.get(price_id)
        if plan is not None:
            return plan

        if self._catalog.test_price_fallback and price_id.startswith(
            self._catalog.test_price_prefix
        ):
            plan = self._resolve_by_name(price_id, recurring_interval)
            logger.info(f"Resolved sandbox price {price_id} by name to {plan.tier.value}")
            return plan

        logger.info(f"Unmapped price id {price_id}, resolving to free tier")
        return FREE_PLAN

    @staticmethod
    def _resolve_by_name(
        price_id: str,
        recurring_interval: Optional[str],
    ) -> ResolvedPlan:
        lowered = price_id.lower()
        if "unlimited" in lowered:
            tier = SubscriptionTier.UNLIMITED
        elif "premium" in lowered:
            tier = SubscriptionTier.PREMIUM
        else:
            return FREE_PLAN

        cycle = BillingCycle.YEARLY if recurring_interval == "year" else BillingCycle.MONTHLY
        return ResolvedPlan(tier, cycle)
