"""
Billing Service

Customer-facing billing flows: checkout, billing portal, pricing and
self-service plan management. Plan changes made here are reconciled
locally right away instead of waiting for the webhook.
"""

import logging
from typing import Optional

from app.domain.billing_events import USER_CORRELATION_KEY, BillingSubscriptionEvent
from app.domain.subscription import (
    FEATURE_DISPLAY_NAMES,
    UNLIMITED,
    BillingCycle,
    CheckoutResponse,
    CreateCheckoutRequest,
    Feature,
    ManageAction,
    ManageOptionsResponse,
    ManageSubscriptionRequest,
    ManageSubscriptionResponse,
    PortalResponse,
    PricingPlan,
    PricingResponse,
    SubscriptionTier,
    get_feature_limit,
    get_tier_limits,
    plan_display_name,
)
from app.domain.tier_resolver import TierResolver
from app.infrastructure.db.repositories.subscription_repository import SubscriptionRepository
from app.infrastructure.exceptions import (
    BillingProviderError,
    NotFoundError,
    ValidationError,
)
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.services.subscription_reconciler import SubscriptionReconciler
from app.infrastructure.services.subscription_status_service import SubscriptionStatusService


logger = logging.getLogger(__name__)

MANAGE_EVENT_TYPE = "subscription.manage"

# (tier, cycle) -> (price in USD, undiscounted yearly equivalent)
PLAN_PRICES = {
    (SubscriptionTier.PREMIUM, BillingCycle.MONTHLY): (4.99, None),
    (SubscriptionTier.PREMIUM, BillingCycle.YEARLY): (49.99, 59.88),
    (SubscriptionTier.UNLIMITED, BillingCycle.MONTHLY): (12.99, None),
    (SubscriptionTier.UNLIMITED, BillingCycle.YEARLY): (129.99, 155.88),
}

EXTRA_FEATURES = {
    SubscriptionTier.PREMIUM: ["Advanced AI insights", "Priority support"],
    SubscriptionTier.UNLIMITED: [
        "Advanced AI insights",
        "Priority support",
        "Early access to new features",
        "Export capabilities",
    ],
}


def describe_plan_features(tier: SubscriptionTier, billing_cycle: BillingCycle) -> list[str]:
    """Marketing feature list of a plan, derived from the quota table."""
    features = []
    for feature in Feature:
        limit = get_feature_limit(tier, feature)
        name = FEATURE_DISPLAY_NAMES[feature]
        if limit == UNLIMITED:
            features.append(f"Unlimited {name}")
        else:
            features.append(f"Up to {limit} {name} per month")
    features.extend(EXTRA_FEATURES.get(tier, []))

    price, original = PLAN_PRICES[(tier, billing_cycle)]
    if original:
        features.append(f"Save ${original - price:.2f}/year")
    return features


class BillingService:
    """
    Checkout, portal, pricing and plan management.

    Args:
        stripe_service: Billing provider adapter
        resolver: Price id to plan mapping (carries the price catalog)
        subscriptions: Record store
        reconciler: Applies plan changes locally
        status_service: Effective tier lookups
        frontend_url: Base URL for default redirect targets
    """

    def __init__(
        self,
        stripe_service: StripeService,
        resolver: TierResolver,
        subscriptions: SubscriptionRepository,
        reconciler: SubscriptionReconciler,
        status_service: SubscriptionStatusService,
        frontend_url: str,
    ):
        self._stripe = stripe_service
        self._resolver = resolver
        self._subscriptions = subscriptions
        self._reconciler = reconciler
        self._status = status_service
        self._frontend_url = frontend_url.rstrip("/")

    # =========================================================================
    # Checkout
    # =========================================================================

    async def create_checkout(
        self,
        user_id: str,
        request: CreateCheckoutRequest,
    ) -> CheckoutResponse:
        """
        Start a hosted checkout for a paid plan.

        Raises:
            ValidationError: no plan selected, unknown or inactive price, or
                the user already has an active paid subscription
        """
        price_id = request.price_id
        if not price_id:
            if request.tier is None or request.tier == SubscriptionTier.FREE:
                raise ValidationError("Price ID is required. Please select a valid subscription plan.")
            price_id = self._resolver.catalog.price_id_for(request.tier, request.billing_cycle)

        plan = self._resolver.resolve(price_id)
        if not plan.is_paid:
            raise ValidationError(
                "Invalid subscription plan selected. Please refresh the page and try again.",
                details={"price_id": price_id},
            )

        current_tier, _ = await self._status.resolve_tier(user_id)
        if current_tier != SubscriptionTier.FREE:
            message, suggestion = self._existing_subscription_advice(current_tier, plan.tier)
            raise ValidationError(
                message,
                details={
                    "has_active_subscription": True,
                    "current_tier": current_tier.value,
                    "requested_tier": plan.tier.value,
                    "action_suggestion": suggestion,
                    "billing_portal_available": True,
                },
            )

        price = await self._stripe.retrieve_price(price_id)
        if not price.get("active"):
            raise ValidationError(
                "The selected subscription plan is currently inactive. Please try a different plan.",
                details={"price_id": price_id},
            )

        previous = await self._subscriptions.get_latest_with_customer(user_id)
        session = await self._stripe.create_checkout_session(
            price_id=price_id,
            user_id=user_id,
            success_url=request.success_url
            or f"{self._frontend_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=request.cancel_url or f"{self._frontend_url}/pricing",
            email=request.email,
            customer_id=previous.external_customer_id if previous else None,
        )
        if not session.get("url"):
            raise BillingProviderError(
                "Checkout session was created without a URL",
                retryable=True,
                user_message="Failed to create checkout session. Please try again.",
            )

        return CheckoutResponse(checkout_url=session["url"], session_id=session["id"])

    @staticmethod
    def _existing_subscription_advice(
        current: SubscriptionTier,
        requested: SubscriptionTier,
    ) -> tuple[str, str]:
        if current == SubscriptionTier.PREMIUM and requested == SubscriptionTier.UNLIMITED:
            return "You can upgrade from Premium to Unlimited through your billing portal.", "upgrade"
        if current == SubscriptionTier.UNLIMITED and requested == SubscriptionTier.PREMIUM:
            return "You already have Unlimited access which includes all Premium features.", "downgrade"
        if current == requested:
            return f"You already have an active {current.value} subscription.", "manage"
        return (
            "You already have an active subscription. Use your billing portal to manage or change your plan.",
            "manage",
        )

    # =========================================================================
    # Portal
    # =========================================================================

    async def create_portal(self, user_id: str, return_url: Optional[str] = None) -> PortalResponse:
        """Open the billing portal for the user's customer."""
        record = await self._subscriptions.get_latest_with_customer(user_id)
        if record is None or not record.external_customer_id:
            raise NotFoundError("No subscription found. Please subscribe first.")

        session = await self._stripe.create_portal_session(
            customer_id=record.external_customer_id,
            return_url=return_url or f"{self._frontend_url}/dashboard",
        )
        return PortalResponse(portal_url=session["url"])

    # =========================================================================
    # Pricing
    # =========================================================================

    def get_pricing(self) -> PricingResponse:
        """
        Purchasable plans with their price ids.

        Raises:
            ConfigurationError: a price id is missing from the catalog
        """
        catalog = self._resolver.catalog.validate()

        plans = []
        for (tier, cycle), (price, original) in PLAN_PRICES.items():
            plans.append(
                PricingPlan(
                    tier=tier,
                    billing_cycle=cycle,
                    name=plan_display_name(tier, cycle),
                    price_id=catalog.price_id_for(tier, cycle),
                    price=price,
                    original_price=original,
                    features=describe_plan_features(tier, cycle),
                )
            )

        return PricingResponse(
            plans=plans,
            limits={tier: get_tier_limits(tier) for tier in SubscriptionTier},
        )

    # =========================================================================
    # Plan Management
    # =========================================================================

    async def get_manage_options(self, user_id: str) -> ManageOptionsResponse:
        """Actions the user can take on their current subscription."""
        status = await self._status.get_status(user_id)
        record = await self._subscriptions.get_active_for_user(user_id)
        tier = status.subscription.tier

        if record is None or not record.external_subscription_id or tier == SubscriptionTier.FREE:
            return ManageOptionsResponse(
                has_subscription=False,
                current_tier=tier,
                available_actions=[ManageAction.UPGRADE],
            )

        actions = [ManageAction.CANCEL, ManageAction.CHANGE_PLAN, ManageAction.CHANGE_BILLING_CYCLE]
        summary = status.subscription
        try:
            remote = await self._stripe.retrieve_subscription(record.external_subscription_id)
            summary.cancel_at_period_end = bool(remote.get("cancel_at_period_end"))
        except BillingProviderError as e:
            logger.warning(f"Could not read cancellation state of {record.external_subscription_id}: {e}")
        if summary.cancel_at_period_end:
            actions.append(ManageAction.REACTIVATE)

        return ManageOptionsResponse(
            has_subscription=True,
            current_tier=tier,
            available_actions=actions,
            subscription=summary,
            external_subscription_id=record.external_subscription_id,
        )

    async def manage(
        self,
        user_id: str,
        request: ManageSubscriptionRequest,
    ) -> ManageSubscriptionResponse:
        """
        Apply a management action to the user's active subscription.

        Raises:
            ValidationError: no active billing subscription, or a plan
                change without a valid price id
        """
        record = await self._subscriptions.get_active_for_user(user_id)
        if record is None or not record.external_subscription_id:
            raise ValidationError("No active subscription found")
        subscription_id = record.external_subscription_id

        if request.action == ManageAction.CANCEL:
            await self._stripe.set_cancel_at_period_end(subscription_id, True)
            return ManageSubscriptionResponse(
                success=True,
                message="Subscription will be cancelled at the end of the current period",
                subscription_id=subscription_id,
                cancel_at_period_end=True,
            )

        if request.action == ManageAction.REACTIVATE:
            await self._stripe.set_cancel_at_period_end(subscription_id, False)
            return ManageSubscriptionResponse(
                success=True,
                message="Subscription reactivated successfully",
                subscription_id=subscription_id,
                cancel_at_period_end=False,
            )

        return await self._change_price(user_id, subscription_id, request)

    async def _change_price(
        self,
        user_id: str,
        subscription_id: str,
        request: ManageSubscriptionRequest,
    ) -> ManageSubscriptionResponse:
        if not request.price_id:
            raise ValidationError("Price ID is required to change plans")
        if not self._resolver.resolve(request.price_id).is_paid:
            raise ValidationError(
                "Invalid subscription plan selected.",
                details={"price_id": request.price_id},
            )

        remote = await self._stripe.retrieve_subscription(subscription_id)
        items = (remote.get("items") or {}).get("data") or []
        if not items:
            raise NotFoundError(f"Subscription {subscription_id} has no items")

        updated = await self._stripe.change_subscription_price(
            subscription_id, items[0]["id"], request.price_id
        )

        event = BillingSubscriptionEvent.from_stripe_subscription(updated, MANAGE_EVENT_TYPE)
        if not event.user_correlation_key:
            event.metadata[USER_CORRELATION_KEY] = user_id
        await self._reconciler.reconcile(event)

        message = (
            "Billing cycle updated successfully"
            if request.action == ManageAction.CHANGE_BILLING_CYCLE
            else "Subscription updated successfully"
        )
        return ManageSubscriptionResponse(
            success=True,
            message=message,
            subscription_id=subscription_id,
            cancel_at_period_end=event.cancel_at_period_end,
        )
