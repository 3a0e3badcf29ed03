"""
Stripe Payment Service

Infrastructure adapter for the billing provider.
Handles checkout and portal sessions, subscription queries and changes,
and webhook signature verification.

The Stripe SDK is synchronous: every call runs in a worker thread under a
caller-imposed timeout, and results are returned as plain dicts so the
rest of the application never depends on SDK object types.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import stripe
from stripe import StripeError

from app.config.settings import get_settings
from app.domain.billing_events import USER_CORRELATION_KEY
from app.infrastructure.exceptions import (
    BillingProviderError,
    ConfigurationError,
    ValidationError,
)


logger = logging.getLogger(__name__)

GENERIC_BILLING_MESSAGE = "Billing is temporarily unavailable. Please try again or contact support."


def to_plain(obj: Any) -> Any:
    """Convert a Stripe SDK object into plain dicts/lists."""
    if obj is None or (isinstance(obj, dict) and not isinstance(obj, stripe.StripeObject)):
        return obj
    for method_name in ("to_dict_recursive", "to_dict"):
        method = getattr(obj, method_name, None)
        if callable(method):
            return method()
    return dict(obj)


class StripeService:
    """
    Stripe payment processing service.

    Args:
        api_key: Secret API key (defaults to settings)
        webhook_secret: Endpoint signing secret (defaults to settings)
        timeout_seconds: Upper bound for any single provider call
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.stripe_secret_key
        self._webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        )
        self._timeout = timeout_seconds or settings.stripe_timeout_seconds

        if self._api_key:
            stripe.api_key = self._api_key

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def _call(self, operation: str, func: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a blocking SDK call off the event loop and normalize failures."""
        if not self._api_key:
            raise ConfigurationError(
                "Stripe secret key is not configured",
                missing_keys=["STRIPE_SECRET_KEY"],
            )
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Stripe {operation} timed out after {self._timeout}s")
            raise BillingProviderError(
                f"Stripe {operation} timed out",
                retryable=True,
                user_message=GENERIC_BILLING_MESSAGE,
                original_error=e,
            ) from e
        except (stripe.APIConnectionError, stripe.RateLimitError) as e:
            logger.error(f"Stripe {operation} failed transiently: {e}")
            raise BillingProviderError(
                f"Stripe {operation} failed: {e}",
                retryable=True,
                user_message=GENERIC_BILLING_MESSAGE,
                original_error=e,
            ) from e
        except StripeError as e:
            logger.error(f"Stripe {operation} failed: {e}")
            raise BillingProviderError(
                f"Stripe {operation} failed: {e}",
                retryable=False,
                user_message=e.user_message or GENERIC_BILLING_MESSAGE,
                original_error=e,
            ) from e
        return to_plain(result)

    # =========================================================================
    # Prices
    # =========================================================================

    async def retrieve_price(self, price_id: str) -> dict:
        """Fetch a price (used to check that it exists and is active)."""
        return await self._call("retrieve_price", stripe.Price.retrieve, price_id)

    # =========================================================================
    # Checkout Session
    # =========================================================================

    async def create_checkout_session(
        self,
        price_id: str,
        user_id: str,
        success_url: str,
        cancel_url: str,
        email: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> dict:
        """
        Create a hosted Checkout Session for a subscription.

        The user id is stamped into the session metadata and into the
        metadata of the subscription Stripe creates from it, which is how
        later webhook events are correlated back to the user.

        Returns:
            Checkout session dict with "id" and "url"
        """
        params: dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "allow_promotion_codes": True,
            "billing_address_collection": "auto",
            "metadata": {USER_CORRELATION_KEY: user_id, "price_id": price_id},
            "subscription_data": {"metadata": {USER_CORRELATION_KEY: user_id}},
        }
        if customer_id:
            params["customer"] = customer_id
        elif email:
            params["customer_email"] = email

        session = await self._call("create_checkout_session", stripe.checkout.Session.create, **params)
        logger.info(f"Created checkout session {session.get('id')} for user {user_id}")
        return session

    # =========================================================================
    # Customer Portal
    # =========================================================================

    async def create_portal_session(self, customer_id: str, return_url: str) -> dict:
        """Create a Billing Portal session for self-service management."""
        session = await self._call(
            "create_portal_session",
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        logger.info(f"Created portal session for customer {customer_id}")
        return session

    # =========================================================================
    # Subscription Queries
    # =========================================================================

    async def retrieve_subscription(self, subscription_id: str) -> dict:
        """Retrieve a subscription by id."""
        return await self._call(
            "retrieve_subscription", stripe.Subscription.retrieve, subscription_id
        )

    async def list_customer_subscriptions(self, customer_id: str, limit: int = 10) -> list[dict]:
        """Recent subscriptions of a customer, any status."""
        result = await self._call(
            "list_subscriptions",
            stripe.Subscription.list,
            customer=customer_id,
            status="all",
            limit=limit,
        )
        return list(result.get("data") or [])

    # =========================================================================
    # Subscription Changes
    # =========================================================================

    async def update_subscription_metadata(self, subscription_id: str, metadata: dict[str, str]) -> dict:
        """Merge keys into a subscription's metadata."""
        return await self._call(
            "update_subscription_metadata",
            stripe.Subscription.modify,
            subscription_id,
            metadata=metadata,
        )

    async def change_subscription_price(
        self,
        subscription_id: str,
        item_id: str,
        price_id: str,
    ) -> dict:
        """Swap the price of a subscription item, prorating the difference."""
        subscription = await self._call(
            "change_subscription_price",
            stripe.Subscription.modify,
            subscription_id,
            items=[{"id": item_id, "price": price_id}],
            proration_behavior="create_prorations",
        )
        logger.info(f"Changed subscription {subscription_id} to price {price_id}")
        return subscription

    async def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> dict:
        """Schedule (or unschedule) cancellation at the end of the period."""
        subscription = await self._call(
            "set_cancel_at_period_end",
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=cancel,
        )
        logger.info(f"Set cancel_at_period_end={cancel} on subscription {subscription_id}")
        return subscription

    async def cancel_subscription(self, subscription_id: str) -> dict:
        """Cancel a subscription immediately."""
        subscription = await self._call(
            "cancel_subscription", stripe.Subscription.cancel, subscription_id
        )
        logger.info(f"Cancelled subscription {subscription_id}")
        return subscription

    async def delete_customer(self, customer_id: str) -> dict:
        """Delete a customer (account deletion)."""
        return await self._call("delete_customer", stripe.Customer.delete, customer_id)

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict:
        """
        Verify webhook signature and construct event.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header

        Returns:
            Event as a plain dict

        Raises:
            ConfigurationError: no signing secret configured
            ValidationError: payload or signature invalid
        """
        if not self._webhook_secret:
            raise ConfigurationError(
                "Stripe webhook secret is not configured",
                missing_keys=["STRIPE_WEBHOOK_SECRET"],
            )
        try:
            event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except ValueError as e:
            raise ValidationError(f"Invalid payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise ValidationError(f"Invalid signature: {e}") from e
        return to_plain(event)


# =============================================================================
# Singleton Instance (Dependency Injection Ready)
# =============================================================================

_stripe_service_instance: Optional[StripeService] = None


def get_stripe_service() -> StripeService:
    """Get or create Stripe service singleton."""
    global _stripe_service_instance

    if _stripe_service_instance is None:
        _stripe_service_instance = StripeService()

    return _stripe_service_instance
