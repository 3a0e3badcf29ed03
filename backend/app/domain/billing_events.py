"""
Billing Event Domain Models

Provider-neutral view of a subscription lifecycle signal. Webhook payloads
and subscriptions fetched during a sync are normalized into
BillingSubscriptionEvent before they reach the reconciler.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


# Metadata key carrying our user id on the provider's subscription.
# Subscriptions created by the previous web front end used "clerk_id".
USER_CORRELATION_KEY = "user_id"
LEGACY_CORRELATION_KEYS = ("clerk_id",)

ACTIVATING_STATUSES = frozenset({"active", "trialing"})
TERMINATING_STATUSES = frozenset({"canceled", "incomplete_expired", "past_due"})


class BillingItem(BaseModel):
    """One line item of a provider subscription."""
    price_id: Optional[str] = None
    recurring_interval: Optional[str] = None


class BillingSubscriptionEvent(BaseModel):
    """Subscription lifecycle event as seen by the reconciler."""
    type: str = "customer.subscription.updated"
    subscription_id: str
    customer_id: Optional[str] = None
    status: str
    items: list[BillingItem] = Field(default_factory=list)
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def user_correlation_key(self) -> Optional[str]:
        for key in (USER_CORRELATION_KEY, *LEGACY_CORRELATION_KEYS):
            value = self.metadata.get(key)
            if value:
                return value
        return None

    @property
    def primary_item(self) -> Optional[BillingItem]:
        return self.items[0] if self.items else None

    @property
    def price_id(self) -> Optional[str]:
        item = self.primary_item
        return item.price_id if item else None

    @classmethod
    def from_stripe_subscription(
        cls,
        subscription: dict[str, Any],
        event_type: str = "customer.subscription.updated",
    ) -> "BillingSubscriptionEvent":
        """
        Build an event from a Stripe subscription object (as a plain dict).

        Newer Stripe API versions moved the period bounds from the
        subscription onto its items, so both places are read.
        """
        raw_items = (subscription.get("items") or {}).get("data") or []
        items = []
        for raw in raw_items:
            price = raw.get("price") or {}
            recurring = price.get("recurring") or {}
            items.append(
                BillingItem(
                    price_id=price.get("id"),
                    recurring_interval=recurring.get("interval"),
                )
            )

        first_item = raw_items[0] if raw_items else {}
        period_start = subscription.get("current_period_start") or first_item.get(
            "current_period_start"
        )
        period_end = subscription.get("current_period_end") or first_item.get(
            "current_period_end"
        )

        customer = subscription.get("customer")
        if isinstance(customer, dict):
            customer = customer.get("id")

        metadata = subscription.get("metadata") or {}

        return cls(
            type=event_type,
            subscription_id=subscription["id"],
            customer_id=customer,
            status=subscription.get("status") or "",
            items=items,
            current_period_start=_from_timestamp(period_start),
            current_period_end=_from_timestamp(period_end),
            cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
            metadata={str(k): str(v) for k, v in metadata.items() if v is not None},
        )


def _from_timestamp(value: Any) -> Optional[datetime]:
    """Provider timestamps are unix seconds."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(int(value), tz=timezone.utc)
