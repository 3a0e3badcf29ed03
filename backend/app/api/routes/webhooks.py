"""
Stripe Webhook Handler

Receives Stripe events and hands subscription lifecycle changes to the
reconciler. Delivery is at-least-once; the reconciler re-derives the
target state from each event, so redeliveries need no dedupe table.

Handled events:
- checkout.session.completed: fetch the new subscription and activate it
- customer.subscription.created/updated/deleted: apply the subscription state
- invoice.payment_succeeded/failed: refetch the subscription and apply it
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.api.dependencies import get_stripe_service, get_subscription_reconciler
from app.domain.billing_events import (
    LEGACY_CORRELATION_KEYS,
    USER_CORRELATION_KEY,
    BillingSubscriptionEvent,
)
from app.infrastructure.exceptions import CorrelationError, ValidationError
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.services.subscription_reconciler import SubscriptionReconciler


logger = logging.getLogger(__name__)

router = APIRouter()

SUBSCRIPTION_EVENTS = frozenset({
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
})
INVOICE_EVENTS = frozenset({
    "invoice.payment_succeeded",
    "invoice.payment_failed",
})
CHECKOUT_COMPLETED = "checkout.session.completed"


# =============================================================================
# Webhook Endpoint
# =============================================================================

@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_service: StripeService = Depends(get_stripe_service),
    reconciler: SubscriptionReconciler = Depends(get_subscription_reconciler),
):
    """
    Handle Stripe webhook events.

    Returns 200 to acknowledge events that were applied or can never be
    applied. Persistence and provider failures propagate as 5xx so
    Stripe redelivers.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe signature"
        )

    try:
        event = stripe_service.verify_webhook_signature(payload, signature)
    except ValidationError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature"
        )

    event_id = event.get("id")
    event_type = event.get("type")
    data_object = (event.get("data") or {}).get("object") or {}

    logger.info(f"Processing webhook event: {event_type} ({event_id})")

    subscription = await _subscription_for_event(event_type, data_object, stripe_service)
    if subscription is None:
        logger.debug(f"Unhandled event type: {event_type}")
        return {"status": "ignored"}

    billing_event = BillingSubscriptionEvent.from_stripe_subscription(subscription, event_type)

    try:
        outcome = await reconciler.reconcile(billing_event)
    except CorrelationError:
        # Redelivery cannot fix a missing correlation key; acknowledge it.
        return {"status": "ignored", "reason": "missing_correlation"}

    return {"status": "success", "action": outcome.action.value}


# =============================================================================
# Event Routing
# =============================================================================

async def _subscription_for_event(
    event_type: Optional[str],
    data_object: dict[str, Any],
    stripe_service: StripeService,
) -> Optional[dict[str, Any]]:
    """The Stripe subscription an event is about, or None for unhandled events."""
    if event_type in SUBSCRIPTION_EVENTS:
        return data_object

    if event_type == CHECKOUT_COMPLETED:
        subscription_id = _object_id(data_object.get("subscription"))
        if not subscription_id:
            return None
        subscription = await stripe_service.retrieve_subscription(subscription_id)
        return _with_session_correlation(subscription, data_object.get("metadata") or {})

    if event_type in INVOICE_EVENTS:
        subscription_id = _invoice_subscription_id(data_object)
        if not subscription_id:
            return None
        return await stripe_service.retrieve_subscription(subscription_id)

    return None


def _object_id(value: Any) -> Optional[str]:
    """Expandable Stripe fields are either an id or the expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def _invoice_subscription_id(invoice: dict[str, Any]) -> Optional[str]:
    """Newer API versions moved the invoice's subscription under parent."""
    subscription_id = _object_id(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return _object_id(details.get("subscription"))


def _with_session_correlation(
    subscription: dict[str, Any],
    session_metadata: dict[str, Any],
) -> dict[str, Any]:
    """Carry the checkout session's user key over when the subscription lacks one."""
    metadata = dict(subscription.get("metadata") or {})
    keys = (USER_CORRELATION_KEY, *LEGACY_CORRELATION_KEYS)
    if any(metadata.get(key) for key in keys):
        return subscription
    for key in keys:
        if session_metadata.get(key):
            metadata[USER_CORRELATION_KEY] = session_metadata[key]
            return {**subscription, "metadata": metadata}
    return subscription
