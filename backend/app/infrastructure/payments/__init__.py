"""
Payments Infrastructure Module

Stripe adapter for checkout, portal, subscription queries and webhooks.
"""

from app.infrastructure.payments.stripe_service import (
    StripeService,
    get_stripe_service,
    to_plain,
)

__all__ = ["StripeService", "get_stripe_service", "to_plain"]
