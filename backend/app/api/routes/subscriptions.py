"""
Subscription API Routes

Status, feature gating, usage, checkout, portal, pricing, plan management,
manual sync and the scheduled expiry sweep.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Response, status

from app.api.dependencies import (
    get_billing_service,
    get_current_user_id,
    get_expiry_sweep,
    get_feature_gate,
    get_subscription_status_service,
    get_sync_service,
    get_usage_counter,
    verify_cron_token,
)
from app.domain.subscription import (
    CheckoutResponse,
    CreateCheckoutRequest,
    Feature,
    FeatureAccess,
    ManageOptionsResponse,
    ManageSubscriptionRequest,
    ManageSubscriptionResponse,
    PortalResponse,
    PortalSessionRequest,
    PricingResponse,
    SubscriptionStatusView,
    SyncResponse,
)
from app.infrastructure.services.billing_service import BillingService
from app.infrastructure.services.expiry_sweep import ExpirySweep, SweepReport
from app.infrastructure.services.feature_gate import FeatureGate
from app.infrastructure.services.subscription_status_service import SubscriptionStatusService
from app.infrastructure.services.subscription_sync_service import SubscriptionSyncService
from app.infrastructure.services.usage_counter import UsageCounter


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Subscription Status Endpoints
# =============================================================================

@router.get("/subscriptions/status", response_model=SubscriptionStatusView)
async def get_subscription_status(
    user_id: str = Depends(get_current_user_id),
    service: SubscriptionStatusService = Depends(get_subscription_status_service),
):
    """
    Get the current user's subscription status.

    Creates a default profile if none exists. An expired subscription is
    reported as free and downgraded as part of the read.
    """
    return await service.get_status(user_id)


@router.post("/subscriptions/sync", response_model=SyncResponse)
async def sync_subscription(
    user_id: str = Depends(get_current_user_id),
    service: SubscriptionSyncService = Depends(get_sync_service),
):
    """Re-read the user's subscriptions from Stripe and reconcile them."""
    logger.info(f"Manual subscription sync requested for user {user_id}")
    return await service.sync_user(user_id)


# =============================================================================
# Feature Gate Endpoints
# =============================================================================

@router.get("/subscriptions/features/{feature}", response_model=FeatureAccess)
async def check_feature(
    feature: Feature,
    user_id: str = Depends(get_current_user_id),
    gate: FeatureGate = Depends(get_feature_gate),
):
    """Check whether the current user may use a feature now."""
    return await gate.can_use(user_id, feature)


@router.post("/subscriptions/features/{feature}/use", response_model=FeatureAccess)
async def use_feature(
    feature: Feature,
    response: Response,
    payload: Optional[dict[str, Any]] = Body(default=None),
    user_id: str = Depends(get_current_user_id),
    gate: FeatureGate = Depends(get_feature_gate),
):
    """
    Record one use of a feature if the quota allows it.

    Returns 201 when the use was recorded, 200 with allowed=false and a
    reason when the monthly limit is reached.
    """
    access = await gate.consume(user_id, feature, payload)
    response.status_code = status.HTTP_201_CREATED if access.allowed else status.HTTP_200_OK
    return access


@router.post("/subscriptions/reset-usage")
async def reset_usage(
    user_id: str = Depends(get_current_user_id),
    counter: UsageCounter = Depends(get_usage_counter),
):
    """Reset this month's usage of the current user."""
    logger.info(f"Manual usage reset requested for user {user_id}")
    deleted = await counter.reset(user_id)
    return {
        "success": True,
        "message": "Usage statistics reset successfully",
        "deleted": deleted,
    }


# =============================================================================
# Checkout & Portal Endpoints
# =============================================================================

@router.post("/subscriptions/checkout", response_model=CheckoutResponse)
async def create_checkout_session(
    request: CreateCheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    service: BillingService = Depends(get_billing_service),
):
    """
    Create a Stripe Checkout session for a paid plan.

    Refused with a specific suggestion when the user already has an
    active paid subscription.
    """
    return await service.create_checkout(user_id, request)


@router.post("/subscriptions/portal", response_model=PortalResponse)
async def create_portal_session(
    request: PortalSessionRequest,
    user_id: str = Depends(get_current_user_id),
    service: BillingService = Depends(get_billing_service),
):
    """Create a Stripe Customer Portal session."""
    return await service.create_portal(user_id, request.return_url)


# =============================================================================
# Pricing Endpoints
# =============================================================================

@router.get("/subscriptions/pricing", response_model=PricingResponse)
async def get_pricing_info(
    service: BillingService = Depends(get_billing_service),
):
    """Purchasable plans, their price ids and the per-tier limits."""
    return service.get_pricing()


# =============================================================================
# Plan Management Endpoints
# =============================================================================

@router.get("/subscriptions/manage", response_model=ManageOptionsResponse)
async def get_manage_options(
    user_id: str = Depends(get_current_user_id),
    service: BillingService = Depends(get_billing_service),
):
    """Management actions available for the current subscription."""
    return await service.get_manage_options(user_id)


@router.post("/subscriptions/manage", response_model=ManageSubscriptionResponse)
async def manage_subscription(
    request: ManageSubscriptionRequest,
    user_id: str = Depends(get_current_user_id),
    service: BillingService = Depends(get_billing_service),
):
    """Change plan or billing cycle, cancel at period end, or reactivate."""
    logger.info(f"Subscription management request from user {user_id}: {request.action.value}")
    return await service.manage(user_id, request)


# =============================================================================
# Scheduled Sweep
# =============================================================================

@router.post(
    "/subscriptions/monitor",
    response_model=SweepReport,
    dependencies=[Depends(verify_cron_token)],
)
async def run_expiry_sweep(
    sweep: ExpirySweep = Depends(get_expiry_sweep),
):
    """Downgrade expired subscriptions and list those expiring soon."""
    return await sweep.run()
