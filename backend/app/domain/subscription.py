"""
Subscription Domain Models

Domain models for subscription management following Clean Architecture.
Enums, DTOs, quota configuration and the pure expiry rules for the
subscription bounded context.
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, ConfigDict, Field


class SubscriptionTier(str, Enum):
    """Subscription tier levels."""
    FREE = "free"
    PREMIUM = "premium"
    UNLIMITED = "unlimited"


class SubscriptionStatus(str, Enum):
    """Local subscription record status."""
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    INCOMPLETE = "incomplete"


class BillingCycle(str, Enum):
    """Billing cycle for subscriptions."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Feature(str, Enum):
    """Metered product features, one usage stream each."""
    NUMEROLOGY = "numerology"
    LOVE_MATCH = "love_match"
    TRUST_ASSESSMENT = "trust_assessment"


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize naive datetimes (read back from the DB) to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# Domain Entities
# =============================================================================

class UserProfile(BaseModel):
    """Profile of an identity-provider user."""
    id: Optional[str] = None
    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    wants_premium: bool = False
    terms_agreed: bool = False
    onboarding_done: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SubscriptionRecord(BaseModel):
    """One billing relationship of a user, as tracked locally."""
    id: Optional[str] = None
    user_id: str
    tier: SubscriptionTier = SubscriptionTier.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    external_subscription_id: Optional[str] = None
    external_customer_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_premium(self) -> bool:
        return self.tier in (SubscriptionTier.PREMIUM, SubscriptionTier.UNLIMITED)

    @property
    def is_unlimited(self) -> bool:
        return self.tier == SubscriptionTier.UNLIMITED


class FeatureCounts(BaseModel):
    """Per-feature integers: used for both usage counts and limits."""
    numerology: int = 0
    love_match: int = 0
    trust_assessment: int = 0

    def get(self, feature: Feature) -> int:
        return getattr(self, feature.value)


# =============================================================================
# Quota Table (Business Logic)
# =============================================================================

UNLIMITED = -1

QUOTA_TABLE: dict[SubscriptionTier, dict[Feature, int]] = {
    SubscriptionTier.FREE: {
        Feature.NUMEROLOGY: 3,
        Feature.LOVE_MATCH: 3,
        Feature.TRUST_ASSESSMENT: 3,
    },
    SubscriptionTier.PREMIUM: {
        Feature.NUMEROLOGY: 25,
        Feature.LOVE_MATCH: 10,
        Feature.TRUST_ASSESSMENT: 15,
    },
    SubscriptionTier.UNLIMITED: {
        Feature.NUMEROLOGY: UNLIMITED,
        Feature.LOVE_MATCH: UNLIMITED,
        Feature.TRUST_ASSESSMENT: UNLIMITED,
    },
}

TIER_DISPLAY_NAMES = {
    SubscriptionTier.FREE: "Free",
    SubscriptionTier.PREMIUM: "Premium",
    SubscriptionTier.UNLIMITED: "Unlimited",
}

FEATURE_DISPLAY_NAMES = {
    Feature.NUMEROLOGY: "Numerology readings",
    Feature.LOVE_MATCH: "Love Match analyses",
    Feature.TRUST_ASSESSMENT: "Trust Assessments",
}


def get_feature_limit(tier: SubscriptionTier, feature: Feature) -> int:
    """Get the monthly allowance of a feature for a tier. -1 means unlimited."""
    return QUOTA_TABLE[tier][feature]


def get_tier_limits(tier: SubscriptionTier) -> FeatureCounts:
    """All monthly allowances of a tier."""
    limits = QUOTA_TABLE[tier]
    return FeatureCounts(**{feature.value: limit for feature, limit in limits.items()})


def plan_display_name(tier: SubscriptionTier, billing_cycle: Optional[BillingCycle] = None) -> str:
    """Human readable plan name, e.g. 'Premium Yearly'."""
    name = TIER_DISPLAY_NAMES[tier]
    if tier == SubscriptionTier.FREE or billing_cycle is None:
        return name
    return f"{name} {'Yearly' if billing_cycle == BillingCycle.YEARLY else 'Monthly'}"


# =============================================================================
# Expiry Rules
# =============================================================================

def add_billing_period(start: datetime, billing_cycle: BillingCycle) -> datetime:
    """End of a billing period that starts at `start`."""
    if billing_cycle == BillingCycle.YEARLY:
        return start + relativedelta(years=1)
    return start + relativedelta(months=1)


def is_record_expired(record: SubscriptionRecord, now: datetime) -> bool:
    """An active record whose ends_at lies in the past is logically expired."""
    ends_at = as_utc(record.ends_at)
    return ends_at is not None and ends_at < now


def compute_effective_tier(
    record: Optional[SubscriptionRecord],
    now: datetime,
) -> SubscriptionTier:
    """
    Tier a user is entitled to right now.

    Pure query: never touches persistence. Records that are not active,
    or active but past their ends_at, grant nothing beyond the free tier.
    """
    if record is None or record.status != SubscriptionStatus.ACTIVE:
        return SubscriptionTier.FREE
    if is_record_expired(record, now):
        return SubscriptionTier.FREE
    return record.tier


def days_remaining(record: Optional[SubscriptionRecord], now: datetime) -> Optional[int]:
    """Whole days (rounded up) until ends_at; negative once expired."""
    if record is None or record.ends_at is None:
        return None
    delta = as_utc(record.ends_at) - now
    return math.ceil(delta.total_seconds() / 86400)


# =============================================================================
# Read Models
# =============================================================================

class SubscriptionSummary(BaseModel):
    """Effective subscription state returned by the status read path."""
    id: str = ""
    tier: SubscriptionTier = SubscriptionTier.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    is_premium: bool = False
    is_unlimited: bool = False
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    is_expired: bool = False
    days_remaining: Optional[int] = None


class SubscriptionStatusView(BaseModel):
    """Response DTO for subscription status."""
    subscription: SubscriptionSummary
    usage: FeatureCounts
    limits: FeatureCounts
    profile: Optional[UserProfile] = None


class FeatureAccess(BaseModel):
    """Answer of the feature gate."""
    feature: Feature
    allowed: bool
    reason: Optional[str] = None
    used: int = 0
    limit: int = 0
    tier: SubscriptionTier = SubscriptionTier.FREE


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CreateCheckoutRequest(BaseModel):
    """Request DTO for creating a checkout session."""
    price_id: Optional[str] = Field(
        default=None,
        description="Billing provider price identifier"
    )
    tier: Optional[SubscriptionTier] = Field(
        default=None,
        description="Tier to purchase (used when price_id is omitted)"
    )
    billing_cycle: BillingCycle = Field(
        default=BillingCycle.MONTHLY,
        description="Billing cycle (used when price_id is omitted)"
    )
    email: Optional[str] = Field(default=None, description="Receipt email")
    success_url: Optional[str] = Field(default=None, description="Redirect after payment")
    cancel_url: Optional[str] = Field(default=None, description="Redirect after cancel")


class CheckoutResponse(BaseModel):
    """Response DTO for checkout session creation."""
    checkout_url: str
    session_id: str


class PortalSessionRequest(BaseModel):
    """Request DTO for creating a billing portal session."""
    return_url: Optional[str] = Field(default=None, description="URL to return to")


class PortalResponse(BaseModel):
    """Response DTO for portal session creation."""
    portal_url: str


class PricingPlan(BaseModel):
    """Pricing information for one tier and billing cycle."""
    tier: SubscriptionTier
    billing_cycle: BillingCycle
    name: str
    price_id: str
    price: float
    original_price: Optional[float] = None
    features: list[str]


class PricingResponse(BaseModel):
    """Response DTO for pricing information."""
    plans: list[PricingPlan]
    limits: dict[SubscriptionTier, FeatureCounts]


class ManageAction(str, Enum):
    """Self-service subscription management actions."""
    UPGRADE = "upgrade"
    CHANGE_PLAN = "change_plan"
    CHANGE_BILLING_CYCLE = "change_billing_cycle"
    CANCEL = "cancel"
    REACTIVATE = "reactivate"


class ManageSubscriptionRequest(BaseModel):
    """Request DTO for subscription management."""
    action: ManageAction
    price_id: Optional[str] = None


class ManageOptionsResponse(BaseModel):
    """Available management actions for the current user."""
    has_subscription: bool
    current_tier: SubscriptionTier
    available_actions: list[ManageAction]
    subscription: Optional[SubscriptionSummary] = None
    external_subscription_id: Optional[str] = None


class ManageSubscriptionResponse(BaseModel):
    """Result of a management action."""
    success: bool
    message: str
    subscription_id: Optional[str] = None
    cancel_at_period_end: Optional[bool] = None


class SyncResponse(BaseModel):
    """Result of a manual billing provider sync."""
    success: bool
    message: str
    subscription_id: Optional[str] = None
    status: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
