"""
Subscription Database Model

SQLModel table for subscription records. A user may own many rows over
time; at most one of them is active.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, Index
from sqlmodel import Field

from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class SubscriptionModel(UUIDMixin, TimestampMixin, table=True):
    """
    Subscription table for storing billing relationships.

    Maps to the 'subscriptions' table in PostgreSQL.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        Index("ix_subscriptions_user_status", "user_id", "status"),
        Index("ix_subscriptions_status_ends_at", "status", "ends_at"),
    )

    user_id: str = Field(max_length=255, index=True, nullable=False)

    # Subscription details
    tier: str = Field(default="free", max_length=20)
    status: str = Field(default="active", max_length=20)
    billing_cycle: str = Field(default="monthly", max_length=20)
    is_premium: bool = Field(default=False)
    is_unlimited: bool = Field(default=False)

    # Billing period
    starts_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    ends_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )

    # Stripe IDs
    stripe_subscription_id: Optional[str] = Field(default=None, index=True)
    stripe_customer_id: Optional[str] = Field(default=None, index=True)
