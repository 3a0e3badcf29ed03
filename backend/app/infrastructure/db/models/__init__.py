"""
SQLModel ORM Models

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from app.infrastructure.db.models.base import (
    TimestampMixin,
    UUIDMixin,
)
from app.infrastructure.db.models.user_profile import (
    ProfileBase,
    ProfileModel,
    ProfileUpdate,
)
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.db.models.usage_event import (
    LoveMatch,
    NumerologyReading,
    TrustAssessment,
    USAGE_MODELS,
    build_usage_event,
)


__all__ = [
    # Base
    "TimestampMixin",
    "UUIDMixin",
    # Profiles
    "ProfileBase",
    "ProfileModel",
    "ProfileUpdate",
    # Subscriptions
    "SubscriptionModel",
    # Usage streams
    "NumerologyReading",
    "LoveMatch",
    "TrustAssessment",
    "USAGE_MODELS",
    "build_usage_event",
]
