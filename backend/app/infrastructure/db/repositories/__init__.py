"""
Repository Layer

Exports all repository classes for dependency injection.
"""

from app.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    SessionFactory,
)
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from app.infrastructure.db.repositories.usage_repository import (
    UsageRepository,
)
from app.infrastructure.db.repositories.user_profile_repository import (
    UserProfileRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    "SessionFactory",
    # Repositories
    "SubscriptionRepository",
    "UsageRepository",
    "UserProfileRepository",
]
