"""
Dependency Injection Providers for repositories

Repositories open their own sessions, so a single process-wide instance
of each is shared by all requests.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from app.infrastructure.db.repositories import (
    SubscriptionRepository,
    UsageRepository,
    UserProfileRepository,
)


@lru_cache()
def get_subscription_repository() -> SubscriptionRepository:
    """Dependency provider for SubscriptionRepository."""
    return SubscriptionRepository()


@lru_cache()
def get_user_profile_repository() -> UserProfileRepository:
    """Dependency provider for UserProfileRepository."""
    return UserProfileRepository()


@lru_cache()
def get_usage_repository() -> UsageRepository:
    """Dependency provider for UsageRepository."""
    return UsageRepository()


# Type aliases for cleaner route signatures
SubscriptionRepoDep = Annotated[SubscriptionRepository, Depends(get_subscription_repository)]
UserProfileRepoDep = Annotated[UserProfileRepository, Depends(get_user_profile_repository)]
UsageRepoDep = Annotated[UsageRepository, Depends(get_usage_repository)]
