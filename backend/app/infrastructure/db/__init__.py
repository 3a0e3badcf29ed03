"""
Database Infrastructure Package

Exports database utilities, models, and repositories.
"""

from app.infrastructure.db.database import (
    DatabaseManager,
    get_db_manager,
    get_session_context,
    init_db,
    close_db,
)

from app.infrastructure.db.dependencies import (
    get_subscription_repository,
    get_usage_repository,
    get_user_profile_repository,
    SubscriptionRepoDep,
    UsageRepoDep,
    UserProfileRepoDep,
)


__all__ = [
    # Database management
    "DatabaseManager",
    "get_db_manager",
    "get_session_context",
    "init_db",
    "close_db",
    # Dependencies
    "get_subscription_repository",
    "get_usage_repository",
    "get_user_profile_repository",
    "SubscriptionRepoDep",
    "UsageRepoDep",
    "UserProfileRepoDep",
]
