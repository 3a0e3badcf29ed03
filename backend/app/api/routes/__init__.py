# API Routes Module
from app.api.routes import (
    account,
    profiles,
    subscriptions,
    webhooks,
)

__all__ = [
    "account",
    "profiles",
    "subscriptions",
    "webhooks",
]
