"""
API Dependencies

FastAPI dependency injection for authentication and common services.

Security: JWT tokens are verified cryptographically using Supabase JWKS (ES256)
with HS256 fallback via the JWT secret. Never decode without verification.
"""

import logging
import secrets
from functools import lru_cache
from typing import Optional

import jwt
from jwt import PyJWKClient
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config.settings import get_settings
from app.domain.tier_resolver import PriceCatalog, TierResolver
from app.infrastructure.db.dependencies import (  # noqa: F401
    get_subscription_repository,
    get_usage_repository,
    get_user_profile_repository,
    SubscriptionRepoDep,
    UsageRepoDep,
    UserProfileRepoDep,
)
from app.infrastructure.payments.stripe_service import (
    StripeService,
    get_stripe_service,
)
from app.infrastructure.services.account_service import AccountService
from app.infrastructure.services.billing_service import BillingService
from app.infrastructure.services.expiry_sweep import ExpirySweep
from app.infrastructure.services.feature_gate import FeatureGate
from app.infrastructure.services.subscription_reconciler import (
    SubscriptionReconciler,
)
from app.infrastructure.services.subscription_status_service import (
    SubscriptionStatusService,
)
from app.infrastructure.services.subscription_sync_service import (
    SubscriptionSyncService,
)
from app.infrastructure.services.usage_counter import UsageCounter


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Cached JWKS client; keys are fetched once per process.
# PyJWKClient caches keys internally and refreshes ~every 10 min.
_jwks_client: Optional[PyJWKClient] = None


def _get_jwks_client() -> PyJWKClient:
    """Return a singleton PyJWKClient for the Supabase JWKS endpoint."""
    global _jwks_client
    if _jwks_client is None:
        settings = get_settings()
        jwks_url = f"{settings.supabase_url}/auth/v1/.well-known/jwks.json"
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True)
    return _jwks_client


def _decode_with_jwks(token: str, issuer: str) -> dict:
    """Verify JWT using Supabase JWKS endpoint (ES256 asymmetric keys)."""
    client = _get_jwks_client()
    signing_key = client.get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["ES256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


def _decode_with_secret(token: str, secret: str, issuer: str) -> dict:
    """Verify JWT using HS256 symmetric secret (legacy Supabase signing)."""
    return jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Extract and verify user ID from a Supabase JWT.

    Verification strategy (in order):
      1. JWKS (ES256), preferred since it follows key rotation.
      2. HS256 with ``SUPABASE_JWT_SECRET`` as the fallback for legacy signing.

    Returns:
        Authenticated user ID (``sub`` claim).

    Raises:
        HTTPException 401: token missing, expired, or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials
    settings = get_settings()
    issuer = f"{settings.supabase_url}/auth/v1"

    payload: Optional[dict] = None

    # --- Strategy 1: JWKS (ES256) ---
    try:
        payload = _decode_with_jwks(token, issuer)
    except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as jwks_err:
        logger.debug("JWKS verification failed, trying HS256 fallback: %s", jwks_err)

    # --- Strategy 2: HS256 fallback ---
    if payload is None and settings.supabase_jwt_secret:
        try:
            payload = _decode_with_secret(
                token, settings.supabase_jwt_secret, issuer
            )
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
            )
        except jwt.InvalidTokenError as e:
            logger.warning("HS256 JWT verification also failed: %s", e)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or unverifiable token",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID",
        )

    return user_id


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """
    Optionally extract user ID from JWT token.

    Returns ``None`` if no token is provided (for public endpoints).
    """
    if not credentials:
        return None

    try:
        return await get_current_user_id(credentials)
    except HTTPException:
        return None



# =============================================================================
# Scheduler Authentication
# =============================================================================

async def verify_cron_token(
    authorization: Optional[str] = Header(default=None),
) -> None:
    """
    Verify the shared secret sent by the external scheduler.

    Expects ``Authorization: Bearer <CRON_SECRET_TOKEN>``, compared as an
    exact string.

    Raises:
        HTTPException 503: no token configured on this deployment
        HTTPException 401: header missing or token mismatch
    """
    settings = get_settings()
    if not settings.cron_secret_token:
        logger.error("CRON_SECRET_TOKEN is not configured; rejecting sweep trigger")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sweep endpoint is not configured",
        )

    expected = f"Bearer {settings.cron_secret_token}"
    if not authorization or not secrets.compare_digest(
        authorization.encode(), expected.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


# =============================================================================
# Service Providers
# Routers should import services from here, not build them directly.
# =============================================================================


@lru_cache()
def get_price_catalog() -> PriceCatalog:
    """Price catalog built once from settings."""
    return PriceCatalog.from_settings(get_settings())


@lru_cache()
def get_tier_resolver() -> TierResolver:
    return TierResolver(get_price_catalog())


@lru_cache()
def get_usage_counter() -> UsageCounter:
    return UsageCounter(get_usage_repository())


@lru_cache()
def get_subscription_reconciler() -> SubscriptionReconciler:
    return SubscriptionReconciler(
        resolver=get_tier_resolver(),
        subscriptions=get_subscription_repository(),
        profiles=get_user_profile_repository(),
        usage_counter=get_usage_counter(),
    )


@lru_cache()
def get_subscription_status_service() -> SubscriptionStatusService:
    return SubscriptionStatusService(
        subscriptions=get_subscription_repository(),
        profiles=get_user_profile_repository(),
        usage_counter=get_usage_counter(),
        reconciler=get_subscription_reconciler(),
    )


@lru_cache()
def get_feature_gate() -> FeatureGate:
    return FeatureGate(get_subscription_status_service(), get_usage_counter())


@lru_cache()
def get_expiry_sweep() -> ExpirySweep:
    return ExpirySweep(
        subscriptions=get_subscription_repository(),
        reconciler=get_subscription_reconciler(),
        expiring_soon_days=get_settings().expiring_soon_days,
    )


def get_sync_service(
    stripe_service: StripeService = Depends(get_stripe_service),
) -> SubscriptionSyncService:
    return SubscriptionSyncService(
        stripe_service=stripe_service,
        subscriptions=get_subscription_repository(),
        reconciler=get_subscription_reconciler(),
    )


def get_billing_service(
    stripe_service: StripeService = Depends(get_stripe_service),
) -> BillingService:
    return BillingService(
        stripe_service=stripe_service,
        resolver=get_tier_resolver(),
        subscriptions=get_subscription_repository(),
        reconciler=get_subscription_reconciler(),
        status_service=get_subscription_status_service(),
        frontend_url=get_settings().frontend_url,
    )


def get_account_service(
    stripe_service: StripeService = Depends(get_stripe_service),
) -> AccountService:
    return AccountService(
        stripe_service=stripe_service,
        subscriptions=get_subscription_repository(),
        profiles=get_user_profile_repository(),
        usage=get_usage_repository(),
    )
