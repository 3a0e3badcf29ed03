"""
Subscription Ledger - FastAPI Application

Main entry point for the backend API.
Provides endpoints for subscription status, feature gating, billing
webhooks, checkout and the scheduled expiry sweep.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config.settings import settings
from app.infrastructure.exceptions import (
    BillingProviderError,
    ConfigurationError,
    LedgerError,
    NotFoundError,
    PersistenceError,
    ReconciliationError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Something went wrong. Please try again or contact support."


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info(f"Subscription ledger starting in {settings.environment} mode ({settings.stripe_mode})...")

    from app.api.dependencies import get_price_catalog
    get_price_catalog().validate()
    logger.info("Price catalog validated")

    if settings.database_url or settings.supabase_password:
        try:
            from app.infrastructure.db.database import init_db
            await init_db()
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.warning(f"Database initialization skipped: {e}")

    yield

    # Shutdown
    if settings.database_url or settings.supabase_password:
        try:
            from app.infrastructure.db.database import close_db
            await close_db()
            logger.info("Database connection pool closed")
        except Exception as e:
            logger.warning(f"Database shutdown error: {e}")

    logger.info("Subscription ledger shutting down...")


app = FastAPI(
    title="Subscription Ledger",
    description="Subscription, usage quota and billing reconciliation API",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content=exc.to_dict(),
    )


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle not found errors."""
    return JSONResponse(
        status_code=404,
        content=exc.to_dict(),
    )


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    """Missing configuration: report which keys, never the values."""
    logger.error(f"Configuration error on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=500,
        content=exc.to_dict(),
    )


@app.exception_handler(BillingProviderError)
async def billing_provider_error_handler(request: Request, exc: BillingProviderError):
    """Provider rejections are the caller's to fix; outages are retryable."""
    return JSONResponse(
        status_code=503 if exc.retryable else 400,
        content={
            "error": exc.__class__.__name__,
            "message": exc.user_message,
            "details": {"retryable": exc.retryable},
        },
    )


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    """Datastore failures: retryable, internal details stay in the log."""
    logger.error(f"Persistence error on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=503,
        content={
            "error": exc.__class__.__name__,
            "message": GENERIC_FAILURE_MESSAGE,
            "details": {"retryable": True},
        },
    )


@app.exception_handler(ReconciliationError)
async def reconciliation_error_handler(request: Request, exc: ReconciliationError):
    """Failed transitions answer 500 so the billing provider redelivers."""
    logger.error(f"Reconciliation error on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=500,
        content={
            "error": exc.__class__.__name__,
            "message": GENERIC_FAILURE_MESSAGE,
            "details": {"retryable": True},
        },
    )


@app.exception_handler(LedgerError)
async def general_error_handler(request: Request, exc: LedgerError):
    """Handle all other application errors."""
    logger.error(f"Unhandled application error on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=500,
        content={
            "error": exc.__class__.__name__,
            "message": GENERIC_FAILURE_MESSAGE,
        },
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "subscription-ledger"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Subscription Ledger API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from app.api.routes import account, profiles, subscriptions, webhooks  # noqa: E402

app.include_router(profiles.router, prefix="/api", tags=["Profiles"])
app.include_router(subscriptions.router, prefix="/api", tags=["Subscriptions"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(account.router, prefix="/api", tags=["Account"])
