"""
Alembic Environment Configuration for the subscription ledger

Customized for:
- Async SQLAlchemy/SQLModel
- Connection URL resolved the same way as the application
- Exclude Supabase system tables from autogenerate
"""

import asyncio
import os
import sys
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine
from alembic import context

# Add the backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlmodel import SQLModel

from app.infrastructure.db.database import resolve_database_url

# Import all models to register them with SQLModel.metadata
from app.infrastructure.db.models import (  # noqa: F401
    ProfileModel,
    SubscriptionModel,
    NumerologyReading,
    LoveMatch,
    TrustAssessment,
)

# Alembic Config object
config = context.config

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# SQLModel metadata for autogenerate
target_metadata = SQLModel.metadata

# Schemas owned by the managed Postgres platform
SYSTEM_SCHEMAS = ("auth", "storage", "realtime", "extensions", "graphql", "graphql_public")


def include_object(object, name, type_, reflected, compare_to):
    """Filter objects for autogenerate: only tables we declare."""
    if type_ == "table":
        schema = getattr(object, "schema", None)
        if schema in SYSTEM_SCHEMAS:
            return False
        if reflected and name not in target_metadata.tables:
            return False
    return True


def _context_options() -> dict:
    """Options shared by offline script generation and online runs."""
    return {
        "target_metadata": target_metadata,
        "include_object": include_object,
        "compare_type": True,
    }


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    context.configure(
        url=resolve_database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_context_options(),
    )

    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection) -> None:
    context.configure(
        connection=connection,
        compare_server_default=True,
        **_context_options(),
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Apply migrations over a throwaway async engine."""
    engine = create_async_engine(resolve_database_url(), poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
