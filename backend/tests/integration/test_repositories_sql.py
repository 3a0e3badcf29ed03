"""
Integration tests for the repositories against a real SQL engine.

An in-memory SQLite database (aiosqlite) stands in for Postgres so the
query predicates themselves are exercised, not the in-memory fakes.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import app.infrastructure.db.models  # noqa: F401  registers the tables
from app.domain.subscription import (
    Feature,
    SubscriptionRecord,
    SubscriptionStatus,
    SubscriptionTier,
)
from app.infrastructure.db.repositories import SubscriptionRepository, UsageRepository
from tests.conftest import NOW


@pytest.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    sessions = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def factory():
        async with sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    yield factory
    await engine.dispose()


@pytest.fixture
def subscriptions(session_factory):
    return SubscriptionRepository(session_factory)


@pytest.fixture
def usage(session_factory):
    return UsageRepository(session_factory)


async def store(repo, user_id: str, ends_in: timedelta, **overrides) -> SubscriptionRecord:
    values = dict(
        user_id=user_id,
        tier=SubscriptionTier.PREMIUM,
        status=SubscriptionStatus.ACTIVE,
        starts_at=NOW + ends_in - timedelta(days=30),
        ends_at=NOW + ends_in,
    )
    values.update(overrides)
    return await repo.create_active(SubscriptionRecord(**values))


class TestSubscriptionQueries:

    @pytest.mark.asyncio
    async def test_list_expired_active_filters(self, subscriptions):
        expired = await store(subscriptions, "user_expired", timedelta(days=-1))
        await store(subscriptions, "user_current", timedelta(days=5))
        await store(subscriptions, "user_free", timedelta(days=-1), tier=SubscriptionTier.FREE)
        await store(
            subscriptions, "user_canceled", timedelta(days=-1), status=SubscriptionStatus.CANCELED
        )

        result = await subscriptions.list_expired_active(NOW)

        assert [r.id for r in result] == [expired.id]
        assert result[0].ends_at == NOW - timedelta(days=1)

    @pytest.mark.asyncio
    async def test_cancel_only_records_ended_before(self, subscriptions):
        await store(subscriptions, "user_1", timedelta(days=-2))
        current = await store(subscriptions, "user_1", timedelta(days=20))

        canceled = await subscriptions.cancel_active_for_user("user_1", ended_before=NOW)

        assert canceled == 1
        active = await subscriptions.list_for_user("user_1", SubscriptionStatus.ACTIVE)
        assert [r.id for r in active] == [current.id]
        assert await subscriptions.cancel_active_for_user("user_1", ended_before=NOW) == 0

    @pytest.mark.asyncio
    async def test_cancel_keeps_excluded_record(self, subscriptions):
        older = await store(subscriptions, "user_1", timedelta(days=20))
        kept = await store(subscriptions, "user_1", timedelta(days=20))

        canceled = await subscriptions.cancel_active_for_user("user_1", exclude_id=kept.id)

        assert canceled == 1
        active = await subscriptions.get_active_for_user("user_1")
        assert active.id == kept.id
        records = await subscriptions.list_for_user("user_1")
        statuses = {r.id: r.status for r in records}
        assert statuses[older.id] == SubscriptionStatus.CANCELED


class TestUsageWindow:

    @pytest.mark.asyncio
    async def test_count_and_delete_since_month_start(self, usage):
        month_start = datetime(2026, 3, 1, tzinfo=timezone.utc)
        await usage.record("user_1", Feature.NUMEROLOGY, month_start - timedelta(seconds=1))
        await usage.record("user_1", Feature.NUMEROLOGY, month_start)
        await usage.record("user_1", Feature.NUMEROLOGY, NOW)
        await usage.record("user_1", Feature.LOVE_MATCH, NOW)
        await usage.record("user_2", Feature.NUMEROLOGY, NOW)

        assert await usage.count_since("user_1", Feature.NUMEROLOGY, month_start) == 2

        deleted = await usage.delete_since("user_1", Feature.NUMEROLOGY, month_start)

        assert deleted == 2
        assert await usage.count_since("user_1", Feature.NUMEROLOGY, month_start) == 0
        assert await usage.count_since(
            "user_1", Feature.NUMEROLOGY, datetime(2026, 2, 1, tzinfo=timezone.utc)
        ) == 1
        assert await usage.count_since("user_1", Feature.LOVE_MATCH, month_start) == 1
        assert await usage.count_since("user_2", Feature.NUMEROLOGY, month_start) == 1
