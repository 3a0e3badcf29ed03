"""
Unit tests for the periodic expiry sweep.
"""

from datetime import timedelta

import pytest

from app.domain.subscription import SubscriptionRecord, SubscriptionTier
from app.infrastructure.services.expiry_sweep import ExpirySweep
from tests.conftest import NOW


@pytest.fixture
def sweep(subscription_repo, reconciler, clock):
    return ExpirySweep(subscription_repo, reconciler, expiring_soon_days=7, clock=clock)


def add_record(repo, user_id: str, ends_in: timedelta, tier=SubscriptionTier.PREMIUM):
    return repo.add(SubscriptionRecord(
        user_id=user_id,
        tier=tier,
        starts_at=NOW + ends_in - timedelta(days=30),
        ends_at=NOW + ends_in,
    ))


class TestExpirySweep:

    @pytest.mark.asyncio
    async def test_downgrades_expired_users(self, sweep, subscription_repo):
        add_record(subscription_repo, "user_a", timedelta(days=-1))
        add_record(subscription_repo, "user_b", timedelta(hours=-1), SubscriptionTier.UNLIMITED)
        add_record(subscription_repo, "user_c", timedelta(days=30))

        report = await sweep.run()

        assert report.processed == 2
        assert report.succeeded == 2
        assert report.failed == 0
        assert {r.user_id for r in report.expired} == {"user_a", "user_b"}
        assert all(r.status == ExpirySweep.DOWNGRADED for r in report.expired)
        assert subscription_repo.active_for("user_a") == []
        assert subscription_repo.active_for("user_b") == []
        assert len(subscription_repo.active_for("user_c")) == 1
        assert report.timestamp == NOW

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_sweep(self, sweep, subscription_repo):
        for user_id in ("user_a", "user_b", "user_c"):
            add_record(subscription_repo, user_id, timedelta(days=-2))
        subscription_repo.fail_cancel_for.add("user_b")

        report = await sweep.run()

        assert report.processed == 3
        assert report.succeeded == 2
        assert report.failed == 1
        failed = [r for r in report.expired if r.error]
        assert failed[0].user_id == "user_b"
        assert failed[0].status == ExpirySweep.ERROR
        assert failed[0].previous_tier == SubscriptionTier.PREMIUM
        assert len(subscription_repo.active_for("user_b")) == 1

    @pytest.mark.asyncio
    async def test_user_with_several_expired_rows_is_reported_once(self, sweep, subscription_repo):
        add_record(subscription_repo, "user_a", timedelta(days=-3))
        add_record(subscription_repo, "user_a", timedelta(days=-1))

        report = await sweep.run()

        assert report.processed == 1
        assert [r.user_id for r in report.expired] == ["user_a"]
        assert subscription_repo.active_for("user_a") == []

    @pytest.mark.asyncio
    async def test_rerun_is_harmless(self, sweep, subscription_repo):
        add_record(subscription_repo, "user_a", timedelta(days=-1))

        await sweep.run()
        second = await sweep.run()

        assert second.processed == 0
        assert second.expired == []

    @pytest.mark.asyncio
    async def test_reports_expiring_soon(self, sweep, subscription_repo):
        add_record(subscription_repo, "user_soon", timedelta(days=3))
        add_record(subscription_repo, "user_later", timedelta(days=10))
        add_record(subscription_repo, "user_free", timedelta(days=2), SubscriptionTier.FREE)

        report = await sweep.run()

        assert report.processed == 0
        assert [n.user_id for n in report.expiring_soon] == ["user_soon"]
        assert report.expiring_soon[0].days_until_expiry == 3
        # Informational only
        assert len(subscription_repo.active_for("user_soon")) == 1
