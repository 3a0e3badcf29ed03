"""
Subscription Repository

Data access layer for subscription records.
Each method is its own transaction; cross-row invariants (at most one
active record per user) are maintained by the reconciler's sequencing.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, update
from sqlmodel import select

from app.domain.subscription import (
    BillingCycle,
    SubscriptionRecord,
    SubscriptionStatus,
    SubscriptionTier,
    as_utc,
    utcnow,
)
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class SubscriptionRepository(BaseRepository):
    """
    Repository for subscription record access.

    Implements the record store operations with domain model mapping.
    """

    table_name = SubscriptionModel.__tablename__

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_active_for_user(self, user_id: str) -> Optional[SubscriptionRecord]:
        """
        Get the most recent active subscription of a user.

        Args:
            user_id: External identity user id

        Returns:
            SubscriptionRecord or None when the user has no active record
        """
        async with self._unit_of_work("get_active_for_user") as session:
            statement = (
                select(SubscriptionModel)
                .where(
                    SubscriptionModel.user_id == user_id,
                    SubscriptionModel.status == SubscriptionStatus.ACTIVE.value,
                )
                .order_by(SubscriptionModel.created_at.desc())
                .limit(1)
            )
            result = await session.execute(statement)
            model = result.scalars().first()
            return self._to_domain(model) if model else None

    async def get_latest_with_customer(self, user_id: str) -> Optional[SubscriptionRecord]:
        """Most recent record (any status) that carries a billing customer id."""
        async with self._unit_of_work("get_latest_with_customer") as session:
            statement = (
                select(SubscriptionModel)
                .where(
                    SubscriptionModel.user_id == user_id,
                    SubscriptionModel.stripe_customer_id.is_not(None),
                )
                .order_by(SubscriptionModel.created_at.desc())
                .limit(1)
            )
            result = await session.execute(statement)
            model = result.scalars().first()
            return self._to_domain(model) if model else None

    async def list_for_user(
        self,
        user_id: str,
        status: Optional[SubscriptionStatus] = None,
    ) -> list[SubscriptionRecord]:
        """All records of a user, most recent first."""
        async with self._unit_of_work("list_for_user") as session:
            statement = select(SubscriptionModel).where(SubscriptionModel.user_id == user_id)
            if status is not None:
                statement = statement.where(SubscriptionModel.status == status.value)
            statement = statement.order_by(SubscriptionModel.created_at.desc())
            result = await session.execute(statement)
            return [self._to_domain(model) for model in result.scalars().all()]

    async def list_expired_active(self, now: datetime) -> list[SubscriptionRecord]:
        """Active paid records whose ends_at is already in the past."""
        async with self._unit_of_work("list_expired_active") as session:
            statement = (
                select(SubscriptionModel)
                .where(
                    SubscriptionModel.status == SubscriptionStatus.ACTIVE.value,
                    SubscriptionModel.tier != SubscriptionTier.FREE.value,
                    SubscriptionModel.ends_at < now,
                )
                .order_by(SubscriptionModel.ends_at)
            )
            result = await session.execute(statement)
            return [self._to_domain(model) for model in result.scalars().all()]

    async def list_expiring_between(
        self,
        start: datetime,
        end: datetime,
    ) -> list[SubscriptionRecord]:
        """Active paid records with start < ends_at < end."""
        async with self._unit_of_work("list_expiring_between") as session:
            statement = (
                select(SubscriptionModel)
                .where(
                    SubscriptionModel.status == SubscriptionStatus.ACTIVE.value,
                    SubscriptionModel.tier != SubscriptionTier.FREE.value,
                    SubscriptionModel.ends_at > start,
                    SubscriptionModel.ends_at < end,
                )
                .order_by(SubscriptionModel.ends_at)
            )
            result = await session.execute(statement)
            return [self._to_domain(model) for model in result.scalars().all()]

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def create_active(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """
        Insert a new record.

        Callers cancel the user's previous active record first.
        """
        async with self._unit_of_work("create_active") as session:
            model = self._to_model(record)
            now = utcnow()
            model.created_at = now
            model.updated_at = now

            session.add(model)
            await session.flush()
            await session.refresh(model)

            logger.info(
                f"Created {model.tier} subscription {model.id} for user {model.user_id}"
            )
            return self._to_domain(model)

    async def cancel_active_for_user(
        self,
        user_id: str,
        ended_before: Optional[datetime] = None,
        exclude_id: Optional[str] = None,
    ) -> int:
        """
        Mark a user's active records canceled.

        Args:
            user_id: External identity user id
            ended_before: Only cancel records whose ends_at is before this
            exclude_id: Record id left untouched

        Returns:
            Number of records canceled
        """
        async with self._unit_of_work("cancel_active_for_user") as session:
            statement = update(SubscriptionModel).where(
                SubscriptionModel.user_id == user_id,
                SubscriptionModel.status == SubscriptionStatus.ACTIVE.value,
            )
            if ended_before is not None:
                statement = statement.where(SubscriptionModel.ends_at < ended_before)
            if exclude_id is not None:
                statement = statement.where(SubscriptionModel.id != UUID(exclude_id))
            statement = statement.values(
                status=SubscriptionStatus.CANCELED.value,
                updated_at=utcnow(),
            )
            result = await session.execute(statement)
            return result.rowcount or 0

    async def delete_for_user(self, user_id: str) -> int:
        """Physically delete all records of a user (account deletion only)."""
        async with self._unit_of_work("delete_for_user") as session:
            result = await session.execute(
                delete(SubscriptionModel).where(SubscriptionModel.user_id == user_id)
            )
            return result.rowcount or 0

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(self, model: SubscriptionModel) -> SubscriptionRecord:
        """Convert database model to domain entity."""
        return SubscriptionRecord(
            id=str(model.id),
            user_id=model.user_id,
            tier=SubscriptionTier(model.tier),
            status=SubscriptionStatus(model.status),
            billing_cycle=BillingCycle(model.billing_cycle) if model.billing_cycle else BillingCycle.MONTHLY,
            starts_at=as_utc(model.starts_at),
            ends_at=as_utc(model.ends_at),
            external_subscription_id=model.stripe_subscription_id,
            external_customer_id=model.stripe_customer_id,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )

    def _to_model(self, domain: SubscriptionRecord) -> SubscriptionModel:
        """Convert domain entity to database model."""
        model = SubscriptionModel(
            user_id=domain.user_id,
            tier=domain.tier.value,
            status=domain.status.value,
            billing_cycle=domain.billing_cycle.value,
            is_premium=domain.is_premium,
            is_unlimited=domain.is_unlimited,
            starts_at=domain.starts_at,
            ends_at=domain.ends_at,
            stripe_subscription_id=domain.external_subscription_id,
            stripe_customer_id=domain.external_customer_id,
        )
        if domain.id:
            model.id = UUID(domain.id)
        return model
