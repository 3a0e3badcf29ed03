"""
Usage Repository

Counts and records rows in the per-feature usage tables.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, func
from sqlmodel import select

from app.domain.subscription import Feature
from app.infrastructure.db.models.usage_event import USAGE_MODELS, build_usage_event
from app.infrastructure.db.repositories.base_repository import BaseRepository


class UsageRepository(BaseRepository):
    """Repository over the append-only usage streams."""

    table_name = "usage_events"

    async def count_since(self, user_id: str, feature: Feature, since: datetime) -> int:
        """Number of uses of a feature by a user with created_at >= since."""
        model = USAGE_MODELS[feature]
        async with self._unit_of_work(f"count_since:{feature.value}") as session:
            result = await session.execute(
                select(func.count())
                .select_from(model)
                .where(model.user_id == user_id, model.created_at >= since)
            )
            return int(result.scalar_one() or 0)

    async def record(
        self,
        user_id: str,
        feature: Feature,
        created_at: datetime,
        payload: Optional[dict[str, Any]] = None,
    ) -> None:
        """Append one usage row."""
        async with self._unit_of_work(f"record:{feature.value}") as session:
            session.add(build_usage_event(feature, user_id, created_at, payload))
            await session.flush()

    async def delete_since(self, user_id: str, feature: Feature, since: datetime) -> int:
        """Remove a user's rows of one feature with created_at >= since."""
        model = USAGE_MODELS[feature]
        async with self._unit_of_work(f"delete_since:{feature.value}") as session:
            result = await session.execute(
                delete(model).where(model.user_id == user_id, model.created_at >= since)
            )
            return result.rowcount or 0

    async def delete_all_for_user(self, user_id: str) -> int:
        """Remove every usage row of a user across all features."""
        deleted = 0
        async with self._unit_of_work("delete_all_for_user") as session:
            for model in USAGE_MODELS.values():
                result = await session.execute(delete(model).where(model.user_id == user_id))
                deleted += result.rowcount or 0
        return deleted
