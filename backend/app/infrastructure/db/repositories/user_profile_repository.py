"""
UserProfile Repository

Profile operations keyed by the external identity user id.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from app.domain.subscription import UserProfile, as_utc, utcnow
from app.infrastructure.db.models.user_profile import ProfileModel, ProfileUpdate
from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.exceptions import PersistenceError


logger = logging.getLogger(__name__)


class UserProfileRepository(BaseRepository):
    """
    Repository for profile reads and writes.

    - get_or_create: lazily provisions a default profile on first contact
    - set_wants_premium: records purchase intent only
    """

    table_name = ProfileModel.__tablename__

    async def get_by_user_id(self, user_id: str) -> Optional[UserProfile]:
        """
        Get a profile by the identity provider's user id.

        Args:
            user_id: External user id (not the profile id)

        Returns:
            UserProfile or None if not found
        """
        async with self._unit_of_work("get_by_user_id") as session:
            result = await session.execute(
                select(ProfileModel).where(ProfileModel.user_id == user_id)
            )
            model = result.scalars().first()
            return self._to_domain(model) if model else None

    async def create_default(
        self,
        user_id: str,
        email: Optional[str] = None,
    ) -> UserProfile:
        """Create the default profile of a user seen for the first time."""
        async with self._unit_of_work("create_default") as session:
            now = utcnow()
            model = ProfileModel(
                user_id=user_id,
                email=email,
                display_name=f"User {user_id[:8]}",
                wants_premium=False,
                created_at=now,
                updated_at=now,
            )
            session.add(model)
            await session.flush()
            await session.refresh(model)
            logger.info(f"Created default profile for user {user_id}")
            return self._to_domain(model)

    async def get_or_create(
        self,
        user_id: str,
        email: Optional[str] = None,
    ) -> Tuple[UserProfile, bool]:
        """
        Get existing profile or create a default one.

        A concurrent first request may win the insert; the unique user_id
        then rejects ours and the winner's row is returned.

        Returns:
            Tuple of (UserProfile, was_created)
        """
        existing = await self.get_by_user_id(user_id)
        if existing:
            return existing, False

        try:
            return await self.create_default(user_id, email), True
        except PersistenceError as e:
            if not isinstance(e.original_error, IntegrityError):
                raise
            existing = await self.get_by_user_id(user_id)
            if existing is None:
                raise
            return existing, False

    async def set_wants_premium(self, user_id: str, wants_premium: bool) -> int:
        """Record purchase intent. Returns the number of profiles touched."""
        async with self._unit_of_work("set_wants_premium") as session:
            result = await session.execute(
                update(ProfileModel)
                .where(ProfileModel.user_id == user_id)
                .values(wants_premium=wants_premium, updated_at=utcnow())
            )
            return result.rowcount or 0

    async def update_by_user_id(
        self,
        user_id: str,
        data: ProfileUpdate,
    ) -> Optional[UserProfile]:
        """
        Apply a partial update.

        Returns:
            Updated UserProfile or None if not found
        """
        async with self._unit_of_work("update_by_user_id") as session:
            result = await session.execute(
                select(ProfileModel).where(ProfileModel.user_id == user_id)
            )
            model = result.scalars().first()
            if not model:
                return None

            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(model, field, value)
            model.updated_at = utcnow()

            session.add(model)
            await session.flush()
            await session.refresh(model)
            return self._to_domain(model)

    async def delete_by_user_id(self, user_id: str) -> int:
        """Delete the profile of a user. Returns rows deleted."""
        async with self._unit_of_work("delete_by_user_id") as session:
            result = await session.execute(
                delete(ProfileModel).where(ProfileModel.user_id == user_id)
            )
            return result.rowcount or 0

    def _to_domain(self, model: ProfileModel) -> UserProfile:
        return UserProfile(
            id=str(model.id),
            user_id=model.user_id,
            email=model.email,
            display_name=model.display_name,
            wants_premium=model.wants_premium,
            terms_agreed=model.terms_agreed,
            onboarding_done=model.onboarding_done,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )
