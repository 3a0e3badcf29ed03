"""
UserProfile SQLModel

One row per identity-provider user, keyed by the external user id.
"""

from typing import Optional

from pydantic import ConfigDict
from sqlmodel import Field, SQLModel

from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class ProfileBase(SQLModel):
    """Editable profile fields (shared between table and update schema)."""

    email: Optional[str] = Field(default=None, max_length=320)
    display_name: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Name shown in the dashboard"
    )
    terms_agreed: bool = Field(default=False)
    onboarding_done: bool = Field(default=False)


class ProfileModel(ProfileBase, UUIDMixin, TimestampMixin, table=True):
    """
    Profile database table model.

    wants_premium records purchase intent only; entitlement always comes
    from the subscriptions table.
    """

    __tablename__ = "profiles"

    user_id: str = Field(
        ...,
        max_length=255,
        unique=True,
        index=True,
        description="External identity provider user id"
    )
    wants_premium: bool = Field(default=False)

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(SQLModel):
    """Partial profile update (all fields optional)."""

    email: Optional[str] = Field(default=None, max_length=320)
    display_name: Optional[str] = Field(default=None, max_length=100)
    terms_agreed: Optional[bool] = None
    onboarding_done: Optional[bool] = None
