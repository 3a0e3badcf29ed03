"""
Usage Event Models

One append-only table per metered feature. Rows are only counted by the
ledger; their payload columns belong to the feature-serving code.
"""

from datetime import datetime
from typing import Any, Optional, Type
from uuid import UUID, uuid4

from sqlalchemy import Column, Index, JSON
from sqlmodel import Field, SQLModel

from app.domain.subscription import Feature
from app.infrastructure.db.models.base import created_at_column


class NumerologyReading(SQLModel, table=True):
    """A numerology reading served to a user."""

    __tablename__ = "numerology_readings"
    __table_args__ = (Index("ix_numerology_readings_user_created", "user_id", "created_at"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(max_length=255, index=True)
    reading_type: str = Field(default="usage", max_length=100)
    reading_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: Optional[datetime] = Field(default=None, sa_column=created_at_column())


class LoveMatch(SQLModel, table=True):
    """A love match analysis served to a user."""

    __tablename__ = "love_matches"
    __table_args__ = (Index("ix_love_matches_user_created", "user_id", "created_at"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(max_length=255, index=True)
    partner_name: str = Field(default="usage", max_length=255)
    compatibility_score: Optional[float] = None
    match_details: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: Optional[datetime] = Field(default=None, sa_column=created_at_column())


class TrustAssessment(SQLModel, table=True):
    """A trust assessment served to a user."""

    __tablename__ = "trust_assessments"
    __table_args__ = (Index("ix_trust_assessments_user_created", "user_id", "created_at"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(max_length=255, index=True)
    assessment_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    trust_score: Optional[float] = None
    created_at: Optional[datetime] = Field(default=None, sa_column=created_at_column())


USAGE_MODELS: dict[Feature, Type[SQLModel]] = {
    Feature.NUMEROLOGY: NumerologyReading,
    Feature.LOVE_MATCH: LoveMatch,
    Feature.TRUST_ASSESSMENT: TrustAssessment,
}


def build_usage_event(
    feature: Feature,
    user_id: str,
    created_at: datetime,
    payload: Optional[dict[str, Any]] = None,
) -> SQLModel:
    """Row for a feature use; payload keys not known to the table are kept in its JSON column."""
    payload = dict(payload or {})
    if feature == Feature.NUMEROLOGY:
        return NumerologyReading(
            user_id=user_id,
            reading_type=str(payload.pop("reading_type", "usage")),
            reading_data=payload or None,
            created_at=created_at,
        )
    if feature == Feature.LOVE_MATCH:
        return LoveMatch(
            user_id=user_id,
            partner_name=str(payload.pop("partner_name", "usage")),
            compatibility_score=payload.pop("compatibility_score", None),
            match_details=payload or None,
            created_at=created_at,
        )
    return TrustAssessment(
        user_id=user_id,
        trust_score=payload.pop("trust_score", None),
        assessment_data=payload or None,
        created_at=created_at,
    )
