"""Recommendation database model."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Float, String
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from advisor.core.database import Base


class RecommendationStatus(str, Enum):
    """Review status of a stored recommendation."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    IMPLEMENTED = "implemented"


RECOMMENDATION_STATUS_TRANSITIONS: dict[RecommendationStatus, set[RecommendationStatus]] = {
    RecommendationStatus.PENDING: {RecommendationStatus.APPROVED, RecommendationStatus.REJECTED},
    RecommendationStatus.APPROVED: {RecommendationStatus.IMPLEMENTED, RecommendationStatus.REJECTED},
    RecommendationStatus.REJECTED: {RecommendationStatus.PENDING},
    RecommendationStatus.IMPLEMENTED: set(),
}


class RecommendationRecord(Base):
    """Latest placement recommendation per resource (upserted on every run)."""

    __tablename__ = "recommendations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    resource_type: Mapped[str] = mapped_column(String(100), nullable=False)
    current_provider: Mapped[str] = mapped_column(String(20), nullable=False)
    recommended_provider: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    estimated_savings: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    confidence_score: Mapped[str] = mapped_column(String(10), nullable=False)
    complexity_level: Mapped[str] = mapped_column(String(10), nullable=False)
    reasoning: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Full recommendation document
    details: Mapped[dict] = mapped_column(JSON, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=RecommendationStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<RecommendationRecord {self.resource_id} "
            f"{self.current_provider}->{self.recommended_provider} status={self.status}>"
        )
