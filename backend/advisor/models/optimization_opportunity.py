"""Optimization opportunity database model."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Float, String, Text
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from advisor.core.database import Base


class OpportunityStatus(str, Enum):
    """Optimization opportunity status enumeration."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    IMPLEMENTED = "implemented"
    DISMISSED = "dismissed"


# Statuses replaced wholesale by every analysis run
ACTIVE_OPPORTUNITY_STATUSES = (OpportunityStatus.OPEN.value, OpportunityStatus.IN_PROGRESS.value)


class OptimizationOpportunityRecord(Base):
    """Stored savings opportunity for an idle or oversized resource."""

    __tablename__ = "optimization_opportunities"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    provider: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    opportunity_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="terminate, downsize or delete",
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    potential_savings: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    priority: Mapped[str] = mapped_column(String(10), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default=OpportunityStatus.OPEN.value,
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
            f"<OptimizationOpportunityRecord {self.opportunity_type} {self.resource_id} "
            f"${self.potential_savings}/month>"
        )
