"""Migration plan database model."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Float, String, Text
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from advisor.core.database import Base


class MigrationPlanStatus(str, Enum):
    """Migration plan lifecycle status."""

    CREATED = "created"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Terminal statuses map to an empty set
PLAN_STATUS_TRANSITIONS: dict[MigrationPlanStatus, set[MigrationPlanStatus]] = {
    MigrationPlanStatus.CREATED: {
        MigrationPlanStatus.IN_PROGRESS,
        MigrationPlanStatus.ON_HOLD,
        MigrationPlanStatus.CANCELLED,
    },
    MigrationPlanStatus.IN_PROGRESS: {
        MigrationPlanStatus.COMPLETED,
        MigrationPlanStatus.FAILED,
        MigrationPlanStatus.ON_HOLD,
        MigrationPlanStatus.CANCELLED,
    },
    MigrationPlanStatus.ON_HOLD: {
        MigrationPlanStatus.IN_PROGRESS,
        MigrationPlanStatus.CANCELLED,
    },
    MigrationPlanStatus.COMPLETED: set(),
    MigrationPlanStatus.FAILED: set(),
    MigrationPlanStatus.CANCELLED: set(),
}


class MigrationPlan(Base):
    """Stored migration plan for a single resource."""

    __tablename__ = "migration_plans"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(100), nullable=False)
    current_provider: Mapped[str] = mapped_column(String(20), nullable=False)
    target_provider: Mapped[str] = mapped_column(String(20), nullable=False)
    strategy: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Strategy key: rehost, replatform, refactor, repurchase, retire, retain",
    )
    complexity_level: Mapped[str] = mapped_column(String(10), nullable=False)
    estimated_savings: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    estimated_timeframe: Mapped[str] = mapped_column(String(50), nullable=False)

    # Full plan document (steps, risks, mitigations, downtime, tooling)
    plan: Mapped[dict] = mapped_column(JSON, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=MigrationPlanStatus.CREATED.value,
        nullable=False,
        index=True,
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_task_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="ID of the task in an external tracker",
    )
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
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
            f"<MigrationPlan {self.resource_id} {self.current_provider}->{self.target_provider} "
            f"strategy={self.strategy} status={self.status}>"
        )
