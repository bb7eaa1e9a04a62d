"""Metric snapshot and baseline database models."""

import uuid
from datetime import datetime

from sqlalchemy import Index, String
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from advisor.core.database import Base


class MetricSnapshot(Base):
    """
    One provider's metrics for one collection cycle.

    Rows are append-only. All rows written by the same cycle share a
    ``cycle_id`` and ``collected_at`` so a full snapshot can be rebuilt.
    """

    __tablename__ = "metric_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
    )
    cycle_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    metric_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="cost, performance or utilization",
    )
    provider: Mapped[str] = mapped_column(String(20), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
    collected_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        Index("ix_metric_snapshots_type_collected", "metric_type", "collected_at"),
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<MetricSnapshot {self.metric_type}:{self.provider} at {self.collected_at}>"


class Baseline(Base):
    """Reference snapshot that anomalies are measured against, one per metric type."""

    __tablename__ = "baselines"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    metric_type: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    data: Mapped[dict] = mapped_column(JSON, nullable=False)
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
        return f"<Baseline {self.metric_type}>"
