"""CRUD operations for metric snapshots, baselines, anomalies and opportunities."""

import uuid
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import delete, desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from advisor.models.anomaly import AnomalyRecord
from advisor.models.metric_snapshot import Baseline, MetricSnapshot
from advisor.models.optimization_opportunity import (
    ACTIVE_OPPORTUNITY_STATUSES,
    OptimizationOpportunityRecord,
    OpportunityStatus,
)
from advisor.schemas.monitoring import Anomaly, MetricType, OptimizationOpportunity
from advisor.schemas.resource import CloudProvider


def _dump_snapshot(snapshot: dict[CloudProvider, BaseModel]) -> dict[str, dict]:
    return {provider.value: metrics.model_dump(mode="json") for provider, metrics in snapshot.items()}


async def create_snapshot(
    db: AsyncSession,
    metric_type: MetricType,
    snapshot: dict[CloudProvider, BaseModel],
    collected_at: datetime | None = None,
) -> uuid.UUID:
    """
    Store one collection cycle, one row per provider.

    Args:
        db: Database session
        metric_type: Kind of metrics collected
        snapshot: Metrics per provider
        collected_at: Collection time, now by default

    Returns:
        Cycle ID shared by all stored rows
    """
    cycle_id = uuid.uuid4()
    collected_at = collected_at or datetime.now()

    for provider, data in _dump_snapshot(snapshot).items():
        db.add(
            MetricSnapshot(
                cycle_id=cycle_id,
                metric_type=metric_type.value,
                provider=provider,
                data=data,
                collected_at=collected_at,
            )
        )

    await db.commit()
    return cycle_id


async def get_latest_snapshot(db: AsyncSession, metric_type: MetricType) -> dict[str, dict] | None:
    """
    Rebuild the most recent snapshot of a metric type.

    Returns:
        Provider name to metrics, or None if nothing was collected yet
    """
    result = await db.execute(
        select(MetricSnapshot)
        .where(MetricSnapshot.metric_type == metric_type.value)
        .order_by(desc(MetricSnapshot.collected_at))
        .limit(1)
    )
    latest = result.scalar_one_or_none()

    if not latest:
        return None

    result = await db.execute(
        select(MetricSnapshot).where(MetricSnapshot.cycle_id == latest.cycle_id)
    )
    return {row.provider: row.data for row in result.scalars().all()}


async def get_baseline(db: AsyncSession, metric_type: MetricType) -> dict[str, dict] | None:
    result = await db.execute(select(Baseline).where(Baseline.metric_type == metric_type.value))
    baseline = result.scalar_one_or_none()
    return baseline.data if baseline else None


async def set_baseline(db: AsyncSession, metric_type: MetricType, data: dict[str, dict]) -> Baseline:
    """Overwrite the baseline of a metric type."""
    result = await db.execute(select(Baseline).where(Baseline.metric_type == metric_type.value))
    baseline = result.scalar_one_or_none()

    if baseline is None:
        baseline = Baseline(metric_type=metric_type.value, data=data)
        db.add(baseline)
    else:
        baseline.data = data

    await db.commit()
    await db.refresh(baseline)
    return baseline


async def create_anomalies(db: AsyncSession, anomalies: list[Anomaly]) -> list[AnomalyRecord]:
    """
    Persist detected anomalies as unacknowledged alerts.

    Returns:
        Created anomaly records, in input order
    """
    records = [
        AnomalyRecord(
            metric_type=anomaly.metric_type.value,
            provider=anomaly.provider.value,
            anomaly_type=anomaly.anomaly_type.value,
            service=anomaly.service,
            resource_id=anomaly.resource_id,
            baseline_value=anomaly.baseline,
            current_value=anomaly.current,
            percentage_increase=anomaly.percentage_increase,
            severity=anomaly.severity.value,
            acknowledged=False,
        )
        for anomaly in anomalies
    ]
    db.add_all(records)
    await db.commit()
    for record in records:
        await db.refresh(record)
    return records


async def get_active_anomalies(db: AsyncSession, limit: int = 500) -> list[AnomalyRecord]:
    result = await db.execute(
        select(AnomalyRecord)
        .where(AnomalyRecord.acknowledged.is_(False))
        .order_by(AnomalyRecord.detected_at)
        .limit(limit)
    )
    return list(result.scalars().all())


async def acknowledge_anomaly(db: AsyncSession, anomaly_id: uuid.UUID) -> bool:
    """
    Mark an anomaly as acknowledged.

    Returns:
        True if the anomaly exists
    """
    result = await db.execute(select(AnomalyRecord).where(AnomalyRecord.id == anomaly_id))
    record = result.scalar_one_or_none()

    if not record:
        return False

    if not record.acknowledged:
        record.acknowledged = True
        record.acknowledged_at = datetime.now()
        await db.commit()
    return True


async def replace_active_opportunities(
    db: AsyncSession, opportunities: list[OptimizationOpportunity]
) -> list[OptimizationOpportunityRecord]:
    """
    Replace every open or in-progress opportunity with a fresh set.

    Implemented and dismissed opportunities are kept as history.

    Returns:
        Created opportunity records
    """
    await db.execute(
        delete(OptimizationOpportunityRecord).where(
            OptimizationOpportunityRecord.status.in_(ACTIVE_OPPORTUNITY_STATUSES)
        )
    )

    records = [
        OptimizationOpportunityRecord(
            provider=opportunity.provider.value,
            resource_id=opportunity.resource_id,
            resource_type=opportunity.resource_type,
            opportunity_type=opportunity.optimization_type.value,
            description=opportunity.description,
            potential_savings=opportunity.potential_savings,
            priority=opportunity.priority.value,
            status=OpportunityStatus.OPEN.value,
        )
        for opportunity in opportunities
    ]
    db.add_all(records)
    await db.commit()
    return records


async def get_active_opportunities(db: AsyncSession) -> list[OptimizationOpportunityRecord]:
    result = await db.execute(
        select(OptimizationOpportunityRecord)
        .where(OptimizationOpportunityRecord.status.in_(ACTIVE_OPPORTUNITY_STATUSES))
        .order_by(desc(OptimizationOpportunityRecord.potential_savings))
    )
    return list(result.scalars().all())
