"""Persistence boundary of the continuous monitor."""

import uuid
from abc import ABC, abstractmethod

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from advisor.core.database import AsyncSessionLocal
from advisor.crud import monitoring as crud
from advisor.models.anomaly import AnomalyRecord
from advisor.models.optimization_opportunity import OptimizationOpportunityRecord
from advisor.schemas.monitoring import (
    SNAPSHOT_MODELS,
    Anomaly,
    AnomalyType,
    MetricType,
    OpportunityType,
    OptimizationOpportunity,
    Severity,
)
from advisor.schemas.resource import CloudProvider

# Metrics per provider for one metric type
Snapshot = dict[CloudProvider, BaseModel]


def parse_snapshot(metric_type: MetricType, data: dict[str, dict]) -> Snapshot:
    """Rebuild typed metrics from their stored JSON form."""
    model = SNAPSHOT_MODELS[metric_type]
    return {CloudProvider(provider): model.model_validate(metrics) for provider, metrics in data.items()}


def anomaly_from_record(record: AnomalyRecord) -> Anomaly:
    return Anomaly(
        id=str(record.id),
        provider=CloudProvider(record.provider),
        metric_type=MetricType(record.metric_type),
        anomaly_type=AnomalyType(record.anomaly_type),
        service=record.service,
        resource_id=record.resource_id,
        baseline=record.baseline_value,
        current=record.current_value,
        percentage_increase=record.percentage_increase,
        severity=Severity(record.severity),
        acknowledged=record.acknowledged,
        detected_at=record.detected_at,
    )


def opportunity_from_record(record: OptimizationOpportunityRecord) -> OptimizationOpportunity:
    return OptimizationOpportunity(
        provider=CloudProvider(record.provider),
        resource_type=record.resource_type,
        resource_id=record.resource_id,
        optimization_type=OpportunityType(record.opportunity_type),
        description=record.description,
        potential_savings=record.potential_savings,
        priority=Severity(record.priority),
    )


class MonitoringStore(ABC):
    """
    Snapshots, baselines, alerts and opportunities used by the monitor.

    Every call is blocking I/O against an external store and may fail.
    """

    @abstractmethod
    async def store_snapshot(self, metric_type: MetricType, snapshot: Snapshot) -> None:
        """Append one collection cycle."""

    @abstractmethod
    async def get_latest_snapshot(self, metric_type: MetricType) -> Snapshot | None:
        """Most recent stored cycle, None if nothing was collected yet."""

    @abstractmethod
    async def get_baseline(self, metric_type: MetricType) -> Snapshot | None:
        """Current baseline, None on cold start."""

    @abstractmethod
    async def set_baseline(self, metric_type: MetricType, snapshot: Snapshot) -> None:
        """Overwrite the baseline."""

    @abstractmethod
    async def store_anomalies(self, anomalies: list[Anomaly]) -> list[str]:
        """Persist anomalies and return their IDs in input order."""

    @abstractmethod
    async def list_active_anomalies(self) -> list[Anomaly]:
        """Unacknowledged anomalies, oldest first."""

    @abstractmethod
    async def acknowledge(self, anomaly_id: str) -> bool:
        """Acknowledge an anomaly; False if it does not exist."""

    @abstractmethod
    async def replace_open_opportunities(self, opportunities: list[OptimizationOpportunity]) -> None:
        """Replace the open and in-progress opportunity set."""

    @abstractmethod
    async def list_open_opportunities(self) -> list[OptimizationOpportunity]:
        """Open and in-progress opportunities."""


class DatabaseMonitoringStore(MonitoringStore):
    """MonitoringStore backed by the SQLAlchemy models, one session per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal) -> None:
        self.session_factory = session_factory

    async def store_snapshot(self, metric_type: MetricType, snapshot: Snapshot) -> None:
        async with self.session_factory() as db:
            await crud.create_snapshot(db, metric_type, snapshot)

    async def get_latest_snapshot(self, metric_type: MetricType) -> Snapshot | None:
        async with self.session_factory() as db:
            data = await crud.get_latest_snapshot(db, metric_type)
        return parse_snapshot(metric_type, data) if data is not None else None

    async def get_baseline(self, metric_type: MetricType) -> Snapshot | None:
        async with self.session_factory() as db:
            data = await crud.get_baseline(db, metric_type)
        return parse_snapshot(metric_type, data) if data is not None else None

    async def set_baseline(self, metric_type: MetricType, snapshot: Snapshot) -> None:
        data = {provider.value: metrics.model_dump(mode="json") for provider, metrics in snapshot.items()}
        async with self.session_factory() as db:
            await crud.set_baseline(db, metric_type, data)

    async def store_anomalies(self, anomalies: list[Anomaly]) -> list[str]:
        async with self.session_factory() as db:
            records = await crud.create_anomalies(db, anomalies)
        return [str(record.id) for record in records]

    async def list_active_anomalies(self) -> list[Anomaly]:
        async with self.session_factory() as db:
            records = await crud.get_active_anomalies(db)
        return [anomaly_from_record(record) for record in records]

    async def acknowledge(self, anomaly_id: str) -> bool:
        try:
            parsed_id = uuid.UUID(anomaly_id)
        except ValueError:
            return False

        async with self.session_factory() as db:
            return await crud.acknowledge_anomaly(db, parsed_id)

    async def replace_open_opportunities(self, opportunities: list[OptimizationOpportunity]) -> None:
        async with self.session_factory() as db:
            await crud.replace_active_opportunities(db, opportunities)

    async def list_open_opportunities(self) -> list[OptimizationOpportunity]:
        async with self.session_factory() as db:
            records = await crud.get_active_opportunities(db)
        return [opportunity_from_record(record) for record in records]
