"""Continuous monitoring schemas: metric snapshots, anomalies and opportunities."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from advisor.schemas.resource import CloudProvider


class MetricType(str, Enum):
    """Kinds of metrics collected on a schedule."""

    COST = "cost"
    PERFORMANCE = "performance"
    UTILIZATION = "utilization"


class MonitoringJob(str, Enum):
    """Named scheduled jobs."""

    COLLECT_COST_METRICS = "collect_cost_metrics"
    COLLECT_PERFORMANCE_METRICS = "collect_performance_metrics"
    COLLECT_UTILIZATION_METRICS = "collect_utilization_metrics"
    ANALYZE_OPTIMIZATION_OPPORTUNITIES = "analyze_optimization_opportunities"
    SETUP_REAL_TIME_ALERTS = "setup_real_time_alerts"


class Severity(str, Enum):
    """Alert severity / opportunity priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERITY_ORDER: dict[Severity, int] = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


class AnomalyType(str, Enum):
    TOTAL_COST_INCREASE = "total_cost_increase"
    SERVICE_COST_INCREASE = "service_cost_increase"
    HIGH_CPU_UTILIZATION = "high_cpu_utilization"
    HIGH_MEMORY_UTILIZATION = "high_memory_utilization"


class OpportunityType(str, Enum):
    TERMINATE = "terminate"
    DOWNSIZE = "downsize"
    DELETE = "delete"


# Cost metrics


class DailyCost(BaseModel):
    date: str
    cost: float


class CostMetrics(BaseModel):
    """Cost of one provider over the lookback window."""

    total_cost: float = 0.0
    daily_costs: list[DailyCost] = Field(default_factory=list)
    service_breakdown: dict[str, float] = Field(default_factory=dict)


# Performance metrics


class MetricDatapoint(BaseModel):
    timestamp: datetime | None = None
    average: float | None = None
    maximum: float | None = None
    sum: float | None = None


class MetricSummary(BaseModel):
    """Aggregate of a metric's datapoints; all fields are None without datapoints."""

    average: float | None = None
    maximum: float | None = None
    sum: float | None = None
    datapoints: list[MetricDatapoint] = Field(default_factory=list)


class InstancePerformance(BaseModel):
    instance_id: str
    cpu: MetricSummary | None = None
    memory: MetricSummary | None = None
    network_in: MetricSummary | None = None
    network_out: MetricSummary | None = None


class ProviderPerformance(BaseModel):
    compute: list[InstancePerformance] = Field(default_factory=list)


# Utilization metrics


class InstanceUtilization(BaseModel):
    instance_id: str
    instance_type: str
    state: str | None = None
    cpu_utilization: float = 0.0


class VolumeUtilization(BaseModel):
    volume_id: str
    volume_type: str
    size_gb: int
    state: str | None = None
    attachments: int = 0


class ProviderUtilization(BaseModel):
    instances: list[InstanceUtilization] = Field(default_factory=list)
    volumes: list[VolumeUtilization] = Field(default_factory=list)


CostSnapshot = dict[CloudProvider, CostMetrics]
PerformanceSnapshot = dict[CloudProvider, ProviderPerformance]
UtilizationSnapshot = dict[CloudProvider, ProviderUtilization]

SNAPSHOT_MODELS: dict[MetricType, type[BaseModel]] = {
    MetricType.COST: CostMetrics,
    MetricType.PERFORMANCE: ProviderPerformance,
    MetricType.UTILIZATION: ProviderUtilization,
}


# Findings


class Anomaly(BaseModel):
    """A metric that moved past its threshold relative to the baseline."""

    id: str | None = None
    provider: CloudProvider
    metric_type: MetricType
    anomaly_type: AnomalyType
    service: str | None = None
    resource_id: str | None = None
    baseline: float
    current: float
    percentage_increase: float
    severity: Severity
    acknowledged: bool = False
    detected_at: datetime | None = None


class OptimizationOpportunity(BaseModel):
    """A concrete action that would remove idle spend."""

    provider: CloudProvider
    resource_type: str
    resource_id: str
    optimization_type: OpportunityType
    description: str
    potential_savings: float
    priority: Severity


class SavingsBucket(BaseModel):
    count: int = 0
    potential_savings: float = 0.0


class OptimizationSummary(BaseModel):
    total_opportunities: int = 0
    total_potential_savings: float = 0.0
    by_provider: dict[str, SavingsBucket] = Field(default_factory=dict)
    by_type: dict[str, SavingsBucket] = Field(default_factory=dict)
