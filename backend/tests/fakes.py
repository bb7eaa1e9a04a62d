"""Test doubles and builders for collectors, pricing, recommendations and monitoring."""

from datetime import date

from advisor.collectors.base import MetricsCollector, ResourceCollector
from advisor.core.exceptions import ProviderCollectionError
from advisor.schemas.classification import WorkloadArchetype, WorkloadTrait
from advisor.schemas.monitoring import (
    Anomaly,
    CostMetrics,
    MetricType,
    OptimizationOpportunity,
    ProviderPerformance,
    ProviderUtilization,
)
from advisor.schemas.pricing import InstancePricing, PriceCatalog
from advisor.schemas.recommendation import ComplexityLevel, MigrationComplexity, Recommendation
from advisor.schemas.resource import CloudProvider, Resource
from advisor.services.monitoring_store import MonitoringStore, Snapshot
from advisor.services.pricing_sources import PricingSource


def on_demand_catalog(region: str, prices: dict[str, float]) -> PriceCatalog:
    """Build a single-region catalog from hourly on-demand prices."""
    return {region: {name: InstancePricing(on_demand=price) for name, price in prices.items()}}


class FakePricingSource(PricingSource):
    """Pricing source returning a fixed catalog, optionally failing."""

    def __init__(self, provider: CloudProvider, catalog: PriceCatalog, fail: bool = False) -> None:
        self.provider = provider
        self.catalog = catalog
        self.fail = fail
        self.calls = 0

    async def fetch_prices(self) -> PriceCatalog:
        self.calls += 1
        if self.fail:
            raise ProviderCollectionError(self.provider.value, "pricing API unavailable")
        return self.catalog


class FakeResourceCollector(ResourceCollector):
    """Collector serving a fixed inventory; listed providers raise instead."""

    def __init__(
        self,
        inventory: dict[CloudProvider, dict[str, list[Resource]]],
        failures: dict[CloudProvider, Exception] | None = None,
    ) -> None:
        self.inventory = inventory
        self.failures = failures or {}

    @property
    def providers(self) -> list[CloudProvider]:
        return list(self.inventory) + [p for p in self.failures if p not in self.inventory]

    async def collect_resources(self, provider: CloudProvider) -> dict[str, list[Resource]]:
        if provider in self.failures:
            raise self.failures[provider]
        return self.inventory[provider]


class FakeMetricsCollector(MetricsCollector):
    """Metrics collector serving queued per-provider results."""

    def __init__(
        self,
        costs: dict[CloudProvider, CostMetrics] | None = None,
        performance: dict[CloudProvider, ProviderPerformance] | None = None,
        utilization: dict[CloudProvider, ProviderUtilization] | None = None,
        failures: dict[CloudProvider, Exception] | None = None,
    ) -> None:
        self.costs = costs or {}
        self.performance = performance or {}
        self.utilization = utilization or {}
        self.failures = failures or {}
        self.subscribed: list[CloudProvider] = []

    @property
    def providers(self) -> list[CloudProvider]:
        known = set(self.costs) | set(self.performance) | set(self.utilization) | set(self.failures)
        return [p for p in CloudProvider if p in known]

    def _check(self, provider: CloudProvider) -> None:
        if provider in self.failures:
            raise self.failures[provider]

    async def collect_costs(self, provider: CloudProvider, start_date: date, end_date: date) -> CostMetrics:
        self._check(provider)
        return self.costs.get(provider, CostMetrics())

    async def collect_performance(self, provider: CloudProvider) -> ProviderPerformance:
        self._check(provider)
        return self.performance.get(provider, ProviderPerformance())

    async def collect_utilization(self, provider: CloudProvider) -> ProviderUtilization:
        self._check(provider)
        return self.utilization.get(provider, ProviderUtilization())

    async def subscribe_alerts(self, provider: CloudProvider) -> bool:
        self._check(provider)
        self.subscribed.append(provider)
        return True


class InMemoryMonitoringStore(MonitoringStore):
    """MonitoringStore kept in dictionaries, for monitor tests."""

    def __init__(self) -> None:
        self.snapshots: dict[MetricType, list[Snapshot]] = {}
        self.baselines: dict[MetricType, Snapshot] = {}
        self.anomalies: list[Anomaly] = []
        self.opportunities: list[OptimizationOpportunity] = []
        self.fail_anomalies = False

    async def store_snapshot(self, metric_type: MetricType, snapshot: Snapshot) -> None:
        self.snapshots.setdefault(metric_type, []).append(dict(snapshot))

    async def get_latest_snapshot(self, metric_type: MetricType) -> Snapshot | None:
        history = self.snapshots.get(metric_type)
        return dict(history[-1]) if history else None

    async def get_baseline(self, metric_type: MetricType) -> Snapshot | None:
        return self.baselines.get(metric_type)

    async def set_baseline(self, metric_type: MetricType, snapshot: Snapshot) -> None:
        self.baselines[metric_type] = {
            provider: metrics.model_copy(deep=True) for provider, metrics in snapshot.items()
        }

    async def store_anomalies(self, anomalies: list[Anomaly]) -> list[str]:
        if self.fail_anomalies:
            raise ConnectionError("store unavailable")
        ids = []
        for anomaly in anomalies:
            anomaly_id = f"anomaly-{len(self.anomalies) + 1}"
            self.anomalies.append(anomaly.model_copy(update={"id": anomaly_id}))
            ids.append(anomaly_id)
        return ids

    async def list_active_anomalies(self) -> list[Anomaly]:
        return [a for a in self.anomalies if not a.acknowledged]

    async def acknowledge(self, anomaly_id: str) -> bool:
        for anomaly in self.anomalies:
            if anomaly.id == anomaly_id:
                anomaly.acknowledged = True
                return True
        return False

    async def replace_open_opportunities(self, opportunities: list[OptimizationOpportunity]) -> None:
        self.opportunities = list(opportunities)

    async def list_open_opportunities(self) -> list[OptimizationOpportunity]:
        return list(self.opportunities)


_COMPLEXITY_SCORES = {ComplexityLevel.LOW: 0.3, ComplexityLevel.MEDIUM: 0.5, ComplexityLevel.HIGH: 0.9}


def build_recommendation(
    resource_id: str = "i-0abc123",
    resource_type: str = "ec2_instance",
    current: CloudProvider = CloudProvider.AWS,
    recommended: CloudProvider = CloudProvider.GCP,
    savings: float = 25.0,
    level: ComplexityLevel = ComplexityLevel.MEDIUM,
    classifications: list[WorkloadArchetype] | None = None,
    traits: list[WorkloadTrait] | None = None,
) -> Recommendation:
    """Build a recommendation without running the engine."""
    classifications = classifications or [WorkloadArchetype.GENERAL]
    return Recommendation(
        resource_id=resource_id,
        resource_type=resource_type,
        current_provider=current,
        recommended_provider=recommended,
        estimated_savings=savings if current != recommended else 0.0,
        confidence_score="20.0%" if current != recommended else "100%",
        migration_complexity=MigrationComplexity(level=level, score=_COMPLEXITY_SCORES[level]),
        primary_type=classifications[0],
        classifications=classifications,
        traits=traits or [],
    )
