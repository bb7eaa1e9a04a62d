"""Scheduled metric collection, anomaly detection and optimization analysis."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

import structlog
from pydantic import BaseModel

from advisor.collectors.base import MetricsCollector
from advisor.core.config import settings
from advisor.core.exceptions import ProviderNotConfiguredError, UnknownMonitoringJobError
from advisor.schemas.monitoring import (
    SEVERITY_ORDER,
    Anomaly,
    AnomalyType,
    CostMetrics,
    InstanceUtilization,
    MetricSummary,
    MetricType,
    MonitoringJob,
    OpportunityType,
    OptimizationOpportunity,
    OptimizationSummary,
    ProviderPerformance,
    SavingsBucket,
    Severity,
    UtilizationSnapshot,
    VolumeUtilization,
)
from advisor.schemas.resource import CloudProvider
from advisor.services.monitoring_store import MonitoringStore, Snapshot

logger = structlog.get_logger()

# Hourly on-demand USD, used only for idle-instance savings estimates
INSTANCE_HOURLY_PRICES: dict[str, float] = {
    "t2.micro": 0.0116,
    "t2.small": 0.023,
    "t2.medium": 0.0464,
    "m5.large": 0.096,
    "m5.xlarge": 0.192,
    "c5.large": 0.085,
    "c5.xlarge": 0.17,
}
DEFAULT_INSTANCE_HOURLY_PRICE = 0.10

# USD per GB-month
VOLUME_GB_MONTH_PRICES: dict[str, float] = {
    "gp2": 0.10,
    "io1": 0.125,
    "st1": 0.045,
    "sc1": 0.025,
}
DEFAULT_VOLUME_GB_MONTH_PRICE = 0.10

INSTANCE_RESOURCE_TYPES: dict[CloudProvider, str] = {
    CloudProvider.AWS: "EC2 Instance",
    CloudProvider.AZURE: "Virtual Machine",
    CloudProvider.GCP: "Compute Engine Instance",
}
VOLUME_RESOURCE_TYPES: dict[CloudProvider, str] = {
    CloudProvider.AWS: "EBS Volume",
    CloudProvider.AZURE: "Managed Disk",
    CloudProvider.GCP: "Persistent Disk",
}

INACTIVE_INSTANCE_STATES = frozenset(
    {"pending", "stopping", "stopped", "shutting-down", "terminated", "deallocated", "suspended"}
)

TERMINATE_CPU_PERCENT = 5.0
DOWNSIZE_CPU_PERCENT = 10.0
RESERVE_CPU_PERCENT = 20.0
HIGH_UTILIZATION_PERCENT = 90.0
HIGH_SERVICE_COST = 100.0
HIGH_PRIORITY_INSTANCE_SAVINGS = 50.0
HIGH_PRIORITY_VOLUME_SAVINGS = 20.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_instance_type_cost(instance_type: str) -> float:
    return INSTANCE_HOURLY_PRICES.get(instance_type, DEFAULT_INSTANCE_HOURLY_PRICE)


def calculate_potential_savings(instance_type: str, cpu_utilization: float) -> float:
    """
    Monthly savings heuristic for an underused instance.

    Below 5% CPU the whole cost is recoverable, below 10% half of it (by
    downsizing) and below 20% about 30% (by reserving capacity).
    """
    price = get_instance_type_cost(instance_type)
    if cpu_utilization < TERMINATE_CPU_PERCENT:
        return price * 30
    if cpu_utilization < DOWNSIZE_CPU_PERCENT:
        return price * 0.5 * 30
    if cpu_utilization < RESERVE_CPU_PERCENT:
        return price * 0.3 * 30
    return 0.0


def calculate_volume_savings(volume: VolumeUtilization) -> float:
    return volume.size_gb * VOLUME_GB_MONTH_PRICES.get(volume.volume_type, DEFAULT_VOLUME_GB_MONTH_PRICE)


def _percentage_increase(baseline: float, current: float) -> float:
    return round((current - baseline) / baseline * 100, 2)


class ContinuousMonitor:
    """
    Collects metrics on a schedule and turns them into alerts and savings
    opportunities.

    The monitor owns the in-memory list of active alerts; every alert is
    also persisted through the MonitoringStore so it survives restarts.
    Baselines are only written on cold start or by ``refresh_baseline``.
    """

    def __init__(
        self,
        metrics_collector: MetricsCollector,
        store: MonitoringStore,
        cost_threshold: float | None = None,
        performance_threshold: float | None = None,
        collector_timeout: float | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.metrics_collector = metrics_collector
        self.store = store
        self.cost_threshold = cost_threshold or settings.COST_ANOMALY_THRESHOLD
        self.performance_threshold = performance_threshold or settings.PERFORMANCE_ANOMALY_THRESHOLD
        self.collector_timeout = collector_timeout or settings.COLLECTOR_TIMEOUT_SECONDS
        self._clock = clock
        self.active_alerts: list[Anomaly] = []

        self._jobs: dict[MonitoringJob, Callable[[], Awaitable[object]]] = {
            MonitoringJob.COLLECT_COST_METRICS: self.collect_cost_metrics,
            MonitoringJob.COLLECT_PERFORMANCE_METRICS: self.collect_performance_metrics,
            MonitoringJob.COLLECT_UTILIZATION_METRICS: self.collect_utilization_metrics,
            MonitoringJob.ANALYZE_OPTIMIZATION_OPPORTUNITIES: self.analyze_optimization_opportunities,
            MonitoringJob.SETUP_REAL_TIME_ALERTS: self.setup_real_time_alerts,
        }

    async def run_scheduled_collection(self, job_name: str | MonitoringJob) -> dict:
        """
        Run one scheduled job, logging instead of raising on failure.

        Args:
            job_name: Name of a MonitoringJob

        Returns:
            Job outcome with a ``status`` of success or error

        Raises:
            UnknownMonitoringJobError: If the job name is not recognized
        """
        try:
            job = MonitoringJob(job_name)
        except ValueError:
            raise UnknownMonitoringJobError(f"Unknown monitoring job: {job_name}") from None

        start_time = self._clock()
        try:
            result = await self._jobs[job]()
        except Exception as e:
            logger.error("monitor.job_failed", job=job.value, error=str(e), exc_info=True)
            return {"status": "error", "job": job.value, "error": str(e)}

        duration = (self._clock() - start_time).total_seconds()
        outcome = {"status": "success", "job": job.value, "duration_seconds": duration}
        if isinstance(result, (list, dict)):
            outcome["items"] = len(result)
        logger.info("monitor.job_completed", **outcome)
        return outcome

    async def _collect(
        self,
        metric_type: MetricType,
        fetch: Callable[[CloudProvider], Awaitable[BaseModel]],
    ) -> Snapshot:
        """Fetch one metric type from every provider; failing providers are left out."""
        snapshot: Snapshot = {}

        for provider in self.metrics_collector.providers:
            try:
                snapshot[provider] = await asyncio.wait_for(fetch(provider), timeout=self.collector_timeout)
            except ProviderNotConfiguredError as e:
                logger.warning(
                    "monitor.provider_not_configured",
                    metric_type=metric_type.value,
                    provider=provider.value,
                    error=str(e),
                )
            except asyncio.TimeoutError:
                logger.error(
                    "monitor.collection_timeout",
                    metric_type=metric_type.value,
                    provider=provider.value,
                    timeout=self.collector_timeout,
                )
            except Exception as e:
                logger.error(
                    "monitor.collection_failed",
                    metric_type=metric_type.value,
                    provider=provider.value,
                    error=str(e),
                )

        return snapshot

    async def collect_cost_metrics(self) -> list[Anomaly]:
        """Collect the last 30 days of cost, store it and check for anomalies."""
        end_date = self._clock().date()
        start_date = end_date - timedelta(days=settings.COST_LOOKBACK_DAYS)

        snapshot = await self._collect(
            MetricType.COST,
            lambda provider: self.metrics_collector.collect_costs(provider, start_date, end_date),
        )
        await self.store.store_snapshot(MetricType.COST, snapshot)
        return await self.check_anomalies(MetricType.COST, snapshot)

    async def collect_performance_metrics(self) -> list[Anomaly]:
        snapshot = await self._collect(MetricType.PERFORMANCE, self.metrics_collector.collect_performance)
        await self.store.store_snapshot(MetricType.PERFORMANCE, snapshot)
        return await self.check_anomalies(MetricType.PERFORMANCE, snapshot)

    async def collect_utilization_metrics(self) -> UtilizationSnapshot:
        snapshot = await self._collect(MetricType.UTILIZATION, self.metrics_collector.collect_utilization)
        await self.store.store_snapshot(MetricType.UTILIZATION, snapshot)
        return snapshot

    async def check_anomalies(self, metric_type: MetricType, snapshot: Snapshot) -> list[Anomaly]:
        """
        Compare a snapshot with the stored baseline.

        The baseline is read before anything else is written. Without a
        baseline the snapshot becomes the baseline and nothing is reported.

        Returns:
            Detected anomalies, already registered as active alerts
        """
        detectors = {
            MetricType.COST: self.detect_cost_anomalies,
            MetricType.PERFORMANCE: self.detect_performance_anomalies,
        }
        detector = detectors.get(metric_type)
        if detector is None:
            return []

        baseline = await self.store.get_baseline(metric_type)
        if baseline is None:
            await self.store.set_baseline(metric_type, snapshot)
            logger.info("monitor.baseline_created", metric_type=metric_type.value, providers=len(snapshot))
            return []

        anomalies: list[Anomaly] = []
        for provider, current in snapshot.items():
            if provider in baseline:
                anomalies.extend(detector(provider, current, baseline[provider]))

        if not anomalies:
            return []
        return await self.handle_anomalies(anomalies)

    def detect_cost_anomalies(
        self, provider: CloudProvider, current: CostMetrics, baseline: CostMetrics
    ) -> list[Anomaly]:
        """Total and per-service cost increases above the threshold."""
        anomalies = []
        multiplier = 1 + self.cost_threshold

        if baseline.total_cost > 0 and current.total_cost > baseline.total_cost * multiplier:
            anomalies.append(
                Anomaly(
                    provider=provider,
                    metric_type=MetricType.COST,
                    anomaly_type=AnomalyType.TOTAL_COST_INCREASE,
                    baseline=baseline.total_cost,
                    current=current.total_cost,
                    percentage_increase=_percentage_increase(baseline.total_cost, current.total_cost),
                    severity=Severity.HIGH,
                )
            )

        for service, current_cost in current.service_breakdown.items():
            baseline_cost = baseline.service_breakdown.get(service, 0.0)
            # Small services swing too much to alert on
            if baseline_cost <= settings.SERVICE_COST_MATERIALITY_FLOOR:
                continue
            if current_cost > baseline_cost * multiplier:
                anomalies.append(
                    Anomaly(
                        provider=provider,
                        metric_type=MetricType.COST,
                        anomaly_type=AnomalyType.SERVICE_COST_INCREASE,
                        service=service,
                        baseline=baseline_cost,
                        current=current_cost,
                        percentage_increase=_percentage_increase(baseline_cost, current_cost),
                        severity=Severity.HIGH if current_cost > HIGH_SERVICE_COST else Severity.MEDIUM,
                    )
                )

        return anomalies

    def detect_performance_anomalies(
        self,
        provider: CloudProvider,
        current: ProviderPerformance,
        baseline: ProviderPerformance,
    ) -> list[Anomaly]:
        """CPU and memory averages that rose past the threshold, per instance."""
        anomalies = []
        multiplier = 1 + self.performance_threshold
        baseline_by_id = {instance.instance_id: instance for instance in baseline.compute}

        for instance in current.compute:
            baseline_instance = baseline_by_id.get(instance.instance_id)
            if baseline_instance is None:
                continue

            checks = [
                (instance.cpu, baseline_instance.cpu, AnomalyType.HIGH_CPU_UTILIZATION),
                (instance.memory, baseline_instance.memory, AnomalyType.HIGH_MEMORY_UTILIZATION),
            ]
            for current_metric, baseline_metric, anomaly_type in checks:
                anomaly = self._check_metric(
                    provider, instance.instance_id, current_metric, baseline_metric, anomaly_type, multiplier
                )
                if anomaly:
                    anomalies.append(anomaly)

        return anomalies

    @staticmethod
    def _check_metric(
        provider: CloudProvider,
        instance_id: str,
        current: MetricSummary | None,
        baseline: MetricSummary | None,
        anomaly_type: AnomalyType,
        multiplier: float,
    ) -> Anomaly | None:
        if current is None or baseline is None:
            return None
        if current.average is None or not baseline.average:
            return None
        if current.average <= baseline.average * multiplier:
            return None

        return Anomaly(
            provider=provider,
            metric_type=MetricType.PERFORMANCE,
            anomaly_type=anomaly_type,
            resource_id=instance_id,
            baseline=baseline.average,
            current=current.average,
            percentage_increase=_percentage_increase(baseline.average, current.average),
            severity=Severity.HIGH if current.average > HIGH_UTILIZATION_PERCENT else Severity.MEDIUM,
        )

    async def handle_anomalies(self, anomalies: list[Anomaly]) -> list[Anomaly]:
        """
        Persist anomalies, log an alert for each and add them to the active list.

        A persistence failure is logged; the alerts are still kept in memory
        under locally generated IDs.
        """
        try:
            ids = await self.store.store_anomalies(anomalies)
        except Exception as e:
            logger.error("monitor.anomaly_persist_failed", count=len(anomalies), error=str(e))
            ids = [str(uuid.uuid4()) for _ in anomalies]

        detected_at = self._clock()
        alerts = []
        for anomaly, anomaly_id in zip(anomalies, ids):
            alert = anomaly.model_copy(
                update={"id": anomaly_id, "detected_at": detected_at, "acknowledged": False}
            )
            logger.warning(
                "monitor.alert",
                alert_id=alert.id,
                metric_type=alert.metric_type.value,
                provider=alert.provider.value,
                anomaly_type=alert.anomaly_type.value,
                service=alert.service,
                resource_id=alert.resource_id,
                percentage_increase=alert.percentage_increase,
                severity=alert.severity.value,
            )
            alerts.append(alert)

        self.active_alerts.extend(alerts)
        return alerts

    async def load_active_alerts(self) -> int:
        """
        Restore unacknowledged alerts from the store into memory.

        Returns:
            Number of alerts added
        """
        known_ids = {alert.id for alert in self.active_alerts}
        restored = [a for a in await self.store.list_active_anomalies() if a.id not in known_ids]
        self.active_alerts.extend(restored)
        return len(restored)

    def get_active_alerts(self) -> list[Anomaly]:
        """Unacknowledged alerts, high severity first, then in detection order."""
        return sorted(
            (alert for alert in self.active_alerts if not alert.acknowledged),
            key=lambda alert: SEVERITY_ORDER[alert.severity],
        )

    async def acknowledge_alert(self, alert_id: str) -> bool:
        """
        Acknowledge an alert in memory and in the store.

        Returns:
            True if the alert was found
        """
        for alert in self.active_alerts:
            if alert.id == alert_id:
                alert.acknowledged = True
                try:
                    await self.store.acknowledge(alert_id)
                except Exception as e:
                    logger.error("monitor.acknowledge_persist_failed", alert_id=alert_id, error=str(e))
                return True

        # Alert raised before this process started
        return await self.store.acknowledge(alert_id)

    async def refresh_baseline(self, metric_type: MetricType) -> bool:
        """
        Replace a baseline with the latest stored snapshot.

        Returns:
            False if nothing has been collected for the metric type yet
        """
        latest = await self.store.get_latest_snapshot(metric_type)
        if latest is None:
            return False
        await self.store.set_baseline(metric_type, latest)
        logger.info("monitor.baseline_refreshed", metric_type=metric_type.value)
        return True

    async def analyze_optimization_opportunities(self) -> list[OptimizationOpportunity]:
        """Find opportunities in the latest utilization snapshot and replace the open set."""
        latest = await self.store.get_latest_snapshot(MetricType.UTILIZATION)
        if latest is None:
            logger.info("monitor.no_utilization_metrics")
            return []

        opportunities = self.find_optimization_opportunities(latest)
        await self.store.replace_open_opportunities(opportunities)
        logger.info(
            "monitor.opportunities_found",
            count=len(opportunities),
            potential_savings=round(sum(o.potential_savings for o in opportunities), 2),
        )
        return opportunities

    @staticmethod
    def find_optimization_opportunities(snapshot: UtilizationSnapshot) -> list[OptimizationOpportunity]:
        """
        Idle instances and unattached volumes across all providers.

        Pure: the same snapshot always yields the same opportunities.
        """
        opportunities = []
        for provider, utilization in snapshot.items():
            for instance in utilization.instances:
                # Inactive instances have no CPU samples
                if instance.state and instance.state.lower() in INACTIVE_INSTANCE_STATES:
                    continue
                if instance.cpu_utilization < settings.LOW_UTILIZATION_CPU_PERCENT:
                    opportunities.append(_instance_opportunity(provider, instance))
            for volume in utilization.volumes:
                if volume.attachments == 0:
                    opportunities.append(_volume_opportunity(provider, volume))
        return opportunities

    async def get_optimization_summary(self) -> OptimizationSummary:
        """Open opportunities aggregated by provider and by type; empty if the store fails."""
        try:
            opportunities = await self.store.list_open_opportunities()
        except Exception as e:
            logger.error("monitor.summary_failed", error=str(e))
            return OptimizationSummary()

        summary = OptimizationSummary(
            total_opportunities=len(opportunities),
            total_potential_savings=round(sum(o.potential_savings for o in opportunities), 2),
        )
        for opportunity in opportunities:
            for buckets, key in (
                (summary.by_provider, opportunity.provider.value),
                (summary.by_type, opportunity.optimization_type.value),
            ):
                bucket = buckets.setdefault(key, SavingsBucket())
                bucket.count += 1
                bucket.potential_savings = round(bucket.potential_savings + opportunity.potential_savings, 2)

        return summary

    async def setup_real_time_alerts(self) -> dict[str, bool]:
        """
        Subscribe to each provider's native alert stream.

        Returns:
            Provider name to whether a subscription was set up
        """
        subscriptions = {}
        for provider in self.metrics_collector.providers:
            try:
                subscriptions[provider.value] = await asyncio.wait_for(
                    self.metrics_collector.subscribe_alerts(provider),
                    timeout=self.collector_timeout,
                )
            except Exception as e:
                logger.error("monitor.alert_subscription_failed", provider=provider.value, error=str(e))
                subscriptions[provider.value] = False

        logger.info("monitor.alert_subscriptions", **subscriptions)
        return subscriptions


def _instance_opportunity(provider: CloudProvider, instance: InstanceUtilization) -> OptimizationOpportunity:
    cpu = instance.cpu_utilization
    savings = calculate_potential_savings(instance.instance_type, cpu)

    if cpu < TERMINATE_CPU_PERCENT:
        optimization_type = OpportunityType.TERMINATE
        description = f"Instance has very low utilization ({cpu:.2f}%). Consider terminating."
    else:
        optimization_type = OpportunityType.DOWNSIZE
        description = f"Instance has low utilization ({cpu:.2f}%). Consider downsizing."

    return OptimizationOpportunity(
        provider=provider,
        resource_type=INSTANCE_RESOURCE_TYPES[provider],
        resource_id=instance.instance_id,
        optimization_type=optimization_type,
        description=description,
        potential_savings=savings,
        priority=Severity.HIGH if savings > HIGH_PRIORITY_INSTANCE_SAVINGS else Severity.MEDIUM,
    )


def _volume_opportunity(provider: CloudProvider, volume: VolumeUtilization) -> OptimizationOpportunity:
    savings = calculate_volume_savings(volume)
    return OptimizationOpportunity(
        provider=provider,
        resource_type=VOLUME_RESOURCE_TYPES[provider],
        resource_id=volume.volume_id,
        optimization_type=OpportunityType.DELETE,
        description="Volume is not attached to any instance. Consider deleting if not needed.",
        potential_savings=savings,
        priority=Severity.HIGH if savings > HIGH_PRIORITY_VOLUME_SAVINGS else Severity.MEDIUM,
    )
