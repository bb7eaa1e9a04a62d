"""Tests for continuous monitoring: collection, anomalies, alerts and opportunities."""

from datetime import datetime, timezone

import pytest

from advisor.core.exceptions import ProviderCollectionError, UnknownMonitoringJobError
from advisor.schemas.monitoring import (
    AnomalyType,
    CostMetrics,
    InstancePerformance,
    InstanceUtilization,
    MetricSummary,
    MetricType,
    MonitoringJob,
    OpportunityType,
    ProviderPerformance,
    ProviderUtilization,
    Severity,
    VolumeUtilization,
)
from advisor.schemas.resource import CloudProvider
from advisor.services.continuous_monitor import (
    ContinuousMonitor,
    calculate_potential_savings,
    get_instance_type_cost,
)
from fakes import FakeMetricsCollector

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


def build_monitor(collector: FakeMetricsCollector, store) -> ContinuousMonitor:
    return ContinuousMonitor(
        collector,
        store,
        cost_threshold=0.15,
        performance_threshold=0.25,
        clock=fixed_clock,
    )


def performance(instance_id: str, cpu: float, memory: float | None = None) -> ProviderPerformance:
    return ProviderPerformance(
        compute=[
            InstancePerformance(
                instance_id=instance_id,
                cpu=MetricSummary(average=cpu),
                memory=MetricSummary(average=memory) if memory is not None else None,
            )
        ]
    )


def idle_utilization() -> ProviderUtilization:
    return ProviderUtilization(
        instances=[
            InstanceUtilization(instance_id="i-idle", instance_type="t2.micro", cpu_utilization=3.0),
            InstanceUtilization(instance_id="i-quiet", instance_type="m5.xlarge", cpu_utilization=8.0),
            InstanceUtilization(instance_id="i-busy", instance_type="m5.large", cpu_utilization=55.0),
        ],
        volumes=[
            VolumeUtilization(volume_id="vol-small", volume_type="gp2", size_gb=100, attachments=0),
            VolumeUtilization(volume_id="vol-large", volume_type="io1", size_gb=200, attachments=0),
            VolumeUtilization(volume_id="vol-used", volume_type="gp2", size_gb=500, attachments=1),
        ],
    )


class TestSavingsHeuristics:
    """Test monthly savings estimates."""

    def test_savings_tiers(self):
        """Test terminate, downsize and reserve tiers."""
        assert calculate_potential_savings("t2.micro", 3.0) == pytest.approx(0.0116 * 30)
        assert calculate_potential_savings("t2.micro", 7.0) == pytest.approx(0.0116 * 0.5 * 30)
        assert calculate_potential_savings("t2.micro", 15.0) == pytest.approx(0.0116 * 0.3 * 30)
        assert calculate_potential_savings("t2.micro", 50.0) == 0.0

    def test_unknown_instance_type_uses_default_price(self):
        """Test unknown types are priced at 0.10 per hour."""
        assert get_instance_type_cost("x9.huge") == 0.10


class TestCostAnomalies:
    """Test cost collection against the baseline."""

    @pytest.mark.asyncio
    async def test_cold_start_sets_baseline(self, monitoring_store):
        """Test the first collection becomes the baseline and reports nothing."""
        collector = FakeMetricsCollector(costs={CloudProvider.AWS: CostMetrics(total_cost=1000.0)})
        monitor = build_monitor(collector, monitoring_store)

        anomalies = await monitor.collect_cost_metrics()

        assert anomalies == []
        assert monitoring_store.baselines[MetricType.COST][CloudProvider.AWS].total_cost == 1000.0
        assert len(monitoring_store.snapshots[MetricType.COST]) == 1

    @pytest.mark.asyncio
    async def test_total_and_service_increases(self, monitoring_store):
        """Test total and per-service increases above 15% raise alerts."""
        baseline = CostMetrics(
            total_cost=1000.0,
            service_breakdown={"EC2": 500.0, "Lambda": 50.0, "S3": 5.0},
        )
        current = CostMetrics(
            total_cost=1200.0,
            service_breakdown={"EC2": 700.0, "Lambda": 80.0, "S3": 50.0, "SageMaker": 300.0},
        )
        await monitoring_store.set_baseline(MetricType.COST, {CloudProvider.AWS: baseline})
        collector = FakeMetricsCollector(costs={CloudProvider.AWS: current})
        monitor = build_monitor(collector, monitoring_store)

        anomalies = await monitor.collect_cost_metrics()

        found = [(a.anomaly_type, a.service, a.severity, a.percentage_increase) for a in anomalies]
        assert found == [
            (AnomalyType.TOTAL_COST_INCREASE, None, Severity.HIGH, 20.0),
            (AnomalyType.SERVICE_COST_INCREASE, "EC2", Severity.HIGH, 40.0),
            (AnomalyType.SERVICE_COST_INCREASE, "Lambda", Severity.MEDIUM, 60.0),
        ]
        assert all(a.id and a.detected_at == NOW for a in anomalies)
        # Baseline only moves on explicit refresh
        assert monitoring_store.baselines[MetricType.COST][CloudProvider.AWS].total_cost == 1000.0

    @pytest.mark.asyncio
    async def test_increase_within_threshold_is_not_anomalous(self, monitoring_store):
        """Test a 14% increase does not alert."""
        await monitoring_store.set_baseline(
            MetricType.COST, {CloudProvider.AWS: CostMetrics(total_cost=100.0)}
        )
        collector = FakeMetricsCollector(costs={CloudProvider.AWS: CostMetrics(total_cost=114.0)})
        monitor = build_monitor(collector, monitoring_store)

        assert await monitor.collect_cost_metrics() == []

    @pytest.mark.asyncio
    async def test_failing_provider_is_left_out(self, monitoring_store):
        """Test one provider failing does not stop collection from the others."""
        collector = FakeMetricsCollector(
            costs={CloudProvider.AWS: CostMetrics(total_cost=10.0)},
            failures={CloudProvider.AZURE: ProviderCollectionError("azure", "throttled")},
        )
        monitor = build_monitor(collector, monitoring_store)

        await monitor.collect_cost_metrics()

        assert list(monitoring_store.snapshots[MetricType.COST][0]) == [CloudProvider.AWS]


class TestPerformanceAnomalies:
    """Test per-instance CPU and memory checks."""

    @pytest.mark.asyncio
    async def test_cpu_and_memory_increases(self, monitoring_store):
        """Test averages above baseline times 1.25 alert, HA above 90%."""
        await monitoring_store.set_baseline(
            MetricType.PERFORMANCE, {CloudProvider.AWS: performance("i-1", cpu=40.0, memory=50.0)}
        )
        current = ProviderPerformance(
            compute=performance("i-1", cpu=60.0, memory=95.0).compute
            + performance("i-new", cpu=99.0).compute
        )
        collector = FakeMetricsCollector(performance={CloudProvider.AWS: current})
        monitor = build_monitor(collector, monitoring_store)

        anomalies = await monitor.collect_performance_metrics()

        found = [(a.anomaly_type, a.resource_id, a.severity) for a in anomalies]
        assert found == [
            (AnomalyType.HIGH_CPU_UTILIZATION, "i-1", Severity.MEDIUM),
            (AnomalyType.HIGH_MEMORY_UTILIZATION, "i-1", Severity.HIGH),
        ]
        assert anomalies[0].percentage_increase == 50.0

    @pytest.mark.asyncio
    async def test_missing_datapoints_are_skipped(self, monitoring_store):
        """Test metrics without an average never alert."""
        baseline = ProviderPerformance(
            compute=[InstancePerformance(instance_id="i-1", cpu=MetricSummary())]
        )
        await monitoring_store.set_baseline(MetricType.PERFORMANCE, {CloudProvider.AWS: baseline})
        collector = FakeMetricsCollector(
            performance={CloudProvider.AWS: performance("i-1", cpu=80.0)}
        )
        monitor = build_monitor(collector, monitoring_store)

        assert await monitor.collect_performance_metrics() == []

    @pytest.mark.asyncio
    async def test_utilization_has_no_baseline(self, monitoring_store):
        """Test utilization snapshots are stored but never compared."""
        collector = FakeMetricsCollector(utilization={CloudProvider.AWS: idle_utilization()})
        monitor = build_monitor(collector, monitoring_store)

        snapshot = await monitor.collect_utilization_metrics()

        assert CloudProvider.AWS in snapshot
        assert await monitor.check_anomalies(MetricType.UTILIZATION, snapshot) == []
        assert MetricType.UTILIZATION not in monitoring_store.baselines


class TestAlerts:
    """Test the active alert list."""

    async def _raise_alerts(self, monitor, monitoring_store) -> None:
        await monitoring_store.set_baseline(
            MetricType.PERFORMANCE, {CloudProvider.AWS: performance("i-1", cpu=40.0, memory=50.0)}
        )
        monitor.metrics_collector.performance = {
            CloudProvider.AWS: performance("i-1", cpu=60.0, memory=95.0)
        }
        await monitor.collect_performance_metrics()

    @pytest.mark.asyncio
    async def test_active_alerts_sorted_by_severity(self, monitoring_store):
        """Test high severity alerts come first."""
        monitor = build_monitor(FakeMetricsCollector(), monitoring_store)
        await self._raise_alerts(monitor, monitoring_store)

        alerts = monitor.get_active_alerts()

        assert [a.severity for a in alerts] == [Severity.HIGH, Severity.MEDIUM]

    @pytest.mark.asyncio
    async def test_acknowledge_alert(self, monitoring_store):
        """Test acknowledged alerts leave the active list and the store."""
        monitor = build_monitor(FakeMetricsCollector(), monitoring_store)
        await self._raise_alerts(monitor, monitoring_store)
        alert_id = monitor.get_active_alerts()[0].id

        assert await monitor.acknowledge_alert(alert_id) is True
        assert alert_id not in [a.id for a in monitor.get_active_alerts()]
        assert alert_id not in [a.id for a in await monitoring_store.list_active_anomalies()]
        assert await monitor.acknowledge_alert("missing") is False

    @pytest.mark.asyncio
    async def test_persist_failure_keeps_alerts_in_memory(self, monitoring_store):
        """Test alerts survive a store outage under local IDs."""
        monitoring_store.fail_anomalies = True
        monitor = build_monitor(FakeMetricsCollector(), monitoring_store)

        await self._raise_alerts(monitor, monitoring_store)

        alerts = monitor.get_active_alerts()
        assert len(alerts) == 2
        assert all(alert.id for alert in alerts)
        assert monitoring_store.anomalies == []

    @pytest.mark.asyncio
    async def test_load_active_alerts_restores_once(self, monitoring_store):
        """Test alerts from a previous process are restored without duplicates."""
        first = build_monitor(FakeMetricsCollector(), monitoring_store)
        await self._raise_alerts(first, monitoring_store)
        second = build_monitor(FakeMetricsCollector(), monitoring_store)

        assert await second.load_active_alerts() == 2
        assert await second.load_active_alerts() == 0
        assert len(second.get_active_alerts()) == 2


class TestOptimizationOpportunities:
    """Test idle instance and unattached volume detection."""

    def test_find_opportunities(self):
        """Test idle instances and unattached volumes are reported."""
        opportunities = ContinuousMonitor.find_optimization_opportunities(
            {CloudProvider.AWS: idle_utilization()}
        )

        found = {o.resource_id: o for o in opportunities}
        assert list(found) == ["i-idle", "i-quiet", "vol-small", "vol-large"]
        assert found["i-idle"].optimization_type == OpportunityType.TERMINATE
        assert found["i-idle"].potential_savings == pytest.approx(0.0116 * 30)
        assert found["i-idle"].resource_type == "EC2 Instance"
        assert found["i-quiet"].optimization_type == OpportunityType.DOWNSIZE
        assert found["i-quiet"].potential_savings == pytest.approx(2.88)
        assert found["vol-small"].optimization_type == OpportunityType.DELETE
        assert found["vol-small"].potential_savings == pytest.approx(10.0)
        assert found["vol-small"].priority == Severity.MEDIUM
        assert found["vol-large"].potential_savings == pytest.approx(25.0)
        assert found["vol-large"].priority == Severity.HIGH

    def test_inactive_instances_are_skipped(self):
        """Test stopped or terminated instances are not flagged for their zero CPU."""
        utilization = ProviderUtilization(
            instances=[
                InstanceUtilization(instance_id="i-stopped", instance_type="m5.large", state="stopped"),
                InstanceUtilization(instance_id="i-gone", instance_type="m5.large", state="terminated"),
                InstanceUtilization(instance_id="i-dealloc", instance_type="m5.large", state="Deallocated"),
                InstanceUtilization(
                    instance_id="i-idle", instance_type="t2.micro", state="running", cpu_utilization=3.0
                ),
            ]
        )

        opportunities = ContinuousMonitor.find_optimization_opportunities({CloudProvider.AWS: utilization})

        assert [o.resource_id for o in opportunities] == ["i-idle"]

    def test_non_aws_resource_types(self):
        """Test resource types are named after each provider's products."""
        opportunities = ContinuousMonitor.find_optimization_opportunities(
            {CloudProvider.GCP: idle_utilization()}
        )

        assert {o.resource_type for o in opportunities} == {
            "Compute Engine Instance",
            "Persistent Disk",
        }

    @pytest.mark.asyncio
    async def test_analysis_replaces_open_set(self, monitoring_store):
        """Test repeated analysis of the same snapshot does not duplicate opportunities."""
        collector = FakeMetricsCollector(utilization={CloudProvider.AWS: idle_utilization()})
        monitor = build_monitor(collector, monitoring_store)
        await monitor.collect_utilization_metrics()

        await monitor.analyze_optimization_opportunities()
        await monitor.analyze_optimization_opportunities()

        assert len(await monitoring_store.list_open_opportunities()) == 4

    @pytest.mark.asyncio
    async def test_analysis_without_metrics(self, monitoring_store):
        """Test nothing is found before utilization has been collected."""
        monitor = build_monitor(FakeMetricsCollector(), monitoring_store)

        assert await monitor.analyze_optimization_opportunities() == []

    @pytest.mark.asyncio
    async def test_summary(self, monitoring_store):
        """Test opportunities are aggregated by provider and type."""
        collector = FakeMetricsCollector(utilization={CloudProvider.AWS: idle_utilization()})
        monitor = build_monitor(collector, monitoring_store)
        await monitor.collect_utilization_metrics()
        await monitor.analyze_optimization_opportunities()

        summary = await monitor.get_optimization_summary()

        assert summary.total_opportunities == 4
        assert summary.total_potential_savings == pytest.approx(38.23)
        assert summary.by_provider["aws"].count == 4
        assert summary.by_type["delete"].count == 2
        assert summary.by_type["delete"].potential_savings == pytest.approx(35.0)

    @pytest.mark.asyncio
    async def test_summary_on_store_failure(self, monitoring_store, monkeypatch):
        """Test a failing store yields an empty summary."""

        async def broken():
            raise ConnectionError("store unavailable")

        monkeypatch.setattr(monitoring_store, "list_open_opportunities", broken)
        monitor = build_monitor(FakeMetricsCollector(), monitoring_store)

        summary = await monitor.get_optimization_summary()

        assert summary.total_opportunities == 0
        assert summary.by_provider == {}


class TestScheduledJobs:
    """Test the scheduled job entry point."""

    @pytest.mark.asyncio
    async def test_successful_job(self, monitoring_store):
        """Test a job reports success and its item count."""
        collector = FakeMetricsCollector(costs={CloudProvider.AWS: CostMetrics(total_cost=10.0)})
        monitor = build_monitor(collector, monitoring_store)

        result = await monitor.run_scheduled_collection("collect_cost_metrics")

        assert result == {
            "status": "success",
            "job": "collect_cost_metrics",
            "duration_seconds": 0.0,
            "items": 0,
        }

    @pytest.mark.asyncio
    async def test_failing_job_reports_error(self, monitoring_store, monkeypatch):
        """Test job failures are reported instead of raised."""

        async def broken(metric_type, snapshot):
            raise ConnectionError("store unavailable")

        monkeypatch.setattr(monitoring_store, "store_snapshot", broken)
        monitor = build_monitor(FakeMetricsCollector(), monitoring_store)

        result = await monitor.run_scheduled_collection(MonitoringJob.COLLECT_UTILIZATION_METRICS)

        assert result["status"] == "error"
        assert result["error"] == "store unavailable"

    @pytest.mark.asyncio
    async def test_unknown_job(self, monitoring_store):
        """Test unknown job names are rejected."""
        monitor = build_monitor(FakeMetricsCollector(), monitoring_store)

        with pytest.raises(UnknownMonitoringJobError):
            await monitor.run_scheduled_collection("collect_everything")

    @pytest.mark.asyncio
    async def test_setup_real_time_alerts(self, monitoring_store):
        """Test each provider's subscription outcome is reported."""
        collector = FakeMetricsCollector(
            costs={CloudProvider.AWS: CostMetrics()},
            failures={CloudProvider.GCP: ProviderCollectionError("gcp", "no permission")},
        )
        monitor = build_monitor(collector, monitoring_store)

        subscriptions = await monitor.setup_real_time_alerts()

        assert subscriptions == {"aws": True, "gcp": False}
        assert collector.subscribed == [CloudProvider.AWS]

    @pytest.mark.asyncio
    async def test_refresh_baseline(self, monitoring_store):
        """Test the baseline is replaced only when a snapshot exists."""
        collector = FakeMetricsCollector(costs={CloudProvider.AWS: CostMetrics(total_cost=10.0)})
        monitor = build_monitor(collector, monitoring_store)

        assert await monitor.refresh_baseline(MetricType.COST) is False

        await monitor.collect_cost_metrics()
        collector.costs = {CloudProvider.AWS: CostMetrics(total_cost=50.0)}
        await monitor.collect_cost_metrics()

        assert await monitor.refresh_baseline(MetricType.COST) is True
        assert monitoring_store.baselines[MetricType.COST][CloudProvider.AWS].total_cost == 50.0
