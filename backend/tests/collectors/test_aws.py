"""Tests for AWS response normalization."""

from datetime import date, datetime, timezone

import pytest

from advisor.collectors.aws import (
    EC2_INSTANCE,
    RDS_DATABASE,
    AWSCollector,
    db_instance_to_resource,
    instance_to_resource,
    parse_cost_and_usage,
    summarize_datapoints,
)
from advisor.core.exceptions import ProviderNotConfiguredError
from advisor.schemas.resource import CloudProvider


class TestSummarizeDatapoints:
    """Test CloudWatch datapoint aggregation."""

    def test_summary(self):
        """Test average, maximum and sum across datapoints."""
        timestamp = datetime(2024, 3, 1, tzinfo=timezone.utc)
        datapoints = [
            {"Timestamp": timestamp, "Average": 20.0, "Maximum": 35.0},
            {"Timestamp": timestamp, "Average": 40.0, "Maximum": 80.0},
        ]

        summary = summarize_datapoints(datapoints)

        assert summary.average == 30.0
        assert summary.maximum == 80.0
        assert len(summary.datapoints) == 2
        assert summary.datapoints[0].timestamp == timestamp

    def test_no_datapoints(self):
        """Test an empty series has no statistics."""
        summary = summarize_datapoints([])

        assert summary.average is None
        assert summary.maximum is None
        assert summary.sum is None
        assert summary.datapoints == []


class TestParseCostAndUsage:
    """Test Cost Explorer result parsing."""

    def test_daily_and_service_totals(self):
        """Test costs are summed per day and per service."""
        results = [
            {
                "TimePeriod": {"Start": "2024-03-01", "End": "2024-03-02"},
                "Groups": [
                    {"Keys": ["Amazon EC2"], "Metrics": {"UnblendedCost": {"Amount": "10.004"}}},
                    {"Keys": ["Amazon S3"], "Metrics": {"UnblendedCost": {"Amount": "1.5"}}},
                ],
            },
            {
                "TimePeriod": {"Start": "2024-03-02", "End": "2024-03-03"},
                "Groups": [
                    {"Keys": ["Amazon EC2"], "Metrics": {"UnblendedCost": {"Amount": "12.0"}}},
                ],
            },
            {"TimePeriod": {"Start": "2024-03-03", "End": "2024-03-04"}, "Groups": []},
        ]

        metrics = parse_cost_and_usage(results)

        assert metrics.total_cost == 23.5
        assert [(d.date, d.cost) for d in metrics.daily_costs] == [
            ("2024-03-01", 11.5),
            ("2024-03-02", 12.0),
            ("2024-03-03", 0.0),
        ]
        assert metrics.service_breakdown == {"Amazon EC2": 22.0, "Amazon S3": 1.5}

    def test_empty_results(self):
        """Test an account without spend."""
        metrics = parse_cost_and_usage([])

        assert metrics.total_cost == 0.0
        assert metrics.service_breakdown == {}


class TestResourceNormalization:
    """Test EC2 and RDS entries become resources."""

    def test_instance_to_resource(self):
        """Test instance fields, tags and attached storage."""
        instance = {
            "InstanceId": "i-0abc123",
            "InstanceType": "m5.large",
            "Tags": [{"Key": "Name", "Value": "web-1"}, {"Key": "Compliance", "Value": "PCI"}],
        }

        resource = instance_to_resource(instance, "eu-west-1", [12.0, 15.0], [100, 200])

        assert resource.provider == CloudProvider.AWS
        assert resource.resource_id == "i-0abc123"
        assert resource.resource_type == EC2_INSTANCE
        assert resource.instance_type == "m5.large"
        assert resource.region == "eu-west-1"
        assert resource.cpu_utilization == [12.0, 15.0]
        assert resource.storage_volumes_gb == [100, 200]
        assert resource.tags == {"Name": "web-1", "Compliance": "PCI"}

    def test_db_instance_to_resource(self):
        """Test RDS instances carry their engine and allocated storage."""
        db_instance = {
            "DBInstanceIdentifier": "orders-db",
            "DBInstanceClass": "db.r5.large",
            "Engine": "postgres",
            "AllocatedStorage": 500,
            "TagList": [{"Key": "team", "Value": "orders"}],
        }

        resource = db_instance_to_resource(db_instance, "us-east-1")

        assert resource.resource_id == "orders-db"
        assert resource.resource_type == RDS_DATABASE
        assert resource.engine == "postgres"
        assert resource.storage_volumes_gb == [500]
        assert resource.tags == {"team": "orders"}


class TestAWSCollector:
    """Test credential handling."""

    def test_configured_collector_reports_aws(self):
        """Test credentials make AWS available."""
        collector = AWSCollector(access_key="AKIAEXAMPLE", secret_key="secret", regions=["us-east-1"])

        assert collector.providers == [CloudProvider.AWS]

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        """Test calls without credentials raise instead of reaching AWS."""
        collector = AWSCollector(access_key="", secret_key="", regions=["us-east-1"])

        assert collector.providers == []
        with pytest.raises(ProviderNotConfiguredError):
            await collector.collect_resources(CloudProvider.AWS)
        with pytest.raises(ProviderNotConfiguredError):
            await collector.collect_costs(CloudProvider.AWS, date(2024, 3, 1), date(2024, 3, 31))

    @pytest.mark.asyncio
    async def test_other_providers_not_supported(self):
        """Test the AWS collector refuses other providers."""
        collector = AWSCollector(access_key="AKIAEXAMPLE", secret_key="secret")

        with pytest.raises(ProviderNotConfiguredError):
            await collector.collect_utilization(CloudProvider.GCP)


class FakePaginator:
    """describe_* paginator that applies the instance-state-name filter."""

    def __init__(self, client: "FakeAWSClient", operation: str):
        self.client = client
        self.operation = operation

    async def paginate(self, Filters=None):
        if self.operation == "describe_volumes":
            yield {"Volumes": []}
            return

        self.client.filters.append(Filters)
        states = {v for f in Filters or [] if f["Name"] == "instance-state-name" for v in f["Values"]}
        instances = [i for i in self.client.instances if not states or i["State"]["Name"] in states]
        yield {"Reservations": [{"Instances": instances}]}


class FakeAWSClient:
    """Stands in for both the EC2 and the CloudWatch client."""

    def __init__(self, instances):
        self.instances = instances
        self.filters = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def get_paginator(self, operation):
        return FakePaginator(self, operation)

    async def get_metric_statistics(self, **kwargs):
        return {"Datapoints": [{"Average": 4.0}, {"Average": 6.0}]}


class FakeSession:
    def __init__(self, client: FakeAWSClient):
        self._client = client

    def client(self, service_name, region_name=None, config=None):
        return self._client


class TestCollectUtilization:
    """Test utilization collection against a stubbed session."""

    @pytest.mark.asyncio
    async def test_only_running_instances_are_sampled(self):
        """Test stopped and terminated instances are not reported as idle."""
        client = FakeAWSClient(
            [
                {"InstanceId": "i-run", "InstanceType": "t3.micro", "State": {"Name": "running"}},
                {"InstanceId": "i-stop", "InstanceType": "t3.micro", "State": {"Name": "stopped"}},
                {"InstanceId": "i-gone", "InstanceType": "m5.large", "State": {"Name": "terminated"}},
            ]
        )
        collector = AWSCollector(access_key="AKIAEXAMPLE", secret_key="secret", regions=["us-east-1"])
        collector.session = FakeSession(client)

        utilization = await collector.collect_utilization(CloudProvider.AWS)

        assert [i.instance_id for i in utilization.instances] == ["i-run"]
        assert utilization.instances[0].cpu_utilization == 5.0
        assert client.filters == [[{"Name": "instance-state-name", "Values": ["running"]}]]
