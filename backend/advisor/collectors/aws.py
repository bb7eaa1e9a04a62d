"""AWS resource and metrics collector."""

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any

import aioboto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from advisor.collectors.base import MetricsCollector, ResourceCollector
from advisor.core.config import settings
from advisor.core.exceptions import ProviderCollectionError, ProviderNotConfiguredError
from advisor.schemas.monitoring import (
    CostMetrics,
    DailyCost,
    InstancePerformance,
    InstanceUtilization,
    MetricDatapoint,
    MetricSummary,
    ProviderPerformance,
    ProviderUtilization,
    VolumeUtilization,
)
from advisor.schemas.resource import CloudProvider, Resource

logger = structlog.get_logger()

EC2_INSTANCE = "ec2_instance"
RDS_DATABASE = "rds_database"


def summarize_datapoints(datapoints: list[dict[str, Any]]) -> MetricSummary:
    """
    Aggregate CloudWatch datapoints.

    Returns an empty summary (all None) when there are no datapoints.
    """
    if not datapoints:
        return MetricSummary()

    return MetricSummary(
        average=sum(dp.get("Average", 0) or 0 for dp in datapoints) / len(datapoints),
        maximum=max(dp.get("Maximum", 0) or 0 for dp in datapoints),
        sum=sum(dp.get("Sum", 0) or 0 for dp in datapoints),
        datapoints=[
            MetricDatapoint(
                timestamp=dp.get("Timestamp"),
                average=dp.get("Average"),
                maximum=dp.get("Maximum"),
                sum=dp.get("Sum"),
            )
            for dp in datapoints
        ],
    )


def parse_cost_and_usage(results_by_time: list[dict[str, Any]]) -> CostMetrics:
    """Build cost metrics from Cost Explorer results grouped by SERVICE."""
    daily_costs = []
    service_breakdown: dict[str, float] = defaultdict(float)

    for period in results_by_time:
        day_total = 0.0
        for group in period.get("Groups", []):
            amount = float(group.get("Metrics", {}).get("UnblendedCost", {}).get("Amount", 0))
            service = group.get("Keys", ["Unknown"])[0]
            service_breakdown[service] += amount
            day_total += amount
        daily_costs.append(DailyCost(date=period["TimePeriod"]["Start"], cost=round(day_total, 2)))

    return CostMetrics(
        total_cost=round(sum(service_breakdown.values()), 2),
        daily_costs=daily_costs,
        service_breakdown={name: round(cost, 2) for name, cost in service_breakdown.items()},
    )


def _tags_to_dict(tags: list[dict[str, str]] | None) -> dict[str, str]:
    return {tag["Key"]: tag.get("Value", "") for tag in tags or [] if "Key" in tag}


def instance_to_resource(
    instance: dict[str, Any],
    region: str,
    cpu_samples: list[float],
    volume_sizes: list[int],
) -> Resource:
    """Normalize an EC2 DescribeInstances entry."""
    return Resource(
        provider=CloudProvider.AWS,
        resource_id=instance.get("InstanceId"),
        resource_type=EC2_INSTANCE,
        instance_type=instance.get("InstanceType"),
        region=region,
        cpu_utilization=cpu_samples,
        storage_volumes_gb=volume_sizes,
        tags=_tags_to_dict(instance.get("Tags")),
    )


def db_instance_to_resource(db_instance: dict[str, Any], region: str) -> Resource:
    """Normalize an RDS DescribeDBInstances entry."""
    storage = db_instance.get("AllocatedStorage")
    return Resource(
        provider=CloudProvider.AWS,
        resource_id=db_instance.get("DBInstanceIdentifier"),
        resource_type=RDS_DATABASE,
        instance_type=db_instance.get("DBInstanceClass"),
        region=region,
        storage_volumes_gb=[storage] if storage else [],
        engine=db_instance.get("Engine"),
        tags=_tags_to_dict(db_instance.get("TagList")),
    )


class AWSCollector(ResourceCollector, MetricsCollector):
    """
    Collects resources and metrics from one AWS account with aioboto3.

    Cost Explorer is only available in us-east-1; everything else is read
    from each configured region.
    """

    def __init__(
        self,
        access_key: str | None = None,
        secret_key: str | None = None,
        regions: list[str] | None = None,
    ) -> None:
        self.access_key = access_key if access_key is not None else settings.AWS_ACCESS_KEY_ID
        self.secret_key = secret_key if secret_key is not None else settings.AWS_SECRET_ACCESS_KEY
        self.regions = regions or settings.AWS_COLLECTOR_REGIONS

        self.config = Config(
            connect_timeout=60,
            read_timeout=60,
            retries={"max_attempts": 3, "mode": "standard"},
        )
        self.session = aioboto3.Session(
            aws_access_key_id=self.access_key or None,
            aws_secret_access_key=self.secret_key or None,
        )

    @property
    def providers(self) -> list[CloudProvider]:
        return [CloudProvider.AWS] if self.access_key and self.secret_key else []

    def _require_aws(self, provider: CloudProvider) -> None:
        if provider not in self.providers:
            raise ProviderNotConfiguredError(provider.value)

    async def _describe_instances(self, ec2: Any, running_only: bool = False) -> list[dict[str, Any]]:
        filters = [{"Name": "instance-state-name", "Values": ["running"]}] if running_only else []
        instances = []
        paginator = ec2.get_paginator("describe_instances")
        async for page in paginator.paginate(Filters=filters):
            for reservation in page.get("Reservations", []):
                instances.extend(reservation.get("Instances", []))
        return instances

    async def _describe_volumes(self, ec2: Any) -> list[dict[str, Any]]:
        volumes = []
        paginator = ec2.get_paginator("describe_volumes")
        async for page in paginator.paginate():
            volumes.extend(page.get("Volumes", []))
        return volumes

    async def _metric(
        self,
        cw: Any,
        namespace: str,
        metric_name: str,
        instance_id: str,
        lookback: timedelta,
        period: int,
        statistics: list[str],
    ) -> list[dict[str, Any]]:
        now = datetime.now(timezone.utc)
        response = await cw.get_metric_statistics(
            Namespace=namespace,
            MetricName=metric_name,
            Dimensions=[{"Name": "InstanceId", "Value": instance_id}],
            StartTime=now - lookback,
            EndTime=now,
            Period=period,
            Statistics=statistics,
        )
        return response.get("Datapoints", [])

    async def _daily_cpu_averages(self, cw: Any, instance_id: str) -> list[float]:
        datapoints = await self._metric(
            cw,
            "AWS/EC2",
            "CPUUtilization",
            instance_id,
            timedelta(days=settings.UTILIZATION_LOOKBACK_DAYS),
            86400,  # 1 day
            ["Average"],
        )
        return [dp["Average"] for dp in datapoints if dp.get("Average") is not None]

    async def collect_resources(self, provider: CloudProvider) -> dict[str, list[Resource]]:
        self._require_aws(provider)
        grouped: dict[str, list[Resource]] = {EC2_INSTANCE: [], RDS_DATABASE: []}

        try:
            for region in self.regions:
                async with self.session.client("ec2", region_name=region, config=self.config) as ec2, \
                        self.session.client("cloudwatch", region_name=region, config=self.config) as cw:
                    volume_sizes: dict[str, list[int]] = defaultdict(list)
                    for volume in await self._describe_volumes(ec2):
                        for attachment in volume.get("Attachments", []):
                            volume_sizes[attachment.get("InstanceId", "")].append(volume.get("Size", 0))

                    for instance in await self._describe_instances(ec2):
                        instance_id = instance.get("InstanceId", "")
                        cpu_samples = await self._daily_cpu_averages(cw, instance_id)
                        grouped[EC2_INSTANCE].append(
                            instance_to_resource(instance, region, cpu_samples, volume_sizes[instance_id])
                        )

                async with self.session.client("rds", region_name=region, config=self.config) as rds:
                    paginator = rds.get_paginator("describe_db_instances")
                    async for page in paginator.paginate():
                        for db_instance in page.get("DBInstances", []):
                            grouped[RDS_DATABASE].append(db_instance_to_resource(db_instance, region))
        except (BotoCoreError, ClientError) as e:
            raise ProviderCollectionError(provider.value, f"resource collection failed: {e}") from e

        logger.info(
            "aws.resources_collected",
            regions=self.regions,
            instances=len(grouped[EC2_INSTANCE]),
            databases=len(grouped[RDS_DATABASE]),
        )
        return grouped

    async def collect_costs(
        self, provider: CloudProvider, start_date: date, end_date: date
    ) -> CostMetrics:
        self._require_aws(provider)
        results_by_time: list[dict[str, Any]] = []

        try:
            async with self.session.client("ce", region_name="us-east-1", config=self.config) as ce:
                kwargs: dict[str, Any] = {
                    "TimePeriod": {"Start": start_date.isoformat(), "End": end_date.isoformat()},
                    "Granularity": "DAILY",
                    "Metrics": ["UnblendedCost"],
                    "GroupBy": [{"Type": "DIMENSION", "Key": "SERVICE"}],
                }
                while True:
                    response = await ce.get_cost_and_usage(**kwargs)
                    results_by_time.extend(response.get("ResultsByTime", []))
                    token = response.get("NextPageToken")
                    if not token:
                        break
                    kwargs["NextPageToken"] = token
        except (BotoCoreError, ClientError) as e:
            raise ProviderCollectionError(provider.value, f"cost collection failed: {e}") from e

        return parse_cost_and_usage(results_by_time)

    async def collect_performance(self, provider: CloudProvider) -> ProviderPerformance:
        self._require_aws(provider)
        compute = []
        last_hour = timedelta(hours=1)

        try:
            for region in self.regions:
                async with self.session.client("ec2", region_name=region, config=self.config) as ec2, \
                        self.session.client("cloudwatch", region_name=region, config=self.config) as cw:
                    for instance in await self._describe_instances(ec2, running_only=True):
                        instance_id = instance["InstanceId"]
                        cpu = await self._metric(
                            cw, "AWS/EC2", "CPUUtilization", instance_id, last_hour, 300, ["Average", "Maximum"]
                        )
                        try:
                            # Requires the CloudWatch agent on the instance
                            memory = await self._metric(
                                cw, "CWAgent", "mem_used_percent", instance_id, last_hour, 300, ["Average", "Maximum"]
                            )
                        except ClientError:
                            memory = []
                        network_in = await self._metric(
                            cw, "AWS/EC2", "NetworkIn", instance_id, last_hour, 300, ["Average", "Sum"]
                        )
                        network_out = await self._metric(
                            cw, "AWS/EC2", "NetworkOut", instance_id, last_hour, 300, ["Average", "Sum"]
                        )
                        compute.append(
                            InstancePerformance(
                                instance_id=instance_id,
                                cpu=summarize_datapoints(cpu),
                                memory=summarize_datapoints(memory),
                                network_in=summarize_datapoints(network_in),
                                network_out=summarize_datapoints(network_out),
                            )
                        )
        except (BotoCoreError, ClientError) as e:
            raise ProviderCollectionError(provider.value, f"performance collection failed: {e}") from e

        return ProviderPerformance(compute=compute)

    async def collect_utilization(self, provider: CloudProvider) -> ProviderUtilization:
        self._require_aws(provider)
        instances = []
        volumes = []

        try:
            for region in self.regions:
                async with self.session.client("ec2", region_name=region, config=self.config) as ec2, \
                        self.session.client("cloudwatch", region_name=region, config=self.config) as cw:
                    for instance in await self._describe_instances(ec2, running_only=True):
                        samples = await self._daily_cpu_averages(cw, instance["InstanceId"])
                        instances.append(
                            InstanceUtilization(
                                instance_id=instance["InstanceId"],
                                instance_type=instance.get("InstanceType", ""),
                                state=instance.get("State", {}).get("Name"),
                                cpu_utilization=sum(samples) / len(samples) if samples else 0.0,
                            )
                        )

                    for volume in await self._describe_volumes(ec2):
                        volumes.append(
                            VolumeUtilization(
                                volume_id=volume["VolumeId"],
                                volume_type=volume.get("VolumeType", "gp2"),
                                size_gb=volume.get("Size", 0),
                                state=volume.get("State"),
                                attachments=len(volume.get("Attachments", [])),
                            )
                        )
        except (BotoCoreError, ClientError) as e:
            raise ProviderCollectionError(provider.value, f"utilization collection failed: {e}") from e

        return ProviderUtilization(instances=instances, volumes=volumes)

    async def subscribe_alerts(self, provider: CloudProvider) -> bool:
        """Verify CloudWatch alarm access so alarm state changes can be consumed."""
        self._require_aws(provider)
        alarms_in_alarm = 0
        try:
            for region in self.regions:
                async with self.session.client("cloudwatch", region_name=region, config=self.config) as cw:
                    response = await cw.describe_alarms(StateValue="ALARM", MaxRecords=100)
                    alarms_in_alarm += len(response.get("MetricAlarms", []))
        except (BotoCoreError, ClientError) as e:
            raise ProviderCollectionError(provider.value, f"alarm subscription failed: {e}") from e

        logger.info("aws.alerts.subscribed", regions=self.regions, alarms_in_alarm=alarms_in_alarm)
        return True
