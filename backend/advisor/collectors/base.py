"""Base abstract classes for resource and metrics collectors."""

from abc import ABC, abstractmethod
from datetime import date

from advisor.schemas.monitoring import CostMetrics, ProviderPerformance, ProviderUtilization
from advisor.schemas.resource import CloudProvider, Resource


class ResourceCollector(ABC):
    """
    Enumerates resources at the providers it holds credentials for.

    Providers without credentials are simply absent from ``providers``.
    Calls for one provider may fail independently of the others.
    """

    @property
    @abstractmethod
    def providers(self) -> list[CloudProvider]:
        """Providers this collector can read."""

    @abstractmethod
    async def collect_resources(self, provider: CloudProvider) -> dict[str, list[Resource]]:
        """
        Collect a provider's resources grouped by resource type.

        Raises:
            ProviderNotConfiguredError: If the provider has no credentials
            ProviderCollectionError: If the provider returned unusable data
        """


class MetricsCollector(ABC):
    """Reads cost, performance and utilization metrics per provider."""

    @property
    @abstractmethod
    def providers(self) -> list[CloudProvider]:
        """Providers this collector can read."""

    @abstractmethod
    async def collect_costs(
        self, provider: CloudProvider, start_date: date, end_date: date
    ) -> CostMetrics:
        """Total, daily and per-service cost between two dates."""

    @abstractmethod
    async def collect_performance(self, provider: CloudProvider) -> ProviderPerformance:
        """Recent CPU/memory/network metrics of running instances."""

    @abstractmethod
    async def collect_utilization(self, provider: CloudProvider) -> ProviderUtilization:
        """Average CPU of instances and attachment state of volumes."""

    async def subscribe_alerts(self, provider: CloudProvider) -> bool:
        """
        Register for the provider's real-time alert stream.

        Returns:
            Whether a subscription was set up
        """
        return False
