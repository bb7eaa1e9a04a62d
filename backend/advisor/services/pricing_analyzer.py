"""Cross-provider cost estimation over a refreshed price cache."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog

from advisor.core.config import settings
from advisor.schemas.pricing import (
    PERIOD_HOURS,
    CostEstimate,
    InstancePricing,
    PriceCatalog,
    PricingPeriod,
    ProviderCost,
)
from advisor.schemas.resource import PROVIDERS, CloudProvider, Resource
from advisor.services.pricing_sources import PricingSource
from advisor.services.regions import DEFAULT_REGIONS, equivalent_region

logger = structlog.get_logger()

DEFAULT_PERIOD_HOURS = PERIOD_HOURS[PricingPeriod.MONTHLY.value]

# source provider -> instance type -> equivalent type at each other provider
INSTANCE_EQUIVALENTS: dict[CloudProvider, dict[str, dict[CloudProvider, str]]] = {
    CloudProvider.AWS: {
        "t2.micro": {CloudProvider.AZURE: "Standard_B1s", CloudProvider.GCP: "e2-micro"},
        "t2.small": {CloudProvider.AZURE: "Standard_B1ms", CloudProvider.GCP: "e2-small"},
        "t2.medium": {CloudProvider.AZURE: "Standard_B2s", CloudProvider.GCP: "e2-medium"},
        "m5.large": {CloudProvider.AZURE: "Standard_D2s_v3", CloudProvider.GCP: "n2-standard-2"},
        "m5.xlarge": {CloudProvider.AZURE: "Standard_D4s_v3", CloudProvider.GCP: "n2-standard-4"},
        "c5.large": {CloudProvider.AZURE: "Standard_F2s_v2", CloudProvider.GCP: "c2-standard-4"},
        "r5.large": {CloudProvider.AZURE: "Standard_E2s_v3", CloudProvider.GCP: "m2-ultramem-2"},
    },
    CloudProvider.AZURE: {
        "Standard_B1s": {CloudProvider.AWS: "t2.micro", CloudProvider.GCP: "e2-micro"},
        "Standard_D2s_v3": {CloudProvider.AWS: "m5.large", CloudProvider.GCP: "n2-standard-2"},
    },
    CloudProvider.GCP: {
        "e2-micro": {CloudProvider.AWS: "t2.micro", CloudProvider.AZURE: "Standard_B1s"},
        "n2-standard-2": {CloudProvider.AWS: "m5.large", CloudProvider.AZURE: "Standard_D2s_v3"},
    },
}

# Used for any instance type missing from the equivalence table
DEFAULT_EQUIVALENTS: dict[CloudProvider, str] = {
    CloudProvider.AWS: "t2.medium",
    CloudProvider.AZURE: "Standard_D2s_v3",
    CloudProvider.GCP: "n2-standard-2",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PricingCache:
    """Per-provider price catalogs with their last refresh time."""

    def __init__(self, refresh_interval: timedelta) -> None:
        self.refresh_interval = refresh_interval
        self._catalogs: dict[CloudProvider, PriceCatalog] = {p: {} for p in PROVIDERS}
        self._last_updated: dict[CloudProvider, datetime | None] = {p: None for p in PROVIDERS}

    def is_fresh(self, provider: CloudProvider, now: datetime) -> bool:
        last_updated = self._last_updated[provider]
        return last_updated is not None and now - last_updated < self.refresh_interval

    def last_updated(self, provider: CloudProvider) -> datetime | None:
        return self._last_updated[provider]

    def store(self, provider: CloudProvider, catalog: PriceCatalog, now: datetime) -> None:
        """Replace a provider's catalog and mark it refreshed."""
        self._catalogs[provider] = catalog
        self._last_updated[provider] = now

    def get(self, provider: CloudProvider, region: str, instance_type: str) -> InstancePricing | None:
        return self._catalogs[provider].get(region, {}).get(instance_type)


class PricingAnalyzer:
    """
    Estimates what a resource costs at its current provider and at the
    equivalent instance type of every other provider.

    Prices come from pluggable sources and are cached per provider; a
    provider is re-fetched at most once per refresh interval (24 hours by
    default). Missing prices are treated as zero cost rather than errors.
    """

    def __init__(
        self,
        sources: list[PricingSource],
        refresh_interval: timedelta | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.sources: dict[CloudProvider, PricingSource] = {s.provider: s for s in sources}
        self.cache = PricingCache(
            refresh_interval or timedelta(hours=settings.PRICING_REFRESH_INTERVAL_HOURS)
        )
        self._clock = clock

    async def _refresh_provider(self, provider: CloudProvider, force: bool) -> bool:
        now = self._clock()
        if not force and self.cache.is_fresh(provider, now):
            logger.debug("pricing.refresh_skipped", provider=provider.value)
            return False

        catalog = await self.sources[provider].fetch_prices()
        self.cache.store(provider, catalog, now)
        logger.info(
            "pricing.refreshed",
            provider=provider.value,
            regions=len(catalog),
            instance_types=sum(len(types) for types in catalog.values()),
        )
        return True

    async def update_pricing_data(self, force: bool = False) -> dict[CloudProvider, bool]:
        """
        Refresh every stale provider catalog concurrently.

        A failing source is logged and keeps serving its previous catalog.

        Args:
            force: Refresh even when the cache is still fresh

        Returns:
            Mapping of provider to whether it was refreshed
        """
        providers = list(self.sources.keys())
        results = await asyncio.gather(
            *(self._refresh_provider(provider, force) for provider in providers),
            return_exceptions=True,
        )

        refreshed: dict[CloudProvider, bool] = {}
        for provider, result in zip(providers, results):
            if isinstance(result, Exception):
                logger.error("pricing.refresh_failed", provider=provider.value, error=str(result))
                refreshed[provider] = False
            else:
                refreshed[provider] = result
        return refreshed

    @staticmethod
    def get_equivalent_instance_types(
        instance_type: str, provider: CloudProvider
    ) -> dict[CloudProvider, str]:
        """
        Map an instance type to its equivalent at every provider.

        The source provider always keeps its own type. Unmapped types get
        each other provider's default equivalent.
        """
        mapping = INSTANCE_EQUIVALENTS.get(provider, {}).get(instance_type)
        equivalents = {}
        for target in PROVIDERS:
            if target == provider:
                equivalents[target] = instance_type
            elif mapping is not None:
                equivalents[target] = mapping[target]
            else:
                equivalents[target] = DEFAULT_EQUIVALENTS[target]
        return equivalents

    def get_resource_cost(
        self, provider: CloudProvider, instance_type: str, region: str, hours: int
    ) -> float:
        """Cost of running an instance type for a number of hours, 0.0 if unpriced."""
        pricing = self.cache.get(provider, region, instance_type)
        if pricing is None or pricing.on_demand is None:
            return 0.0
        return round(pricing.on_demand * hours, 2)

    def calculate_cost_estimate(
        self, resource: Resource, period: PricingPeriod | str = PricingPeriod.MONTHLY
    ) -> CostEstimate:
        """
        Price a resource at every provider from the current cache contents.

        Args:
            resource: Resource to price
            period: Billing period; unknown periods fall back to monthly

        Returns:
            Cost estimate with the current provider and all alternatives
        """
        period_value = period.value if isinstance(period, PricingPeriod) else period
        if period_value not in PERIOD_HOURS:
            period_value = PricingPeriod.MONTHLY.value
        hours = PERIOD_HOURS.get(period_value, DEFAULT_PERIOD_HOURS)

        provider = resource.provider
        instance_type = resource.instance_type or resource.resource_type
        region = resource.region or DEFAULT_REGIONS[provider]
        equivalents = self.get_equivalent_instance_types(instance_type, provider)

        current = ProviderCost(
            provider=provider,
            instance_type=instance_type,
            region=region,
            cost=self.get_resource_cost(provider, instance_type, region, hours),
        )

        alternatives = {}
        for alternative in PROVIDERS:
            if alternative == provider:
                continue
            alt_region = equivalent_region(region, provider, alternative)
            alternatives[alternative] = ProviderCost(
                provider=alternative,
                instance_type=equivalents[alternative],
                region=alt_region,
                cost=self.get_resource_cost(alternative, equivalents[alternative], alt_region, hours),
            )

        return CostEstimate(period=PricingPeriod(period_value), current=current, alternatives=alternatives)

    async def estimate_cost(
        self, resource: Resource, period: PricingPeriod | str = PricingPeriod.MONTHLY
    ) -> CostEstimate:
        """Refresh stale prices, then price the resource."""
        await self.update_pricing_data()
        return self.calculate_cost_estimate(resource, period)
