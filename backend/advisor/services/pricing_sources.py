"""Provider price list sources feeding the pricing analyzer."""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any

import boto3
import httpx
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from advisor.core.config import settings
from advisor.core.exceptions import ProviderCollectionError
from advisor.schemas.pricing import InstancePricing, PriceCatalog, ReservedPrice
from advisor.schemas.resource import CloudProvider
from advisor.services.regions import regions_for

logger = structlog.get_logger()


class PricingSource(ABC):
    """Fetches hourly instance prices for one provider."""

    provider: CloudProvider

    @abstractmethod
    async def fetch_prices(self) -> PriceCatalog:
        """
        Fetch the provider's instance price list.

        Returns:
            Prices keyed by region, then instance type

        Raises:
            ProviderCollectionError: If the price list cannot be retrieved
        """


# AWS

_AWS_LEASE_TERMS = {"1yr": "1yr", "3yr": "3yr"}
_AWS_PURCHASE_OPTIONS = {
    "No Upfront": "no_upfront",
    "Partial Upfront": "partial_upfront",
    "All Upfront": "all_upfront",
}


def _extract_reserved_price(term: dict[str, Any]) -> ReservedPrice:
    """Split a reserved term's price dimensions into upfront and hourly fees."""
    price = ReservedPrice()
    for dimension in term.get("priceDimensions", {}).values():
        usd = dimension.get("pricePerUnit", {}).get("USD")
        if usd is None:
            continue
        if dimension.get("unit") == "Quantity":
            price.upfront_fee = float(usd)
        elif dimension.get("unit") == "Hrs":
            price.hourly_fee = float(usd)
    return price


def parse_aws_price_list(price_list: list[str]) -> PriceCatalog:
    """
    Parse the PriceList JSON documents returned by the AWS Price List API.

    Only products carrying an instance type are kept. The first on-demand
    price dimension becomes the hourly price; reserved terms are keyed as
    ``<lease>_<purchase option>`` (e.g. ``1yr_no_upfront``).
    """
    catalog: PriceCatalog = {}

    for raw in price_list:
        try:
            item = json.loads(raw) if isinstance(raw, str) else raw
        except json.JSONDecodeError as e:
            logger.warning("aws.pricing.parse_error", error=str(e))
            continue

        attributes = item.get("product", {}).get("attributes", {})
        instance_type = attributes.get("instanceType")
        region = attributes.get("regionCode")
        if not instance_type or not region:
            continue

        pricing = catalog.setdefault(region, {}).setdefault(instance_type, InstancePricing())
        terms = item.get("terms", {})

        for on_demand_term in terms.get("OnDemand", {}).values():
            for dimension in on_demand_term.get("priceDimensions", {}).values():
                usd = dimension.get("pricePerUnit", {}).get("USD")
                if usd is not None:
                    pricing.on_demand = float(usd)
                    break
            break

        for reserved_term in terms.get("Reserved", {}).values():
            attrs = reserved_term.get("termAttributes", {})
            lease = _AWS_LEASE_TERMS.get(attrs.get("LeaseContractLength", ""))
            option = _AWS_PURCHASE_OPTIONS.get(attrs.get("PurchaseOption", ""))
            if lease and option:
                pricing.reserved[f"{lease}_{option}"] = _extract_reserved_price(reserved_term)

    return catalog


class AWSPricingSource(PricingSource):
    """
    Client for AWS Price List API.

    IMPORTANT: AWS Pricing API is only available in us-east-1 (and
    ap-south-1). All API calls are made to us-east-1 regardless of the
    resource region.
    """

    provider = CloudProvider.AWS

    def __init__(self, regions: list[str] | None = None, max_pages: int | None = None) -> None:
        self.regions = regions or settings.AWS_COLLECTOR_REGIONS
        self.max_pages = max_pages or settings.AWS_PRICING_MAX_PAGES
        self.client = boto3.client(
            "pricing",
            region_name="us-east-1",
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        )

    def _get_products_page(self, region: str, next_token: str | None) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "ServiceCode": "AmazonEC2",
            "Filters": [
                {"Type": "TERM_MATCH", "Field": "operatingSystem", "Value": "Linux"},
                {"Type": "TERM_MATCH", "Field": "tenancy", "Value": "Shared"},
                {"Type": "TERM_MATCH", "Field": "preInstalledSw", "Value": "NA"},
                {"Type": "TERM_MATCH", "Field": "capacitystatus", "Value": "Used"},
                {"Type": "TERM_MATCH", "Field": "regionCode", "Value": region},
            ],
            "MaxResults": 100,
        }
        if next_token:
            kwargs["NextToken"] = next_token
        return self.client.get_products(**kwargs)

    async def fetch_prices(self) -> PriceCatalog:
        price_list: list[str] = []
        # AWS Pricing API uses synchronous boto3, run in executor
        loop = asyncio.get_running_loop()

        try:
            for region in self.regions:
                next_token = None
                for _ in range(self.max_pages):
                    response = await loop.run_in_executor(
                        None, self._get_products_page, region, next_token
                    )
                    price_list.extend(response.get("PriceList", []))
                    next_token = response.get("NextToken")
                    if not next_token:
                        break
        except (BotoCoreError, ClientError) as e:
            logger.error("aws.pricing.api_error", error=str(e))
            raise ProviderCollectionError(self.provider.value, f"Price List API error: {e}") from e

        catalog = parse_aws_price_list(price_list)
        logger.info(
            "aws.pricing.fetched",
            products=len(price_list),
            regions=list(catalog.keys()),
        )
        return catalog


# Azure

_AZURE_RESERVATION_TERMS = {"1 Year": "1yr", "3 Years": "3yr"}


def parse_azure_retail_items(items: list[dict[str, Any]]) -> PriceCatalog:
    """
    Parse items returned by the Azure Retail Prices API.

    Linux pay-as-you-go hourly prices become the on-demand price; Spot,
    Low Priority and Windows meters are ignored. Reservation prices are
    stored as upfront fees for the whole term.
    """
    catalog: PriceCatalog = {}

    for item in items:
        sku = item.get("armSkuName") or item.get("skuName")
        region = item.get("armRegionName")
        if not sku or not region or item.get("serviceFamily", "Compute") != "Compute":
            continue

        sku_name = item.get("skuName", "")
        product_name = item.get("productName", "")
        if "Spot" in sku_name or "Low Priority" in sku_name or "Windows" in product_name:
            continue

        price = item.get("retailPrice")
        if price is None:
            continue

        pricing = catalog.setdefault(region, {}).setdefault(sku, InstancePricing())
        price_type = item.get("type")
        reservation_term = item.get("reservationTerm") or ""

        if price_type == "Consumption" and not reservation_term:
            if item.get("unitOfMeasure", "1 Hour") == "1 Hour":
                # Keep the cheapest meter when a SKU has several
                if pricing.on_demand is None or float(price) < pricing.on_demand:
                    pricing.on_demand = float(price)
        elif price_type == "Reservation" and reservation_term in _AZURE_RESERVATION_TERMS:
            pricing.reserved[_AZURE_RESERVATION_TERMS[reservation_term]] = ReservedPrice(
                upfront_fee=float(price)
            )

    return catalog


class AzureRetailPricingSource(PricingSource):
    """Client for the public Azure Retail Prices API (no authentication)."""

    provider = CloudProvider.AZURE

    def __init__(
        self,
        regions: list[str] | None = None,
        base_url: str | None = None,
        max_pages: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self.regions = regions or regions_for(CloudProvider.AZURE, settings.AWS_COLLECTOR_REGIONS)
        self.base_url = base_url or settings.AZURE_RETAIL_PRICES_URL
        self.max_pages = max_pages or settings.AZURE_PRICING_MAX_PAGES
        self.timeout = timeout or settings.PRICING_HTTP_TIMEOUT_SECONDS

    async def fetch_prices(self) -> PriceCatalog:
        items: list[dict[str, Any]] = []

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                for region in self.regions:
                    url: str | None = self.base_url
                    params: dict[str, str] | None = {
                        "$filter": (
                            "serviceName eq 'Virtual Machines' "
                            f"and armRegionName eq '{region}'"
                        )
                    }
                    for _ in range(self.max_pages):
                        if not url:
                            break
                        response = await client.get(url, params=params)
                        response.raise_for_status()
                        data = response.json()
                        items.extend(data.get("Items", []))
                        # NextPageLink already carries the query string
                        url = data.get("NextPageLink")
                        params = None
        except httpx.HTTPError as e:
            logger.error("azure.pricing.api_error", error=str(e))
            raise ProviderCollectionError(self.provider.value, f"Retail Prices API error: {e}") from e

        catalog = parse_azure_retail_items(items)
        logger.info("azure.pricing.fetched", items=len(items), regions=list(catalog.keys()))
        return catalog


# GCP


def _committed(on_demand: float, one_year: float, three_year: float) -> InstancePricing:
    return InstancePricing(
        on_demand=on_demand,
        reserved={
            "1yr_committed": ReservedPrice(hourly_fee=one_year),
            "3yr_committed": ReservedPrice(hourly_fee=three_year),
        },
    )


# Published on-demand and committed-use hourly prices (USD, Linux)
GCP_COMPUTE_PRICING: PriceCatalog = {
    "us-central1": {
        "e2-micro": _committed(0.0084, 0.0053, 0.0038),
        "e2-small": _committed(0.0168, 0.0106, 0.0076),
        "e2-medium": _committed(0.0335, 0.0211, 0.0151),
        "n1-standard-1": _committed(0.0475, 0.0308, 0.0210),
        "n1-standard-2": _committed(0.0950, 0.0617, 0.0420),
        "n2-standard-2": _committed(0.0971, 0.0612, 0.0437),
        "n2-standard-4": _committed(0.1942, 0.1223, 0.0874),
        "c2-standard-4": _committed(0.2088, 0.1315, 0.0940),
    },
    "us-east1": {
        "e2-micro": _committed(0.0084, 0.0053, 0.0038),
        "e2-small": _committed(0.0168, 0.0106, 0.0076),
        "e2-medium": _committed(0.0335, 0.0211, 0.0151),
        "n1-standard-1": _committed(0.0475, 0.0308, 0.0210),
        "n1-standard-2": _committed(0.0950, 0.0617, 0.0420),
        "n2-standard-2": _committed(0.0971, 0.0612, 0.0437),
        "n2-standard-4": _committed(0.1942, 0.1223, 0.0874),
        "c2-standard-4": _committed(0.2088, 0.1315, 0.0940),
    },
    "europe-west1": {
        "e2-micro": _committed(0.0092, 0.0058, 0.0041),
        "e2-small": _committed(0.0184, 0.0116, 0.0083),
        "e2-medium": _committed(0.0368, 0.0232, 0.0166),
        "n1-standard-1": _committed(0.0523, 0.0339, 0.0231),
        "n1-standard-2": _committed(0.1045, 0.0679, 0.0462),
        "n2-standard-2": _committed(0.1068, 0.0673, 0.0481),
        "n2-standard-4": _committed(0.2137, 0.1346, 0.0962),
        "c2-standard-4": _committed(0.2297, 0.1447, 0.1034),
    },
}


class StaticPricingSource(PricingSource):
    """Serves a built-in price catalog."""

    def __init__(self, provider: CloudProvider, catalog: PriceCatalog) -> None:
        self.provider = provider
        self.catalog = catalog

    async def fetch_prices(self) -> PriceCatalog:
        return {
            region: {name: pricing.model_copy(deep=True) for name, pricing in types.items()}
            for region, types in self.catalog.items()
        }


def build_default_pricing_sources() -> list[PricingSource]:
    """Create the pricing sources enabled in settings."""
    sources: list[PricingSource] = []
    if settings.AWS_PRICING_ENABLED:
        sources.append(AWSPricingSource())
    if settings.AZURE_PRICING_ENABLED:
        sources.append(AzureRetailPricingSource())
    if settings.GCP_PRICING_ENABLED:
        sources.append(StaticPricingSource(CloudProvider.GCP, GCP_COMPUTE_PRICING))
    return sources
