"""Tests for price list parsing and region equivalence."""

import json

import pytest

from advisor.schemas.resource import CloudProvider
from advisor.services.pricing_sources import (
    GCP_COMPUTE_PRICING,
    StaticPricingSource,
    parse_aws_price_list,
    parse_azure_retail_items,
)
from advisor.services.regions import equivalent_region, regions_for


def aws_product(instance_type: str | None, region: str, hourly: str) -> str:
    attributes = {"regionCode": region}
    if instance_type:
        attributes["instanceType"] = instance_type
    return json.dumps(
        {
            "product": {"attributes": attributes},
            "terms": {
                "OnDemand": {
                    "T1": {"priceDimensions": {"D1": {"unit": "Hrs", "pricePerUnit": {"USD": hourly}}}}
                },
                "Reserved": {
                    "R1": {
                        "termAttributes": {
                            "LeaseContractLength": "1yr",
                            "PurchaseOption": "Partial Upfront",
                        },
                        "priceDimensions": {
                            "D2": {"unit": "Quantity", "pricePerUnit": {"USD": "300"}},
                            "D3": {"unit": "Hrs", "pricePerUnit": {"USD": "0.034"}},
                        },
                    }
                },
            },
        }
    )


class TestAWSPriceList:
    """Test AWS Price List parsing."""

    def test_on_demand_and_reserved(self):
        """Test hourly and reserved prices are extracted per region and type."""
        catalog = parse_aws_price_list([aws_product("m5.large", "us-east-1", "0.096")])

        pricing = catalog["us-east-1"]["m5.large"]
        assert pricing.on_demand == 0.096
        assert pricing.reserved["1yr_partial_upfront"].upfront_fee == 300.0
        assert pricing.reserved["1yr_partial_upfront"].hourly_fee == 0.034

    def test_skips_invalid_documents(self):
        """Test malformed JSON and products without instance type are ignored."""
        catalog = parse_aws_price_list(
            ["{not json", aws_product(None, "us-east-1", "1.0"), aws_product("t3.micro", "eu-west-1", "0.0114")]
        )

        assert list(catalog) == ["eu-west-1"]
        assert list(catalog["eu-west-1"]) == ["t3.micro"]


class TestAzureRetailPrices:
    """Test Azure Retail Prices parsing."""

    def test_linux_consumption_price(self):
        """Test Spot and Windows meters are ignored and the cheapest meter wins."""
        items = [
            {"armSkuName": "Standard_B1s", "armRegionName": "eastus", "skuName": "B1s",
             "productName": "Virtual Machines BS Series", "type": "Consumption",
             "retailPrice": 0.0104, "unitOfMeasure": "1 Hour"},
            {"armSkuName": "Standard_B1s", "armRegionName": "eastus", "skuName": "B1s Spot",
             "productName": "Virtual Machines BS Series", "type": "Consumption",
             "retailPrice": 0.002, "unitOfMeasure": "1 Hour"},
            {"armSkuName": "Standard_B1s", "armRegionName": "eastus", "skuName": "B1s",
             "productName": "Virtual Machines BS Series Windows", "type": "Consumption",
             "retailPrice": 0.0146, "unitOfMeasure": "1 Hour"},
            {"armSkuName": "Standard_B1s", "armRegionName": "eastus", "skuName": "B1s",
             "productName": "Virtual Machines BS Series", "type": "Reservation",
             "reservationTerm": "1 Year", "retailPrice": 55.0},
        ]

        catalog = parse_azure_retail_items(items)

        pricing = catalog["eastus"]["Standard_B1s"]
        assert pricing.on_demand == 0.0104
        assert pricing.reserved["1yr"].upfront_fee == 55.0

    def test_non_compute_items_are_ignored(self):
        """Test storage meters do not enter the catalog."""
        items = [
            {"armSkuName": "Premium_LRS", "armRegionName": "eastus", "serviceFamily": "Storage",
             "type": "Consumption", "retailPrice": 0.1},
        ]

        assert parse_azure_retail_items(items) == {}


class TestStaticPricingSource:
    """Test the built-in catalog source."""

    @pytest.mark.asyncio
    async def test_returns_copies(self):
        """Test callers cannot modify the built-in catalog."""
        source = StaticPricingSource(CloudProvider.GCP, GCP_COMPUTE_PRICING)

        catalog = await source.fetch_prices()
        catalog["us-east1"]["e2-micro"].on_demand = 99.0

        assert GCP_COMPUTE_PRICING["us-east1"]["e2-micro"].on_demand == 0.0084


class TestRegions:
    """Test nearest-region translation."""

    def test_equivalent_regions(self):
        """Test known regions translate in both directions."""
        assert equivalent_region("us-east-1", CloudProvider.AWS, CloudProvider.AZURE) == "eastus"
        assert equivalent_region("europe-west1", CloudProvider.GCP, CloudProvider.AWS) == "eu-west-1"
        assert equivalent_region("eastus", CloudProvider.AZURE, CloudProvider.AZURE) == "eastus"

    def test_unknown_region_uses_default(self):
        """Test unmapped or missing regions fall back to the target default."""
        assert equivalent_region("ap-south-1", CloudProvider.AWS, CloudProvider.GCP) == "us-east1"
        assert equivalent_region(None, CloudProvider.AWS, CloudProvider.AZURE) == "eastus"

    def test_regions_for_deduplicates(self):
        """Test several AWS regions mapping to one default are listed once."""
        regions = regions_for(CloudProvider.AZURE, ["us-east-1", "ap-south-1", "eu-west-1"])

        assert regions == ["eastus", "northeurope"]
