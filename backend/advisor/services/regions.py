"""Nearest-region equivalence between providers."""

from advisor.schemas.resource import CloudProvider

DEFAULT_REGIONS: dict[CloudProvider, str] = {
    CloudProvider.AWS: "us-east-1",
    CloudProvider.AZURE: "eastus",
    CloudProvider.GCP: "us-east1",
}

# (aws, azure, gcp) regions in roughly the same metro area
REGION_EQUIVALENTS: tuple[tuple[str, str, str], ...] = (
    ("us-east-1", "eastus", "us-east1"),
    ("us-east-2", "eastus2", "us-east4"),
    ("us-west-1", "westus", "us-west2"),
    ("us-west-2", "westus2", "us-west1"),
    ("eu-west-1", "northeurope", "europe-west1"),
    ("eu-west-2", "uksouth", "europe-west2"),
    ("eu-west-3", "francecentral", "europe-west9"),
    ("eu-central-1", "germanywestcentral", "europe-west3"),
    ("ap-southeast-1", "southeastasia", "asia-southeast1"),
    ("ap-southeast-2", "australiaeast", "australia-southeast1"),
    ("ap-northeast-1", "japaneast", "asia-northeast1"),
    ("ap-northeast-2", "koreacentral", "asia-northeast3"),
)

_COLUMN = {CloudProvider.AWS: 0, CloudProvider.AZURE: 1, CloudProvider.GCP: 2}


def equivalent_region(
    region: str | None, source: CloudProvider, target: CloudProvider
) -> str:
    """
    Translate a region of one provider to the closest region of another.

    Unknown or missing regions fall back to the target's default region.
    """
    if region and source == target:
        return region
    if region:
        for row in REGION_EQUIVALENTS:
            if row[_COLUMN[source]] == region:
                return row[_COLUMN[target]]
    return DEFAULT_REGIONS[target]


def regions_for(provider: CloudProvider, aws_regions: list[str]) -> list[str]:
    """Regions of a provider that mirror a list of AWS regions, without duplicates."""
    regions: list[str] = []
    for aws_region in aws_regions:
        region = equivalent_region(aws_region, CloudProvider.AWS, provider)
        if region not in regions:
            regions.append(region)
    return regions
