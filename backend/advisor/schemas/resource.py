"""Cloud resource schemas shared by collectors and engine components."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CloudProvider(str, Enum):
    """Cloud provider enumeration."""

    AWS = "aws"
    AZURE = "azure"
    GCP = "gcp"


# Canonical iteration order wherever all providers are scored or reported
PROVIDERS: tuple[CloudProvider, ...] = (CloudProvider.AWS, CloudProvider.AZURE, CloudProvider.GCP)


class Resource(BaseModel):
    """
    A single compute, storage or database resource observed at a provider.

    The provider is always explicit; collectors tag every resource with the
    account it was read from.
    """

    model_config = ConfigDict(frozen=True)

    provider: CloudProvider
    resource_id: str | None = None
    resource_type: str = Field(default="instance", description="Kind, e.g. ec2_instance, rds_database")
    instance_type: str | None = Field(default=None, description="Provider SKU, e.g. m5.large")
    region: str | None = None
    cpu_utilization: list[float] = Field(
        default_factory=list, description="Average CPU percent samples"
    )
    storage_volumes_gb: list[int] = Field(default_factory=list)
    timeout_seconds: int | None = None
    load_balancers: list[str] = Field(default_factory=list)
    engine: str | None = None
    tags: dict[str, str] = Field(default_factory=dict)


# provider -> resource type -> resources
ResourceInventory = dict[CloudProvider, dict[str, list[Resource]]]
