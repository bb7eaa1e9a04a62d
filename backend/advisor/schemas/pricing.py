"""Pricing schemas."""

from enum import Enum

from pydantic import BaseModel, Field

from advisor.schemas.resource import CloudProvider


class PricingPeriod(str, Enum):
    """Billing period over which a cost estimate is expressed."""

    HOURLY = "hourly"
    DAILY = "daily"
    MONTHLY = "monthly"
    YEARLY = "yearly"


PERIOD_HOURS: dict[str, int] = {
    PricingPeriod.HOURLY.value: 1,
    PricingPeriod.DAILY.value: 24,
    PricingPeriod.MONTHLY.value: 730,
    PricingPeriod.YEARLY.value: 8760,
}


class ProviderCost(BaseModel):
    """Cost of running one instance type at one provider."""

    provider: CloudProvider
    instance_type: str
    region: str
    cost: float = Field(ge=0, description="USD for the period, rounded to cents")


class CostEstimate(BaseModel):
    """Cost of a resource at its current provider and at each alternative."""

    period: PricingPeriod = PricingPeriod.MONTHLY
    current: ProviderCost
    alternatives: dict[CloudProvider, ProviderCost]

    def cost_for(self, provider: CloudProvider) -> float:
        """Return the estimated cost at a provider, 0.0 when not priced."""
        if provider == self.current.provider:
            return self.current.cost
        alternative = self.alternatives.get(provider)
        return alternative.cost if alternative else 0.0


class ReservedPrice(BaseModel):
    """Price of a reserved or committed-use term."""

    upfront_fee: float = 0.0
    hourly_fee: float = 0.0


class InstancePricing(BaseModel):
    """All known prices for one instance type in one region."""

    on_demand: float | None = Field(default=None, description="USD per hour")
    reserved: dict[str, ReservedPrice] = Field(
        default_factory=dict,
        description="Keyed by term, e.g. 1yr_no_upfront, 3yr_committed",
    )


# region -> instance type -> pricing
PriceCatalog = dict[str, dict[str, InstancePricing]]
