"""Placement recommendation and strategy schemas."""

from enum import Enum

from pydantic import BaseModel, Field

from advisor.schemas.classification import (
    ComplianceRequirement,
    WorkloadArchetype,
    WorkloadClassification,
    WorkloadTrait,
)
from advisor.schemas.resource import CloudProvider, ResourceInventory


class ComplexityLevel(str, Enum):
    """Migration complexity bucket."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class RiskLevel(str, Enum):
    """Risk rating used by the overall strategy."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class MigrationComplexity(BaseModel):
    """Complexity of moving a resource to its recommended provider."""

    level: ComplexityLevel
    score: float = Field(ge=0, le=1)
    factors: list[str] = Field(default_factory=list)


class ProviderScoreSet(BaseModel):
    """Per-factor and weighted composite score for every provider."""

    cost: dict[CloudProvider, float]
    performance: dict[CloudProvider, float]
    reliability: dict[CloudProvider, float]
    data_transfer: dict[CloudProvider, float]
    vendor_lock_in: dict[CloudProvider, float]
    composite: dict[CloudProvider, float]


class Recommendation(BaseModel):
    """Placement recommendation for one resource."""

    resource_id: str
    resource_type: str
    instance_type: str | None = None
    region: str | None = None
    current_provider: CloudProvider
    recommended_provider: CloudProvider
    current_cost: float = 0.0
    estimated_savings: float = 0.0
    confidence_score: str = "100%"
    reasoning: list[str] = Field(default_factory=list)
    migration_complexity: MigrationComplexity
    primary_type: WorkloadArchetype = WorkloadArchetype.GENERAL
    classifications: list[WorkloadArchetype] = Field(default_factory=list)
    traits: list[WorkloadTrait] = Field(default_factory=list)
    compliance: list[ComplianceRequirement] = Field(default_factory=list)
    scores: ProviderScoreSet | None = None

    @property
    def is_move(self) -> bool:
        """Whether the recommendation changes the hosting provider."""
        return self.recommended_provider != self.current_provider


class PhaseResource(BaseModel):
    """A resource scheduled in a migration phase."""

    resource_id: str
    current_provider: CloudProvider
    target_provider: CloudProvider
    estimated_savings: float


class MigrationPhase(BaseModel):
    """Group of moves executed together."""

    name: str
    description: str
    resources: list[PhaseResource]


class RiskRating(BaseModel):
    level: RiskLevel
    description: str


class RiskAssessment(BaseModel):
    vendor_lock_in_risk: RiskRating
    migration_risk: RiskRating
    cost_variability_risk: RiskRating


class StrategySummary(BaseModel):
    total_resources: int
    recommended_moves: int
    estimated_total_savings: float
    provider_distribution: dict[CloudProvider, str]


class Strategy(BaseModel):
    """Portfolio-level migration strategy derived from all recommendations."""

    summary: StrategySummary
    phases: list[MigrationPhase]
    risk_assessment: RiskAssessment
    mitigation_strategies: list[str]


class RecommendationRun(BaseModel):
    """Full output of one recommendation pass."""

    resources: ResourceInventory
    classifications: dict[CloudProvider, dict[str, list[WorkloadClassification]]]
    recommendations: list[Recommendation]
    strategy: Strategy
