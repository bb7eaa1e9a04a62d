"""Migration plan Pydantic schemas."""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from advisor.models.migration_plan import MigrationPlanStatus
from advisor.schemas.recommendation import ComplexityLevel
from advisor.schemas.resource import CloudProvider


class StrategyKey(str, Enum):
    """The six migration strategies."""

    REHOST = "rehost"
    REPLATFORM = "replatform"
    REFACTOR = "refactor"
    REPURCHASE = "repurchase"
    RETIRE = "retire"
    RETAIN = "retain"


class MigrationStrategy(BaseModel):
    """A migration strategy from the catalogue."""

    model_config = ConfigDict(frozen=True)

    key: StrategyKey
    name: str
    description: str
    best_for: list[str]
    complexity: str
    risk: str
    timeframe: str
    cost_savings: str


class MigrationTool(BaseModel):
    """Provider tooling that supports a migration route."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    url: str
    best_for: list[str]


class MigrationStep(BaseModel):
    name: str
    description: str


class PlanPhase(BaseModel):
    """Ordered group of steps in a migration plan."""

    phase: str
    steps: list[MigrationStep]


class MigrationRisk(BaseModel):
    type: str
    severity: str
    description: str


class RiskMitigation(BaseModel):
    risk: str
    action: str


class DowntimeEstimate(BaseModel):
    estimated: str
    minimization_strategies: list[str] = Field(default_factory=list)


class MigrationPlan(BaseModel):
    """Actionable plan for moving one resource to its recommended provider."""

    resource_id: str
    resource_type: str
    current_provider: CloudProvider
    target_provider: CloudProvider
    estimated_savings: float
    complexity_level: ComplexityLevel
    recommended_strategy: MigrationStrategy
    alternative_strategies: list[MigrationStrategy]
    migration_tooling: list[MigrationTool]
    estimated_timeframe: str
    steps: list[PlanPhase]
    risks: list[MigrationRisk]
    mitigations: list[RiskMitigation]
    downtime: DowntimeEstimate
    status: MigrationPlanStatus = MigrationPlanStatus.CREATED


class MigrationPlanUpdate(BaseModel):
    """Schema for updating a stored migration plan."""

    status: MigrationPlanStatus | None = None
    notes: str | None = None
    external_task_id: str | None = None


class MigrationPlanRecord(BaseModel):
    """Schema for a stored migration plan."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    resource_id: str
    resource_type: str
    current_provider: str
    target_provider: str
    strategy: str
    complexity_level: str
    estimated_savings: float
    estimated_timeframe: str
    plan: dict
    status: str
    created_by: str | None
    notes: str | None
    external_task_id: str | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime
