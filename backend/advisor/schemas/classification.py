"""Workload classification schemas."""

from enum import Enum

from pydantic import BaseModel, Field


class WorkloadArchetype(str, Enum):
    """Workload archetypes, in rule evaluation order."""

    COMPUTE_INTENSIVE = "compute_intensive"
    STORAGE_INTENSIVE = "storage_intensive"
    MEMORY_INTENSIVE = "memory_intensive"
    BATCH = "batch"
    REAL_TIME = "real_time"
    DATABASE = "database"
    GENERAL = "general"


class WorkloadTrait(str, Enum):
    """Tag-derived hints used when planning a migration."""

    STATELESS = "stateless"
    HIGH_AVAILABILITY = "high_availability"
    OBSOLETE = "obsolete"
    EMAIL = "email"
    CRM = "crm"
    COLLABORATION = "collaboration"


class ComplianceRequirement(BaseModel):
    """A regulatory framework detected on a resource's tags."""

    framework: str
    requirement: str


class WorkloadClassification(BaseModel):
    """Result of classifying one resource."""

    resource_id: str | None
    resource_type: str
    instance_type: str | None = None
    classifications: list[WorkloadArchetype] = Field(min_length=1)
    primary_type: WorkloadArchetype
    traits: list[WorkloadTrait] = Field(default_factory=list)
    compliance: list[ComplianceRequirement] = Field(default_factory=list)
