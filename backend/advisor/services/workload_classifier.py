"""Rule-based workload classification."""

from typing import Callable

import structlog

from advisor.schemas.classification import (
    ComplianceRequirement,
    WorkloadArchetype,
    WorkloadClassification,
    WorkloadTrait,
)
from advisor.schemas.resource import CloudProvider, Resource

logger = structlog.get_logger()

DATABASE_ENGINES = ("mysql", "postgres", "oracle", "sqlserver", "aurora")
COMPLIANCE_KEYWORDS = ("compliance", "pci", "hipaa", "gdpr")

# Average CPU above this percentage marks a compute-bound workload
COMPUTE_CPU_THRESHOLD = 70.0
# Attached storage above this size (GB) marks a storage-bound workload
STORAGE_SIZE_THRESHOLD_GB = 1000
# Job timeouts above this (seconds) mark a batch workload
BATCH_TIMEOUT_THRESHOLD_SECONDS = 300

# Tag substrings that mark planning traits
TRAIT_KEYWORDS: tuple[tuple[WorkloadTrait, tuple[str, ...]], ...] = (
    (WorkloadTrait.STATELESS, ("stateless",)),
    (WorkloadTrait.HIGH_AVAILABILITY, ("high-availability", "high_availability", "highavailability")),
    (WorkloadTrait.OBSOLETE, ("obsolete", "deprecated", "redundant")),
    (WorkloadTrait.EMAIL, ("email",)),
    (WorkloadTrait.CRM, ("crm",)),
    (WorkloadTrait.COLLABORATION, ("collaboration",)),
)


def _tags_contain(resource: Resource, *needles: str) -> bool:
    """Whether any tag key or value contains one of the substrings (case-insensitive)."""
    for key, value in resource.tags.items():
        haystack = f"{key}\n{value}".lower()
        if any(needle in haystack for needle in needles):
            return True
    return False


def _instance_type(resource: Resource) -> str:
    return (resource.instance_type or "").lower()


def is_compute_intensive(resource: Resource) -> bool:
    if resource.cpu_utilization:
        average = sum(resource.cpu_utilization) / len(resource.cpu_utilization)
        return average > COMPUTE_CPU_THRESHOLD

    instance_type = _instance_type(resource)
    return instance_type.startswith(("c5", "c6")) or "compute" in instance_type


def is_storage_intensive(resource: Resource) -> bool:
    if resource.storage_volumes_gb:
        return sum(resource.storage_volumes_gb) > STORAGE_SIZE_THRESHOLD_GB

    instance_type = _instance_type(resource)
    return instance_type.startswith(("d2", "i3")) or "storage" in instance_type


def is_memory_intensive(resource: Resource) -> bool:
    instance_type = _instance_type(resource)
    return instance_type.startswith(("r5", "r6", "x1")) or "memory" in instance_type


def is_batch_processing(resource: Resource) -> bool:
    if _tags_contain(resource, "batch") or "batch" in _instance_type(resource):
        return True
    return (resource.timeout_seconds or 0) > BATCH_TIMEOUT_THRESHOLD_SECONDS


def is_real_time_service(resource: Resource) -> bool:
    return _tags_contain(resource, "api") or bool(resource.load_balancers)


def is_database_workload(resource: Resource) -> bool:
    engine = (resource.engine or "").lower()
    if engine and any(engine.startswith(known) for known in DATABASE_ENGINES):
        return True
    return _tags_contain(resource, "db", "database")


# Evaluated in order; the first match becomes the primary type
CLASSIFICATION_RULES: tuple[tuple[WorkloadArchetype, Callable[[Resource], bool]], ...] = (
    (WorkloadArchetype.COMPUTE_INTENSIVE, is_compute_intensive),
    (WorkloadArchetype.STORAGE_INTENSIVE, is_storage_intensive),
    (WorkloadArchetype.MEMORY_INTENSIVE, is_memory_intensive),
    (WorkloadArchetype.BATCH, is_batch_processing),
    (WorkloadArchetype.REAL_TIME, is_real_time_service),
    (WorkloadArchetype.DATABASE, is_database_workload),
)


class WorkloadClassifier:
    """
    Assigns workload archetypes, planning traits and compliance requirements
    to resources.

    Rules are plain predicates over the resource's instance type, metrics,
    storage and tags, evaluated in a fixed order so classification is
    deterministic for a given resource.
    """

    def __init__(
        self,
        rules: tuple[tuple[WorkloadArchetype, Callable[[Resource], bool]], ...] = CLASSIFICATION_RULES,
    ) -> None:
        self.rules = rules

    def classify(self, resource: Resource) -> WorkloadClassification:
        """
        Classify a single resource.

        Args:
            resource: Resource to classify

        Returns:
            Classification with at least one archetype. Resources without an
            identifier, or matching no rule, are classified as general.
        """
        if resource.resource_id is None:
            classifications = [WorkloadArchetype.GENERAL]
        else:
            classifications = [archetype for archetype, rule in self.rules if rule(resource)]
            if not classifications:
                classifications = [WorkloadArchetype.GENERAL]

        return WorkloadClassification(
            resource_id=resource.resource_id,
            resource_type=resource.resource_type,
            instance_type=resource.instance_type,
            classifications=classifications,
            primary_type=classifications[0],
            traits=self.detect_traits(resource),
            compliance=self.detect_compliance(resource),
        )

    def classify_all(
        self, inventory: dict[CloudProvider, dict[str, list[Resource]]]
    ) -> dict[CloudProvider, dict[str, list[WorkloadClassification]]]:
        """Classify every resource, preserving the provider/type grouping and order."""
        classified: dict[CloudProvider, dict[str, list[WorkloadClassification]]] = {}

        for provider, resources_by_type in inventory.items():
            classified[provider] = {
                resource_type: [self.classify(resource) for resource in resources]
                for resource_type, resources in resources_by_type.items()
            }
            logger.debug(
                "classifier.provider_classified",
                provider=provider.value,
                resource_count=sum(len(r) for r in resources_by_type.values()),
            )

        return classified

    @staticmethod
    def detect_compliance(resource: Resource) -> list[ComplianceRequirement]:
        """Return one requirement per tag whose key or value names a compliance framework."""
        requirements = []
        for key, value in resource.tags.items():
            haystack = f"{key}\n{value}".lower()
            if any(keyword in haystack for keyword in COMPLIANCE_KEYWORDS):
                requirements.append(ComplianceRequirement(framework=key, requirement=value))
        return requirements

    @staticmethod
    def detect_traits(resource: Resource) -> list[WorkloadTrait]:
        return [trait for trait, keywords in TRAIT_KEYWORDS if _tags_contain(resource, *keywords)]
