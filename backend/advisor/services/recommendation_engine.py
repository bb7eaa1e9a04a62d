"""Provider placement recommendations and portfolio migration strategy."""

import asyncio
import hashlib
import json
import math
from collections import Counter

import structlog

from advisor.collectors.base import ResourceCollector
from advisor.core.config import settings
from advisor.core.exceptions import ProviderNotConfiguredError
from advisor.schemas.classification import (
    WorkloadArchetype,
    WorkloadClassification,
    WorkloadTrait,
)
from advisor.schemas.pricing import CostEstimate
from advisor.schemas.recommendation import (
    ComplexityLevel,
    MigrationComplexity,
    MigrationPhase,
    PhaseResource,
    ProviderScoreSet,
    Recommendation,
    RecommendationRun,
    RiskAssessment,
    RiskLevel,
    RiskRating,
    Strategy,
    StrategySummary,
)
from advisor.schemas.resource import PROVIDERS, CloudProvider, Resource, ResourceInventory
from advisor.services.pricing_analyzer import PricingAnalyzer
from advisor.services.workload_classifier import WorkloadClassifier

logger = structlog.get_logger()

WEIGHT_FACTORS = ("cost", "performance", "reliability", "data_transfer", "vendor_lock_in")

# How well each provider serves each workload archetype
PROVIDER_STRENGTHS: dict[CloudProvider, dict[WorkloadArchetype, float]] = {
    CloudProvider.AWS: {
        WorkloadArchetype.COMPUTE_INTENSIVE: 0.8,
        WorkloadArchetype.STORAGE_INTENSIVE: 0.7,
        WorkloadArchetype.MEMORY_INTENSIVE: 0.6,
        WorkloadArchetype.BATCH: 0.8,
        WorkloadArchetype.REAL_TIME: 0.9,
        WorkloadArchetype.DATABASE: 0.8,
    },
    CloudProvider.AZURE: {
        WorkloadArchetype.COMPUTE_INTENSIVE: 0.7,
        WorkloadArchetype.STORAGE_INTENSIVE: 0.8,
        WorkloadArchetype.MEMORY_INTENSIVE: 0.7,
        WorkloadArchetype.BATCH: 0.7,
        WorkloadArchetype.REAL_TIME: 0.8,
        WorkloadArchetype.DATABASE: 0.9,
    },
    CloudProvider.GCP: {
        WorkloadArchetype.COMPUTE_INTENSIVE: 0.9,
        WorkloadArchetype.STORAGE_INTENSIVE: 0.6,
        WorkloadArchetype.MEMORY_INTENSIVE: 0.8,
        WorkloadArchetype.BATCH: 0.9,
        WorkloadArchetype.REAL_TIME: 0.7,
        WorkloadArchetype.DATABASE: 0.7,
    },
}
DEFAULT_STRENGTH = 0.6

RELIABILITY_SCORES: dict[CloudProvider, float] = {
    CloudProvider.AWS: 0.85,
    CloudProvider.AZURE: 0.82,
    CloudProvider.GCP: 0.83,
}

# Higher means less lock-in
VENDOR_LOCK_IN_SCORES: dict[CloudProvider, float] = {
    CloudProvider.AWS: 0.7,
    CloudProvider.AZURE: 0.75,
    CloudProvider.GCP: 0.8,
}

DATA_TRANSFER_BASE = 0.7
DATA_TRANSFER_CURRENT = 0.8

# An alternative can score at most this many times better than the current cost
COST_RATIO_CAP = 2.0

STRATEGY_MITIGATIONS = [
    "Implement a cloud-agnostic containerization strategy using Kubernetes",
    "Develop infrastructure-as-code templates for multiple providers",
    "Use abstraction layers for cloud-specific services",
    "Maintain up-to-date documentation of all inter-service dependencies",
]

STAY_REASON = "Current provider is already optimal for this workload."


def _label(provider: CloudProvider) -> str:
    return provider.value.upper()


def synthetic_resource_id(resource: Resource, occurrence: int = 0) -> str:
    """
    Build an identifier for a resource the provider did not name.

    The id depends only on descriptive attributes, so the same resource maps
    to the same id whatever order it was collected in. Observed samples such
    as CPU utilization are left out. Resources with identical attributes are
    told apart by their occurrence number.

    Args:
        resource: Resource without resource_id
        occurrence: How many identical resources came before this one

    Returns:
        Id of the form provider:type:region:instance_type:digest[#n]
    """
    fingerprint = json.dumps(
        resource.model_dump(
            include={"storage_volumes_gb", "timeout_seconds", "load_balancers", "engine", "tags"}
        ),
        sort_keys=True,
    )
    digest = hashlib.sha256(fingerprint.encode()).hexdigest()[:12]
    parts = [
        resource.provider.value,
        resource.resource_type,
        resource.region or "-",
        resource.instance_type or "-",
        digest,
    ]
    synthetic_id = ":".join(parts)
    return f"{synthetic_id}#{occurrence + 1}" if occurrence else synthetic_id


class RecommendationEngine:
    """
    Scores every provider for every resource and recommends a move only when
    the best alternative beats the current provider by a significant margin.

    Scoring is a weighted sum of five factors (cost, performance,
    reliability, data transfer and vendor lock-in), each in [0, 1].
    """

    def __init__(
        self,
        resource_collector: ResourceCollector,
        classifier: WorkloadClassifier,
        pricing_analyzer: PricingAnalyzer,
        weights: dict[str, float] | None = None,
        significance_threshold: float | None = None,
        collector_timeout: float | None = None,
    ) -> None:
        self.resource_collector = resource_collector
        self.classifier = classifier
        self.pricing_analyzer = pricing_analyzer
        self.weights = dict(weights or settings.recommendation_weights)
        if set(self.weights) != set(WEIGHT_FACTORS):
            raise ValueError(f"weights must define exactly: {', '.join(WEIGHT_FACTORS)}")
        if not math.isclose(sum(self.weights.values()), 1.0, abs_tol=1e-6):
            raise ValueError("weights must sum to 1.0")
        self.significance_threshold = (
            significance_threshold
            if significance_threshold is not None
            else settings.RECOMMENDATION_SIGNIFICANCE_THRESHOLD
        )
        self.collector_timeout = collector_timeout or settings.COLLECTOR_TIMEOUT_SECONDS

    async def collect_resources(self) -> ResourceInventory:
        """
        Collect resources from every configured provider.

        A provider that is not configured, fails or times out is logged and
        left out; the others are still returned.
        """
        inventory: ResourceInventory = {}

        for provider in self.resource_collector.providers:
            try:
                inventory[provider] = await asyncio.wait_for(
                    self.resource_collector.collect_resources(provider),
                    timeout=self.collector_timeout,
                )
            except ProviderNotConfiguredError as e:
                logger.warning("recommendation.provider_not_configured", provider=provider.value, error=str(e))
            except asyncio.TimeoutError:
                logger.error(
                    "recommendation.collection_timeout",
                    provider=provider.value,
                    timeout=self.collector_timeout,
                )
            except Exception as e:
                logger.error("recommendation.collection_failed", provider=provider.value, error=str(e))

        return inventory

    async def generate_recommendations(self) -> RecommendationRun:
        """
        Run a full pass: collect, classify, price, score and plan.

        Returns:
            Collected resources, their classifications, one recommendation per
            resource and the portfolio strategy
        """
        inventory = await self.collect_resources()
        classifications = self.classifier.classify_all(inventory)
        await self.pricing_analyzer.update_pricing_data()

        recommendations = self.process_workloads(inventory, classifications)
        strategy = self.generate_overall_strategy(recommendations)

        logger.info(
            "recommendation.run_completed",
            total_resources=strategy.summary.total_resources,
            recommended_moves=strategy.summary.recommended_moves,
            estimated_total_savings=strategy.summary.estimated_total_savings,
        )
        return RecommendationRun(
            resources=inventory,
            classifications=classifications,
            recommendations=recommendations,
            strategy=strategy,
        )

    def process_workloads(
        self,
        inventory: ResourceInventory,
        classifications: dict[CloudProvider, dict[str, list[WorkloadClassification]]],
    ) -> list[Recommendation]:
        """Produce one recommendation per resource, in inventory order."""
        recommendations = []
        seen_synthetic: Counter[str] = Counter()
        for provider, resources_by_type in inventory.items():
            for resource_type, resources in resources_by_type.items():
                classified = classifications[provider][resource_type]
                for resource, classification in zip(resources, classified):
                    resource_id = resource.resource_id
                    if not resource_id:
                        base_id = synthetic_resource_id(resource)
                        resource_id = synthetic_resource_id(resource, seen_synthetic[base_id])
                        seen_synthetic[base_id] += 1
                    recommendations.append(
                        self.generate_workload_recommendation(resource, classification, resource_id)
                    )
        return recommendations

    def generate_workload_recommendation(
        self,
        resource: Resource,
        classification: WorkloadClassification,
        resource_id: str | None = None,
    ) -> Recommendation:
        """
        Recommend a provider for one classified resource.

        Args:
            resource: Resource as collected
            classification: Its workload classification
            resource_id: Identifier to record; defaults to the resource's own
                or a synthetic one derived from its attributes

        Returns:
            Recommendation; when no alternative wins by more than the
            significance threshold, the current provider is kept
        """
        current_provider = resource.provider
        estimate = self.pricing_analyzer.calculate_cost_estimate(resource)
        scores = self.score_providers(classification, estimate, current_provider)

        # Ties keep the current provider
        best_provider = max(
            PROVIDERS,
            key=lambda p: (scores.composite[p], p == current_provider),
        )
        score_diff = scores.composite[best_provider] - scores.composite[current_provider]
        is_move = best_provider != current_provider and score_diff > self.significance_threshold
        target = best_provider if is_move else current_provider

        if is_move:
            savings = round(estimate.current.cost - estimate.cost_for(best_provider), 2)
            confidence = f"{min(score_diff * 100, 100):.1f}%"
            reasoning = self._explain(scores, classification, current_provider, best_provider)
        else:
            savings = 0.0
            confidence = "100%"
            reasoning = [STAY_REASON]

        return Recommendation(
            resource_id=resource_id or resource.resource_id or synthetic_resource_id(resource),
            resource_type=resource.resource_type,
            instance_type=resource.instance_type,
            region=resource.region,
            current_provider=current_provider,
            recommended_provider=target,
            current_cost=estimate.current.cost,
            estimated_savings=savings,
            confidence_score=confidence,
            reasoning=reasoning,
            migration_complexity=self.assess_migration_complexity(
                classification, current_provider, target
            ),
            primary_type=classification.primary_type,
            classifications=classification.classifications,
            traits=classification.traits,
            compliance=classification.compliance,
            scores=scores,
        )

    @staticmethod
    def _explain(
        scores: ProviderScoreSet,
        classification: WorkloadClassification,
        current: CloudProvider,
        best: CloudProvider,
    ) -> list[str]:
        label = _label(best)
        reasons = [
            (scores.cost, f"{label} offers a lower cost for this workload type."),
            (
                scores.performance,
                f"{label} provides better performance for {classification.primary_type.value} workloads.",
            ),
            (scores.reliability, f"{label} has a stronger reliability track record."),
            (scores.data_transfer, f"Moving to {label} would reduce data transfer costs or latency."),
            (scores.vendor_lock_in, f"{label} reduces exposure to vendor lock-in."),
        ]
        return [sentence for factor, sentence in reasons if factor[best] > factor[current]]

    def score_providers(
        self,
        classification: WorkloadClassification,
        estimate: CostEstimate,
        current_provider: CloudProvider,
    ) -> ProviderScoreSet:
        """Compute every factor and the weighted composite for each provider."""
        factors = {
            "cost": self.calculate_cost_factor(estimate),
            "performance": self.calculate_performance_factor(classification),
            "reliability": dict(RELIABILITY_SCORES),
            "data_transfer": self.calculate_data_transfer_factor(current_provider),
            "vendor_lock_in": dict(VENDOR_LOCK_IN_SCORES),
        }
        composite = {
            provider: round(
                sum(factors[name][provider] * weight for name, weight in self.weights.items()), 6
            )
            for provider in PROVIDERS
        }
        return ProviderScoreSet(**factors, composite=composite)

    @staticmethod
    def calculate_cost_factor(estimate: CostEstimate) -> dict[CloudProvider, float]:
        """
        Cheaper-is-better cost factor in [0, 1].

        Each provider's ratio is ``current cost / provider cost`` (the current
        provider is 1.0, ratios are capped at 2.0). Providers without a known
        price count as parity. Ratios are then divided by the largest ratio so
        the cheapest provider scores 1.0.
        """
        current_cost = estimate.current.cost
        ratios: dict[CloudProvider, float] = {}

        for provider in PROVIDERS:
            cost = estimate.cost_for(provider)
            if provider == estimate.current.provider or cost <= 0 or current_cost <= 0:
                ratios[provider] = 1.0
            else:
                ratios[provider] = min(current_cost / cost, COST_RATIO_CAP)

        best_ratio = max(ratios.values())
        return {provider: ratio / best_ratio for provider, ratio in ratios.items()}

    @staticmethod
    def calculate_performance_factor(
        classification: WorkloadClassification,
    ) -> dict[CloudProvider, float]:
        return {
            provider: PROVIDER_STRENGTHS[provider].get(classification.primary_type, DEFAULT_STRENGTH)
            for provider in PROVIDERS
        }

    @staticmethod
    def calculate_data_transfer_factor(current_provider: CloudProvider) -> dict[CloudProvider, float]:
        # Data already lives at the current provider
        return {
            provider: DATA_TRANSFER_CURRENT if provider == current_provider else DATA_TRANSFER_BASE
            for provider in PROVIDERS
        }

    @staticmethod
    def assess_migration_complexity(
        classification: WorkloadClassification,
        current_provider: CloudProvider,
        target_provider: CloudProvider,
    ) -> MigrationComplexity:
        """
        Estimate how hard moving the workload would be.

        Databases start high, stateless and batch work starts low, and any
        compliance requirement forces the score to at least 0.9.
        """
        score = 0.5
        factors = []

        if WorkloadArchetype.DATABASE in classification.classifications:
            score = 0.8
            factors.append(
                "Database migrations require careful data transfer and schema compatibility validation"
            )
        elif (
            WorkloadTrait.STATELESS in classification.traits
            or WorkloadArchetype.BATCH in classification.classifications
        ):
            score = 0.3
            factors.append("Stateless workloads are typically easier to migrate")

        if classification.compliance:
            score = max(score, 0.9)
            factors.append("Compliance requirements add migration complexity")

        if current_provider == CloudProvider.AWS and target_provider == CloudProvider.AZURE:
            score -= 0.1
            factors.append("AWS to Azure migration tooling available")

        score = round(score, 2)
        if score < 0.4:
            level = ComplexityLevel.LOW
        elif score < 0.7:
            level = ComplexityLevel.MEDIUM
        else:
            level = ComplexityLevel.HIGH

        return MigrationComplexity(level=level, score=score, factors=factors)

    def generate_overall_strategy(self, recommendations: list[Recommendation]) -> Strategy:
        """Summarize recommendations into phases, risks and mitigations."""
        moves = [r for r in recommendations if r.is_move]
        total = len(recommendations)

        counts = {provider: 0 for provider in PROVIDERS}
        for recommendation in recommendations:
            counts[recommendation.recommended_provider] += 1
        percentages = {
            provider: math.floor(count / total * 100 + 0.5) if total else 0
            for provider, count in counts.items()
        }

        summary = StrategySummary(
            total_resources=total,
            recommended_moves=len(moves),
            estimated_total_savings=round(sum(r.estimated_savings for r in moves), 2),
            provider_distribution={p: f"{pct}%" for p, pct in percentages.items()},
        )

        phases = self.build_phases(moves)
        return Strategy(
            summary=summary,
            phases=phases,
            risk_assessment=RiskAssessment(
                vendor_lock_in_risk=self.assess_vendor_lock_in_risk(percentages),
                migration_risk=self.assess_migration_risk(phases),
                cost_variability_risk=RiskRating(
                    level=RiskLevel.MEDIUM,
                    description="Provider list prices and discounts change over time",
                ),
            ),
            mitigation_strategies=list(STRATEGY_MITIGATIONS),
        )

    @staticmethod
    def build_phases(moves: list[Recommendation]) -> list[MigrationPhase]:
        """Partition moves into quick wins, strategic and complex phases, dropping empty ones."""

        def phase_resources(level: ComplexityLevel, require_savings: bool) -> list[PhaseResource]:
            return [
                PhaseResource(
                    resource_id=r.resource_id,
                    current_provider=r.current_provider,
                    target_provider=r.recommended_provider,
                    estimated_savings=r.estimated_savings,
                )
                for r in moves
                if r.migration_complexity.level == level
                and (r.estimated_savings > 0 or not require_savings)
            ]

        phases = [
            MigrationPhase(
                name="Phase 1 - Quick Wins",
                description="Low complexity migrations with high saving potential",
                resources=phase_resources(ComplexityLevel.LOW, require_savings=True),
            ),
            MigrationPhase(
                name="Phase 2 - Strategic Migrations",
                description="Medium complexity migrations with good ROI",
                resources=phase_resources(ComplexityLevel.MEDIUM, require_savings=True),
            ),
            MigrationPhase(
                name="Phase 3 - Complex Transformations",
                description="High complexity migrations requiring significant planning",
                resources=phase_resources(ComplexityLevel.HIGH, require_savings=False),
            ),
        ]
        return [phase for phase in phases if phase.resources]

    @staticmethod
    def assess_vendor_lock_in_risk(percentages: dict[CloudProvider, int]) -> RiskRating:
        for provider in PROVIDERS:
            share = percentages.get(provider, 0)
            if share > 60:
                return RiskRating(
                    level=RiskLevel.HIGH,
                    description=f"High concentration ({share}%) of resources in {_label(provider)}",
                )
            if share > 40:
                return RiskRating(
                    level=RiskLevel.MEDIUM,
                    description=f"Moderate concentration ({share}%) of resources in {_label(provider)}",
                )
        return RiskRating(
            level=RiskLevel.LOW,
            description="Well-distributed resources across multiple providers",
        )

    @staticmethod
    def assess_migration_risk(phases: list[MigrationPhase]) -> RiskRating:
        complex_count = sum(len(p.resources) for p in phases if "Complex" in p.name)
        if complex_count > 10:
            return RiskRating(
                level=RiskLevel.HIGH,
                description=f"Large number ({complex_count}) of complex migrations required",
            )
        if complex_count > 3:
            return RiskRating(
                level=RiskLevel.MEDIUM,
                description=f"Moderate number ({complex_count}) of complex migrations required",
            )
        return RiskRating(level=RiskLevel.LOW, description="Few or no complex migrations required")
