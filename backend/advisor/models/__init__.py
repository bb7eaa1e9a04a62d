"""SQLAlchemy database models."""

from advisor.models.anomaly import AnomalyRecord
from advisor.models.metric_snapshot import Baseline, MetricSnapshot
from advisor.models.migration_plan import MigrationPlan
from advisor.models.optimization_opportunity import OptimizationOpportunityRecord
from advisor.models.recommendation import RecommendationRecord

__all__ = [
    "AnomalyRecord",
    "Baseline",
    "MetricSnapshot",
    "MigrationPlan",
    "OptimizationOpportunityRecord",
    "RecommendationRecord",
]
