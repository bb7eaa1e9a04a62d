"""Celery tasks for monitoring, pricing refresh and recommendation runs."""

import asyncio
from typing import Any

import structlog
from celery.signals import worker_ready

from advisor.collectors.aws import AWSCollector
from advisor.core.database import AsyncSessionLocal, init_db
from advisor.core.exceptions import RecordNotFoundError, UnknownMonitoringJobError
from advisor.crud import migration_plan as migration_plan_crud
from advisor.crud import recommendation as recommendation_crud
from advisor.schemas.monitoring import MonitoringJob
from advisor.schemas.recommendation import Recommendation
from advisor.services.continuous_monitor import ContinuousMonitor
from advisor.services.migration_planner import MigrationPlanner
from advisor.services.monitoring_store import DatabaseMonitoringStore
from advisor.services.pricing_analyzer import PricingAnalyzer
from advisor.services.pricing_sources import build_default_pricing_sources
from advisor.services.recommendation_engine import RecommendationEngine
from advisor.services.workload_classifier import WorkloadClassifier
from advisor.workers.celery_app import celery_app

logger = structlog.get_logger()

# Long-lived per worker process: the monitor owns the active alert list and
# the analyzer owns the price cache
_collector: AWSCollector | None = None
_monitor: ContinuousMonitor | None = None
_pricing_analyzer: PricingAnalyzer | None = None
_db_ready = False


def get_collector() -> AWSCollector:
    global _collector
    if _collector is None:
        _collector = AWSCollector()
    return _collector


def get_monitor() -> ContinuousMonitor:
    global _monitor
    if _monitor is None:
        _monitor = ContinuousMonitor(get_collector(), DatabaseMonitoringStore(AsyncSessionLocal))
    return _monitor


def get_pricing_analyzer() -> PricingAnalyzer:
    global _pricing_analyzer
    if _pricing_analyzer is None:
        _pricing_analyzer = PricingAnalyzer(build_default_pricing_sources())
    return _pricing_analyzer


def get_recommendation_engine() -> RecommendationEngine:
    return RecommendationEngine(get_collector(), WorkloadClassifier(), get_pricing_analyzer())


async def _ensure_db() -> None:
    global _db_ready
    if not _db_ready:
        await init_db()
        _db_ready = True


def _get_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create the event loop for the Celery solo pool."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_closed():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop


@celery_app.task(name="advisor.workers.tasks.run_monitoring_job")
def run_monitoring_job(job_name: str) -> dict[str, Any]:
    """
    Run one continuous monitoring job.

    Args:
        job_name: MonitoringJob value, e.g. collect_cost_metrics

    Returns:
        Job outcome
    """
    return _get_event_loop().run_until_complete(_run_monitoring_job_async(job_name))


async def _run_monitoring_job_async(job_name: str) -> dict[str, Any]:
    await _ensure_db()
    monitor = get_monitor()

    if not monitor.active_alerts:
        try:
            await monitor.load_active_alerts()
        except Exception as e:
            logger.error("monitor.alert_restore_failed", error=str(e))

    try:
        return await monitor.run_scheduled_collection(job_name)
    except UnknownMonitoringJobError as e:
        logger.error("monitor.unknown_job", job=job_name)
        return {"status": "error", "job": job_name, "error": str(e)}


@celery_app.task(name="advisor.workers.tasks.refresh_pricing")
def refresh_pricing() -> dict[str, Any]:
    """Force a refresh of every provider's price catalog."""
    return _get_event_loop().run_until_complete(_refresh_pricing_async())


async def _refresh_pricing_async() -> dict[str, Any]:
    try:
        refreshed = await get_pricing_analyzer().update_pricing_data(force=True)
    except Exception as e:
        logger.error("pricing.refresh_task_failed", error=str(e), exc_info=True)
        return {"status": "error", "error": str(e)}

    result = {provider.value: ok for provider, ok in refreshed.items()}
    logger.info("pricing.refresh_task_completed", **result)
    return {"status": "success", "refreshed": result}


@celery_app.task(name="advisor.workers.tasks.generate_recommendations")
def generate_recommendations() -> dict[str, Any]:
    """
    Generate placement recommendations for every collected resource and
    store the latest one per resource.

    Returns:
        Dict with the run summary
    """
    return _get_event_loop().run_until_complete(_generate_recommendations_async())


async def _generate_recommendations_async() -> dict[str, Any]:
    await _ensure_db()

    try:
        run = await get_recommendation_engine().generate_recommendations()
    except Exception as e:
        logger.error("recommendation.run_failed", error=str(e), exc_info=True)
        return {"status": "error", "error": str(e)}

    try:
        async with AsyncSessionLocal() as db:
            for recommendation in run.recommendations:
                await recommendation_crud.upsert_recommendation(db, recommendation)
    except Exception as e:
        logger.error(
            "recommendation.persist_failed",
            recommendation_count=len(run.recommendations),
            error=str(e),
            exc_info=True,
        )
        return {"status": "error", "error": str(e)}

    summary = run.strategy.summary
    return {
        "status": "success",
        "total_resources": summary.total_resources,
        "recommended_moves": summary.recommended_moves,
        "estimated_total_savings": summary.estimated_total_savings,
    }


@celery_app.task(name="advisor.workers.tasks.generate_migration_plan")
def generate_migration_plan(resource_id: str, created_by: str | None = None) -> dict[str, Any]:
    """
    Plan the migration of a resource from its stored recommendation.

    Args:
        resource_id: Resource whose recommendation should be planned
        created_by: Optional requester recorded on the plan

    Returns:
        Dict with the stored plan ID and strategy
    """
    return _get_event_loop().run_until_complete(
        _generate_migration_plan_async(resource_id, created_by)
    )


async def _generate_migration_plan_async(resource_id: str, created_by: str | None) -> dict[str, Any]:
    await _ensure_db()

    async with AsyncSessionLocal() as db:
        record = await recommendation_crud.get_recommendation_by_resource(db, resource_id)
        if not record:
            raise RecordNotFoundError(f"No recommendation stored for resource {resource_id}")

        recommendation = Recommendation.model_validate(record.details)
        plan = MigrationPlanner().generate_migration_plan(recommendation)
        stored = await migration_plan_crud.create_migration_plan(db, plan, created_by=created_by)

    return {
        "status": "success",
        "plan_id": str(stored.id),
        "strategy": stored.strategy,
        "estimated_timeframe": stored.estimated_timeframe,
    }


@worker_ready.connect
def setup_real_time_alerts(sender: Any = None, **kwargs: Any) -> None:
    """Subscribe to provider alert streams once per worker start."""
    run_monitoring_job.delay(MonitoringJob.SETUP_REAL_TIME_ALERTS.value)
