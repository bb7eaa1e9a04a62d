"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from advisor.core.config import settings
from advisor.schemas.monitoring import MonitoringJob

# Create Celery application
celery_app = Celery(
    "advisor",
    broker=str(settings.REDIS_URL),
    backend=str(settings.REDIS_URL),
    include=["advisor.workers.tasks"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,  # 1 hour max per task
    task_soft_time_limit=3300,  # 55 minutes soft limit
    worker_prefetch_multiplier=1,  # Fetch one task at a time
    beat_schedule_filename="/tmp/advisor-celerybeat-schedule",
)

MONITORING_TASK = "advisor.workers.tasks.run_monitoring_job"

# Celery Beat schedule
# Real-time alert setup is not scheduled; it runs once when a worker starts
celery_app.conf.beat_schedule = {
    "collect-cost-metrics": {
        "task": MONITORING_TASK,
        "schedule": crontab(hour=1, minute=0),  # Every day at 1:00 AM UTC
        "args": (MonitoringJob.COLLECT_COST_METRICS.value,),
    },
    "collect-performance-metrics": {
        "task": MONITORING_TASK,
        "schedule": crontab(minute=0),  # Every hour at minute 0
        "args": (MonitoringJob.COLLECT_PERFORMANCE_METRICS.value,),
    },
    "collect-utilization-metrics": {
        "task": MONITORING_TASK,
        "schedule": crontab(minute=0, hour="*/6"),  # Every 6 hours
        "args": (MonitoringJob.COLLECT_UTILIZATION_METRICS.value,),
    },
    "analyze-optimization-opportunities": {
        "task": MONITORING_TASK,
        "schedule": crontab(hour=2, minute=0),  # Every day at 2:00 AM UTC
        "args": (MonitoringJob.ANALYZE_OPTIMIZATION_OPPORTUNITIES.value,),
    },
    "refresh-pricing": {
        "task": "advisor.workers.tasks.refresh_pricing",
        "schedule": crontab(hour=0, minute=30),  # Every day at 0:30 AM UTC
    },
    "generate-recommendations": {
        "task": "advisor.workers.tasks.generate_recommendations",
        "schedule": crontab(hour=4, minute=0),  # Every day at 4:00 AM UTC
    },
}

if __name__ == "__main__":
    celery_app.start()
