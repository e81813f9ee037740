from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from cfp_engine.core.config import settings
from cfp_engine.core.logging import setup_logging
from cfp_engine.core.sentry import init_sentry


@celery_setup_logging.connect
def _configure_worker_logging(**kwargs):
    # Keep Celery from installing its own root handlers, so worker logs get redacted too
    setup_logging()


init_sentry()

celery_app = Celery(
    "cfp_engine",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
)

# Celery Beat schedule. Due-ness is derived per business on every pass,
# so the hourly tick only bounds how late a run can start.
celery_app.conf.beat_schedule = {
    "process-scheduled-automation": {
        "task": "process_scheduled_automation",
        "schedule": crontab(minute=0),  # every hour
        "kwargs": {"catch_missed": False},
    },
    "catch-missed-automation": {
        "task": "process_scheduled_automation",
        "schedule": crontab(hour=5, minute=30),  # daily sweep for overdue businesses
        "kwargs": {"catch_missed": True},
    },
}

celery_app.autodiscover_tasks(["cfp_engine.tasks"])

# Explicit include as fallback for autodiscover (needed for CLI worker startup)
celery_app.conf.include = [
    "cfp_engine.tasks.automation_tasks",
]
