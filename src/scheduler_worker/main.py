"""Celery application for the scheduler worker."""

from celery import Celery
from celery.schedules import crontab

from upsell_service.config import get_settings
from upsell_service.logging_config import configure_logging

settings = get_settings()

configure_logging()

# Create Celery app
app = Celery(
    "scheduler_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "scheduler_worker.tasks.due_checks",
    ],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=1800,  # 30 minutes
    task_soft_time_limit=1740,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="scheduler",
    task_routes={
        "scheduler_worker.tasks.*": {"queue": "scheduler"},
    },
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Ticks are cheap; the period gates decide whether anything runs
    "run-due-checks": {
        "task": "scheduler_worker.tasks.due_checks.run_due_checks",
        "schedule": crontab(minute=0),  # Every hour at :00
    },
}


def run() -> None:
    """Run the Celery worker."""
    app.worker_main(["worker", "--loglevel=info", "-Q", "scheduler"])


if __name__ == "__main__":
    run()
