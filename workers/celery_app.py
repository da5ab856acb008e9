"""
Celery Application Configuration

Run from the repository root:
    celery -A workers.celery_app worker -Q flight_status,notifications
    celery -A workers.celery_app beat
"""
from celery import Celery
from datetime import timedelta

from flybook.config import settings

# Create Celery app
app = Celery(
    "flybook",
    broker=settings.RABBITMQ_URL,
    backend=settings.REDIS_URL,
    include=[
        "workers.tasks.flight_status",
        "workers.tasks.notifications",
    ]
)

# Celery configuration
app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes max per task
    task_soft_time_limit=240,  # Soft limit at 4 minutes

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Routing
    task_routes={
        "workers.tasks.flight_status.*": {"queue": "flight_status"},
        "workers.tasks.notifications.*": {"queue": "notifications"},
    },
)

# Beat schedule (periodic tasks)
app.conf.beat_schedule = {
    # Refresh tracked booking flight statuses, oldest-checked first
    "refresh-flight-statuses": {
        "task": "workers.tasks.flight_status.refresh_tracked_flights",
        "schedule": timedelta(minutes=settings.FLIGHT_STATUS_INTERVAL_MINUTES),
        "options": {"queue": "flight_status"},
    },
}

if __name__ == "__main__":
    app.start()
