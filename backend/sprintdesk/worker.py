"""Celery worker configuration."""

from celery import Celery

from sprintdesk.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "sprintdesk",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=120,
    task_soft_time_limit=90,
    # Outbound email is best-effort; a dead broker must not stall requests
    broker_connection_timeout=2,
    task_publish_retry=False,
)

# Auto-discover tasks from sprintdesk.tasks module
celery_app.autodiscover_tasks(["sprintdesk"])
