"""Celery application for restock worker."""

from celery import Celery

from restock_service.config import get_settings
from restock_service.log_config import configure_logging

settings = get_settings()

configure_logging()

# Create Celery app
app = Celery(
    "restock_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "restock_worker.tasks.restock",
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
    task_time_limit=300,  # 5 minutes
    task_soft_time_limit=240,  # 4 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="restock",
    task_routes={
        "restock_worker.tasks.*": {"queue": "restock"},
    },
)


def run() -> None:
    """Run the Celery worker."""
    app.worker_main(["worker", "--loglevel=info", "-Q", "restock"])


if __name__ == "__main__":
    run()
