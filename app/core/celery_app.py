"""
Celery application: broker and result backend from settings.
Tasks: live generation (app.workers.tasks.generation) and the failed-generation
replay fired by beat (app.workers.tasks.failed_generations).
"""
from celery import Celery, signals
from celery.schedules import crontab

from app.core.config import settings
from app.core.logging import configure_logging

celery_app = Celery(
    "app",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "app.workers.tasks.generation",
        "app.workers.tasks.failed_generations",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=3600,
    result_expires=86400,
    beat_schedule={
        "retry-failed-generation": {
            "task": "app.workers.tasks.failed_generations.retry_failed_generation",
            "schedule": crontab(minute=f"*/{settings.failed_generation_retry_interval_minutes}"),
        },
    },
)

celery_app.conf.task_routes = {
    "app.workers.tasks.generation.generate_image": {"queue": "generation"},
}


@signals.setup_logging.connect
def _setup_logging(**kwargs) -> None:
    configure_logging()


@signals.worker_init.connect
def _init_db(**kwargs) -> None:
    from app.db.session import init_db

    init_db()
