"""
Celery application configuration.

This module creates and configures the Celery app instance used by
the knowledge-graph ingestion worker.

Usage:
    # Start worker:
    celery -A kgrag.workers.celery_app worker -l info -P solo -Q kg_ingestion

    # -P solo is required because tasks run asyncio.run() internally
"""

from celery import Celery

from kgrag.core.config import settings

celery_app = Celery(
    "kgrag",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Task settings
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,  # LLM extraction is slow; one run at a time

    # Eager mode: execute tasks synchronously in-process (for testing)
    task_always_eager=settings.celery_task_always_eager,

    result_expires=86400,  # 24 hours

    task_routes={
        "kgrag.workers.tasks.*": {"queue": "kg_ingestion"},
    },
    task_default_queue="kg_ingestion",
)

celery_app.autodiscover_tasks(["kgrag.workers"])
