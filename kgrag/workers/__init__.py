"""
Workers module - Celery tasks for background KG ingestion.

Architecture:
    FastAPI upload / admin  --dispatch-->  Redis queue  --consume-->  Celery worker
                                                                        |
    documents.kg_status, kg_run_histories  <--------- KgIngestionJob ---+

Start worker:
    celery -A kgrag.workers.celery_app worker -l info -P solo -Q kg_ingestion
"""

from kgrag.workers.celery_app import celery_app

__all__ = ["celery_app"]
