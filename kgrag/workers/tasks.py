"""
Celery tasks for knowledge-graph ingestion.

Each task bridges Celery's synchronous execution model to the async
ingestion job with asyncio.run(). The task builds its own engine because
pooled connections cannot be shared across event loops.

Usage:
    # From the API (dispatch to queue):
    from kgrag.workers.tasks import kg_ingestion_task
    kg_ingestion_task.delay(limit=5)
"""

import asyncio

from kgrag.core.config import settings
from kgrag.core.logging import get_logger
from kgrag.workers.celery_app import celery_app

logger = get_logger(__name__)


async def _run_kg_ingestion(limit: int, db_url: str) -> dict:
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from kgrag.services.extraction import KgExtractionService
    from kgrag.services.ingestion_job import KgIngestionJob
    from kgrag.services.llm_client import get_llm_client

    engine = create_async_engine(db_url, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    try:
        async with get_llm_client() as llm:
            job = KgIngestionJob(
                extractor=KgExtractionService(llm),
                session_factory=session_factory,
            )
            result = await job.run_once(limit)
    finally:
        await engine.dispose()

    return {
        "run_id": str(result.run_id),
        "processed_count": result.processed_count,
        "failed_count": result.failed_count,
        "error": result.error,
    }


@celery_app.task(
    name="kgrag.workers.tasks.kg_ingestion_task",
    bind=True,
    max_retries=0,
    acks_late=True,
)
def kg_ingestion_task(self, limit: int = 5) -> dict:
    """
    Celery task: claim and process up to `limit` pending documents.

    Returns:
        dict with run_id, processed_count, failed_count and error
    """
    logger.info("Celery worker: starting KG ingestion", task_id=self.request.id, limit=limit)

    result = asyncio.run(_run_kg_ingestion(limit=limit, db_url=settings.db_url))

    logger.info("Celery worker: KG ingestion complete", task_id=self.request.id, result=result)
    return result
