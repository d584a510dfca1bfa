"""
Knowledge-graph ingestion admin endpoints.

    POST /admin/ingest/kg?limit=5          run the job now, return the run result
    POST /admin/ingest/kg/dispatch?limit=5 hand the run to the background worker
    GET  /admin/ingest/kg/status           counts by status + 5 latest runs
    GET  /admin/ingest/kg/runs?limit=20    latest runs

Background runs (this module's dispatch endpoint and every upload) go to
the Celery worker through Redis. When the broker is unreachable they fall
back to FastAPI BackgroundTasks in the API process. Overlapping runs are
safe because documents are claimed with SKIP LOCKED.
"""

from collections.abc import Callable

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from kgrag.api.dependencies import get_ingestion_job
from kgrag.core.config import settings
from kgrag.core.logging import get_logger
from kgrag.db.enums import KgStatus
from kgrag.schemas import (
    KgRunDispatchResponse,
    KgRunRecord,
    KgRunResponse,
    KgStatusCounts,
    KgStatusResponse,
)
from kgrag.services.extraction import KgExtractionService
from kgrag.services.ingestion_job import KgIngestionJob
from kgrag.services.llm_client import get_llm_client

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Celery Dispatch Helpers
# =============================================================================


def _celery_available() -> bool:
    """Check if Celery broker (Redis) is reachable."""
    if settings.celery_task_always_eager:
        return False
    try:
        from kgrag.workers.celery_app import celery_app

        conn = celery_app.connection()
        conn.ensure_connection(max_retries=1, timeout=2)
        conn.close()
        return True
    except Exception as e:
        logger.debug("Celery broker unreachable", error=str(e))
        return False


def _dispatch_to_celery(limit: int) -> str | None:
    """Queue an ingestion run; returns the Celery task id, or None on failure."""
    try:
        from kgrag.workers.tasks import kg_ingestion_task

        result = kg_ingestion_task.delay(limit=limit)
        return result.id
    except Exception as e:
        logger.warning("Failed to dispatch to Celery", error=str(e))
        return None


async def _fallback_kg_ingestion(limit: int) -> None:
    """In-process ingestion run for when Celery is unavailable."""
    try:
        async with get_llm_client() as llm:
            result = await KgIngestionJob(extractor=KgExtractionService(llm)).run_once(limit)
        logger.info(
            "Background KG ingestion finished",
            run_id=str(result.run_id),
            processed=result.processed_count,
            error=result.error,
        )
    except Exception as e:
        logger.error("Background KG ingestion failed", limit=limit, error=str(e))


def trigger_kg_ingestion(background_tasks: BackgroundTasks, limit: int) -> str | None:
    """
    Fire an ingestion run without waiting for it.

    Returns the Celery task id when queued, or None when the run was
    scheduled on `background_tasks` instead.
    """
    if _celery_available():
        task_id = _dispatch_to_celery(limit)
        if task_id:
            logger.info("KG ingestion queued for Celery worker", task_id=task_id, limit=limit)
            return task_id

    logger.info("Celery unavailable, using BackgroundTasks fallback", limit=limit)
    background_tasks.add_task(_fallback_kg_ingestion, limit)
    return None


def get_ingestion_trigger() -> Callable[[BackgroundTasks, int], str | None]:
    return trigger_kg_ingestion


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "",
    response_model=KgRunResponse,
    summary="Run KG ingestion",
    description="Claim up to `limit` pending documents and process them before responding.",
)
async def run_kg_ingestion(
    limit: int = Query(default=5, ge=1, le=500, description="Documents to claim"),
    job: KgIngestionJob = Depends(get_ingestion_job),
) -> KgRunResponse:
    result = await job.run_once(limit)
    return KgRunResponse.model_validate(result)


@router.post(
    "/dispatch",
    response_model=KgRunDispatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue KG ingestion",
    description="Run KG ingestion in the background (Celery worker, or in-process fallback).",
)
async def dispatch_kg_ingestion(
    background_tasks: BackgroundTasks,
    limit: int = Query(default=5, ge=1, le=500, description="Documents to claim"),
    trigger: Callable[[BackgroundTasks, int], str | None] = Depends(get_ingestion_trigger),
) -> KgRunDispatchResponse:
    task_id = trigger(background_tasks, limit)
    message = "KG ingestion queued for Celery worker." if task_id else "KG ingestion started (in-process fallback)."
    return KgRunDispatchResponse(message=message, limit=limit, task_id=task_id)


@router.get(
    "/status",
    response_model=KgStatusResponse,
    summary="KG ingestion status",
)
async def kg_ingestion_status(
    job: KgIngestionJob = Depends(get_ingestion_job),
) -> KgStatusResponse:
    snapshot = await job.ingestion_status(recent=5)
    counts = KgStatusCounts(
        pending=snapshot.counts.get(KgStatus.PENDING, 0),
        processing=snapshot.counts.get(KgStatus.PROCESSING, 0),
        completed=snapshot.counts.get(KgStatus.COMPLETED, 0),
        failed=snapshot.counts.get(KgStatus.FAILED, 0),
    )
    return KgStatusResponse(
        counts=counts,
        recent_runs=[KgRunRecord.model_validate(run) for run in snapshot.recent_runs],
    )


@router.get(
    "/runs",
    response_model=list[KgRunRecord],
    summary="Recent KG ingestion runs",
)
async def list_kg_runs(
    limit: int = Query(default=20, ge=1, le=200, description="Runs to return"),
    job: KgIngestionJob = Depends(get_ingestion_job),
) -> list[KgRunRecord]:
    runs = await job.recent_runs(limit)
    return [KgRunRecord.model_validate(run) for run in runs]
