"""
Knowledge-graph ingestion job.

Claims pending documents and drives each one through
``PENDING -> PROCESSING -> COMPLETED | FAILED``:

    run_once(limit)
        -> start run-history row (committed immediately)
        -> SELECT ... FOR UPDATE SKIP LOCKED  (up to `limit` documents)
        -> per document, sequentially:
               mark PROCESSING
               SAVEPOINT: load chunks -> extract -> graph upsert
               mark COMPLETED, or FAILED with the error message
        -> finish run-history row, commit

The row locks taken by the claim are held until the final commit, so
concurrent runs (API, Celery worker, CLI) always work on disjoint
documents. A document that fails is rolled back to its savepoint and the
run moves on. Only an error outside the per-document guard fails the run,
and even then `run_once` returns a result instead of raising.

FAILED documents and documents left PROCESSING by a crashed run are never
claimed again; they need an explicit status reset.
"""

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kgrag.core.config import settings
from kgrag.core.logging import bind_context, get_logger, unbind_context
from kgrag.db.base import AsyncSessionLocal
from kgrag.db.enums import KgStatus, RunStatus
from kgrag.db.repositories import Repositories
from kgrag.services.extraction import KgExtractionService
from kgrag.services.graph_upsert import GraphUpsertService

logger = get_logger(__name__)


@dataclass(frozen=True)
class KgRunResult:
    """Outcome of one `run_once` call."""

    run_id: uuid.UUID
    processed_count: int
    error: str | None = None
    failed_count: int = 0

    @property
    def status(self) -> RunStatus:
        return RunStatus.FAILED if self.error else RunStatus.COMPLETED


@dataclass
class KgIngestionStatus:
    """Document counts by status plus the most recent runs."""

    counts: dict[KgStatus, int] = field(default_factory=dict)
    recent_runs: list[Any] = field(default_factory=list)


def _error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class KgIngestionJob:
    """
    Knowledge-graph ingestion over pending documents.

    Usage:
        async with get_llm_client() as llm:
            job = KgIngestionJob(extractor=KgExtractionService(llm))
            result = await job.run_once(limit=10)

    Args:
        extractor: Extraction service used for every claimed document
        session_factory: Callable returning an async session context manager
        repositories: Builds the repository bundle for a session (overridable in tests)
    """

    def __init__(
        self,
        extractor: KgExtractionService,
        session_factory: async_sessionmaker[AsyncSession] | Callable[[], Any] = AsyncSessionLocal,
        repositories: Callable[[Any], Repositories] = Repositories.for_session,
    ):
        self.extractor = extractor
        self.session_factory = session_factory
        self.repositories = repositories

    # =========================================================================
    # Run
    # =========================================================================

    async def run_once(self, limit: int | None = None) -> KgRunResult:
        """
        Claim and process up to `limit` pending documents (at least one).

        Returns:
            KgRunResult with the number of documents COMPLETED in this run (zero
            when the run failed, since its work is rolled back) and,
            if the run itself failed, the error message
        """
        limit = max(1, limit if limit is not None else settings.kg_upload_trigger_limit)

        async with self.session_factory() as session:
            repos = self.repositories(session)
            run_id = await repos.runs.start_run()
            await repos.commit()

            bind_context(run_id=str(run_id))
            try:
                return await self._run(repos, run_id, limit)
            finally:
                unbind_context("run_id")

    async def _run(self, repos: Repositories, run_id: uuid.UUID, limit: int) -> KgRunResult:
        processed = 0
        failed = 0
        try:
            document_ids = await repos.documents.claim_pending(limit)
            logger.info("Claimed documents for KG ingestion", claimed=len(document_ids), limit=limit)

            for document_id in document_ids:
                if await self.process_document(repos, document_id):
                    processed += 1
                else:
                    failed += 1

            await repos.runs.finish_run(run_id, RunStatus.COMPLETED, processed)
            await repos.commit()
        except Exception as e:
            error = _error_message(e)
            logger.exception("KG ingestion run failed", processed=processed, error=error)
            # Rollback discards every document transition made by this run
            await repos.rollback()
            await repos.runs.finish_run(run_id, RunStatus.FAILED, 0, error)
            await repos.commit()
            return KgRunResult(run_id=run_id, processed_count=0, error=error, failed_count=failed)

        logger.info("KG ingestion run complete", processed=processed, failed=failed)
        return KgRunResult(run_id=run_id, processed_count=processed, failed_count=failed)

    async def process_document(self, repos: Repositories, document_id: uuid.UUID) -> bool:
        """
        Run one claimed document through extraction and graph upsert.

        Returns True when the document reached COMPLETED. Any exception in
        the savepoint marks it FAILED instead and is not re-raised.
        """
        await repos.documents.mark_processing(document_id)
        try:
            async with repos.savepoint():
                chunks = await repos.chunks.list_rows(document_id)
                extraction = await self.extractor.extract(chunks)
                logger.info(
                    "Extracted document",
                    document_id=str(document_id),
                    chunks=len(chunks),
                    **extraction.counts(),
                )
                await GraphUpsertService(repos.graph).apply(document_id, chunks, extraction)
        except Exception as e:
            logger.error("KG ingestion failed for document", document_id=str(document_id), error=str(e))
            await repos.documents.mark_failed(document_id, _error_message(e))
            return False

        await repos.documents.mark_completed(document_id)
        return True

    # =========================================================================
    # Status
    # =========================================================================

    async def ingestion_status(self, recent: int = 5) -> KgIngestionStatus:
        """Counts by status (NULL counted as PENDING) and the `recent` latest runs."""
        async with self.session_factory() as session:
            repos = self.repositories(session)
            counts = await repos.documents.count_by_status()
            runs = await repos.runs.recent_runs(recent)
        return KgIngestionStatus(counts=counts, recent_runs=runs)

    async def recent_runs(self, limit: int = 20) -> list[Any]:
        async with self.session_factory() as session:
            return await self.repositories(session).runs.recent_runs(max(1, limit))
