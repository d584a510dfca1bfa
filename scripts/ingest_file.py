#!/usr/bin/env python3
"""
Ingest local files the same way the upload endpoint does.

Each file is fingerprinted, converted to text, categorized, chunked,
embedded and stored. Files whose bytes were already uploaded are reported
as duplicates and skipped.

Usage:
    # Ingest one PDF, classify its category automatically
    python scripts/ingest_file.py data/sanguo.pdf

    # Ingest several text files under a fixed category
    python scripts/ingest_file.py notes/*.txt --category history

    # Run knowledge-graph extraction right after ingesting
    python scripts/ingest_file.py data/sanguo.pdf --extract

Requirements:
    - Database must be running and migrated (alembic upgrade head)
    - API key configured in .env (for the openai provider)
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from kgrag.core.config import settings  # noqa: E402
from kgrag.core.logging import get_logger, setup_logging  # noqa: E402
from kgrag.db import Repositories, get_db_context  # noqa: E402
from kgrag.services.classifier import CategoryClassifier  # noqa: E402
from kgrag.services.embedding import EmbeddingService  # noqa: E402
from kgrag.services.extraction import KgExtractionService  # noqa: E402
from kgrag.services.ingestion import DocumentIngestionService  # noqa: E402
from kgrag.services.ingestion_job import KgIngestionJob  # noqa: E402
from kgrag.services.llm_client import LLMError, get_llm_client  # noqa: E402
from kgrag.services.text_extraction import TextExtractionError  # noqa: E402
from kgrag.services.vector_store import VectorStoreService  # noqa: E402

logger = get_logger(__name__)


async def ingest_files(paths: list[Path], category: str | None, extract: bool) -> int:
    """Ingest each file in its own session; returns a process exit code."""
    setup_logging()
    failures = 0
    ingested = 0

    async with get_llm_client() as llm:
        for path in paths:
            data = path.read_bytes()
            if not data:
                print(f"  SKIP   {path} (empty file)")
                continue

            async with get_db_context() as db:
                repos = Repositories.for_session(db)
                service = DocumentIngestionService(
                    repos=repos,
                    embedding=EmbeddingService(llm),
                    vector_store=VectorStoreService(repos.chunks),
                    classifier=CategoryClassifier(llm),
                )
                try:
                    result = await service.ingest_upload(path.name, data, category)
                except (TextExtractionError, LLMError) as e:
                    failures += 1
                    print(f"  FAIL   {path}: {e}")
                    continue

            if result.duplicate:
                print(f"  DUP    {path} -> {result.document_id}")
            else:
                ingested += 1
                print(f"  OK     {path} -> {result.document_id} ({result.chunk_count} chunks)")

        if extract and ingested:
            job = KgIngestionJob(extractor=KgExtractionService(llm))
            result = await job.run_once(max(ingested, settings.kg_upload_trigger_limit))
            print(
                f"KG run {result.run_id}: {result.status.value}, "
                f"completed={result.processed_count}, failed={result.failed_count}"
            )
            if result.error:
                failures += 1

    print(f"\nIngested {ingested} file(s), {failures} failure(s)")
    return 1 if failures else 0


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Ingest PDF or text files into the document store",
    )

    parser.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="Files to ingest",
    )

    parser.add_argument(
        "--category", "-c",
        default=None,
        help="Category for every file (default: classify each file)",
    )

    parser.add_argument(
        "--extract",
        action="store_true",
        help="Run knowledge-graph ingestion after the files are stored",
    )

    args = parser.parse_args()

    missing = [path for path in args.paths if not path.is_file()]
    if missing:
        for path in missing:
            print(f"Error: not a file: {path}")
        sys.exit(1)

    sys.exit(asyncio.run(ingest_files(args.paths, args.category, args.extract)))


if __name__ == "__main__":
    main()
