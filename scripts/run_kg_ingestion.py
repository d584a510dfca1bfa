#!/usr/bin/env python3
"""
Run knowledge-graph ingestion from the command line.

This script provides a command-line interface to:
1. Claim pending documents and extract entities, events and relations
2. Merge the extraction into the knowledge graph
3. Show document status counts and recent runs

Usage:
    # Process up to 5 pending documents (using mock LLM for testing)
    LLM_PROVIDER=mock python scripts/run_kg_ingestion.py

    # Process more documents per run
    python scripts/run_kg_ingestion.py --limit 20

    # Keep running until no pending documents remain
    python scripts/run_kg_ingestion.py --drain

    # Show status only
    python scripts/run_kg_ingestion.py --status

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
from kgrag.db.enums import KgStatus  # noqa: E402
from kgrag.services.extraction import KgExtractionService  # noqa: E402
from kgrag.services.ingestion_job import KgIngestionJob  # noqa: E402
from kgrag.services.llm_client import get_llm_client  # noqa: E402

logger = get_logger(__name__)


async def show_status(job: KgIngestionJob, recent: int = 5) -> int:
    """Print status counts and recent runs; returns the pending count."""
    snapshot = await job.ingestion_status(recent=recent)

    print("\n" + "=" * 50)
    print("KNOWLEDGE GRAPH STATUS")
    print("=" * 50)
    for status in KgStatus:
        print(f"  {status.value:<12} {snapshot.counts.get(status, 0):>6}")

    print("\nRecent runs:")
    if not snapshot.recent_runs:
        print("  (none)")
    for run in snapshot.recent_runs:
        started = run.started_at.strftime("%Y-%m-%d %H:%M:%S") if run.started_at else "-"
        line = f"  {started}  {run.status.value:<10} processed={run.processed_count}"
        if run.error:
            line += f"  error={run.error[:60]}"
        print(line)
    print("=" * 50 + "\n")

    return snapshot.counts.get(KgStatus.PENDING, 0)


async def run_ingestion(limit: int, drain: bool, status_only: bool) -> int:
    """Returns a process exit code."""
    setup_logging()

    async with get_llm_client() as llm:
        job = KgIngestionJob(extractor=KgExtractionService(llm))

        if status_only:
            await show_status(job)
            return 0

        exit_code = 0
        while True:
            result = await job.run_once(limit)
            print(
                f"Run {result.run_id}: {result.status.value}, "
                f"completed={result.processed_count}, failed={result.failed_count}"
            )
            if result.error:
                print(f"  error: {result.error}")
                exit_code = 1
                break

            pending = await show_status(job) if drain else 0
            if not drain or pending == 0 or result.processed_count + result.failed_count == 0:
                break

        if not drain:
            await show_status(job)
        return exit_code


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Extract knowledge-graph facts from pending documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # One run with the default batch size
    python scripts/run_kg_ingestion.py

    # Larger batch
    python scripts/run_kg_ingestion.py --limit 20

    # Process everything that is pending
    python scripts/run_kg_ingestion.py --drain

    # Show statistics only
    python scripts/run_kg_ingestion.py --status
        """,
    )

    parser.add_argument(
        "--limit", "-n",
        type=int,
        default=settings.kg_upload_trigger_limit,
        help=f"Documents to claim per run (default: {settings.kg_upload_trigger_limit})",
    )

    parser.add_argument(
        "--drain",
        action="store_true",
        help="Repeat runs until no pending documents remain",
    )

    parser.add_argument(
        "--status",
        action="store_true",
        help="Show status counts and recent runs only",
    )

    args = parser.parse_args()

    if args.limit < 1:
        print(f"Error: --limit must be at least 1 (got {args.limit})")
        sys.exit(1)

    sys.exit(asyncio.run(run_ingestion(args.limit, args.drain, args.status)))


if __name__ == "__main__":
    main()
