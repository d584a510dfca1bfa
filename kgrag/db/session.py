"""
Database session management for FastAPI and standalone usage.

Usage in FastAPI:
    @router.get("/categories")
    async def list_categories(db: AsyncSession = Depends(get_db)):
        ...

Usage in scripts/workers:
    async with get_db_context() as db:
        repos = Repositories.for_session(db)
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession

from kgrag.db.base import AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a request-scoped database session.

    The session is NOT auto-committed; services call `commit()` at the
    boundaries they own. Uncommitted work is rolled back when the session
    closes.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Session context manager for CLI scripts, Celery tasks and background work."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Commit on success, roll back on any exception.

    Usage:
        async with get_db_context() as db:
            async with transaction(db):
                db.add(document)
                db.add_all(chunks)
    """
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
