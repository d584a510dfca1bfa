"""
Database package - SQLAlchemy models, session management and repositories.

Usage:
    from kgrag.db import get_db, get_db_context, Repositories
    from kgrag.db import Document, Chunk, GraphEntity, Relation
    from kgrag.db import KgStatus, RunStatus
"""

from kgrag.db.base import (
    AsyncSessionLocal,
    Base,
    CreatedAtMixin,
    TimestampMixin,
    UUIDMixin,
    dispose_engine,
    drop_db,
    engine,
    init_db,
    metadata,
)
from kgrag.db.enums import KgStatus, RunStatus
from kgrag.db.models import (
    Chunk,
    Document,
    EntityAlias,
    Event,
    EventParticipant,
    GraphEntity,
    KgRunHistory,
    Relation,
)
from kgrag.db.repositories import (
    ChunkHit,
    ChunkRepository,
    ChunkRow,
    DocumentRepository,
    GraphRepository,
    RelationTriple,
    Repositories,
    RunHistoryRepository,
)
from kgrag.db.session import get_db, get_db_context, transaction

__all__ = [
    # Base classes
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "CreatedAtMixin",
    # Enums
    "KgStatus",
    "RunStatus",
    # Models
    "Document",
    "Chunk",
    "GraphEntity",
    "EntityAlias",
    "Event",
    "EventParticipant",
    "Relation",
    "KgRunHistory",
    # Repositories
    "Repositories",
    "DocumentRepository",
    "ChunkRepository",
    "GraphRepository",
    "RunHistoryRepository",
    "ChunkRow",
    "ChunkHit",
    "RelationTriple",
    # Engine and factory
    "engine",
    "AsyncSessionLocal",
    "metadata",
    # Session utilities
    "get_db",
    "get_db_context",
    "transaction",
    # Lifecycle
    "init_db",
    "drop_db",
    "dispose_engine",
]
