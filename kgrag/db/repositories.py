"""
Persistence contracts used by the ingestion and query services.

Each repository wraps one `AsyncSession` and exposes the handful of
queries its callers need, so services never build SQL themselves and tests
can substitute in-memory fakes with the same method names.

Repositories flush but never commit: transaction boundaries belong to the
caller (the upload pipeline, the ingestion job, or a request handler).
"""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction
from sqlalchemy.orm import aliased

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

if TYPE_CHECKING:
    from kgrag.services.chunking import ChunkData

# Stored error messages are truncated to keep status rows small
MAX_ERROR_LENGTH = 2000


# =============================================================================
# Row DTOs
# =============================================================================


@dataclass(frozen=True)
class ChunkRow:
    """A chunk as fed to knowledge extraction."""

    id: uuid.UUID
    chunk_index: int
    content: str


@dataclass(frozen=True)
class ChunkHit:
    """A nearest-neighbour hit with its raw L2 distance."""

    chunk_id: uuid.UUID
    document_id: uuid.UUID
    chunk_index: int
    content: str
    distance: float


@dataclass(frozen=True)
class RelationTriple:
    """Normalized components of a stored relation, for dedup hashing."""

    subject_key: str | None
    predicate: str | None
    object_key: str | None
    object_text: str | None


def _truncate(message: str | None) -> str | None:
    if message is None:
        return None
    return message[:MAX_ERROR_LENGTH]


# =============================================================================
# Documents
# =============================================================================


class DocumentRepository:
    """Documents and their knowledge-graph status."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, document_id: uuid.UUID) -> Document | None:
        return await self.session.get(Document, document_id)

    async def get_title(self, document_id: uuid.UUID) -> str | None:
        result = await self.session.execute(
            select(Document.title).where(Document.id == document_id)
        )
        return result.scalar_one_or_none()

    async def find_by_fingerprint(self, fingerprint: str) -> Document | None:
        result = await self.session.execute(
            select(Document).where(Document.fingerprint == fingerprint)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        title: str,
        source_type: str = "upload",
        category: str | None = None,
        fingerprint: str | None = None,
    ) -> Document:
        """Insert a new document with status PENDING."""
        document = Document(
            title=title,
            source_type=source_type,
            category=category,
            fingerprint=fingerprint,
            kg_status=KgStatus.PENDING,
        )
        self.session.add(document)
        await self.session.flush()
        return document

    async def claim_pending(self, limit: int) -> list[uuid.UUID]:
        """
        Lock up to `limit` unprocessed documents for the current transaction.

        Emits ``SELECT ... FOR UPDATE SKIP LOCKED`` so concurrent claimers
        receive disjoint sets. Only NULL and PENDING rows qualify; the locks
        are held until the caller commits or rolls back.
        """
        stmt = (
            select(Document.id)
            .where(
                or_(
                    Document.kg_status.is_(None),
                    Document.kg_status == KgStatus.PENDING,
                )
            )
            .order_by(Document.created_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_processing(self, document_id: uuid.UUID) -> None:
        await self._set_status(
            document_id,
            kg_status=KgStatus.PROCESSING,
            kg_started_at=func.now(),
        )

    async def mark_completed(self, document_id: uuid.UUID) -> None:
        await self._set_status(
            document_id,
            kg_status=KgStatus.COMPLETED,
            kg_completed_at=func.now(),
            kg_error=None,
        )

    async def mark_failed(self, document_id: uuid.UUID, error: str) -> None:
        await self._set_status(
            document_id,
            kg_status=KgStatus.FAILED,
            kg_completed_at=func.now(),
            kg_error=_truncate(error),
        )

    async def _set_status(self, document_id: uuid.UUID, **values: Any) -> None:
        await self.session.execute(
            update(Document)
            .where(Document.id == document_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def count_by_status(self) -> dict[KgStatus, int]:
        """Document counts per status, with NULL folded into PENDING."""
        result = await self.session.execute(
            select(Document.kg_status, func.count(Document.id)).group_by(Document.kg_status)
        )
        counts = {status: 0 for status in KgStatus}
        for status, count in result.all():
            counts[status or KgStatus.PENDING] += count
        return counts

    async def list_categories(self) -> list[str]:
        """Distinct non-empty categories, sorted."""
        result = await self.session.execute(
            select(Document.category)
            .where(Document.category.is_not(None), Document.category != "")
            .distinct()
            .order_by(Document.category)
        )
        return list(result.scalars().all())


# =============================================================================
# Chunks
# =============================================================================


class ChunkRepository:
    """Chunk storage and nearest-neighbour search."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert_many(self, chunks: Sequence["ChunkData"]) -> int:
        """
        Insert chunks, replacing content and embedding on id conflict.

        Callers are expected to pass only chunks that carry an embedding.
        """
        if not chunks:
            return 0
        rows = [
            {
                "id": chunk.id,
                "document_id": chunk.document_id,
                "chunk_index": chunk.chunk_index,
                "content": chunk.content,
                "embedding": chunk.embedding,
            }
            for chunk in chunks
        ]
        stmt = insert(Chunk).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Chunk.id],
            set_={
                "content": stmt.excluded.content,
                "embedding": stmt.excluded.embedding,
            },
        )
        await self.session.execute(stmt)
        return len(rows)

    async def list_rows(self, document_id: uuid.UUID) -> list[ChunkRow]:
        """All chunks of a document in index order."""
        result = await self.session.execute(
            select(Chunk.id, Chunk.chunk_index, Chunk.content)
            .where(Chunk.document_id == document_id)
            .order_by(Chunk.chunk_index)
        )
        return [ChunkRow(id=row.id, chunk_index=row.chunk_index, content=row.content) for row in result.all()]

    async def nearest(
        self,
        vector: Sequence[float],
        top_k: int,
        category: str | None = None,
    ) -> list[ChunkHit]:
        """
        The `top_k` embedded chunks closest to `vector` by L2 distance (``<->``).

        When `category` is given, only chunks whose document carries exactly
        that category are considered.
        """
        distance = Chunk.embedding.l2_distance(list(vector)).label("distance")
        stmt = select(
            Chunk.id,
            Chunk.document_id,
            Chunk.chunk_index,
            Chunk.content,
            distance,
        ).where(Chunk.embedding.is_not(None))
        if category:
            stmt = stmt.join(Document, Document.id == Chunk.document_id).where(
                Document.category == category
            )
        stmt = stmt.order_by(distance).limit(top_k)

        result = await self.session.execute(stmt)
        return [
            ChunkHit(
                chunk_id=row.id,
                document_id=row.document_id,
                chunk_index=row.chunk_index,
                content=row.content,
                distance=float(row.distance),
            )
            for row in result.all()
        ]


# =============================================================================
# Graph
# =============================================================================


class GraphRepository:
    """Entities, aliases, events, participants and relations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # --- Entity lookups ---

    async def get_entity_by_key(self, canonical_key: str) -> GraphEntity | None:
        result = await self.session.execute(
            select(GraphEntity).where(GraphEntity.canonical_key == canonical_key)
        )
        return result.scalar_one_or_none()

    async def find_entity_by_name(self, name: str) -> GraphEntity | None:
        """First entity whose name matches case-insensitively (oldest wins)."""
        result = await self.session.execute(
            select(GraphEntity)
            .where(func.lower(GraphEntity.name) == name.strip().lower())
            .order_by(GraphEntity.created_at, GraphEntity.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_entity_by_alias(self, alias: str) -> GraphEntity | None:
        """Entity owning the first alias that matches case-insensitively."""
        result = await self.session.execute(
            select(GraphEntity)
            .join(EntityAlias, EntityAlias.entity_id == GraphEntity.id)
            .where(func.lower(EntityAlias.alias) == alias.strip().lower())
            .order_by(EntityAlias.created_at, EntityAlias.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    # --- Writes ---

    async def add_entity(
        self,
        *,
        name: str,
        canonical_key: str,
        entity_type: str | None = None,
        description: str | None = None,
    ) -> GraphEntity:
        entity = GraphEntity(
            name=name,
            canonical_key=canonical_key,
            entity_type=entity_type,
            description=description,
        )
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def has_alias(self, entity_id: uuid.UUID, alias: str) -> bool:
        result = await self.session.execute(
            select(EntityAlias.id)
            .where(
                EntityAlias.entity_id == entity_id,
                func.lower(EntityAlias.alias) == alias.strip().lower(),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def add_alias(
        self,
        entity_id: uuid.UUID,
        alias: str,
        language: str | None = None,
    ) -> EntityAlias:
        row = EntityAlias(entity_id=entity_id, alias=alias, language=language)
        self.session.add(row)
        await self.session.flush()
        return row

    async def add_event(self, **fields: Any) -> Event:
        event = Event(**fields)
        self.session.add(event)
        await self.session.flush()
        return event

    async def add_participant(self, **fields: Any) -> EventParticipant:
        participant = EventParticipant(**fields)
        self.session.add(participant)
        await self.session.flush()
        return participant

    async def add_relation(self, **fields: Any) -> Relation:
        relation = Relation(**fields)
        self.session.add(relation)
        await self.session.flush()
        return relation

    async def relation_triples(self, document_id: uuid.UUID) -> list[RelationTriple]:
        """(subject key, predicate, object key, object text) of every relation in a document."""
        subject = aliased(GraphEntity)
        obj = aliased(GraphEntity)
        result = await self.session.execute(
            select(
                subject.canonical_key,
                Relation.predicate,
                obj.canonical_key,
                Relation.object_text,
            )
            .join(subject, Relation.subject_id == subject.id)
            .outerjoin(obj, Relation.object_id == obj.id)
            .where(Relation.document_id == document_id)
        )
        return [
            RelationTriple(
                subject_key=subject_key,
                predicate=predicate,
                object_key=object_key,
                object_text=object_text,
            )
            for subject_key, predicate, object_key, object_text in result.all()
        ]

    # --- Aggregates ---

    async def count_participation(
        self,
        actor_id: uuid.UUID,
        outcome: str,
        event_type: str,
        document_id: uuid.UUID | None = None,
    ) -> int:
        """Distinct events the actor took part in with the given outcome and type."""
        stmt = (
            select(func.count(func.distinct(EventParticipant.event_id)))
            .join(Event, Event.id == EventParticipant.event_id)
            .where(
                EventParticipant.actor_id == actor_id,
                func.lower(EventParticipant.outcome) == outcome.strip().lower(),
                func.lower(Event.event_type) == event_type.strip().lower(),
            )
        )
        if document_id is not None:
            stmt = stmt.where(Event.document_id == document_id)
        result = await self.session.execute(stmt)
        return int(result.scalar_one() or 0)

    async def count_relations(
        self,
        subject_name: str,
        predicates: Sequence[str],
        document_id: uuid.UUID | None = None,
    ) -> int:
        """Relations whose subject is named `subject_name` and whose predicate is in `predicates`."""
        if not predicates:
            return 0
        stmt = (
            select(func.count(Relation.id))
            .join(GraphEntity, GraphEntity.id == Relation.subject_id)
            .where(
                func.lower(GraphEntity.name) == subject_name.strip().lower(),
                func.lower(Relation.predicate).in_([p.lower() for p in predicates]),
            )
        )
        if document_id is not None:
            stmt = stmt.where(Relation.document_id == document_id)
        result = await self.session.execute(stmt)
        return int(result.scalar_one() or 0)


# =============================================================================
# Run history
# =============================================================================


class RunHistoryRepository:
    """Append-only ingestion run records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def start_run(self) -> uuid.UUID:
        run = KgRunHistory(status=RunStatus.STARTED, processed_count=0)
        self.session.add(run)
        await self.session.flush()
        return run.id

    async def finish_run(
        self,
        run_id: uuid.UUID,
        status: RunStatus,
        processed_count: int,
        error: str | None = None,
    ) -> None:
        await self.session.execute(
            update(KgRunHistory)
            .where(KgRunHistory.id == run_id)
            .values(
                status=status,
                processed_count=processed_count,
                error=_truncate(error),
                completed_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )

    async def recent_runs(self, limit: int = 20) -> list[KgRunHistory]:
        result = await self.session.execute(
            select(KgRunHistory).order_by(KgRunHistory.started_at.desc()).limit(limit)
        )
        return list(result.scalars().all())


# =============================================================================
# Bundle
# =============================================================================


@dataclass
class Repositories:
    """All repositories bound to one session, plus its transaction controls."""

    session: AsyncSession
    documents: DocumentRepository
    chunks: ChunkRepository
    graph: GraphRepository
    runs: RunHistoryRepository

    @classmethod
    def for_session(cls, session: AsyncSession) -> "Repositories":
        return cls(
            session=session,
            documents=DocumentRepository(session),
            chunks=ChunkRepository(session),
            graph=GraphRepository(session),
            runs=RunHistoryRepository(session),
        )

    def savepoint(self) -> AsyncSessionTransaction:
        """Nested transaction; use as ``async with repos.savepoint():``."""
        return self.session.begin_nested()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
