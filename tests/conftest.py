"""Pytest configuration and shared fixtures.

Services are exercised against in-memory repository fakes that expose the
same method names as `kgrag.db.repositories`, bundled into a real
`Repositories` instance. No database, broker or network is needed.
"""

import os

os.environ.setdefault("LLM_PROVIDER", "mock")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

import uuid  # noqa: E402
from collections.abc import AsyncGenerator, Generator, Sequence  # noqa: E402
from contextlib import asynccontextmanager  # noqa: E402
from dataclasses import dataclass, field  # noqa: E402
from datetime import datetime, timezone  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from uuid6 import uuid7  # noqa: E402

from kgrag.core.text import canonical_key  # noqa: E402
from kgrag.db.enums import KgStatus, RunStatus  # noqa: E402
from kgrag.db.repositories import ChunkHit, ChunkRow, RelationTriple, Repositories  # noqa: E402
from kgrag.services.llm_client import MockLLMClient  # noqa: E402


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Session
# =============================================================================


class FakeSession:
    """Records commits, rollbacks and savepoints."""

    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0
        self.savepoints = 0
        self.savepoint_rollbacks = 0
        self.closed = False

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    async def close(self) -> None:
        self.closed = True

    @asynccontextmanager
    async def begin_nested(self) -> AsyncGenerator["FakeSession", None]:
        self.savepoints += 1
        try:
            yield self
        except Exception:
            self.savepoint_rollbacks += 1
            raise


# =============================================================================
# Repositories
# =============================================================================


class FakeDocumentRepository:
    def __init__(self) -> None:
        self.rows: dict[uuid.UUID, SimpleNamespace] = {}

    def add(
        self,
        title: str = "doc.txt",
        category: str | None = None,
        fingerprint: str | None = None,
        kg_status: KgStatus | None = KgStatus.PENDING,
    ) -> SimpleNamespace:
        document = SimpleNamespace(
            id=uuid7(),
            title=title,
            source_type="upload",
            category=category,
            fingerprint=fingerprint,
            kg_status=kg_status,
            kg_error=None,
            created_at=_now(),
        )
        self.rows[document.id] = document
        return document

    async def get(self, document_id: uuid.UUID) -> SimpleNamespace | None:
        return self.rows.get(document_id)

    async def get_title(self, document_id: uuid.UUID) -> str | None:
        document = self.rows.get(document_id)
        return document.title if document else None

    async def find_by_fingerprint(self, fingerprint: str) -> SimpleNamespace | None:
        return next((d for d in self.rows.values() if d.fingerprint == fingerprint), None)

    async def create(
        self,
        *,
        title: str,
        source_type: str = "upload",
        category: str | None = None,
        fingerprint: str | None = None,
    ) -> SimpleNamespace:
        return self.add(title=title, category=category, fingerprint=fingerprint)

    async def claim_pending(self, limit: int) -> list[uuid.UUID]:
        pending = [
            d for d in self.rows.values() if d.kg_status in (None, KgStatus.PENDING)
        ]
        pending.sort(key=lambda d: d.created_at)
        return [d.id for d in pending[:limit]]

    async def mark_processing(self, document_id: uuid.UUID) -> None:
        self.rows[document_id].kg_status = KgStatus.PROCESSING

    async def mark_completed(self, document_id: uuid.UUID) -> None:
        self.rows[document_id].kg_status = KgStatus.COMPLETED
        self.rows[document_id].kg_error = None

    async def mark_failed(self, document_id: uuid.UUID, error: str) -> None:
        self.rows[document_id].kg_status = KgStatus.FAILED
        self.rows[document_id].kg_error = error

    async def count_by_status(self) -> dict[KgStatus, int]:
        counts = {status: 0 for status in KgStatus}
        for document in self.rows.values():
            counts[document.kg_status or KgStatus.PENDING] += 1
        return counts

    async def list_categories(self) -> list[str]:
        return sorted({d.category for d in self.rows.values() if d.category})


class FakeChunkRepository:
    def __init__(self) -> None:
        self.rows: list[Any] = []
        self.hits: list[ChunkHit] = []
        self.nearest_calls: list[tuple[list[float], int, str | None]] = []

    def add_rows(self, document_id: uuid.UUID, contents: Sequence[str]) -> list[ChunkRow]:
        rows = []
        for index, content in enumerate(contents):
            row = SimpleNamespace(
                id=uuid7(),
                document_id=document_id,
                chunk_index=index,
                content=content,
                embedding=[0.1],
            )
            self.rows.append(row)
            rows.append(ChunkRow(id=row.id, chunk_index=index, content=content))
        return rows

    async def upsert_many(self, chunks: Sequence[Any]) -> int:
        self.rows.extend(chunks)
        return len(chunks)

    async def list_rows(self, document_id: uuid.UUID) -> list[ChunkRow]:
        rows = sorted(
            (c for c in self.rows if c.document_id == document_id),
            key=lambda c: c.chunk_index,
        )
        return [ChunkRow(id=c.id, chunk_index=c.chunk_index, content=c.content) for c in rows]

    async def nearest(
        self,
        vector: Sequence[float],
        top_k: int,
        category: str | None = None,
    ) -> list[ChunkHit]:
        self.nearest_calls.append((list(vector), top_k, category))
        return self.hits[:top_k]


@dataclass
class FakeEntity:
    name: str
    canonical_key: str
    entity_type: str | None = None
    description: str | None = None
    id: uuid.UUID = field(default_factory=uuid7)


class FakeGraphRepository:
    def __init__(self) -> None:
        self.entities: list[FakeEntity] = []
        self.aliases: list[SimpleNamespace] = []
        self.events: list[SimpleNamespace] = []
        self.participants: list[SimpleNamespace] = []
        self.relations: list[SimpleNamespace] = []

    def entity(self, name: str, *aliases: str, key: str | None = None) -> FakeEntity:
        """Seed an entity (and aliases) directly."""
        entity = FakeEntity(name=name, canonical_key=key or canonical_key(name))
        self.entities.append(entity)
        for alias in aliases:
            self.aliases.append(SimpleNamespace(entity_id=entity.id, alias=alias, language=None))
        return entity

    def _by_id(self, entity_id: uuid.UUID | None) -> FakeEntity | None:
        return next((e for e in self.entities if e.id == entity_id), None)

    async def get_entity_by_key(self, key: str) -> FakeEntity | None:
        return next((e for e in self.entities if e.canonical_key == key), None)

    async def find_entity_by_name(self, name: str) -> FakeEntity | None:
        wanted = name.strip().lower()
        return next((e for e in self.entities if e.name.lower() == wanted), None)

    async def find_entity_by_alias(self, alias: str) -> FakeEntity | None:
        wanted = alias.strip().lower()
        row = next((a for a in self.aliases if a.alias.lower() == wanted), None)
        return self._by_id(row.entity_id) if row else None

    async def add_entity(
        self,
        *,
        name: str,
        canonical_key: str,
        entity_type: str | None = None,
        description: str | None = None,
    ) -> FakeEntity:
        if any(e.canonical_key == canonical_key for e in self.entities):
            raise AssertionError(f"duplicate canonical key {canonical_key}")
        entity = FakeEntity(
            name=name,
            canonical_key=canonical_key,
            entity_type=entity_type,
            description=description,
        )
        self.entities.append(entity)
        return entity

    async def has_alias(self, entity_id: uuid.UUID, alias: str) -> bool:
        wanted = alias.strip().lower()
        return any(a.entity_id == entity_id and a.alias.lower() == wanted for a in self.aliases)

    async def add_alias(self, entity_id: uuid.UUID, alias: str, language: str | None = None) -> SimpleNamespace:
        row = SimpleNamespace(entity_id=entity_id, alias=alias, language=language)
        self.aliases.append(row)
        return row

    async def add_event(self, **fields: Any) -> SimpleNamespace:
        event = SimpleNamespace(id=uuid7(), **fields)
        self.events.append(event)
        return event

    async def add_participant(self, **fields: Any) -> SimpleNamespace:
        participant = SimpleNamespace(id=uuid7(), **fields)
        self.participants.append(participant)
        return participant

    async def add_relation(self, **fields: Any) -> SimpleNamespace:
        relation = SimpleNamespace(id=uuid7(), **fields)
        self.relations.append(relation)
        return relation

    async def relation_triples(self, document_id: uuid.UUID) -> list[RelationTriple]:
        triples = []
        for relation in self.relations:
            if relation.document_id != document_id:
                continue
            subject = self._by_id(relation.subject_id)
            obj = self._by_id(relation.object_id)
            triples.append(
                RelationTriple(
                    subject_key=subject.canonical_key if subject else None,
                    predicate=relation.predicate,
                    object_key=obj.canonical_key if obj else None,
                    object_text=relation.object_text,
                )
            )
        return triples

    async def count_participation(
        self,
        actor_id: uuid.UUID,
        outcome: str,
        event_type: str,
        document_id: uuid.UUID | None = None,
    ) -> int:
        events = {e.id: e for e in self.events}
        matched = set()
        for p in self.participants:
            event = events.get(p.event_id)
            if event is None or p.actor_id != actor_id:
                continue
            if (p.outcome or "").lower() != outcome.strip().lower():
                continue
            if (event.event_type or "").lower() != event_type.strip().lower():
                continue
            if document_id is not None and event.document_id != document_id:
                continue
            matched.add(event.id)
        return len(matched)

    async def count_relations(
        self,
        subject_name: str,
        predicates: Sequence[str],
        document_id: uuid.UUID | None = None,
    ) -> int:
        wanted = {p.lower() for p in predicates}
        count = 0
        for relation in self.relations:
            subject = self._by_id(relation.subject_id)
            if subject is None or subject.name.lower() != subject_name.strip().lower():
                continue
            if relation.predicate.lower() not in wanted:
                continue
            if document_id is not None and relation.document_id != document_id:
                continue
            count += 1
        return count


class FakeRunHistoryRepository:
    def __init__(self) -> None:
        self.runs: list[SimpleNamespace] = []

    async def start_run(self) -> uuid.UUID:
        run = SimpleNamespace(
            id=uuid7(),
            started_at=_now(),
            completed_at=None,
            status=RunStatus.STARTED,
            processed_count=0,
            error=None,
        )
        self.runs.append(run)
        return run.id

    async def finish_run(
        self,
        run_id: uuid.UUID,
        status: RunStatus,
        processed_count: int,
        error: str | None = None,
    ) -> None:
        run = next(r for r in self.runs if r.id == run_id)
        run.status = status
        run.processed_count = processed_count
        run.error = error
        run.completed_at = _now()

    async def recent_runs(self, limit: int = 20) -> list[SimpleNamespace]:
        return sorted(self.runs, key=lambda r: r.started_at, reverse=True)[:limit]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def repos(session: FakeSession) -> Repositories:
    """A repository bundle backed by in-memory fakes."""
    return Repositories(
        session=session,  # type: ignore[arg-type]
        documents=FakeDocumentRepository(),  # type: ignore[arg-type]
        chunks=FakeChunkRepository(),  # type: ignore[arg-type]
        graph=FakeGraphRepository(),  # type: ignore[arg-type]
        runs=FakeRunHistoryRepository(),  # type: ignore[arg-type]
    )


@pytest.fixture
def session_factory(session: FakeSession):
    """Stands in for `async_sessionmaker`: every call yields the shared fake session."""

    @asynccontextmanager
    async def factory() -> AsyncGenerator[FakeSession, None]:
        yield session

    return factory


@pytest.fixture
def mock_llm() -> MockLLMClient:
    return MockLLMClient(dimensions=4)


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Test client over a fresh app; dependency overrides are per test."""
    from kgrag.main import create_app

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
