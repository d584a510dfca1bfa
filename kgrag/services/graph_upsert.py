"""
Entity resolution and graph upsert.

Merges one document's extraction into the knowledge graph:

1. Entities are upserted by canonical key (one row per key); their aliases
   are attached unless the entity already carries the same alias.
2. Events are created per document and indexed by lowercased name.
3. Participants link a resolved actor to an event from step 2.
4. Relations link a resolved subject to an entity or free-text object and
   are deduplicated within the document by a normalized triple hash.

Names referenced by participants and relations are resolved through an
`EntityResolver` that caches every entity seen during the pass, so repeated
references do not hit the database again. Unknown names create new
entities on the fly.
"""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from kgrag.core.logging import get_logger
from kgrag.core.text import canonical_key, normalize_phrase
from kgrag.db.models import Event, GraphEntity
from kgrag.db.repositories import ChunkRow, GraphRepository
from kgrag.services.extraction import (
    ExtractedEntity,
    ExtractedEvent,
    ExtractedParticipant,
    ExtractedRelation,
    ExtractionResult,
)

logger = get_logger(__name__)


@dataclass
class UpsertSummary:
    """Counts of rows written (or skipped) while merging one document."""

    entities_created: int = 0
    aliases_added: int = 0
    events_created: int = 0
    participants_created: int = 0
    participants_skipped: int = 0
    relations_created: int = 0
    relations_skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return dict(self.__dict__)


def relation_hash(
    subject_key: str | None,
    predicate: str | None,
    object_key: str | None,
    object_text: str | None,
) -> str:
    """``subjectKey|predicate|objectKey-or-text`` with predicate and text lowercased."""
    obj = object_key or normalize_phrase(object_text)
    return f"{subject_key or ''}|{normalize_phrase(predicate)}|{obj}"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class EntityResolver:
    """
    Name-to-entity resolution for one document-processing pass.

    Lookup order for an unseen name: canonical key, case-insensitive name,
    alias. Only when all three miss is a new entity created.
    """

    def __init__(self, graph: GraphRepository):
        self.graph = graph
        self.by_key: dict[str, GraphEntity] = {}
        self.by_name: dict[str, GraphEntity] = {}
        self.created = 0

    def remember(self, entity: GraphEntity, *names: str) -> None:
        self.by_key[entity.canonical_key.lower()] = entity
        self.by_name.setdefault(entity.name.strip().lower(), entity)
        for name in names:
            self.by_name[name.strip().lower()] = entity

    async def resolve(self, name: str | None) -> GraphEntity | None:
        name = _clean(name)
        if name is None:
            return None

        key = canonical_key(name)
        entity = self.by_key.get(key) or self.by_name.get(name.lower())
        if entity is not None:
            return entity

        entity = (
            await self.graph.get_entity_by_key(key)
            or await self.graph.find_entity_by_name(name)
            or await self.graph.find_entity_by_alias(name)
        )
        if entity is None:
            entity = await self.graph.add_entity(name=name, canonical_key=key)
            self.created += 1
            logger.debug("Created entity on reference", name=name, canonical_key=key)

        self.remember(entity, name)
        return entity


class GraphUpsertService:
    """
    Merge an `ExtractionResult` into the graph for one document.

    Usage:
        summary = await GraphUpsertService(GraphRepository(db)).apply(
            document_id, chunk_rows, extraction
        )
    """

    def __init__(self, graph: GraphRepository):
        self.graph = graph

    async def apply(
        self,
        document_id: uuid.UUID,
        chunks: Sequence[ChunkRow],
        extraction: ExtractionResult,
    ) -> UpsertSummary:
        summary = UpsertSummary()
        resolver = EntityResolver(self.graph)
        chunk_ids = {chunk.chunk_index: chunk.id for chunk in chunks}

        await self.upsert_entities(extraction.entities, resolver, summary)
        events = await self.create_events(document_id, extraction.events, summary)
        await self.create_participants(
            document_id, extraction.participants, events, chunk_ids, resolver, summary
        )
        await self.create_relations(document_id, extraction.relations, chunk_ids, resolver, summary)

        summary.entities_created += resolver.created
        logger.info("Merged extraction into graph", document_id=str(document_id), **summary.to_dict())
        return summary

    # =========================================================================
    # Entities
    # =========================================================================

    async def upsert_entities(
        self,
        entities: Sequence[ExtractedEntity],
        resolver: EntityResolver,
        summary: UpsertSummary,
    ) -> None:
        for item in entities:
            name = _clean(item.name)
            if name is None:
                continue
            key = canonical_key(item.canonical_key) if _clean(item.canonical_key) else canonical_key(name)

            entity = resolver.by_key.get(key) or await self.graph.get_entity_by_key(key)
            if entity is None:
                entity = await self.graph.add_entity(
                    name=name,
                    canonical_key=key,
                    entity_type=_clean(item.entity_type),
                    description=_clean(item.description),
                )
                summary.entities_created += 1
            resolver.remember(entity, name)

            for alias in item.aliases:
                alias = _clean(alias)
                if alias is None:
                    continue
                if await self.graph.has_alias(entity.id, alias):
                    continue
                await self.graph.add_alias(entity.id, alias)
                summary.aliases_added += 1

    # =========================================================================
    # Events and participants
    # =========================================================================

    async def create_events(
        self,
        document_id: uuid.UUID,
        events: Sequence[ExtractedEvent],
        summary: UpsertSummary,
    ) -> dict[str, Event]:
        created: dict[str, Event] = {}
        for item in events:
            name = _clean(item.name)
            if name is None:
                continue
            event = await self.graph.add_event(
                document_id=document_id,
                name=name,
                event_type=_clean(item.event_type),
                event_category=_clean(item.event_category),
                chapter=_clean(item.chapter),
                location=_clean(item.location),
                start_year=item.start_year,
                end_year=item.end_year,
            )
            created[name.lower()] = event
            summary.events_created += 1
        return created

    async def create_participants(
        self,
        document_id: uuid.UUID,
        participants: Sequence[ExtractedParticipant],
        events: dict[str, Event],
        chunk_ids: dict[int, uuid.UUID],
        resolver: EntityResolver,
        summary: UpsertSummary,
    ) -> None:
        for item in participants:
            event = events.get(normalize_phrase(item.event_name))
            if event is None or _clean(item.actor_name) is None:
                summary.participants_skipped += 1
                continue
            actor = await resolver.resolve(item.actor_name)
            await self.graph.add_participant(
                event_id=event.id,
                actor_id=actor.id,
                role=_clean(item.role),
                outcome=_clean(item.outcome),
                document_id=document_id,
                chunk_id=chunk_ids.get(item.chunk_index) if item.chunk_index is not None else None,
            )
            summary.participants_created += 1

    # =========================================================================
    # Relations
    # =========================================================================

    async def create_relations(
        self,
        document_id: uuid.UUID,
        relations: Sequence[ExtractedRelation],
        chunk_ids: dict[int, uuid.UUID],
        resolver: EntityResolver,
        summary: UpsertSummary,
    ) -> None:
        if not relations:
            return

        seen = {
            relation_hash(t.subject_key, t.predicate, t.object_key, t.object_text)
            for t in await self.graph.relation_triples(document_id)
        }

        for item in relations:
            predicate = _clean(item.predicate)
            if _clean(item.subject_name) is None or predicate is None:
                continue

            subject = await resolver.resolve(item.subject_name)
            obj = await resolver.resolve(item.object_name)
            object_text = _clean(item.object_text)

            digest = relation_hash(
                subject.canonical_key,
                predicate,
                obj.canonical_key if obj is not None else None,
                object_text,
            )
            if digest in seen:
                summary.relations_skipped += 1
                continue

            await self.graph.add_relation(
                subject_id=subject.id,
                predicate=predicate,
                object_id=obj.id if obj is not None else None,
                object_text=object_text,
                document_id=document_id,
                chunk_id=chunk_ids.get(item.chunk_index) if item.chunk_index is not None else None,
            )
            seen.add(digest)
            summary.relations_created += 1
