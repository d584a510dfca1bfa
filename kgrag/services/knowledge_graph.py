"""
Structured count queries over the knowledge graph.

Entities are resolved from a user-supplied name or alias in priority order:
canonical key, then case-insensitive display name, then alias. Counts are
optionally scoped to a single document, in which case the answer carries
the document title for the grounding prompt.
"""

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from kgrag.core.config import settings
from kgrag.core.logging import get_logger
from kgrag.core.text import canonical_key, normalize_phrase
from kgrag.db.models import GraphEntity
from kgrag.db.repositories import DocumentRepository, GraphRepository

logger = get_logger(__name__)

DEFAULT_OUTCOME = "loss"
DEFAULT_EVENT_TYPE = "battle"


@dataclass(frozen=True)
class KgCountAnswer:
    """A count answered from the graph."""

    entity_name: str
    count: int
    predicate: str | None = None
    document_id: uuid.UUID | None = None
    document_title: str | None = None

    @property
    def scope_label(self) -> str:
        if self.document_title is None:
            return "across all documents"
        return f'within "{self.document_title}"'


def predicate_synonyms(phrase: str | None, table: Mapping[str, Sequence[str]]) -> list[str]:
    """
    Expand a relation phrase into the predicates it may be stored under.

    The first table entry whose key or any synonym occurs in the lowercased
    phrase wins and yields ``[key, *synonyms]``; with no match the phrase
    itself is the only predicate.

    Examples:
        predicate_synonyms("sons", {"children": ["child", "son"]})
            -> ["children", "child", "son"]
        predicate_synonyms("Allies", {"children": ["child", "son"]})
            -> ["allies"]
    """
    cleaned = normalize_phrase(phrase)
    if not cleaned:
        return []
    for key, synonyms in table.items():
        candidates = [key, *synonyms]
        if any(candidate and candidate.lower() in cleaned for candidate in candidates):
            expanded: list[str] = []
            for candidate in candidates:
                lowered = candidate.strip().lower()
                if lowered and lowered not in expanded:
                    expanded.append(lowered)
            return expanded
    return [cleaned]


class KnowledgeGraphService:
    """
    Resolve entities and answer count questions from the graph.

    Usage:
        kg = KnowledgeGraphService(GraphRepository(db), DocumentRepository(db))
        answer = await kg.count_relations("Cao Cao", "sons")
        if answer:
            print(answer.count, answer.scope_label)
    """

    def __init__(
        self,
        graph: GraphRepository,
        documents: DocumentRepository,
        predicate_table: Mapping[str, Sequence[str]] | None = None,
    ):
        self.graph = graph
        self.documents = documents
        self.predicate_table = settings.predicate_synonyms if predicate_table is None else predicate_table

    async def resolve_entity(self, name_or_alias: str | None) -> GraphEntity | None:
        """First match by canonical key, then name, then alias; None when all miss."""
        if name_or_alias is None or not name_or_alias.strip():
            return None

        entity = await self.graph.get_entity_by_key(canonical_key(name_or_alias))
        if entity is None:
            entity = await self.graph.find_entity_by_name(name_or_alias)
        if entity is None:
            entity = await self.graph.find_entity_by_alias(name_or_alias)

        if entity is None:
            logger.debug("Entity not found", query=name_or_alias)
        return entity

    def predicate_synonyms(self, phrase: str | None) -> list[str]:
        return predicate_synonyms(phrase, self.predicate_table)

    async def count_event_participation(
        self,
        actor: str,
        outcome: str = DEFAULT_OUTCOME,
        event_type: str = DEFAULT_EVENT_TYPE,
        document_id: uuid.UUID | None = None,
    ) -> KgCountAnswer | None:
        """
        Distinct events of `event_type` in which `actor` had `outcome`.

        Returns None when the actor cannot be resolved.
        """
        entity = await self.resolve_entity(actor)
        if entity is None:
            return None

        count = await self.graph.count_participation(entity.id, outcome, event_type, document_id)
        return KgCountAnswer(
            entity_name=entity.name,
            count=count,
            predicate=f"{normalize_phrase(event_type)}:{normalize_phrase(outcome)}",
            document_id=document_id,
            document_title=await self._document_title(document_id),
        )

    async def count_relations(
        self,
        subject: str,
        phrase: str,
        document_id: uuid.UUID | None = None,
    ) -> KgCountAnswer | None:
        """
        Relations of `subject` whose predicate is any synonym of `phrase`.

        Returns None when the subject cannot be resolved.
        """
        entity = await self.resolve_entity(subject)
        if entity is None:
            return None

        predicates = self.predicate_synonyms(phrase)
        count = await self.graph.count_relations(entity.name, predicates, document_id)
        logger.debug(
            "Counted relations",
            subject=entity.name,
            predicates=predicates,
            count=count,
            document_id=str(document_id) if document_id else None,
        )
        return KgCountAnswer(
            entity_name=entity.name,
            count=count,
            predicate=predicates[0] if predicates else None,
            document_id=document_id,
            document_title=await self._document_title(document_id),
        )

    async def _document_title(self, document_id: uuid.UUID | None) -> str | None:
        if document_id is None:
            return None
        return await self.documents.get_title(document_id)
