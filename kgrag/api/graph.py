"""
Knowledge-graph count endpoints.

Entities are looked up by canonical key, display name or alias; an unknown
entity is a 404.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from kgrag.api.dependencies import get_knowledge_graph
from kgrag.schemas import KgCountResponse
from kgrag.services.knowledge_graph import (
    DEFAULT_EVENT_TYPE,
    DEFAULT_OUTCOME,
    KgCountAnswer,
    KnowledgeGraphService,
)

router = APIRouter()


def _to_response(answer: KgCountAnswer | None, name: str) -> KgCountResponse:
    if answer is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Entity '{name}' not found",
        )
    return KgCountResponse(
        entity_name=answer.entity_name,
        count=answer.count,
        predicate=answer.predicate,
        document_id=answer.document_id,
        document_title=answer.document_title,
        scope_label=answer.scope_label,
    )


@router.get(
    "/entities/{name}/relations/count",
    response_model=KgCountResponse,
    summary="Count relations of an entity",
    description="Counts relations whose predicate is any configured synonym of `phrase`.",
)
async def count_entity_relations(
    name: str = Path(description="Entity name, alias or canonical key"),
    phrase: str = Query(min_length=1, description="Relation phrase, e.g. 'sons'"),
    document_id: UUID | None = Query(default=None, description="Restrict to one document"),
    kg: KnowledgeGraphService = Depends(get_knowledge_graph),
) -> KgCountResponse:
    answer = await kg.count_relations(name, phrase, document_id)
    return _to_response(answer, name)


@router.get(
    "/entities/{name}/events/count",
    response_model=KgCountResponse,
    summary="Count event participation of an entity",
    description="Counts distinct events of `event_type` in which the entity had `outcome`.",
)
async def count_entity_events(
    name: str = Path(description="Entity name, alias or canonical key"),
    outcome: str = Query(default=DEFAULT_OUTCOME, min_length=1, description="Participant outcome"),
    event_type: str = Query(default=DEFAULT_EVENT_TYPE, min_length=1, description="Event type"),
    document_id: UUID | None = Query(default=None, description="Restrict to one document"),
    kg: KnowledgeGraphService = Depends(get_knowledge_graph),
) -> KgCountResponse:
    answer = await kg.count_event_participation(name, outcome, event_type, document_id)
    return _to_response(answer, name)
