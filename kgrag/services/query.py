"""
Query orchestration: graph route first, retrieval-augmented answer otherwise.

    question
       |
       v
    IntentRouter.route ---- routed & entity resolved ----> KG count -> chat -> answer (no sources)
       |
       | not routed (or entity unknown)
       v
    embed question -> vector search -> no hits -> fixed "no information" answer
                                    -> hits    -> chat over [chunk i] context -> answer + sources

`answer_stream` follows the same routing. Only the retrieval answer is
truly streamed; the graph answer and the no-hit message are emitted as a
single fragment.
"""

import json
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from kgrag.core.config import settings
from kgrag.core.logging import get_logger
from kgrag.services.embedding import EmbeddingService
from kgrag.services.knowledge_graph import KgCountAnswer, KnowledgeGraphService
from kgrag.services.llm_client import BaseLLMClient, LLMAPIError, LLMMessage
from kgrag.services.router import IntentRouter, RoutedIntent
from kgrag.services.vector_store import ChunkSearchResult, VectorStoreService

logger = get_logger(__name__)

NO_MATCH_MESSAGE = "I could not find relevant information in the knowledge base."

ANSWER_SYSTEM_PROMPT = "You are a meticulous analyst focused on grounded answers."

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"

ROUTE_GRAPH = "graph"
ROUTE_RETRIEVAL = "retrieval"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class QuerySource:
    chunk_index: int
    similarity: float


@dataclass
class QueryAnswer:
    """Final answer with the chunks it was grounded on (empty for graph answers)."""

    answer: str
    sources: list[QuerySource] = field(default_factory=list)
    route: str = ROUTE_RETRIEVAL


# =============================================================================
# Prompts
# =============================================================================


def build_retrieval_prompt(question: str, matches: Sequence[ChunkSearchResult]) -> str:
    parts = ["Use ONLY the following retrieved information to answer the user's question.\n\n"]
    for match in matches:
        parts.append(f"[chunk {match.chunk_index}] {match.content}\n\n")
    parts.append(f"Question: {question}\n")
    parts.append(
        "Answer in a concise paragraph and cite the supporting chunk index in brackets, e.g., [chunk 0]."
    )
    return "".join(parts)


def build_graph_prompt(answer: KgCountAnswer, relation: str | None = None) -> str:
    relation = relation or answer.predicate or "related facts"
    return (
        "You are given a structured fact from a knowledge graph.\n"
        f"Entity: {answer.entity_name}\n"
        f"Relation: {relation}\n"
        f"Count {answer.scope_label}: {answer.count}\n"
        "Explain this to the user in natural language and note that it is based on "
        "structured knowledge graph data, not long text scanning."
    )


# =============================================================================
# Streaming
# =============================================================================


async def iter_stream_fragments(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """
    Turn raw server-sent event lines into answer fragments.

    Each line may hold several events. A ``data:`` prefix is stripped,
    blank payloads are skipped and ``[DONE]`` ends the stream. JSON frames
    yield ``choices[0].delta.content`` when non-empty; a payload that is not
    JSON is forwarded verbatim so no text is lost.
    """
    async for raw in lines:
        if not raw:
            continue
        for line in raw.splitlines():
            payload = line.strip()
            if payload.startswith(SSE_DATA_PREFIX):
                payload = payload[len(SSE_DATA_PREFIX) :].strip()
            if not payload:
                continue
            if payload == SSE_DONE:
                return

            try:
                frame = json.loads(payload)
            except ValueError:
                yield payload
                continue

            if not isinstance(frame, dict):
                yield payload
                continue
            content = _delta_content(frame)
            if content:
                yield content


def _delta_content(frame: dict[str, Any]) -> str | None:
    choices = frame.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) else None


# =============================================================================
# Query Service
# =============================================================================


class QueryService:
    """
    Answer questions over the knowledge base.

    Usage:
        service = QueryService(router, kg, embedding, vector_store, llm)
        result = await service.answer("How many sons did Cao Cao have?")

        async for fragment in service.answer_stream("Who was Lu Bu?"):
            ...
    """

    def __init__(
        self,
        router: IntentRouter,
        knowledge_graph: KnowledgeGraphService,
        embedding: EmbeddingService,
        vector_store: VectorStoreService,
        llm_client: BaseLLMClient,
        temperature: float | None = None,
    ):
        self.router = router
        self.kg = knowledge_graph
        self.embedding = embedding
        self.vector_store = vector_store
        self.llm = llm_client
        self.temperature = settings.answer_temperature if temperature is None else temperature

    async def answer(
        self,
        question: str,
        top_k: int = 5,
        category: str | None = None,
    ) -> QueryAnswer:
        """
        Raises:
            LLMError: embedding or chat completion failed
        """
        graph_prompt = await self._graph_prompt(question)
        if graph_prompt is not None:
            logger.info("Answering from knowledge graph", category=category)
            return QueryAnswer(answer=await self._complete(graph_prompt), route=ROUTE_GRAPH)

        matches = await self._retrieve(question, top_k, category)
        if not matches:
            return QueryAnswer(answer=NO_MATCH_MESSAGE)

        answer = await self._complete(build_retrieval_prompt(question, matches))
        sources = [QuerySource(chunk_index=m.chunk_index, similarity=m.similarity) for m in matches]
        return QueryAnswer(answer=answer, sources=sources)

    async def answer_stream(
        self,
        question: str,
        top_k: int = 5,
        category: str | None = None,
    ) -> AsyncIterator[str]:
        """Yield answer fragments; routing is identical to `answer`."""
        graph_prompt = await self._graph_prompt(question)
        if graph_prompt is not None:
            yield await self._complete(graph_prompt)
            return

        matches = await self._retrieve(question, top_k, category)
        if not matches:
            yield NO_MATCH_MESSAGE
            return

        lines = self.llm.stream_lines(
            self._messages(build_retrieval_prompt(question, matches)),
            temperature=self.temperature,
        )
        async for fragment in iter_stream_fragments(lines):
            yield fragment

    # -------------------------------------------------------------------------

    async def _graph_prompt(self, question: str) -> str | None:
        routed: RoutedIntent | None = await self.router.route(question)
        if routed is None:
            return None

        result = await self.kg.count_relations(routed.subject, routed.predicate)
        if result is None:
            logger.info("Routed subject not in graph, using retrieval", subject=routed.subject)
            return None
        return build_graph_prompt(result, routed.object or routed.predicate)

    async def _retrieve(
        self,
        question: str,
        top_k: int,
        category: str | None,
    ) -> list[ChunkSearchResult]:
        vector = await self.embedding.embed(question)
        matches = await self.vector_store.search(vector, top_k, category or None)
        logger.debug("Retrieved chunks", matches=len(matches), top_k=top_k, category=category)
        return matches

    def _messages(self, prompt: str) -> list[LLMMessage]:
        return [
            LLMMessage(role="system", content=ANSWER_SYSTEM_PROMPT),
            LLMMessage(role="user", content=prompt),
        ]

    async def _complete(self, prompt: str) -> str:
        response = await self.llm.complete(self._messages(prompt), temperature=self.temperature)
        if not response.content or not response.content.strip():
            raise LLMAPIError("Chat completion returned no content")
        return response.content
