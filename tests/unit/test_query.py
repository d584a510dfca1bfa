"""Unit tests for query orchestration and stream parsing."""

import json
from collections.abc import AsyncIterator

import pytest
from uuid6 import uuid7

from kgrag.db.repositories import ChunkHit, Repositories
from kgrag.services.embedding import EmbeddingService
from kgrag.services.knowledge_graph import KgCountAnswer, KnowledgeGraphService
from kgrag.services.llm_client import LLMAPIError, MockLLMClient
from kgrag.services.query import (
    NO_MATCH_MESSAGE,
    ROUTE_GRAPH,
    ROUTE_RETRIEVAL,
    QueryService,
    QuerySource,
    build_graph_prompt,
    build_retrieval_prompt,
    iter_stream_fragments,
)
from kgrag.services.router import IntentRouter
from kgrag.services.vector_store import ChunkSearchResult, VectorStoreService

NOT_ROUTED = json.dumps({"intent": "none", "confidence": 0.0})

CAO_CAO_CHILDREN = json.dumps(
    {"intent": "relation_count", "subject": "Cao Cao", "predicate": "child", "object": "children", "confidence": 0.9}
)


async def _lines(*lines: str) -> AsyncIterator[str]:
    for line in lines:
        yield line


async def _collect(fragments: AsyncIterator[str]) -> list[str]:
    return [fragment async for fragment in fragments]


def _hit(index: int, content: str, distance: float = 0.0) -> ChunkHit:
    return ChunkHit(chunk_id=uuid7(), document_id=uuid7(), chunk_index=index, content=content, distance=distance)


@pytest.fixture
def service(repos: Repositories, mock_llm: MockLLMClient) -> QueryService:
    return QueryService(
        router=IntentRouter(mock_llm, threshold=0.4),
        knowledge_graph=KnowledgeGraphService(repos.graph, repos.documents),
        embedding=EmbeddingService(mock_llm),
        vector_store=VectorStoreService(repos.chunks),
        llm_client=mock_llm,
    )


# =============================================================================
# Prompts
# =============================================================================


class TestPrompts:
    """Tests for prompt construction."""

    def test_retrieval_prompt_tags_chunks(self) -> None:
        matches = [
            ChunkSearchResult(chunk_id=uuid7(), document_id=uuid7(), chunk_index=4, content="Lu Bu was fierce.", similarity=0.9),
        ]
        prompt = build_retrieval_prompt("Who was Lu Bu?", matches)

        assert prompt.startswith("Use ONLY the following retrieved information")
        assert "[chunk 4] Lu Bu was fierce." in prompt
        assert "Question: Who was Lu Bu?" in prompt
        assert "[chunk 0]." in prompt

    def test_graph_prompt_carries_count_and_scope(self) -> None:
        answer = KgCountAnswer(entity_name="Cao Cao", count=25, predicate="children", document_title="Sanguo")
        prompt = build_graph_prompt(answer, "sons")

        assert "Entity: Cao Cao" in prompt
        assert "Relation: sons" in prompt
        assert 'Count within "Sanguo": 25' in prompt
        assert "knowledge graph" in prompt


# =============================================================================
# Answering
# =============================================================================


class TestQueryService:
    """Tests for routing between graph and retrieval answers."""

    async def test_graph_route(self, service: QueryService, repos: Repositories, mock_llm: MockLLMClient) -> None:
        """Test a routed question is answered from graph counts without sources."""
        cao_cao = repos.graph.entity("Cao Cao")
        for name in ("Cao Pi", "Cao Zhi"):
            await repos.graph.add_relation(
                subject_id=cao_cao.id, predicate="son", object_id=None, object_text=name, document_id=uuid7()
            )
        mock_llm.set_responses([CAO_CAO_CHILDREN, "Cao Cao had 2 children."])

        result = await service.answer("How many children did Cao Cao have?")

        assert result.answer == "Cao Cao had 2 children."
        assert result.route == ROUTE_GRAPH
        assert result.sources == []
        assert mock_llm.embedding_calls == []
        graph_prompt = mock_llm.calls[1][1].content
        assert "Count across all documents: 2" in graph_prompt

    async def test_unknown_entity_falls_back_to_retrieval(
        self, service: QueryService, repos: Repositories, mock_llm: MockLLMClient
    ) -> None:
        repos.chunks.hits = [_hit(2, "Cao Cao had many sons.", 0.25)]
        mock_llm.set_responses([CAO_CAO_CHILDREN, "Many [chunk 2]."])

        result = await service.answer("How many children did Cao Cao have?")

        assert result.route == ROUTE_RETRIEVAL
        assert result.sources == [QuerySource(chunk_index=2, similarity=0.8)]
        assert "[chunk 2] Cao Cao had many sons." in mock_llm.calls[1][1].content

    async def test_retrieval_passes_top_k_and_category(
        self, service: QueryService, repos: Repositories, mock_llm: MockLLMClient
    ) -> None:
        repos.chunks.hits = [_hit(i, f"text {i}") for i in range(5)]
        mock_llm.set_responses([NOT_ROUTED, "An answer."])

        result = await service.answer("Who was Lu Bu?", top_k=3, category="history")

        assert [s.chunk_index for s in result.sources] == [0, 1, 2]
        _, top_k, category = repos.chunks.nearest_calls[0]
        assert (top_k, category) == (3, "history")

    async def test_no_matches_returns_fixed_message(
        self, service: QueryService, mock_llm: MockLLMClient
    ) -> None:
        """Test no chat call is made when nothing is retrieved."""
        mock_llm.set_responses([NOT_ROUTED])

        result = await service.answer("Who was Lu Bu?")

        assert result.answer == NO_MATCH_MESSAGE
        assert result.sources == []
        assert len(mock_llm.calls) == 1

    async def test_blank_completion_is_an_error(
        self, service: QueryService, repos: Repositories, mock_llm: MockLLMClient
    ) -> None:
        repos.chunks.hits = [_hit(0, "Lu Bu rode Red Hare.")]
        mock_llm.set_responses([NOT_ROUTED, "  \n "])

        with pytest.raises(LLMAPIError, match="no content"):
            await service.answer("Who was Lu Bu?")


# =============================================================================
# Streaming
# =============================================================================


class TestAnswerStream:
    """Tests for streamed answers."""

    async def test_retrieval_answer_is_streamed(
        self, service: QueryService, repos: Repositories, mock_llm: MockLLMClient
    ) -> None:
        repos.chunks.hits = [_hit(0, "Lu Bu rode Red Hare.")]
        mock_llm.set_responses([NOT_ROUTED, "Lu Bu rode Red Hare [chunk 0]."])

        fragments = await _collect(service.answer_stream("Who was Lu Bu?"))

        assert len(fragments) > 1
        assert "".join(fragments) == "Lu Bu rode Red Hare [chunk 0]."

    async def test_graph_answer_is_one_fragment(
        self, service: QueryService, repos: Repositories, mock_llm: MockLLMClient
    ) -> None:
        repos.graph.entity("Cao Cao")
        mock_llm.set_responses([CAO_CAO_CHILDREN, "Cao Cao had 0 children on record."])

        fragments = await _collect(service.answer_stream("How many children did Cao Cao have?"))

        assert fragments == ["Cao Cao had 0 children on record."]

    async def test_no_matches_streams_fixed_message(self, service: QueryService, mock_llm: MockLLMClient) -> None:
        mock_llm.set_responses([NOT_ROUTED])
        assert await _collect(service.answer_stream("Who?")) == [NO_MATCH_MESSAGE]


class TestIterStreamFragments:
    """Tests for server-sent event parsing."""

    async def test_delta_content_and_done(self) -> None:
        frame = {"choices": [{"delta": {"content": "Hi"}}]}
        lines = _lines(f"data: {json.dumps(frame)}", "", "data: [DONE]", f"data: {json.dumps(frame)}")

        assert await _collect(iter_stream_fragments(lines)) == ["Hi"]

    async def test_empty_deltas_are_skipped(self) -> None:
        lines = _lines(
            'data: {"choices": [{"delta": {"role": "assistant"}}]}',
            'data: {"choices": [{"delta": {"content": ""}}]}',
            'data: {"choices": []}',
        )
        assert await _collect(iter_stream_fragments(lines)) == []

    async def test_non_json_payload_is_forwarded(self) -> None:
        lines = _lines("data: plain text", "data: 42", "also plain")
        assert await _collect(iter_stream_fragments(lines)) == ["plain text", "42", "also plain"]

    async def test_several_events_in_one_chunk(self) -> None:
        frame = lambda text: json.dumps({"choices": [{"delta": {"content": text}}]})  # noqa: E731
        raw = f"data: {frame('a')}\n\ndata: {frame('b')}\ndata: [DONE]\ndata: {frame('c')}"

        assert await _collect(iter_stream_fragments(_lines(raw))) == ["a", "b"]
