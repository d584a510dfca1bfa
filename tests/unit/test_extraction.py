"""Unit tests for model-output JSON parsing and knowledge extraction."""

import json

import pytest
from uuid6 import uuid7

from kgrag.db.repositories import ChunkRow
from kgrag.services.extraction import (
    EXTRACTION_SYSTEM_PROMPT,
    ExtractionResult,
    KgExtractionService,
    build_extraction_prompt,
)
from kgrag.services.llm_client import LLMAPIError, LLMMessage, LLMResponse, MockLLMClient
from kgrag.services.llm_json import ParseStatus, parse_llm_json

SAMPLE_PAYLOAD = {
    "entities": [
        {"name": "Cao Cao", "canonical_key": "cao_cao", "entity_type": "person", "aliases": ["Mengde"]},
    ],
    "events": [
        {"name": "Battle of Red Cliffs", "event_type": "battle", "start_year": 208},
    ],
    "participants": [
        {"event_name": "Battle of Red Cliffs", "actor_name": "Cao Cao", "outcome": "loss", "chunk_index": 0},
    ],
    "relations": [
        {"subject_name": "Cao Cao", "predicate": "son", "object_name": "Cao Pi", "chunk_index": 1},
    ],
}


def _rows(*contents: str) -> list[ChunkRow]:
    return [ChunkRow(id=uuid7(), chunk_index=i, content=c) for i, c in enumerate(contents)]


class FailingChatClient(MockLLMClient):
    async def complete(self, messages: list[LLMMessage], temperature: float = 0.0) -> LLMResponse:
        raise LLMAPIError("chat completion: API returned status 500")


# =============================================================================
# JSON Recovery
# =============================================================================


class TestParseLlmJson:
    """Tests for recovering JSON objects from model output."""

    def test_plain_json(self) -> None:
        result = parse_llm_json('{"a": 1}')
        assert result.status == ParseStatus.PARSED
        assert result.data == {"a": 1}

    def test_code_fence_is_repaired(self) -> None:
        """Test fenced output is recovered by slicing the outer object."""
        content = 'Here you go:\n```json\n{"a": {"b": 2}}\n```\nThanks!'
        result = parse_llm_json(content)

        assert result.status == ParseStatus.REPAIRED
        assert result.data == {"a": {"b": 2}}

    def test_unrecoverable_output(self) -> None:
        """Test prose without an object fails without raising."""
        result = parse_llm_json("I cannot help with that.")
        assert result.status == ParseStatus.FAILED
        assert not result.ok
        assert result.error

    def test_empty_and_non_object(self) -> None:
        """Test blank content and top-level arrays are failures."""
        assert parse_llm_json("").status == ParseStatus.FAILED
        assert parse_llm_json(None).status == ParseStatus.FAILED
        assert parse_llm_json("[1, 2]").status == ParseStatus.FAILED


# =============================================================================
# Payload Parsing
# =============================================================================


class TestExtractionParse:
    """Tests for validating the extraction payload."""

    def test_full_payload(self, mock_llm: MockLLMClient) -> None:
        result = KgExtractionService(mock_llm).parse(json.dumps(SAMPLE_PAYLOAD))

        assert result.counts() == {"entities": 1, "events": 1, "participants": 1, "relations": 1}
        assert result.entities[0].aliases == ["Mengde"]
        assert result.events[0].start_year == 208
        assert result.relations[0].chunk_index == 1

    def test_camel_case_keys(self, mock_llm: MockLLMClient) -> None:
        """Test camelCase field names are accepted."""
        content = json.dumps(
            {
                "entities": [{"name": "Liu Bei", "canonicalKey": "liu_bei", "entityType": "person"}],
                "relations": [{"subjectName": "Liu Bei", "predicate": "ally", "objectText": "Sun Quan"}],
            }
        )
        result = KgExtractionService(mock_llm).parse(content)

        assert result.entities[0].canonical_key == "liu_bei"
        assert result.entities[0].entity_type == "person"
        assert result.relations[0].subject_name == "Liu Bei"
        assert result.relations[0].object_text == "Sun Quan"

    def test_lenient_integers(self, mock_llm: MockLLMClient) -> None:
        """Test numeric strings parse and junk becomes None."""
        content = json.dumps(
            {
                "events": [{"name": "Guandu", "start_year": "200", "end_year": "unknown"}],
                "participants": [{"event_name": "Guandu", "actor_name": "Yuan Shao", "chunk_index": "2"}],
            }
        )
        result = KgExtractionService(mock_llm).parse(content)

        assert result.events[0].start_year == 200
        assert result.events[0].end_year is None
        assert result.participants[0].chunk_index == 2

    def test_null_sections_and_missing_keys(self, mock_llm: MockLLMClient) -> None:
        """Test null lists and absent sections become empty lists."""
        result = KgExtractionService(mock_llm).parse('{"entities": null, "events": []}')
        assert result.is_empty
        assert result.relations == []

    def test_fenced_payload_is_repaired(self, mock_llm: MockLLMClient) -> None:
        content = "```json\n" + json.dumps(SAMPLE_PAYLOAD) + "\n```"
        result = KgExtractionService(mock_llm).parse(content)
        assert len(result.entities) == 1

    def test_unparseable_output_is_empty(self, mock_llm: MockLLMClient) -> None:
        """Test garbage degrades to an empty extraction."""
        result = KgExtractionService(mock_llm).parse("Sorry, no JSON today")
        assert isinstance(result, ExtractionResult)
        assert result.is_empty

    def test_schema_mismatch_is_empty(self, mock_llm: MockLLMClient) -> None:
        """Test a wrongly typed section degrades to an empty extraction."""
        result = KgExtractionService(mock_llm).parse('{"entities": "Cao Cao"}')
        assert result.is_empty


# =============================================================================
# Extraction Calls
# =============================================================================


class TestKgExtractionService:
    """Tests for the model call."""

    def test_prompt_tags_each_chunk(self) -> None:
        prompt = build_extraction_prompt(_rows("First text.", "Second text."))

        assert "[chunk 0] First text." in prompt
        assert "[chunk 1] Second text." in prompt
        assert '"participants"' in prompt

    async def test_no_chunks_skips_model(self, mock_llm: MockLLMClient) -> None:
        result = await KgExtractionService(mock_llm).extract([])
        assert result.is_empty
        assert mock_llm.calls == []

    async def test_single_call_for_all_chunks(self, mock_llm: MockLLMClient) -> None:
        """Test one request carries every chunk of the document."""
        mock_llm.set_responses([json.dumps(SAMPLE_PAYLOAD)])

        result = await KgExtractionService(mock_llm).extract(_rows("a", "b", "c"))

        assert len(result.relations) == 1
        assert len(mock_llm.calls) == 1
        system, user = mock_llm.calls[0]
        assert system.content == EXTRACTION_SYSTEM_PROMPT
        assert "[chunk 2] c" in user.content

    async def test_chat_errors_propagate(self) -> None:
        """Test API failures are not swallowed."""
        with pytest.raises(LLMAPIError):
            await KgExtractionService(FailingChatClient()).extract(_rows("a"))
