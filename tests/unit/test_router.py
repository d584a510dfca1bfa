"""Unit tests for the intent router."""

import json

import httpx
import pytest

from kgrag.services.llm_client import LLMMessage, LLMResponse, MockLLMClient
from kgrag.services.router import INTENT_SYSTEM_PROMPT, IntentRouter, RoutedIntent, choose_predicate

TABLE = {"children": ["child", "children", "son", "sons", "daughter", "daughters"]}


def _intent(**fields) -> str:
    payload = {"intent": "relation_count", "confidence": 0.9}
    payload.update(fields)
    return json.dumps(payload)


def _router(llm: MockLLMClient, threshold: float = 0.4) -> IntentRouter:
    return IntentRouter(llm, predicate_table=TABLE, threshold=threshold)


class NetworkDownClient(MockLLMClient):
    async def complete(self, messages: list[LLMMessage], temperature: float = 0.0) -> LLMResponse:
        raise httpx.ConnectError("connection refused")


class TestChoosePredicate:
    """Tests for predicate selection."""

    def test_explicit_predicate_wins(self) -> None:
        assert choose_predicate(" Child ", "sons", TABLE) == "child"

    def test_object_phrase_maps_through_table(self) -> None:
        assert choose_predicate(None, "his sons", TABLE) == "children"

    def test_unmapped_object_phrase(self) -> None:
        assert choose_predicate("", "Generals", TABLE) == "generals"

    def test_nothing_to_choose(self) -> None:
        assert choose_predicate(None, None, TABLE) is None


class TestIntentRouter:
    """Tests for routing decisions."""

    async def test_confident_relation_count_is_routed(self, mock_llm: MockLLMClient) -> None:
        mock_llm.set_responses([_intent(subject="Cao Cao", predicate="child", object="children", confidence=0.8)])

        routed = await _router(mock_llm).route("How many children did Cao Cao have?")

        assert routed == RoutedIntent(subject="Cao Cao", predicate="child", object="children", confidence=0.8)
        system, user = mock_llm.calls[0]
        assert system.content == INTENT_SYSTEM_PROMPT
        assert user.content == "How many children did Cao Cao have?"

    async def test_trailing_punctuation_is_stripped(self, mock_llm: MockLLMClient) -> None:
        mock_llm.set_responses([_intent(subject="Cao Cao?", object="sons.")])

        routed = await _router(mock_llm).route("Cao Cao sons?")

        assert routed.subject == "Cao Cao"
        assert routed.predicate == "children"
        assert routed.object == "sons"

    async def test_low_confidence_is_not_routed(self, mock_llm: MockLLMClient) -> None:
        mock_llm.set_responses([_intent(subject="Cao Cao", predicate="child", confidence=0.39)])
        assert await _router(mock_llm).route("Did Cao Cao have kids?") is None

    async def test_threshold_is_inclusive(self, mock_llm: MockLLMClient) -> None:
        mock_llm.set_responses([_intent(subject="Cao Cao", predicate="child", confidence=0.4)])
        assert await _router(mock_llm).route("Cao Cao children") is not None

    async def test_other_intent_is_not_routed(self, mock_llm: MockLLMClient) -> None:
        mock_llm.set_responses([json.dumps({"intent": "none", "confidence": 0.99})])
        assert await _router(mock_llm).route("Who was Lu Bu?") is None

    async def test_missing_subject_is_not_routed(self, mock_llm: MockLLMClient) -> None:
        mock_llm.set_responses([_intent(subject=" ?", predicate="child")])
        assert await _router(mock_llm).route("How many children?") is None

    async def test_missing_confidence_is_zero(self, mock_llm: MockLLMClient) -> None:
        mock_llm.set_responses([json.dumps({"intent": "relation_count", "subject": "Cao Cao", "confidence": None})])
        assert await _router(mock_llm).route("Cao Cao children") is None

    async def test_unparseable_output_is_not_routed(self, mock_llm: MockLLMClient) -> None:
        mock_llm.set_responses(["relation_count, Cao Cao, 0.9"])
        assert await _router(mock_llm).route("Cao Cao children") is None

    async def test_network_error_is_not_routed(self) -> None:
        assert await _router(NetworkDownClient()).route("Cao Cao children") is None

    async def test_blank_question_skips_model(self, mock_llm: MockLLMClient) -> None:
        assert await _router(mock_llm).route("   ") is None
        assert mock_llm.calls == []

    @pytest.mark.parametrize("confidence", ["0.9", 0.9, 1])
    async def test_numeric_confidence_forms(self, mock_llm: MockLLMClient, confidence) -> None:
        mock_llm.set_responses([_intent(subject="Cao Cao", predicate="child", confidence=confidence)])
        assert await _router(mock_llm).route("Cao Cao children") is not None

    @pytest.mark.parametrize("confidence", [float("nan"), float("inf"), "NaN"])
    async def test_non_finite_confidence_is_not_routed(self, mock_llm: MockLLMClient, confidence) -> None:
        mock_llm.set_responses([_intent(subject="Cao Cao", predicate="child", confidence=confidence)])
        assert await _router(mock_llm).route("How many children did Cao Cao have?") is None
