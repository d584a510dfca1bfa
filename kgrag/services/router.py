"""
Intent router: decides whether a question is answered from the graph.

The question is classified by the chat model into
``{intent, subject, predicate, object, confidence}``. Only a confident
``relation_count`` intent with a subject is routed; everything else,
including network and parse failures, yields ``None`` and the caller falls
back to vector search.
"""

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from kgrag.core.config import settings
from kgrag.core.logging import get_logger
from kgrag.core.text import normalize_phrase
from kgrag.services.llm_client import BaseLLMClient, LLMError, LLMMessage
from kgrag.services.llm_json import parse_llm_json

logger = get_logger(__name__)

RELATION_COUNT_INTENT = "relation_count"

INTENT_SYSTEM_PROMPT = """You are an intent classifier for a knowledge graph QA system.
Output JSON only with fields: intent (relation_count or none), subject, predicate, object, confidence (0-1).
Example: {"intent":"relation_count","subject":"Cao Cao","predicate":"child","object":"children","confidence":0.8}"""

# Trailing punctuation that often follows names in questions
_TRAILING_PUNCTUATION = re.compile(r"[?？。，、！!;；.,]+$")


class IntentPayload(BaseModel):
    """Classifier output; unknown keys are ignored and missing ones default."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    intent: str | None = None
    subject: str | None = None
    predicate: str | None = None
    object: str | None = None
    confidence: float = Field(default=0.0, allow_inf_nan=False)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: object) -> object:
        return 0.0 if value is None else value


@dataclass(frozen=True)
class RoutedIntent:
    """A question accepted for the graph route."""

    subject: str
    predicate: str
    object: str | None
    confidence: float


def _clean_name(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = _TRAILING_PUNCTUATION.sub("", value.strip()).strip()
    return cleaned or None


def choose_predicate(
    predicate: str | None,
    object_phrase: str | None,
    table: Mapping[str, Sequence[str]],
) -> str | None:
    """
    Pick the predicate to count.

    1. An explicit, non-blank predicate (lowercased).
    2. The first table key with a synonym contained in the object phrase.
    3. The lowercased object phrase itself.
    """
    if predicate and predicate.strip():
        return predicate.strip().lower()

    phrase = normalize_phrase(object_phrase)
    if not phrase:
        return None
    for key, synonyms in table.items():
        if any(s and s.lower() in phrase for s in synonyms):
            return key
    return phrase


class IntentRouter:
    """
    Classify questions for the graph route.

    Usage:
        router = IntentRouter(llm)
        routed = await router.route("How many sons did Cao Cao have?")
        if routed is None:
            ...  # vector search
    """

    def __init__(
        self,
        llm_client: BaseLLMClient,
        predicate_table: Mapping[str, Sequence[str]] | None = None,
        threshold: float | None = None,
    ):
        self.llm = llm_client
        self.predicate_table = settings.predicate_synonyms if predicate_table is None else predicate_table
        self.threshold = settings.router_confidence_threshold if threshold is None else threshold

    async def classify(self, question: str) -> IntentPayload | None:
        """Raw classifier payload, or None when the call or the parse fails."""
        messages = [
            LLMMessage(role="system", content=INTENT_SYSTEM_PROMPT),
            LLMMessage(role="user", content=question),
        ]
        try:
            response = await self.llm.complete(messages, temperature=0.0)
        except (LLMError, httpx.HTTPError) as e:
            logger.warning("Intent classification call failed", error=str(e))
            return None

        parsed = parse_llm_json(response.content)
        if not parsed.ok:
            logger.info("Intent classification output is not JSON", error=parsed.error)
            return None
        try:
            return IntentPayload.model_validate(parsed.data)
        except ValidationError as e:
            logger.info("Intent classification output is invalid", errors=e.error_count())
            return None

    async def route(self, question: str | None) -> RoutedIntent | None:
        if question is None or not question.strip():
            return None

        payload = await self.classify(question.strip())
        if payload is None:
            return None

        intent = normalize_phrase(payload.intent)
        if intent != RELATION_COUNT_INTENT or payload.confidence < self.threshold:
            logger.debug("Question not routed to graph", intent=intent, confidence=payload.confidence)
            return None

        subject = _clean_name(payload.subject)
        object_phrase = _clean_name(payload.object)
        predicate = choose_predicate(payload.predicate, object_phrase, self.predicate_table)
        if subject is None or predicate is None:
            return None

        logger.info(
            "Question routed to graph",
            subject=subject,
            predicate=predicate,
            confidence=payload.confidence,
        )
        return RoutedIntent(
            subject=subject,
            predicate=predicate,
            object=object_phrase,
            confidence=payload.confidence,
        )
