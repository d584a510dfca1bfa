"""
Knowledge extraction from document chunks.

All chunks of one document go to the language model in a single prompt,
each tagged with its index, and the model answers with one JSON object of
entities, events, participants and relations.

Malformed output is expected now and then. It is recovered through
`parse_llm_json` (direct decode, then a first-"{"-to-last-"}" slice) and,
failing that, degrades to an empty extraction with a warning: the document
still completes, just without facts. Errors from the chat API itself are
not swallowed; they propagate to the ingestion job, which marks the
document FAILED.
"""

import math
from collections.abc import Sequence
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from kgrag.core.config import settings
from kgrag.core.logging import get_logger
from kgrag.db.repositories import ChunkRow
from kgrag.services.llm_client import BaseLLMClient, LLMMessage
from kgrag.services.llm_json import ParseStatus, parse_llm_json

logger = get_logger(__name__)


# =============================================================================
# Prompts
# =============================================================================

EXTRACTION_SYSTEM_PROMPT = (
    "Extract structured entities, events, participants, and relations from the text. "
    "Output JSON only."
)

EXTRACTION_SCHEMA = """Return a single JSON object with exactly these keys:
{
  "entities": [
    {"name": "...", "canonical_key": "...", "entity_type": "...", "description": "...", "aliases": ["..."]}
  ],
  "events": [
    {"event_type": "...", "event_category": "...", "name": "...", "chapter": "...", "location": "...",
     "start_year": 0, "end_year": 0}
  ],
  "participants": [
    {"event_name": "...", "actor_name": "...", "role": "...", "outcome": "...", "chunk_index": 0}
  ],
  "relations": [
    {"subject_name": "...", "predicate": "...", "object_name": "...", "object_text": "...", "chunk_index": 0}
  ]
}
Rules:
- Use null for unknown values and [] for empty lists.
- participants.event_name must match an events.name exactly.
- Use object_name when the object is an entity, object_text otherwise.
- chunk_index refers to the [chunk N] tag the fact was found in."""


def build_extraction_prompt(chunks: Sequence[ChunkRow]) -> str:
    """Tag every chunk with its index, then append the output schema."""
    parts = [f"[chunk {chunk.chunk_index}] {chunk.content}" for chunk in chunks]
    return "\n\n".join(parts) + "\n\n" + EXTRACTION_SCHEMA


# =============================================================================
# Payload Models
# =============================================================================


def _lenient_int(value: Any) -> int | None:
    """Years and chunk indexes: accept ints or numeric strings, else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)


class ExtractedEntity(_Payload):
    name: str | None = None
    canonical_key: str | None = Field(default=None, validation_alias=AliasChoices("canonical_key", "canonicalKey"))
    entity_type: str | None = Field(default=None, validation_alias=AliasChoices("entity_type", "entityType", "type"))
    description: str | None = None
    aliases: list[str | None] = Field(default_factory=list)

    @field_validator("aliases", mode="before")
    @classmethod
    def _aliases_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


class ExtractedEvent(_Payload):
    event_type: str | None = Field(default=None, validation_alias=AliasChoices("event_type", "eventType"))
    event_category: str | None = Field(
        default=None, validation_alias=AliasChoices("event_category", "eventCategory")
    )
    name: str | None = None
    chapter: str | None = None
    location: str | None = None
    start_year: int | None = Field(default=None, validation_alias=AliasChoices("start_year", "startYear"))
    end_year: int | None = Field(default=None, validation_alias=AliasChoices("end_year", "endYear"))

    @field_validator("start_year", "end_year", mode="before")
    @classmethod
    def _years(cls, value: Any) -> int | None:
        return _lenient_int(value)


class ExtractedParticipant(_Payload):
    event_name: str | None = Field(default=None, validation_alias=AliasChoices("event_name", "eventName"))
    actor_name: str | None = Field(default=None, validation_alias=AliasChoices("actor_name", "actorName"))
    role: str | None = None
    outcome: str | None = None
    chunk_index: int | None = Field(default=None, validation_alias=AliasChoices("chunk_index", "chunkIndex"))

    @field_validator("chunk_index", mode="before")
    @classmethod
    def _chunk_index(cls, value: Any) -> int | None:
        return _lenient_int(value)


class ExtractedRelation(_Payload):
    subject_name: str | None = Field(default=None, validation_alias=AliasChoices("subject_name", "subjectName"))
    predicate: str | None = None
    object_name: str | None = Field(default=None, validation_alias=AliasChoices("object_name", "objectName"))
    object_text: str | None = Field(default=None, validation_alias=AliasChoices("object_text", "objectText"))
    chunk_index: int | None = Field(default=None, validation_alias=AliasChoices("chunk_index", "chunkIndex"))

    @field_validator("chunk_index", mode="before")
    @classmethod
    def _chunk_index(cls, value: Any) -> int | None:
        return _lenient_int(value)


class ExtractionResult(_Payload):
    """Everything extracted from one document."""

    entities: list[ExtractedEntity] = Field(default_factory=list)
    events: list[ExtractedEvent] = Field(default_factory=list)
    participants: list[ExtractedParticipant] = Field(default_factory=list)
    relations: list[ExtractedRelation] = Field(default_factory=list)

    @field_validator("entities", "events", "participants", "relations", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def is_empty(self) -> bool:
        return not (self.entities or self.events or self.participants or self.relations)

    def counts(self) -> dict[str, int]:
        return {
            "entities": len(self.entities),
            "events": len(self.events),
            "participants": len(self.participants),
            "relations": len(self.relations),
        }


# =============================================================================
# Extraction Service
# =============================================================================


class KgExtractionService:
    """
    Extract a knowledge-graph payload from the chunks of one document.

    Usage:
        async with get_llm_client() as llm:
            extraction = await KgExtractionService(llm).extract(chunk_rows)
    """

    def __init__(self, llm_client: BaseLLMClient, temperature: float | None = None):
        self.llm = llm_client
        self.temperature = settings.kg_extraction_temperature if temperature is None else temperature

    async def extract(self, chunks: Sequence[ChunkRow]) -> ExtractionResult:
        """
        Run extraction over all chunks in one model call.

        Returns an empty result without calling the model when there are no
        chunks, and an empty result (logged) when the output cannot be parsed.

        Raises:
            LLMError: the chat API call failed
        """
        if not chunks:
            return ExtractionResult()

        messages = [
            LLMMessage(role="system", content=EXTRACTION_SYSTEM_PROMPT),
            LLMMessage(role="user", content=build_extraction_prompt(chunks)),
        ]
        response = await self.llm.complete(messages, temperature=self.temperature)
        return self.parse(response.content)

    def parse(self, content: str | None) -> ExtractionResult:
        """Parse model output, degrading to an empty result on failure."""
        parsed = parse_llm_json(content)
        if not parsed.ok:
            logger.warning(
                "Extraction output is not JSON, treating as empty",
                error=parsed.error,
                preview=(content or "")[:500],
            )
            return ExtractionResult()

        if parsed.status == ParseStatus.REPAIRED:
            logger.info("Extraction output repaired by slicing JSON object")

        try:
            result = ExtractionResult.model_validate(parsed.data)
        except ValidationError as e:
            logger.warning(
                "Extraction output does not match schema, treating as empty",
                errors=e.error_count(),
                error=str(e)[:500],
            )
            return ExtractionResult()

        logger.debug("Parsed extraction", **result.counts())
        return result
