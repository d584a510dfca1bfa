"""
Parsing of JSON objects out of model output.

Models asked for "JSON only" still wrap objects in prose or code fences
often enough that a failed decode is an expected outcome rather than an
error. `parse_llm_json` therefore returns an `LLMJsonResult` whose status
says how the payload was obtained, instead of raising.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ParseStatus(str, Enum):
    """How a JSON payload was recovered from model output."""

    PARSED = "parsed"  # content decoded as-is
    REPAIRED = "repaired"  # decoded after slicing first "{" .. last "}"
    FAILED = "failed"  # no JSON object could be recovered


@dataclass(frozen=True)
class LLMJsonResult:
    """Outcome of parsing model output as a JSON object."""

    status: ParseStatus
    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.data is not None


def _decode_object(text: str) -> dict[str, Any]:
    value = json.loads(text)
    if not isinstance(value, dict):
        raise ValueError(f"expected a JSON object, got {type(value).__name__}")
    return value


def parse_llm_json(content: str | None) -> LLMJsonResult:
    """
    Decode model output into a JSON object.

    1. Decode the content directly.
    2. Otherwise decode the slice from the first "{" to the last "}".
    3. Otherwise report FAILED with the last decode error.
    """
    if not content or not content.strip():
        return LLMJsonResult(status=ParseStatus.FAILED, error="empty content")

    try:
        return LLMJsonResult(status=ParseStatus.PARSED, data=_decode_object(content))
    except ValueError as e:
        error = str(e)

    start = content.find("{")
    end = content.rfind("}")
    if start != -1 and end > start:
        try:
            return LLMJsonResult(
                status=ParseStatus.REPAIRED,
                data=_decode_object(content[start : end + 1]),
            )
        except ValueError as e:
            error = str(e)

    return LLMJsonResult(status=ParseStatus.FAILED, error=error)
