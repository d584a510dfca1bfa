"""Category classification for uploads that arrive without a category."""

from collections.abc import Sequence

import httpx

from kgrag.core.config import settings
from kgrag.core.logging import get_logger
from kgrag.services.llm_client import BaseLLMClient, LLMError, LLMMessage

logger = get_logger(__name__)

FALLBACK_CATEGORY = "other"


class CategoryClassifier:
    """
    Ask the chat model for a single category label.

    The answer is accepted only when it matches one of the configured
    labels (case-insensitively) and is returned lowercased. Blank text, an
    unknown label, or a failed call all yield `fallback`.
    """

    def __init__(
        self,
        llm_client: BaseLLMClient,
        labels: Sequence[str] | None = None,
        sample_chars: int | None = None,
    ):
        self.llm = llm_client
        self.labels = [label.strip() for label in (labels or settings.category_labels) if label.strip()]
        self.sample_chars = sample_chars or settings.category_sample_chars

    @property
    def system_prompt(self) -> str:
        return (
            f"Classify the document into one of: {','.join(self.labels)}. "
            "Reply with the single label only."
        )

    async def classify(self, text: str | None, fallback: str = FALLBACK_CATEGORY) -> str:
        if text is None or not text.strip():
            return fallback

        messages = [
            LLMMessage(role="system", content=self.system_prompt),
            LLMMessage(role="user", content=text[: self.sample_chars]),
        ]
        try:
            response = await self.llm.complete(messages, temperature=0.0)
        except (LLMError, httpx.HTTPError) as e:
            logger.warning("Category classification failed", error=str(e))
            return fallback

        category = self.normalize(response.content, fallback)
        logger.info("Auto-classified document", category=category, label=response.content)
        return category

    def normalize(self, label: str | None, fallback: str = FALLBACK_CATEGORY) -> str:
        cleaned = (label or "").strip().strip(".").strip().lower()
        for known in self.labels:
            if cleaned == known.lower():
                return cleaned
        return fallback
