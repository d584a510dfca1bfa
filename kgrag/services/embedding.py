"""
Embedding batcher.

Turns an ordered list of texts into vectors with as few API round-trips as
the configured batch size allows, while keeping output positions aligned
with input positions. Blank inputs get an empty vector and are never sent.
"""

from collections.abc import Sequence

from kgrag.core.config import settings
from kgrag.core.logging import get_logger
from kgrag.services.llm_client import BaseLLMClient, EmbeddingError

logger = get_logger(__name__)


class EmbeddingService:
    """
    Batch texts through the embeddings endpoint.

    Usage:
        service = EmbeddingService(llm)
        vectors = await service.embed_batch([c.content for c in chunks])
    """

    def __init__(self, llm_client: BaseLLMClient, batch_size: int | None = None):
        self.llm = llm_client
        self.batch_size = max(1, batch_size or settings.embedding_batch_size)

    async def embed(self, text: str) -> list[float]:
        """Embed a single text (blank text yields an empty vector)."""
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: Sequence[str | None]) -> list[list[float]]:
        """
        Embed every text, preserving order.

        A batch is submitted as soon as it holds `batch_size` non-blank
        texts; the remainder is submitted after the loop. Any failing call
        aborts the whole operation.

        Raises:
            EmbeddingError: a response held no data or the wrong number of vectors
            LLMAPIError: the API call itself failed
        """
        results: list[list[float]] = [[] for _ in texts]
        pending_indexes: list[int] = []
        pending_texts: list[str] = []
        calls = 0

        for index, text in enumerate(texts):
            if text is None or not text.strip():
                continue
            pending_indexes.append(index)
            pending_texts.append(text)
            if len(pending_texts) == self.batch_size:
                await self._flush(pending_indexes, pending_texts, results)
                calls += 1
                pending_indexes, pending_texts = [], []

        if pending_texts:
            await self._flush(pending_indexes, pending_texts, results)
            calls += 1

        logger.debug(
            "Embedded texts",
            total=len(texts),
            embedded=sum(1 for r in results if r),
            api_calls=calls,
            batch_size=self.batch_size,
        )
        return results

    async def _flush(
        self,
        indexes: list[int],
        batch: list[str],
        results: list[list[float]],
    ) -> None:
        vectors = await self.llm.embed(batch)
        if not vectors:
            raise EmbeddingError("Embedding response contained no vectors")
        if len(vectors) != len(batch):
            raise EmbeddingError(
                f"Embedding response size mismatch: sent {len(batch)} inputs, "
                f"received {len(vectors)} vectors"
            )
        for index, vector in zip(indexes, vectors):
            results[index] = list(vector)
