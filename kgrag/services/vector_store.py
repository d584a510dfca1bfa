"""
Vector store: chunk persistence and nearest-neighbour search over pgvector.

Search results are fronted by `SearchCache`, an explicitly constructed
time-to-live cache owned by the application (one per process, kept on
`app.state`) and passed to each `VectorStoreService`.
"""

import hashlib
import struct
import threading
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from kgrag.core.config import settings
from kgrag.core.logging import get_logger
from kgrag.db.repositories import ChunkRepository
from kgrag.services.chunking import ChunkData

logger = get_logger(__name__)

T = TypeVar("T")


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ChunkSearchResult:
    """A retrieved chunk with its similarity to the query vector."""

    chunk_id: uuid.UUID
    document_id: uuid.UUID
    chunk_index: int
    content: str
    similarity: float


def similarity_from_distance(distance: float) -> float:
    """
    Map an L2 distance onto (0, 1]: ``1 / (1 + distance)``.

    Zero distance gives exactly 1.0; larger distances give strictly smaller
    scores.
    """
    return 1.0 / (1.0 + max(distance, 0.0))


# =============================================================================
# Search Cache
# =============================================================================


class SearchCache(Generic[T]):
    """
    Read-through TTL cache for search results.

    Expiry is checked lazily when an entry is read; nothing sweeps the map,
    so its size is bounded only by the number of distinct queries seen
    within one TTL window. `clock` is injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self._clock = clock
        self._entries: dict[str, tuple[float, T]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "SearchCache":
        return cls(
            ttl_seconds=settings.vector_cache_ttl_seconds,
            enabled=settings.vector_cache_enabled,
        )

    @staticmethod
    def fingerprint(vector: Sequence[float], top_k: int, category: str | None) -> str:
        """Deterministic key over the vector's float32 bytes, top_k and category."""
        digest = hashlib.sha256()
        digest.update(struct.pack(f"<{len(vector)}f", *vector))
        digest.update(f"|{top_k}|{category or ''}".encode("utf-8"))
        return digest.hexdigest()

    def get(self, key: str) -> T | None:
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def put(self, key: str, value: T) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# Vector Store Service
# =============================================================================


class VectorStoreService:
    """
    Persist embedded chunks and search them.

    Usage:
        store = VectorStoreService(ChunkRepository(db), cache)
        await store.persist(chunks)
        hits = await store.search(query_vector, top_k=5, category="history")
    """

    def __init__(self, chunks: ChunkRepository, cache: SearchCache | None = None):
        self.chunks = chunks
        self.cache = cache

    async def persist(self, chunks: Sequence[ChunkData]) -> int:
        """
        Upsert chunks that carry an embedding; returns how many were stored.

        Chunks without an embedding are skipped with a warning.
        """
        embedded: list[ChunkData] = []
        for chunk in chunks:
            if not chunk.has_embedding:
                logger.warning(
                    "Skipping chunk without embedding",
                    chunk_id=str(chunk.id),
                    document_id=str(chunk.document_id),
                    chunk_index=chunk.chunk_index,
                )
                continue
            embedded.append(chunk)

        stored = await self.chunks.upsert_many(embedded)
        logger.info("Persisted chunks", received=len(chunks), stored=stored)
        return stored

    async def search(
        self,
        vector: Sequence[float],
        top_k: int,
        category: str | None = None,
    ) -> list[ChunkSearchResult]:
        """The `top_k` chunks nearest to `vector`, best first."""
        if not vector:
            return []

        key = None
        if self.cache is not None:
            key = SearchCache.fingerprint(vector, top_k, category)
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Vector search cache hit", top_k=top_k, category=category)
                return cached

        hits = await self.chunks.nearest(vector, top_k, category)
        results = [
            ChunkSearchResult(
                chunk_id=hit.chunk_id,
                document_id=hit.document_id,
                chunk_index=hit.chunk_index,
                content=hit.content,
                similarity=similarity_from_distance(hit.distance),
            )
            for hit in hits
        ]

        if self.cache is not None and key is not None:
            self.cache.put(key, results)
        return results
