"""
Upload ingestion pipeline.

    bytes --sha256--> duplicate?  yes -> existing document id, 0 chunks
                        | no
                        v
    extract text -> category (given or classified) -> document (PENDING)
                 -> chunk -> embed -> persist chunks -> commit

Knowledge-graph extraction is not part of this pipeline; the caller
triggers the ingestion job afterwards, which picks the new PENDING
document up.
"""

import hashlib
import uuid
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from kgrag.core.logging import get_logger
from kgrag.db.models import Document
from kgrag.db.repositories import Repositories
from kgrag.db.session import transaction
from kgrag.services.chunking import chunk_text
from kgrag.services.classifier import FALLBACK_CATEGORY, CategoryClassifier
from kgrag.services.embedding import EmbeddingService
from kgrag.services.text_extraction import extract_text
from kgrag.services.vector_store import VectorStoreService

logger = get_logger(__name__)


@dataclass(frozen=True)
class IngestResult:
    document_id: uuid.UUID
    chunk_count: int
    duplicate: bool = False


def fingerprint(data: bytes) -> str:
    """Hex SHA-256 of the uploaded bytes."""
    return hashlib.sha256(data).hexdigest()


class DocumentIngestionService:
    """
    Turn uploaded files into searchable chunks.

    Usage:
        service = DocumentIngestionService(repos, EmbeddingService(llm), store, CategoryClassifier(llm))
        result = await service.ingest_upload("sanguo.pdf", data)
    """

    def __init__(
        self,
        repos: Repositories,
        embedding: EmbeddingService,
        vector_store: VectorStoreService,
        classifier: CategoryClassifier | None = None,
    ):
        self.repos = repos
        self.embedding = embedding
        self.vector_store = vector_store
        self.classifier = classifier

    async def ingest(self, document: Document, text: str | None) -> int:
        """
        Chunk, embed and store `text` for an existing document.

        Returns the number of chunks persisted. Does not commit.

        Raises:
            LLMError: the embeddings call failed (no chunks are stored)
        """
        chunks = chunk_text(document.id, text)
        if not chunks:
            logger.warning("Document produced no chunks", document_id=str(document.id))
            return 0

        vectors = await self.embedding.embed_batch([chunk.content for chunk in chunks])
        for chunk, vector in zip(chunks, vectors):
            chunk.embedding = vector or None

        count = await self.vector_store.persist(chunks)
        logger.info("Ingested document", document_id=str(document.id), chunks=len(chunks), stored=count)
        return count

    async def ingest_upload(
        self,
        filename: str,
        data: bytes,
        category: str | None = None,
    ) -> IngestResult:
        """
        Run the full upload pipeline and commit.

        Identical bytes uploaded again return the original document id with
        a chunk count of 0 and ``duplicate=True``; nothing is extracted or
        embedded a second time.

        Raises:
            TextExtractionError: the file could not be read as text
            LLMError: the embeddings call failed
        """
        digest = fingerprint(data)
        existing = await self.repos.documents.find_by_fingerprint(digest)
        if existing is not None:
            logger.info("Duplicate upload detected", filename=filename, document_id=str(existing.id))
            return IngestResult(document_id=existing.id, chunk_count=0, duplicate=True)

        text = extract_text(data, filename)
        resolved_category = await self._resolve_category(category, text)

        try:
            async with transaction(self.repos.session):
                document = await self.repos.documents.create(
                    title=filename,
                    source_type="upload",
                    category=resolved_category,
                    fingerprint=digest,
                )
                logger.info(
                    "Upload received",
                    filename=filename,
                    document_id=str(document.id),
                    category=resolved_category,
                )
                count = await self.ingest(document, text)
        except IntegrityError:
            # Concurrent upload of the same bytes won the unique fingerprint
            existing = await self.repos.documents.find_by_fingerprint(digest)
            if existing is None:
                raise
            logger.info("Duplicate upload detected on insert", filename=filename, document_id=str(existing.id))
            return IngestResult(document_id=existing.id, chunk_count=0, duplicate=True)

        return IngestResult(document_id=document.id, chunk_count=count)

    async def _resolve_category(self, category: str | None, text: str) -> str:
        if category and category.strip():
            return category.strip()
        if self.classifier is None:
            return FALLBACK_CATEGORY
        return await self.classifier.classify(text, FALLBACK_CATEGORY)
