"""
Chunk model for embedded text segments.

Chunks are produced by the text chunker at upload time and carry the
embedding used for nearest-neighbour search. Content is immutable; only the
embedding may be backfilled by a later upsert.
"""

import uuid
from typing import TYPE_CHECKING

from pgvector.sqlalchemy import Vector
from sqlalchemy import ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kgrag.core.config import settings
from kgrag.db.base import Base, CreatedAtMixin, UUIDMixin

if TYPE_CHECKING:
    from kgrag.db.models.document import Document


class Chunk(UUIDMixin, CreatedAtMixin, Base):
    """
    A normalized text segment of a document.

    Attributes:
        id: UUID7 primary key (assigned by the chunker)
        document_id: Owning document
        chunk_index: Zero-based position in the document
        content: Normalized chunk text
        embedding: Dense vector, NULL until embedded

    Constraints:
        - (document_id, chunk_index) must be unique
    """

    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning document",
    )

    chunk_index: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Position in document sequence (0-indexed)",
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Normalized chunk text",
    )

    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=True,
        comment="Embedding vector (NULL until embedded)",
    )

    document: Mapped["Document"] = relationship(
        "Document",
        back_populates="chunks",
    )

    __table_args__ = (
        UniqueConstraint(
            "document_id",
            "chunk_index",
            name="uq_chunks_document_id_chunk_index",
        ),
    )

    def __repr__(self) -> str:
        return f"<Chunk(document_id={self.document_id}, index={self.chunk_index}, len={len(self.content)})>"
