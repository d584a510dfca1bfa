"""
Document model for uploaded source material.

A document is created once per distinct upload (deduplicated by a SHA-256
fingerprint of the uploaded bytes). Its knowledge-graph status is owned by
the ingestion job orchestrator.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kgrag.db.base import Base, CreatedAtMixin, UUIDMixin
from kgrag.db.enums import KgStatus

if TYPE_CHECKING:
    from kgrag.db.models.chunk import Chunk


class Document(UUIDMixin, CreatedAtMixin, Base):
    """
    A source document in the corpus.

    Attributes:
        id: UUID7 primary key
        title: Display title (the uploaded filename)
        source_type: Origin of the document ("upload", "cli", ...)
        fingerprint: SHA-256 hex digest of the uploaded bytes
        category: Optional category label used to filter vector search
        kg_status: Knowledge-graph processing state (NULL means pending)
        kg_started_at: When the last extraction attempt started
        kg_completed_at: When the last extraction attempt finished
        kg_error: Error message of the last failed attempt
    """

    # === Core Fields ===
    title: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Display title (uploaded filename)",
    )

    source_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="upload",
        comment="Origin of the document",
    )

    fingerprint: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
        comment="SHA-256 of uploaded bytes for duplicate detection",
    )

    category: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Category label used for filtered retrieval",
    )

    # === Knowledge Graph Status ===
    kg_status: Mapped[KgStatus | None] = mapped_column(
        Enum(
            KgStatus,
            name="kgstatus",
            native_enum=False,
            length=20,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=True,
        comment="PENDING / PROCESSING / COMPLETED / FAILED (NULL = PENDING)",
    )

    kg_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the last extraction attempt started",
    )

    kg_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the last extraction attempt finished",
    )

    kg_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Error message of the last failed attempt",
    )

    # === Relationships ===
    chunks: Mapped[list["Chunk"]] = relationship(
        "Chunk",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, title={self.title[:50]!r}, kg_status={self.kg_status})>"

    @property
    def effective_kg_status(self) -> KgStatus:
        """Status with NULL folded into PENDING."""
        return self.kg_status or KgStatus.PENDING


# === Indexes ===
# Claim query filters on status and orders by age
Index("ix_documents_kg_status_created_at", Document.kg_status, Document.created_at)
