"""
Relation model for knowledge-graph edges.

A relation always has a subject entity and a predicate. The object is either
another entity or free text ("three sons"). Deduplication within a document
is done by the graph upsert service using a normalized triple hash, not by a
database constraint, because the object may be text or an entity.
"""

import uuid

from sqlalchemy import ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from kgrag.db.base import Base, CreatedAtMixin, UUIDMixin


class Relation(UUIDMixin, CreatedAtMixin, Base):
    """
    A directed edge: subject -[predicate]-> object.

    Attributes:
        subject_id: Subject entity
        predicate: Predicate as extracted ("child", "ally_of", ...)
        object_id: Object entity, when the object is a known entity
        object_text: Free-text object, when it is not
        document_id: Document the relation was extracted from
        chunk_id: Supporting chunk, if cited
    """

    subject_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("graph_entities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Subject entity",
    )

    predicate: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Predicate label",
    )

    object_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("graph_entities.id", ondelete="CASCADE"),
        nullable=True,
        comment="Object entity (NULL when object is free text)",
    )

    object_text: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Free-text object",
    )

    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Source document",
    )

    chunk_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("chunks.id", ondelete="SET NULL"),
        nullable=True,
        comment="Supporting chunk",
    )

    def __repr__(self) -> str:
        target = self.object_id or self.object_text
        return f"<Relation({self.subject_id} -[{self.predicate}]-> {target})>"


# === Indexes ===
Index("ix_relations_lower_predicate", func.lower(Relation.predicate))
