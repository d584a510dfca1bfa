"""
Graph entity and alias models.

An entity's identity is its canonical key (see `kgrag.core.text.canonical_key`):
there is exactly one row per key. Aliases are alternative surface forms
collected from extraction and used as a last-resort lookup by name.
"""

import uuid

from sqlalchemy import ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kgrag.db.base import Base, CreatedAtMixin, TimestampMixin, UUIDMixin


class GraphEntity(UUIDMixin, TimestampMixin, Base):
    """
    A node in the knowledge graph (person, place, organization, ...).

    Attributes:
        id: UUID7 primary key
        name: Display name as first extracted
        canonical_key: Unique normalized identity
        entity_type: Free-form type label from extraction
        description: Optional description

    Example:
        GraphEntity(name="Cao Cao", canonical_key="cao_cao", entity_type="person")
    """

    name: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Display name",
    )

    canonical_key: Mapped[str] = mapped_column(
        String(500),
        unique=True,
        nullable=False,
        comment="Normalized identity; one entity per key",
    )

    entity_type: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Type label from extraction",
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Free-text description",
    )

    aliases: Mapped[list["EntityAlias"]] = relationship(
        "EntityAlias",
        back_populates="entity",
        cascade="all, delete-orphan",
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"<GraphEntity(name={self.name!r}, key={self.canonical_key!r})>"


class EntityAlias(UUIDMixin, CreatedAtMixin, Base):
    """An alternative name for a graph entity."""

    entity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("graph_entities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning entity",
    )

    alias: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Alias text as extracted",
    )

    language: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        comment="Optional language tag",
    )

    entity: Mapped["GraphEntity"] = relationship(
        "GraphEntity",
        back_populates="aliases",
    )

    def __repr__(self) -> str:
        return f"<EntityAlias(entity_id={self.entity_id}, alias={self.alias!r})>"


# === Indexes ===
# Case-insensitive lookups by name and alias
Index("ix_graph_entities_lower_name", func.lower(GraphEntity.name))
Index("ix_entity_aliases_lower_alias", func.lower(EntityAlias.alias))
