"""
Event and event participant models.

Events are extracted per document (a battle, a treaty, a birth). Participants
link an actor entity to an event with a role and an outcome, which is what
participation counts ("how many battles did X lose") are computed from.
"""

import uuid

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from kgrag.db.base import Base, CreatedAtMixin, UUIDMixin


class Event(UUIDMixin, CreatedAtMixin, Base):
    """
    An event extracted from a document.

    Attributes:
        document_id: Owning document
        event_type: Type label ("battle", "treaty", ...)
        event_category: Broader grouping ("military", ...)
        name: Event name as extracted
        chapter: Chapter label within the source, if any
        location: Location label, if any
        start_year / end_year: Optional year bounds
    """

    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning document",
    )

    event_type: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Event type label",
    )

    event_category: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Event category label",
    )

    name: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Event name",
    )

    chapter: Mapped[str | None] = mapped_column(String(200), nullable=True)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    start_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    end_year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<Event(name={self.name!r}, type={self.event_type!r})>"


class EventParticipant(UUIDMixin, CreatedAtMixin, Base):
    """An entity's involvement in an event."""

    event_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Event participated in",
    )

    actor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("graph_entities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Participating entity",
    )

    role: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Role in the event (commander, ally, ...)",
    )

    outcome: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Outcome for this actor (win, loss, ...)",
    )

    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        comment="Document the participation was extracted from",
    )

    chunk_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("chunks.id", ondelete="SET NULL"),
        nullable=True,
        comment="Supporting chunk, if the model cited one",
    )

    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<EventParticipant(event_id={self.event_id}, actor_id={self.actor_id}, outcome={self.outcome!r})>"


# === Indexes ===
Index("ix_event_participants_actor_outcome", EventParticipant.actor_id, EventParticipant.outcome)
