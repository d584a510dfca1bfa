"""
Run history for the knowledge-graph ingestion job.

One row per `run_once` invocation, append-only. The row is committed as
STARTED before any document is claimed so that crashed runs stay visible.
"""

from datetime import datetime

from sqlalchemy import DateTime, Enum, Index, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from kgrag.db.base import Base, UUIDMixin
from kgrag.db.enums import RunStatus


class KgRunHistory(UUIDMixin, Base):
    """
    A single ingestion job run.

    Lifecycle:
        STARTED -> COMPLETED
                |-> FAILED
    """

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="When the run started",
    )

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the run finished",
    )

    status: Mapped[RunStatus] = mapped_column(
        Enum(
            RunStatus,
            name="runstatus",
            native_enum=False,
            length=20,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=RunStatus.STARTED,
        comment="STARTED / COMPLETED / FAILED",
    )

    processed_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Documents completed in this run",
    )

    error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Run-level error summary",
    )

    def __repr__(self) -> str:
        return f"<KgRunHistory(id={self.id}, status={self.status}, processed={self.processed_count})>"

    @property
    def duration_seconds(self) -> float | None:
        """Run duration, or None while the run is still open."""
        if not self.started_at or not self.completed_at:
            return None
        return (self.completed_at - self.started_at).total_seconds()


# === Indexes ===
Index("ix_kg_run_histories_started_at", KgRunHistory.started_at.desc())
