"""Pydantic schemas for knowledge-graph ingestion and count endpoints."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from kgrag.db.enums import RunStatus

# =============================================================================
# Ingestion Runs
# =============================================================================


class KgRunResponse(BaseModel):
    """Result of one ingestion run."""

    run_id: UUID = Field(description="Run history id")
    processed_count: int = Field(description="Documents completed in this run")
    failed_count: int = Field(default=0, description="Documents marked FAILED in this run")
    error: str | None = Field(default=None, description="Run-level error, if the run failed")

    model_config = ConfigDict(from_attributes=True)


class KgRunDispatchResponse(BaseModel):
    """Acknowledgement for a run handed to the background worker."""

    message: str = Field(description="Status message")
    limit: int = Field(description="Documents the run may claim")
    task_id: str | None = Field(default=None, description="Celery task id, when queued")


class KgRunRecord(BaseModel):
    """A run-history row."""

    id: UUID = Field(description="Run id")
    started_at: datetime | None = Field(default=None, description="Run start")
    completed_at: datetime | None = Field(default=None, description="Run end")
    status: RunStatus = Field(description="STARTED / COMPLETED / FAILED")
    processed_count: int = Field(description="Documents completed")
    error: str | None = Field(default=None, description="Run-level error summary")

    model_config = ConfigDict(from_attributes=True)


class KgStatusCounts(BaseModel):
    """Documents per knowledge-graph status (unset counted as pending)."""

    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0


class KgStatusResponse(BaseModel):
    """Counts by status plus the latest runs."""

    counts: KgStatusCounts
    recent_runs: list[KgRunRecord] = Field(default_factory=list)


# =============================================================================
# Graph Counts
# =============================================================================


class KgCountResponse(BaseModel):
    """A count answered from the graph."""

    entity_name: str = Field(description="Resolved entity display name")
    count: int = Field(description="Matching facts")
    predicate: str | None = Field(default=None, description="Predicate or event type:outcome counted")
    document_id: UUID | None = Field(default=None, description="Document scope, if any")
    document_title: str | None = Field(default=None, description="Title of the scoped document")
    scope_label: str = Field(description='"across all documents" or within "<title>"')

    model_config = ConfigDict(from_attributes=True)
