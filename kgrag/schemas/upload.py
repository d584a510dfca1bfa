"""Pydantic schemas for the upload endpoint."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UploadResponse(BaseModel):
    """Outcome of an upload."""

    document_id: UUID = Field(description="New document, or the existing one for a duplicate")
    chunk_count: int = Field(description="Chunks stored (0 for a duplicate)")
    duplicate: bool = Field(default=False, description="Identical content was already uploaded")

    model_config = ConfigDict(from_attributes=True)
