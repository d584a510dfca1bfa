"""Pydantic schemas for API request/response models."""

from kgrag.schemas.common import (
    ErrorResponse,
    HealthResponse,
    ValidationErrorResponse,
)
from kgrag.schemas.kg import (
    KgCountResponse,
    KgRunDispatchResponse,
    KgRunRecord,
    KgRunResponse,
    KgStatusCounts,
    KgStatusResponse,
)
from kgrag.schemas.query import QueryRequest, QueryResponse, QuerySourceResponse
from kgrag.schemas.upload import UploadResponse

__all__ = [
    # Common
    "ErrorResponse",
    "HealthResponse",
    "ValidationErrorResponse",
    # Knowledge graph
    "KgCountResponse",
    "KgRunDispatchResponse",
    "KgRunRecord",
    "KgRunResponse",
    "KgStatusCounts",
    "KgStatusResponse",
    # Query
    "QueryRequest",
    "QueryResponse",
    "QuerySourceResponse",
    # Upload
    "UploadResponse",
]
