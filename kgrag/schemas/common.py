"""Common Pydantic schemas used across API endpoints."""

from typing import Any

from pydantic import BaseModel, Field

# =============================================================================
# Error Responses
# =============================================================================


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(description="Error type")
    message: str = Field(description="Human-readable error message")


class ValidationErrorResponse(BaseModel):
    """Validation error response (422)."""

    detail: list[dict[str, Any]] = Field(description="Validation error details")


# =============================================================================
# Service Info
# =============================================================================


class HealthResponse(BaseModel):
    """Health check payload."""

    status: str = Field(description="Service status")
    environment: str = Field(description="Deployment environment")
    llm_provider: str = Field(description="Configured LLM provider")
