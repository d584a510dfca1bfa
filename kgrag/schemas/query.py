"""Pydantic schemas for the query endpoints."""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QueryRequest(BaseModel):
    """A natural-language question."""

    query: str = Field(min_length=1, max_length=4000, description="Question to answer")
    top_k: int = Field(default=5, ge=1, le=20, description="Chunks to retrieve (1-20)")
    category: str | None = Field(default=None, description="Restrict retrieval to one category")

    @field_validator("query")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query must not be blank")
        return value.strip()

    @field_validator("category")
    @classmethod
    def _blank_category_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()


class QuerySourceResponse(BaseModel):
    """A retrieved chunk cited by the answer."""

    chunk_index: int = Field(description="Index of the chunk within its document")
    similarity: float = Field(description="Similarity in (0, 1]")

    model_config = ConfigDict(from_attributes=True)


class QueryResponse(BaseModel):
    """Answer plus the chunks it was grounded on."""

    answer: str = Field(description="Generated answer")
    sources: list[QuerySourceResponse] = Field(default_factory=list, description="Cited chunks")

    model_config = ConfigDict(from_attributes=True)
