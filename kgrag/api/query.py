"""
Question answering endpoints.

    POST /query         -> {answer, sources}
    POST /query/stream  -> text/event-stream, one ``data:`` event per fragment
"""

from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from kgrag.api.dependencies import get_query_service
from kgrag.core.logging import get_logger
from kgrag.schemas import QueryRequest, QueryResponse, QuerySourceResponse
from kgrag.services.llm_client import LLMError
from kgrag.services.query import QueryService

logger = get_logger(__name__)

router = APIRouter()


def _bad_gateway(e: LLMError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Language model request failed: {e}",
    )


def sse_event(fragment: str) -> str:
    """Encode a fragment as one server-sent event (multi-line safe)."""
    lines = fragment.split("\n")
    return "".join(f"data: {line}\n" for line in lines) + "\n"


@router.post(
    "",
    response_model=QueryResponse,
    summary="Answer a question",
    description=(
        "Answers from the knowledge graph when the question is a confident "
        "relation-count question, otherwise from retrieved document chunks."
    ),
)
async def query(
    request: QueryRequest,
    service: QueryService = Depends(get_query_service),
) -> QueryResponse:
    try:
        result = await service.answer(request.query, request.top_k, request.category)
    except LLMError as e:
        logger.error("Query failed", error=str(e))
        raise _bad_gateway(e) from e

    return QueryResponse(
        answer=result.answer,
        sources=[QuerySourceResponse.model_validate(source) for source in result.sources],
    )


@router.post(
    "/stream",
    summary="Answer a question (streaming)",
    response_class=StreamingResponse,
)
async def query_stream(
    request: QueryRequest,
    service: QueryService = Depends(get_query_service),
) -> StreamingResponse:
    fragments = service.answer_stream(request.query, request.top_k, request.category)

    # Pull the first fragment eagerly so routing and retrieval errors still
    # produce a proper status code
    try:
        first: str | None = await fragments.__anext__()
    except StopAsyncIteration:
        first = None
    except LLMError as e:
        logger.error("Streaming query failed", error=str(e))
        raise _bad_gateway(e) from e

    async def event_stream() -> AsyncIterator[str]:
        if first is None:
            return
        yield sse_event(first)
        try:
            async for fragment in fragments:
                yield sse_event(fragment)
        except LLMError as e:
            logger.error("Streaming answer interrupted", error=str(e))

    return StreamingResponse(event_stream(), media_type="text/event-stream")
