"""
Document upload endpoint.

Runs extract -> chunk -> embed -> store synchronously, then fires a
knowledge-graph ingestion run in the background. Identical bytes uploaded
again return 409 with the existing document id and a chunk count of 0.
"""

from collections.abc import Callable

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse

from kgrag.api.dependencies import get_ingestion_service
from kgrag.api.kg_admin import get_ingestion_trigger
from kgrag.core.config import settings
from kgrag.core.logging import get_logger
from kgrag.schemas import UploadResponse
from kgrag.services.ingestion import DocumentIngestionService
from kgrag.services.llm_client import LLMError
from kgrag.services.text_extraction import TextExtractionError

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=UploadResponse,
    summary="Upload a document",
    description="Upload a PDF or UTF-8 text file; `category` is classified automatically when omitted.",
    responses={
        status.HTTP_409_CONFLICT: {"model": UploadResponse, "description": "Identical content already uploaded"},
    },
)
async def upload_document(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(..., description="PDF or text file"),
    category: str | None = Form(default=None, description="Document category"),
    service: DocumentIngestionService = Depends(get_ingestion_service),
    trigger: Callable[[BackgroundTasks, int], str | None] = Depends(get_ingestion_trigger),
) -> UploadResponse | JSONResponse:
    data = await file.read()
    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A non-empty file is required",
        )

    filename = file.filename or "upload"
    try:
        result = await service.ingest_upload(filename, data, category)
    except TextExtractionError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e
    except LLMError as e:
        logger.error("Upload failed", filename=filename, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Embedding request failed: {e}",
        ) from e

    response = UploadResponse.model_validate(result)
    if result.duplicate:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=response.model_dump(mode="json"),
        )

    trigger(background_tasks, settings.kg_upload_trigger_limit)
    logger.info("Uploaded document", document_id=str(result.document_id), chunks=result.chunk_count)
    return response
