"""
Plain-text extraction from uploaded files.

PDFs (by extension or ``%PDF`` magic bytes) are read page by page with
pypdf; anything else is decoded as UTF-8 text.
"""

import io

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from kgrag.core.logging import get_logger

logger = get_logger(__name__)

PDF_MAGIC = b"%PDF"


class TextExtractionError(Exception):
    """Raised when an uploaded file cannot be turned into text."""


def is_pdf(data: bytes, filename: str | None = None) -> bool:
    if filename and filename.lower().endswith(".pdf"):
        return True
    return data[:1024].lstrip().startswith(PDF_MAGIC)


def extract_pdf_text(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, ValueError, OSError) as e:
        logger.error("Failed to extract text from PDF", error=str(e))
        raise TextExtractionError("Unable to read PDF content") from e

    text = "\n".join(pages)
    logger.debug("Extracted PDF text", pages=len(pages), characters=len(text))
    return text


def extract_text(data: bytes, filename: str | None = None) -> str:
    """
    Extract plain text from an uploaded file.

    Raises:
        TextExtractionError: the PDF is unreadable or the bytes are not UTF-8 text
    """
    if is_pdf(data, filename):
        return extract_pdf_text(data)

    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        suffix = f" ({filename})" if filename else ""
        raise TextExtractionError(f"Unsupported file type{suffix}: expected PDF or UTF-8 text") from e
