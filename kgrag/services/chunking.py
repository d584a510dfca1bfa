"""
Document chunking.

Splits extracted document text into fixed-size, word-aligned segments that
are embedded and stored for retrieval, and later fed to knowledge extraction.

Text is normalized first: NUL and other control characters become spaces,
whitespace runs collapse to one space, and the result is trimmed. A window of
`chunk_size` characters then slides over the text. When a window does not
reach the end of the text, its boundary snaps back to the last space inside
it, provided that space lies past the window's midpoint, so words are not cut
in half unless that would discard more than half a window.
"""

import re
import uuid
from collections.abc import Generator
from dataclasses import dataclass, field

from uuid6 import uuid7

from kgrag.core.config import settings
from kgrag.core.logging import get_logger

logger = get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

# ASCII control characters, NUL included; tabs and newlines become spaces
# and then collapse with the surrounding whitespace
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

WHITESPACE_RUN = re.compile(r"\s+")


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ChunkData:
    """
    A chunk before (and while) it is stored.

    `embedding` is filled in by the embedding step; the vector store skips
    chunks that do not have one.
    """

    document_id: uuid.UUID
    chunk_index: int
    content: str
    id: uuid.UUID = field(default_factory=uuid7)
    embedding: list[float] | None = None

    @property
    def char_count(self) -> int:
        return len(self.content)

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)


# =============================================================================
# Functions
# =============================================================================


def normalize_text(text: str | None) -> str:
    """Replace control characters with spaces, collapse whitespace, trim."""
    if not text:
        return ""
    cleaned = CONTROL_CHARS.sub(" ", text)
    return WHITESPACE_RUN.sub(" ", cleaned).strip()


def iter_windows(text: str, size: int, overlap: int) -> Generator[tuple[int, int], None, None]:
    """
    Yield (start, end) character windows over already-normalized text.

    Consecutive windows share `overlap` characters: the next window starts
    at ``end - overlap``, but always at least one character after the
    previous start so the loop makes progress when overlap >= window length.
    For every pair, ``end(i) - overlap <= start(i+1) <= end(i)``.
    """
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    if overlap < 0:
        raise ValueError(f"Chunk overlap must not be negative, got {overlap}")

    length = len(text)
    start = 0
    while start < length:
        end = min(start + size, length)
        if end < length:
            last_space = text.rfind(" ", start, end)
            if last_space > start + size // 2:
                end = last_space
        yield start, end
        if end == length:
            break
        start = max(end - overlap, start + 1)


def chunk_text(
    document_id: uuid.UUID,
    text: str | None,
    chunk_size: int | None = None,
    chunk_overlap: int | None = None,
) -> list[ChunkData]:
    """
    Split text into indexed chunks.

    Args:
        document_id: Owning document
        text: Raw extracted text (may be None or empty)
        chunk_size: Window size in characters (default from settings)
        chunk_overlap: Configured overlap (default from settings)

    Returns:
        Chunks with sequential indexes starting at 0; empty for blank text.

    Example:
        >>> [len(c.content) for c in chunk_text(doc_id, "x" * 250, 100, 20)]
        [100, 100, 90]
    """
    size = settings.chunk_size if chunk_size is None else chunk_size
    overlap = settings.chunk_overlap if chunk_overlap is None else chunk_overlap

    normalized = normalize_text(text)
    if not normalized:
        return []

    chunks: list[ChunkData] = []
    for start, end in iter_windows(normalized, size, overlap):
        content = normalized[start:end].strip()
        if not content:
            continue
        chunks.append(
            ChunkData(
                document_id=document_id,
                chunk_index=len(chunks),
                content=content,
            )
        )

    logger.debug(
        "Chunked text",
        document_id=str(document_id),
        chars=len(normalized),
        chunks=len(chunks),
        chunk_size=size,
    )
    return chunks
