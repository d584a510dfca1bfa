"""Unit tests for text normalization and chunking."""

import pytest
from uuid6 import uuid7

from kgrag.core.text import canonical_key, normalize_phrase, strip_diacritics
from kgrag.services.chunking import chunk_text, iter_windows, normalize_text

# =============================================================================
# Canonical Keys
# =============================================================================


class TestCanonicalKey:
    """Tests for entity canonical keys."""

    def test_whitespace_and_case(self) -> None:
        """Test trimming, lowercasing and underscore joining."""
        assert canonical_key("  Cao   Cao ") == "cao_cao"
        assert canonical_key("Liu\tBei") == "liu_bei"

    def test_diacritics_are_stripped(self) -> None:
        """Test accented names fold to ASCII keys."""
        assert canonical_key("Zhūgě Liàng") == "zhuge_liang"
        assert strip_diacritics("Lữ Bố") == "Lu Bo"

    def test_blank_input(self) -> None:
        """Test None and empty names yield an empty key."""
        assert canonical_key(None) == ""
        assert canonical_key("") == ""

    def test_normalize_phrase(self) -> None:
        """Test predicates are trimmed and lowercased."""
        assert normalize_phrase("  Sons ") == "sons"
        assert normalize_phrase(None) == ""


# =============================================================================
# Normalization
# =============================================================================


class TestNormalizeText:
    """Tests for pre-chunking normalization."""

    def test_control_characters_become_spaces(self) -> None:
        """Test NUL, tabs and newlines collapse into single spaces."""
        assert normalize_text("a\x00b\t\nc   d\x7f") == "a b c d"

    def test_empty(self) -> None:
        """Test None and blank input."""
        assert normalize_text(None) == ""
        assert normalize_text(" \n\t ") == ""


# =============================================================================
# Chunking
# =============================================================================


class TestChunkText:
    """Tests for window chunking."""

    def test_overlapping_windows(self) -> None:
        """Test a 250-char run with size 100 and overlap 20."""
        chunks = chunk_text(uuid7(), "x" * 250, chunk_size=100, chunk_overlap=20)

        assert [len(c.content) for c in chunks] == [100, 100, 90]
        assert [c.chunk_index for c in chunks] == [0, 1, 2]

    def test_short_text_is_single_chunk(self) -> None:
        """Test text shorter than a window."""
        document_id = uuid7()
        chunks = chunk_text(document_id, "  Cao Cao led his army.  ", chunk_size=100, chunk_overlap=20)

        assert len(chunks) == 1
        assert chunks[0].content == "Cao Cao led his army."
        assert chunks[0].document_id == document_id
        assert chunks[0].embedding is None
        assert not chunks[0].has_embedding

    def test_blank_text_yields_no_chunks(self) -> None:
        """Test empty and whitespace-only input."""
        assert chunk_text(uuid7(), None) == []
        assert chunk_text(uuid7(), "   \n ") == []

    def test_windows_snap_to_word_boundaries(self) -> None:
        """Test boundaries fall on spaces so words are never split."""
        text = " ".join(["word"] * 60)
        chunks = chunk_text(uuid7(), text, chunk_size=50, chunk_overlap=10)

        assert len(chunks) > 1
        for chunk in chunks:
            assert all(piece == "word" for piece in chunk.content.split(" "))

    def test_overlap_at_least_window_still_progresses(self) -> None:
        """Test the loop advances one character when overlap >= window."""
        chunks = chunk_text(uuid7(), "x" * 30, chunk_size=10, chunk_overlap=10)

        assert len(chunks) == 21
        assert all(len(c.content) == 10 for c in chunks)

    def test_chunk_ids_are_unique(self) -> None:
        """Test every chunk gets its own id."""
        chunks = chunk_text(uuid7(), "y" * 500, chunk_size=100, chunk_overlap=0)
        assert len({c.id for c in chunks}) == len(chunks) == 5


class TestIterWindows:
    """Tests for the raw window generator."""

    def test_consecutive_windows_overlap_within_bounds(self) -> None:
        """Test end(i) - overlap <= start(i+1) <= end(i)."""
        text = "The quick brown fox jumps over the lazy dog. " * 20
        overlap = 15
        windows = list(iter_windows(text.strip(), 60, overlap))

        for (_, end), (next_start, _) in zip(windows, windows[1:]):
            assert end - overlap <= next_start <= end

    def test_last_window_reaches_end(self) -> None:
        """Test the final window ends at the text length."""
        text = "abc def ghi " * 30
        windows = list(iter_windows(text, 40, 5))
        assert windows[-1][1] == len(text)

    def test_invalid_arguments(self) -> None:
        """Test non-positive size and negative overlap are rejected."""
        with pytest.raises(ValueError):
            list(iter_windows("abc", 0, 0))
        with pytest.raises(ValueError):
            list(iter_windows("abc", 10, -1))
