"""Text normalization helpers shared by ingestion and query paths."""

import re
import unicodedata

_WHITESPACE = re.compile(r"\s+")


def strip_diacritics(value: str) -> str:
    """Decompose to NFKD and drop combining marks ("Lữ Bố" -> "Lu Bo")."""
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def canonical_key(name: str | None) -> str:
    """
    Derive the canonical identity key for a graph entity name.

    Diacritics are stripped, the result is trimmed and lowercased, and
    internal whitespace runs become single underscores:

        canonical_key("  Cao   Cao ")  -> "cao_cao"
        canonical_key("Zhūgě Liàng")   -> "zhuge_liang"

    Returns an empty string for None or blank input.
    """
    if not name:
        return ""
    cleaned = strip_diacritics(name).strip().lower()
    return _WHITESPACE.sub("_", cleaned)


def normalize_phrase(value: str | None) -> str:
    """Trim and lowercase a free-text phrase (predicates, object text)."""
    return (value or "").strip().lower()
