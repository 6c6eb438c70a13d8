"""Accent-insensitive tokenization shared by indexing and matching."""

from __future__ import annotations

import re
import unicodedata

WORD_SPLIT = re.compile(r"[^\w]+", re.UNICODE)


def normalize_unicode(raw: str) -> str:
    """Strip accents and diacritics (NFD, then drop combining marks)."""
    decomposed = unicodedata.normalize("NFD", raw)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def tokenize(text: str) -> list[str]:
    """Lowercase, accent-free word tokens.

    Examples:
        "Café  Crème" -> ["cafe", "creme"]
        "Bug #123: fix-login" -> ["bug", "123", "fix", "login"]
    """
    normalized = normalize_unicode(text).casefold()
    return [t for t in WORD_SPLIT.split(normalized) if t]


def tokenize_exact(text: str) -> list[str]:
    """Whitespace split without normalization, used for highlighting."""
    return text.split()


def is_token_match(query_tokens: list[str], candidate: str) -> bool:
    """True if any query token occurs inside the normalized candidate."""
    haystack = normalize_unicode(candidate).casefold()
    return any(token in haystack for token in query_tokens)
