"""Text processing helpers."""

from __future__ import annotations

import re


WHITESPACE_RE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Collapse whitespace and strip."""
    return WHITESPACE_RE.sub(" ", text).strip()


def truncate(text: str, limit: int) -> str:
    """Cut text to at most ``limit`` characters."""
    if limit <= 0:
        return ""
    return text[:limit]


def first_words(text: str, count: int) -> tuple[str, bool]:
    """Return the first ``count`` whitespace-delimited words and whether any were dropped."""
    words = text.split()
    return " ".join(words[:count]), len(words) > count
