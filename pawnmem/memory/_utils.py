"""Shared helpers for the memory subsystem."""

from __future__ import annotations

import math
from typing import Iterable

# Keyword spans are 2–4 characters long; ideographic text has no spaces, so
# overlapping character windows stand in for word segmentation.
MIN_SPAN = 2
MAX_SPAN = 4


def clamp01(value: float, default: float = 0.5) -> float:
    """Clamp potentially noisy scores into [0, 1]."""
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(numeric):
        return default
    return max(0.0, min(1.0, numeric))


def extract_keywords(text: str | None, limit: int = 20) -> list[str]:
    """
    Tokenize text into overlapping 2–4 character spans.

    Spans are produced shortest-first, left to right, de-duplicated in order of
    first appearance. A span is kept only if at least one character is a letter,
    digit or ideograph. At most ``limit`` spans are returned.
    """
    if not text or limit <= 0:
        return []

    seen: dict[str, None] = {}
    for length in range(MIN_SPAN, MAX_SPAN + 1):
        for start in range(len(text) - length + 1):
            span = text[start:start + length]
            if span in seen or not any(ch.isalnum() for ch in span):
                continue
            seen[span] = None
            if len(seen) >= limit:
                return list(seen)
    return list(seen)


def jaccard(left: Iterable[str], right: Iterable[str]) -> float:
    """Jaccard similarity of two string collections (0.0 when either is empty)."""
    a = set(left)
    b = set(right)
    if not a or not b:
        return 0.0
    union = len(a | b)
    return len(a & b) / union if union else 0.0
