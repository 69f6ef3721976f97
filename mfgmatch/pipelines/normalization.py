"""Text normalization and synonym utilities for requirement/profile matching.

Handles lowercasing, whitespace, token cleanup, packaging canonicalization,
allergen token cleanup and free-text volume parsing.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Iterable

from config.match_tables import PACKAGING_SYNONYMS

logger = logging.getLogger(__name__)

_FREE_SUFFIX = re.compile(r"[\s-]+free$")
_RANGE_K = re.compile(r"(\d+)k\s*-\s*(\d+)k", re.IGNORECASE)
_SINGLE_K = re.compile(r"(\d+)k", re.IGNORECASE)
_PLUS = re.compile(r"(\d+)\s*(k)?\s*\+", re.IGNORECASE)
_BARE_INT = re.compile(r"(\d+)")

_PACKAGING_PATTERNS: tuple[tuple[str, re.Pattern], ...] = tuple(
    (
        bucket,
        re.compile(
            r"\b(?:" + "|".join(re.escape(s) for s in synonyms) + r")(?:s|es)?\b",
            re.IGNORECASE,
        ),
    )
    for bucket, synonyms in PACKAGING_SYNONYMS.items()
)


def normalize_whitespace(text: str) -> str:
    """Normalize whitespace: collapse multiple spaces, remove leading/trailing."""
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def norm(value: object) -> str:
    """Lowercased, whitespace-normalized string; non-strings become ''."""
    if not isinstance(value, str):
        return ""
    return normalize_whitespace(value).lower()


def clean_tokens(values: Iterable[object] | None) -> list[str]:
    """Normalize a list of free-text values, dropping blanks and non-strings."""
    if not values:
        return []
    return [token for token in (norm(v) for v in values) if token]


def overlaps(a: str, b: str) -> bool:
    """Equality or substring containment in either direction.

    Blank strings never overlap anything (``"" in s`` is always true).
    """
    if not a or not b:
        return False
    return a == b or a in b or b in a


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative scores."""
    return int(math.floor(value + 0.5))


def canonical_packaging(term: str) -> str:
    """Map a raw packaging string onto its canonical bucket.

    The first bucket (in table order) with a whole-word synonym hit wins.
    Terms that match no bucket are returned normalized as-is.
    """
    text = norm(term)
    for bucket, pattern in _PACKAGING_PATTERNS:
        if pattern.search(text):
            return bucket
    return text


def normalize_allergen(token: object) -> str:
    """'Peanut Free' / 'peanut-free' → 'peanut'."""
    text = norm(token)
    return _FREE_SUFFIX.sub("", text).strip()


def parse_volume(volume: object) -> int:
    """Parse a free-text quantity descriptor into a unit count.

    Patterns are tried in order:
    1. ``50k-100k`` (upper bound) or ``50k`` → thousands
    2. ``500+`` / ``5k+`` → the stated minimum
    3. first bare integer anywhere in the string

    Returns 0 when nothing numeric is found.
    """
    if volume is None:
        return 0
    text = norm(str(volume))
    if not text:
        return 0

    match = _RANGE_K.search(text)
    if match:
        return int(match.group(2)) * 1000

    match = _SINGLE_K.search(text)
    if match:
        return int(match.group(1)) * 1000

    match = _PLUS.search(text)
    if match:
        value = int(match.group(1))
        return value * 1000 if match.group(2) else value

    match = _BARE_INT.search(text)
    if match:
        return int(match.group(1))

    logger.debug(f"Unparseable volume descriptor: {volume!r}")
    return 0
