"""
Text utilities for comparing free-text inventory values.

Every catalog comparison goes through normalize(), so accents and case
never decide a match:
    "Desfibrilador Cardíaco " → "desfibrilador cardiaco"
"""

import unicodedata
from typing import Optional


def normalize(text: Optional[str]) -> str:
    """
    Normalize text for comparison.

    Lower-cases, strips accent marks and trims surrounding whitespace:
    - "Electrocauterio" → "electrocauterio"
    - "  Ventilación  " → "ventilacion"
    - None → ""

    Args:
        text: Original value (may have accents, mixed case)

    Returns:
        Normalized string, empty for empty input
    """
    if not text:
        return ""

    lowered = str(text).lower()

    # NFD decomposition separates base chars from accents
    decomposed = unicodedata.normalize('NFD', lowered)

    # Remove accent marks (combining characters in Unicode category 'Mn')
    stripped = ''.join(
        c for c in decomposed
        if unicodedata.category(c) != 'Mn'
    )

    return stripped.strip()


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Cheap 0-1 similarity between two strings.

    Walks the shorter string and, for each character, looks for its next
    occurrence in the longer string at or after a moving cursor. The hit
    count is blended with a length-closeness term:

        0.7 * hits / len(longer) + 0.3 * (1 - len_diff / len(longer))

    This approximates edit-distance similarity but is not a metric: there
    is no triangle inequality and similarity(a, b) is only symmetric because
    the shorter string always drives the scan.

    Args:
        a: First string
        b: Second string

    Returns:
        Score in [0, 1]; 1.0 for equal strings (including two empty ones)
    """
    a = normalize(a)
    b = normalize(b)

    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    longer, shorter = (a, b) if len(a) >= len(b) else (b, a)

    common_chars = 0
    cursor = 0
    for char in shorter:
        found = longer.find(char, cursor)
        if found != -1:
            common_chars += 1
            cursor = found + 1

    longer_length = len(longer)
    length_diff = longer_length - len(shorter)

    return (
        0.7 * (common_chars / longer_length)
        + 0.3 * (1 - length_diff / longer_length)
    )


def split_words(text: Optional[str]) -> list[str]:
    """Normalized whitespace-separated words."""
    return normalize(text).split()
