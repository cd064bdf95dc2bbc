"""Hint text rendering for the title reveal."""

import re
import unicodedata

from models import HintLevel
from utils.normalizer import clean_title

MASK_CHAR = "_"

# Credits in the original (unstripped) title, e.g. "Song (feat. Someone)"
FEATURE_PATTERN = re.compile(r"\((?:feat\.?|ft\.|with|starring)\s+([^)]+)\)", re.IGNORECASE)
REMIX_PATTERN = re.compile(r"\bremix\b", re.IGNORECASE)


def _is_maskable(char: str) -> bool:
    return unicodedata.category(char)[0] in ("L", "N")


def mask(text: str) -> str:
    """Replace every letter and digit with the mask glyph, keeping the rest."""
    return "".join(MASK_CHAR if _is_maskable(c) else c for c in text)


def render_hint(title: str, level: HintLevel) -> str | None:
    """Render the title hint for a hint level.

    MASKED shows the cleaned title fully masked. FIRST_WORD reveals the
    first word (or the first two characters of a single-word title).
    """
    if level == HintLevel.NONE:
        return None

    cleaned = clean_title(title)
    if level == HintLevel.MASKED:
        return mask(cleaned)

    words = cleaned.split(" ")
    if len([w for w in words if w]) <= 1:
        return cleaned[:2] + mask(cleaned[2:])

    first, _, rest = cleaned.partition(" ")
    return f"{first} {mask(rest)}"


def extract_extra_hint(title: str) -> str | None:
    """Pull featured-artist or remix info out of the full title."""
    match = FEATURE_PATTERN.search(title)
    if match:
        return f"Featuring {match.group(1).strip()}"
    if REMIX_PATTERN.search(title):
        return "It's a remix"
    return None
