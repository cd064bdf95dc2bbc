"""Guess normalization for comparing free-text guesses with titles."""

import unicodedata


def _strip_qualifiers(text: str) -> str:
    """Drop parenthetical and dash qualifiers ("(Remastered)", "- Single Version")."""
    return text.split("(")[0].split("-")[0]


def normalize(text: str) -> str:
    """Reduce a guess or title to a comparable token.

    Lowercases, truncates at the first "(" and then at the first "-", and
    keeps only Unicode letters and numbers. The result may be empty.
    """
    text = _strip_qualifiers(text.lower())
    return "".join(c for c in text if unicodedata.category(c)[0] in ("L", "N"))


def clean_title(text: str) -> str:
    """Return the display title without qualifiers, case preserved."""
    return _strip_qualifiers(text).strip()


def is_blank(text: str) -> bool:
    return not text or not text.strip()


def is_match(guess: str, title: str) -> bool:
    """Check whether a guess names the title.

    An empty guess token never matches a title with a non-empty token.
    """
    guess_token = normalize(guess)
    title_token = normalize(title)
    if not guess_token and title_token:
        return False
    return guess_token == title_token
