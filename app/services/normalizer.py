import re

# Whitespace plus Latin and Persian punctuation that separates words.
_SEPARATORS = re.compile(r"[\s,.!?؟،]+")

# Arabic code points typed on some keyboards instead of the Persian ones.
_LETTER_MAP = str.maketrans(
    {
        "آ": "ا",
        "ي": "ی",
        "ى": "ی",
        "ك": "ک",
    }
)


def normalize_text(text: str | None) -> str:
    """Normalize text for matching (casefold, collapse punctuation, unify Persian letters)."""
    if not text:
        return ""

    normalized = text.casefold()
    normalized = _SEPARATORS.sub(" ", normalized)
    normalized = normalized.translate(_LETTER_MAP)
    return normalized.strip()


def split_words(text: str | None) -> list[str]:
    normalized = normalize_text(text)
    if not normalized:
        return []
    return normalized.split(" ")
