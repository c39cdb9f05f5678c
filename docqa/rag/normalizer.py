"""Canonicalization of raw extracted document text."""
import re

_SPACE_RUN = re.compile(r"[ \u00a0]+")
_BLANK_LINES = re.compile(r"\n{3,}")


def normalize_text(raw: str) -> str:
    """Normalize extracted text before chunking.

    Carriage returns become newlines, tabs and non-breaking spaces collapse to
    single spaces, three or more newlines collapse to one paragraph break, and
    surrounding whitespace is trimmed. Applying it twice changes nothing.

    Args:
        raw: Text as extracted from the source file

    Returns:
        Normalized text
    """
    text = raw.replace("\r", "\n").replace("\t", " ")
    text = _SPACE_RUN.sub(" ", text)
    text = _BLANK_LINES.sub("\n\n", text)
    return text.strip()
