"""Free-text input cleaning."""

from __future__ import annotations

import re

_TAGS = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")


def sanitize_text(value: str | None, max_length: int | None = None) -> tuple[str, bool]:
    """Strip markup and collapse whitespace. Returns the cleaned value and whether it changed."""
    if value is None:
        return "", False
    cleaned = _WHITESPACE.sub(" ", _TAGS.sub("", value)).strip()
    if max_length and max_length > 0:
        cleaned = cleaned[:max_length]
    return cleaned, cleaned != value
