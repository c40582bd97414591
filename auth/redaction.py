"""Metadata redaction applied before anything reaches the audit sink."""

from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"
SENSITIVE_KEY = re.compile(r"(token|authorization|password|secret|jwt)", re.IGNORECASE)


def redact_metadata(value: Any) -> Any:
    """Return a copy of ``value`` with every sensitive key's value replaced, at any depth."""
    if isinstance(value, dict):
        output = {}
        for key, item in value.items():
            if SENSITIVE_KEY.search(str(key)):
                output[key] = REDACTED
            else:
                output[key] = redact_metadata(item)
        return output
    if isinstance(value, (list, tuple)):
        return [redact_metadata(item) for item in value]
    return value
