"""Value helpers shared by the tokenization engine."""

from __future__ import annotations

import json
from typing import Any


def is_blank(value: Any) -> bool:
    """True for None and for strings that are empty or whitespace only."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def load_json_blob(raw: Any) -> dict[str, Any]:
    """
    Parse a JSON column value into a dict.

    Accepts a dict or a JSON string. Anything else, including malformed JSON
    and JSON that is not an object, yields an empty dict.
    """
    if isinstance(raw, dict):
        return dict(raw)
    if not isinstance(raw, (str, bytes)) or not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


__all__ = ["is_blank", "load_json_blob"]
