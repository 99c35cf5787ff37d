"""JSON helpers for the settings payloads embedded in history documents."""

import json
from typing import Any


def parse_json_field(raw: str | dict | None) -> dict[str, Any] | None:
    """Parse a JSON string or dict, returning None on failure.

    Returns None for: None, empty string, invalid JSON, non-dict JSON.
    An empty object is a valid (if useless) payload and is returned as {}.
    """
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            parsed = json.loads(raw)
        except (ValueError, TypeError):
            return None
        if isinstance(parsed, dict):
            return parsed
    return None


def compact_json(value: dict[str, Any]) -> str:
    """Serialize to single-line JSON that is safe inside an HTML comment.

    ``-->`` can only occur inside a JSON string, where ``\\u003e`` decodes
    back to the same character.
    """
    text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return text.replace("-->", "--\\u003e")
