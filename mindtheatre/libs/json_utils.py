from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any


def json_safe(obj: Any) -> Any:
    """Recursively convert objects (e.g., UUIDs, datetimes) into JSON-serializable structures."""

    if isinstance(obj, uuid.UUID):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [json_safe(item) for item in obj]
    return obj


def extract_json_object(blob: str) -> str | None:
    """
    Return the substring from the first ``{`` to the last ``}``,
    tolerating prose or code fences around an LLM's JSON answer.
    """

    text = blob or ""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    return text[start : end + 1]


__all__ = ["extract_json_object", "json_safe"]
