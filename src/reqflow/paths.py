"""Dot-path lookups into decoded JSON-like data.

Paths use dots between keys and ``[i]`` for list indices::

    lookup_path({"data": [{"id": 7}]}, "data[0].id")  # -> 7

Dict keys match exactly first, then case-insensitively, so header maps can
be queried as ``headers.content-type``. A JSON string met along the way is
decoded before descending into it.
"""

from __future__ import annotations

import json
import re
from typing import Any

MISSING = object()
"""Sentinel returned by :func:`lookup_path` when the path does not exist."""

_SEGMENT = re.compile(r"[^.\[\]]+|\[\d+\]")


def split_path(path: str) -> list[str]:
    """Split ``a.b[0].c`` into ``["a", "b", "0", "c"]``."""
    return [seg.strip("[]") for seg in _SEGMENT.findall(path.strip())]


def _descend(current: Any, part: str) -> Any:
    if isinstance(current, str):
        try:
            current = json.loads(current)
        except ValueError:
            return MISSING
    if isinstance(current, dict):
        if part in current:
            return current[part]
        lowered = part.lower()
        for key, value in current.items():
            if isinstance(key, str) and key.lower() == lowered:
                return value
        return MISSING
    if isinstance(current, (list, tuple)) and part.isdigit():
        index = int(part)
        return current[index] if index < len(current) else MISSING
    return MISSING


def lookup_path(data: Any, path: str) -> Any:
    """Return the value at *path* inside *data*, or :data:`MISSING`."""
    current = data
    for part in split_path(path):
        if current is None:
            return MISSING
        current = _descend(current, part)
        if current is MISSING:
            return MISSING
    return current
