"""Dot-notation path resolution for records.

Paths look like ``name.familyName`` or ``auth.basic[0].password``. A record
key that literally equals the whole path wins over nested traversal, so
flattened keys such as ``{"emails.value": ...}`` resolve directly.

Neither function raises on unknown shapes: a missing intermediate makes
:func:`resolve` return ``None`` and :func:`assign` a no-op.
"""
from __future__ import annotations
import re
from typing import Any, Optional

_INDEXED_SEGMENT = re.compile(r"^(.*)\[(\d+)\]$")
_MISSING = object()


def parse_segment(segment: str) -> tuple[str, Optional[int]]:
    """Split ``basic[0]`` into ``("basic", 0)``; bare segments get index ``None``."""
    match = _INDEXED_SEGMENT.match(segment)
    if match:
        return match.group(1), int(match.group(2))
    return segment, None


def _step(obj: Any, segment: str) -> Any:
    key, index = parse_segment(segment)
    if not isinstance(obj, dict) or key not in obj:
        return _MISSING
    value = obj[key]
    if index is None:
        return value
    if not isinstance(value, list) or index >= len(value):
        return _MISSING
    return value[index]


def _descend(record: Any, segments: list[str]) -> Any:
    obj = record
    for segment in segments:
        obj = _step(obj, segment)
        if obj is _MISSING:
            return _MISSING
    return obj


def resolve(record: Any, path: str) -> Any:
    """Return the value addressed by ``path`` or ``None`` when absent.

    Args:
        record: Record to read from
        path: Dotted path, segments optionally indexed (``key[n]``)

    Returns:
        Addressed value, or None if any step along the path is missing

    Example:
        >>> resolve({"name": {"familyName": "Jensen"}}, "name.familyName")
        'Jensen'
        >>> resolve({}, "name.familyName") is None
        True
    """
    if isinstance(record, dict) and path in record:
        return record[path]
    *parents, final = path.split(".")
    obj = _descend(record, parents)
    if obj is _MISSING:
        return None
    value = _step(obj, final)
    return None if value is _MISSING else value


def assign(record: Any, path: str, value: Any) -> bool:
    """Set the value addressed by ``path``.

    Intermediates are never created: when one is missing nothing happens and
    False is returned.

    Args:
        record: Record to modify in place
        path: Dotted path, segments optionally indexed (``key[n]``)
        value: Value to store on the final segment

    Returns:
        True if the value was assigned
    """
    if isinstance(record, dict) and path in record:
        record[path] = value
        return True
    *parents, final = path.split(".")
    obj = _descend(record, parents)
    if not isinstance(obj, dict):
        return False
    key, index = parse_segment(final)
    if index is None:
        obj[key] = value
        return True
    seq = obj.get(key)
    if not isinstance(seq, list) or index >= len(seq):
        return False
    seq[index] = value
    return True
