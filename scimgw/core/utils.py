"""Helpers for diagnostic log statements."""
from __future__ import annotations
import json
from typing import Any

_DROP = object()


def _without_repeats(value: Any, seen: set) -> Any:
    if isinstance(value, (dict, list)):
        if id(value) in seen:
            return _DROP
        seen.add(id(value))
        if isinstance(value, dict):
            out = {}
            for key, item in value.items():
                item = _without_repeats(item, seen)
                if item is not _DROP:
                    out[key] = item
            return out
        return [None if item is _DROP else item for item in (_without_repeats(i, seen) for i in value)]
    return value


def json_stringify(obj: Any) -> str:
    """Render ``obj`` as indented JSON for diagnostics.

    Containers already rendered once (circular references) are discarded;
    values JSON can't encode fall back to ``str()``.
    """
    return json.dumps(_without_repeats(obj, set()), indent=2, default=str)

