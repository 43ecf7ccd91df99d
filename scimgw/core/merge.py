"""Deep merge with multi-valued attribute patch semantics."""
from __future__ import annotations
import logging
from typing import Any

logger = logging.getLogger(__name__)

DELETE = "delete"


def _same_entry(entry: Any, element: dict) -> bool:
    return (
        isinstance(entry, dict)
        and entry.get("value") == element["value"]
        and entry.get("type") == element.get("type")
    )


def _merge_multi_value(entries: list, additions: list) -> None:
    """Apply ``additions`` to the target sequence ``entries`` in place.

    - scalars are appended unless already present
    - entries without ``value`` are always appended
    - an entry matching an existing one on ``value`` and ``type`` is not appended
    - ``{"value": "", "type": t, "operation": "delete"}`` removes every entry of type t
    - ``{"value": v, "type": t, "operation": "delete"}`` removes the matching entry
    - entries carrying the delete verb are never appended
    """
    for element in additions:
        if not isinstance(element, dict):
            if element not in entries:
                entries.append(element)
            continue
        if "value" not in element:
            entries.append(element)
            continue

        if element.get("operation") == DELETE:
            entry_type = element.get("type")
            if element["value"] == "":
                if entry_type is not None:
                    entries[:] = [
                        e for e in entries
                        if not (isinstance(e, dict) and e.get("type") == entry_type)
                    ]
            else:
                entries[:] = [e for e in entries if not _same_entry(e, element)]
            continue

        if not any(_same_entry(entry, element) for entry in entries):
            entries.append(element)


def merge(target: dict, source: dict) -> dict:
    """Merge ``source`` into ``target`` in place and return ``target``.

    Scalars and None overwrite. Nested mappings are recursed into, or assigned
    as is when the target lacks the key (the value is shared, clone the
    source first if that matters). Sequences replace a missing or non-list
    target value, otherwise they are applied with multi-value patch
    semantics, see :func:`_merge_multi_value`. ``source`` is never modified.

    Example:
        >>> merge({}, {"emails": [{"type": "work", "value": "a@x.com"}]})
        {'emails': [{'type': 'work', 'value': 'a@x.com'}]}
    """
    for key, value in source.items():
        if isinstance(value, dict):
            existing = target.get(key)
            if isinstance(existing, dict):
                merge(existing, value)
            else:
                if key in target:
                    logger.debug(f"merge: replacing non-object value of '{key}'")
                target[key] = value
        elif isinstance(value, list):
            existing = target.get(key)
            if isinstance(existing, list):
                _merge_multi_value(existing, value)
            else:
                target[key] = value
        else:
            target[key] = value
    return target
