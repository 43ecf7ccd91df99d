"""Deep copy of records that leaves opaque objects intact."""
from __future__ import annotations
import copy
from enum import Enum
from typing import Any

_SCALAR_TYPES = (str, int, float, bool, type(None), bytes)


class CloneKind(Enum):
    """Runtime shape tag used to pick a clone strategy."""

    SCALAR = "scalar"
    PLAIN_MAPPING = "plain_mapping"
    PLAIN_SEQUENCE = "plain_sequence"
    OPAQUE = "opaque"


def clone_kind(value: Any) -> CloneKind:
    """Classify ``value``; only exact ``dict`` and ``list`` count as plain containers."""
    value_type = type(value)
    if value_type is dict:
        return CloneKind.PLAIN_MAPPING
    if value_type is list:
        return CloneKind.PLAIN_SEQUENCE
    if isinstance(value, _SCALAR_TYPES):
        return CloneKind.SCALAR
    return CloneKind.OPAQUE


def clone(value: Any) -> Any:
    """Return a structurally independent copy of ``value``.

    Plain dicts and lists are copied recursively. Opaque objects (e.g. an
    HTTP proxy agent embedded in configuration) get a shallow field copy on a
    new instance of the same class, so objects with internal invariants are
    not torn apart. Cycles are not supported.
    """
    kind = clone_kind(value)
    if kind is CloneKind.PLAIN_MAPPING:
        return {key: clone(item) for key, item in value.items()}
    if kind is CloneKind.PLAIN_SEQUENCE:
        return [clone(item) for item in value]
    if kind is CloneKind.OPAQUE:
        return copy.copy(value)
    return value
