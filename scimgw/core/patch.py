"""Partial-update payloads for user records.

A modify payload is an attribute object in the SCIM 1.1 PATCH style::

    {
        "title": "Manager",                                   # ScalarSet
        "nickName": "",                                       # AttributeClear
        "name": {"givenName": "Barbara"},                     # ContainerMerge
        "meta": {"attributes": ["name.familyName"]},          # ClearByPath
        "groups": [{"value": "Admins", "operation": "delete"}],  # SequenceDelete
        "emails": {"work": {"value": "bjensen@example.com"}},    # MultiValueUpsert
        "phoneNumbers": {"home": {"operation": "delete"}},       # MultiValueDelete
    }

:func:`normalize_user_patch` turns such a payload into a list of tagged
operations and :func:`apply_user_patch` applies them to a stored record.
Attributes listed as multi-value types are type-keyed: at most one entry per
``type``, where the key ``"undefined"`` stands for an entry without type.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

from .cloning import clone
from .dotpath import assign
from .exceptions import UnsupportedOperation
from .merge import DELETE, merge

logger = logging.getLogger(__name__)

NO_TYPE = "undefined"


# ─────────────────────────────────────────────────────────────────────────────
# Patch operations
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScalarSet:
    attribute: str
    value: Any


@dataclass(frozen=True)
class AttributeClear:
    attribute: str


@dataclass(frozen=True)
class ContainerMerge:
    attribute: str
    values: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ClearByPath:
    attribute: str
    paths: tuple = ()


@dataclass(frozen=True)
class SequenceAdd:
    attribute: str
    element: Any


@dataclass(frozen=True)
class SequenceDelete:
    attribute: str
    value: Any


@dataclass(frozen=True)
class MultiValueUpsert:
    attribute: str
    type: Optional[str]
    entry: dict = field(default_factory=dict)


@dataclass(frozen=True)
class MultiValueDelete:
    attribute: str
    type: Optional[str]


PatchOperation = Union[
    ScalarSet, AttributeClear, ContainerMerge, ClearByPath,
    SequenceAdd, SequenceDelete, MultiValueUpsert, MultiValueDelete,
]


# ─────────────────────────────────────────────────────────────────────────────
# Type-keyed conversion
# ─────────────────────────────────────────────────────────────────────────────

def to_type_keyed(entries: list) -> dict:
    """Convert an entry list into a mapping keyed by ``type``.

    Entries without type are keyed by ``"undefined"``. When two entries share
    a type the later one wins.
    """
    keyed: dict = {}
    for entry in entries:
        if not isinstance(entry, dict):
            raise UnsupportedOperation(f"multi-valued entry must be an object: {entry!r}")
        type_key = entry.get("type") or NO_TYPE
        if type_key in keyed:
            logger.warning(f"duplicate multi-value type '{type_key}', keeping last entry")
        keyed[type_key] = {k: v for k, v in entry.items() if k != "type"}
    return keyed


def from_type_keyed(keyed: dict) -> list:
    """Convert a type-keyed mapping back into an entry list (sentinel type stripped)."""
    entries = []
    for type_key, entry in keyed.items():
        if not isinstance(entry, dict):
            raise UnsupportedOperation(f"multi-valued entry '{type_key}' must be an object")
        converted = clone(entry)
        converted.pop("type", None)
        if type_key != NO_TYPE:
            converted["type"] = type_key
        entries.append(converted)
    return entries


def _entry_type(type_key: str) -> Optional[str]:
    return None if type_key == NO_TYPE else type_key


# ─────────────────────────────────────────────────────────────────────────────
# Normalization
# ─────────────────────────────────────────────────────────────────────────────

def normalize_user_patch(attrs: dict, multi_value_types: Iterable[str] = ()) -> list[PatchOperation]:
    """Translate a modify payload into tagged patch operations.

    Args:
        attrs: Attribute object of the modify request
        multi_value_types: Attributes handled as type-keyed multi-values

    Returns:
        Operations in payload order

    Raises:
        UnsupportedOperation: If a type-keyed attribute has a malformed shape
    """
    multi_value_types = set(multi_value_types)
    operations: list[PatchOperation] = []

    for key, value in attrs.items():
        if key in multi_value_types:
            if value is None or value == "":
                operations.append(AttributeClear(key))
                continue
            if isinstance(value, list):
                value = to_type_keyed(value)
            if not isinstance(value, dict):
                raise UnsupportedOperation(f"attribute '{key}' must be a list or a type-keyed object")
            for type_key, entry in value.items():
                if not isinstance(entry, dict):
                    raise UnsupportedOperation(f"multi-valued entry '{key}.{type_key}' must be an object")
                entry_type = _entry_type(type_key)
                if entry.get("operation") == DELETE:
                    operations.append(MultiValueDelete(key, entry_type))
                else:
                    fields = {k: v for k, v in entry.items() if k not in ("operation", "type")}
                    operations.append(MultiValueUpsert(key, entry_type, fields))

        elif isinstance(value, list):
            for element in value:
                if isinstance(element, dict) and element.get("operation") == DELETE:
                    operations.append(SequenceDelete(key, element.get("value")))
                elif isinstance(element, dict):
                    operations.append(SequenceAdd(key, {k: v for k, v in element.items() if k != "operation"}))
                else:
                    operations.append(SequenceAdd(key, element))

        elif isinstance(value, dict):
            sub_values = {}
            clear_paths: list[str] = []
            for sub, sub_value in value.items():
                if sub == "attributes" and isinstance(sub_value, list):
                    clear_paths.extend(str(path) for path in sub_value)
                else:
                    sub_values[sub] = sub_value
            # store bookkeeping: only the clear list is taken from meta
            if key != "meta":
                operations.append(ContainerMerge(key, sub_values))
            if clear_paths:
                operations.append(ClearByPath(key, tuple(clear_paths)))

        elif value is None or value == "":
            operations.append(AttributeClear(key))
        else:
            operations.append(ScalarSet(key, value))

    return operations


# ─────────────────────────────────────────────────────────────────────────────
# Application
# ─────────────────────────────────────────────────────────────────────────────

def _prune(record: dict, key: str) -> None:
    value = record.get(key)
    if isinstance(value, (dict, list)) and not value:
        del record[key]


def _apply_scalar_set(record: dict, op: ScalarSet) -> None:
    record[op.attribute] = op.value


def _apply_attribute_clear(record: dict, op: AttributeClear) -> None:
    record.pop(op.attribute, None)


def _apply_container_merge(record: dict, op: ContainerMerge) -> None:
    container = record.get(op.attribute)
    if not isinstance(container, dict):
        container = {}
    for sub, sub_value in op.values.items():
        if isinstance(sub_value, dict) and sub_value.get("value") == "":
            # complex sub-attribute with blank value, e.g. {"manager": {"value": ""}}
            container.pop(sub, None)
        elif sub_value == "" or sub_value is None:
            container.pop(sub, None)
        else:
            merge(container, {sub: clone(sub_value)})
    record[op.attribute] = container
    _prune(record, op.attribute)


def _apply_clear_by_path(record: dict, op: ClearByPath) -> None:
    for path in op.paths:
        if not assign(record, path, ""):
            logger.debug(f"clear path '{path}' not present, skipped")


def _apply_sequence_add(record: dict, op: SequenceAdd) -> None:
    merge(record, {op.attribute: [clone(op.element)]})


def _apply_sequence_delete(record: dict, op: SequenceDelete) -> None:
    entries = record.get(op.attribute)
    if not isinstance(entries, list):
        return
    record[op.attribute] = [
        e for e in entries
        if (e.get("value") if isinstance(e, dict) else e) != op.value
    ]
    _prune(record, op.attribute)


def _apply_multi_value_upsert(record: dict, op: MultiValueUpsert) -> None:
    entries = record.get(op.attribute)
    if not isinstance(entries, list):
        entries = record[op.attribute] = []

    updated = None
    kept = []
    for entry in entries:
        if isinstance(entry, dict) and entry.get("type") == op.type:
            if updated is not None:
                continue  # enforce a single entry per type
            entry.update(clone(op.entry))
            updated = entry
        kept.append(entry)

    if updated is None:
        new_entry = clone(op.entry)
        if op.type is not None:
            new_entry["type"] = op.type
        kept.append(new_entry)
    record[op.attribute] = kept


def _apply_multi_value_delete(record: dict, op: MultiValueDelete) -> None:
    entries = record.get(op.attribute)
    if not isinstance(entries, list):
        return
    record[op.attribute] = [
        e for e in entries if not (isinstance(e, dict) and e.get("type") == op.type)
    ]
    _prune(record, op.attribute)


_HANDLERS = {
    ScalarSet: _apply_scalar_set,
    AttributeClear: _apply_attribute_clear,
    ContainerMerge: _apply_container_merge,
    ClearByPath: _apply_clear_by_path,
    SequenceAdd: _apply_sequence_add,
    SequenceDelete: _apply_sequence_delete,
    MultiValueUpsert: _apply_multi_value_upsert,
    MultiValueDelete: _apply_multi_value_delete,
}


def apply_user_patch(record: dict, operations: Iterable[PatchOperation]) -> dict:
    """Apply normalized operations to ``record`` in place and return it."""
    for op in operations:
        _HANDLERS[type(op)](record, op)
    return record
