"""Attribute projection for outbound records.

Implements the ``attributes`` / ``excludedAttributes`` query parameters of
RFC 7644 section 3.4.2.5 for paths of one or two segments::

    title                 top-level attribute
    name.familyName       sub-attribute of a complex attribute
    emails.value          sub-attribute of every entry of a multi-valued attribute

Usage:
    project(user, include="userName,emails.value")
    project(users, exclude="password,name.middleName")
"""
from __future__ import annotations
from typing import Any, Iterable, Optional, Union

from .cloning import clone

AttributeList = Union[str, Iterable[str], None]


def parse_attribute_list(attributes: AttributeList) -> list[str]:
    """Split a comma separated attribute list into trimmed, non-empty paths."""
    if not attributes:
        return []
    if isinstance(attributes, str):
        attributes = attributes.split(",")
    return [attr.strip() for attr in attributes if attr and attr.strip()]


def _include(record: dict, paths: list[str]) -> dict:
    ret: dict = {}
    parallel: set[str] = set()

    for path in paths:
        head, _, sub = path.partition(".")
        if head not in record:
            continue
        value = record[head]
        if not sub:
            ret[head] = clone(value)
            parallel.discard(head)
        elif isinstance(value, dict):
            if sub in value:
                target = ret.get(head)
                if not isinstance(target, dict):
                    target = ret[head] = {}
                target[sub] = clone(value[sub])
        elif isinstance(value, list):
            produced = ret.get(head)
            if not isinstance(produced, list) or len(produced) != len(value):
                # one produced entry per source entry, same order
                produced = ret[head] = [{} if isinstance(item, dict) else clone(item) for item in value]
                parallel.add(head)
            for item, out in zip(value, produced):
                if isinstance(item, dict) and sub in item and isinstance(out, dict):
                    out[sub] = clone(item[sub])

    for head in parallel:
        ret[head] = [item for item in ret[head] if item != {}]
    return ret


def _exclude(record: dict, paths: list[str]) -> dict:
    ret = clone(record)

    for path in paths:
        head, _, sub = path.partition(".")
        if head not in ret:
            continue
        if not sub:
            del ret[head]
            continue
        value = ret[head]
        if isinstance(value, dict):
            if sub in value:
                del value[sub]
                if not value:
                    del ret[head]
        elif isinstance(value, list):
            kept = []
            for item in value:
                if isinstance(item, dict) and sub in item:
                    del item[sub]
                    if not item:
                        continue
                kept.append(item)
            if kept:
                ret[head] = kept
            else:
                del ret[head]
    return ret


def project(
    records: Any,
    include: AttributeList = None,
    exclude: AttributeList = None,
) -> Any:
    """Return records limited to ``include`` or stripped of ``exclude``.

    Only one mode is honored; ``include`` wins when both are given. Without
    either the input is returned unchanged. A single record yields a single
    record and a list yields a list of the same length. The input is never
    modified.

    Args:
        records: A record or a list of records
        include: Comma separated (or iterable) paths to keep
        exclude: Comma separated (or iterable) paths to drop

    Returns:
        New record(s) shaped according to the requested paths
    """
    include_paths = parse_attribute_list(include)
    exclude_paths = parse_attribute_list(exclude)
    if not include_paths and not exclude_paths:
        return records
    if not isinstance(records, (dict, list)):
        return records
    if isinstance(records, list) and not records:
        return records

    if include_paths:
        def shape(record):
            return _include(record, include_paths)
    else:
        def shape(record):
            return _exclude(record, exclude_paths)

    if isinstance(records, dict):
        return shape(records)
    return [shape(record) if isinstance(record, dict) else record for record in records]
