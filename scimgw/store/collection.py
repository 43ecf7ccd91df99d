"""In-memory document collection with unique constraints."""
from __future__ import annotations
import time
from typing import Any, Callable, Iterable, Iterator, Optional, Protocol

from scimgw.core.cloning import clone

STORE_ID = "$loki"


class StoreError(Exception):
    """Base exception for document store operations."""
    pass


class UniqueConstraintError(StoreError):
    """Insert or update collides on a unique-constrained field.

    Attributes:
        field: Constrained field name
        value: Colliding value
    """

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value
        super().__init__(f"Duplicate key for property {field}: {value}")


class DocumentNotFoundError(StoreError):
    """Update or remove of a document that is not (or no longer) stored."""
    pass


class Repository(Protocol):
    """Record lookup/persistence used by the provisioning service."""

    def find(self, query: Optional[dict] = None) -> list[dict]: ...

    def all(self) -> list[dict]: ...

    def insert(self, record: dict) -> dict: ...

    def update(self, record: dict) -> dict: ...

    def remove(self, record: dict) -> None: ...


def _now_ms() -> int:
    return int(time.time() * 1000)


def _values_at(obj: Any, segments: list[str]) -> Iterator[Any]:
    """Yield every value reachable through ``segments``, fanning out over lists."""
    if not segments:
        if isinstance(obj, list):
            yield from obj
        yield obj
        return
    if isinstance(obj, list):
        for item in obj:
            yield from _values_at(item, segments)
    elif isinstance(obj, dict) and segments[0] in obj:
        yield from _values_at(obj[segments[0]], segments[1:])


def _matches(doc: dict, field: str, expected: Any) -> bool:
    if field in doc:
        return doc[field] == expected
    return any(value == expected for value in _values_at(doc, field.split(".")))


class Collection:
    """Named set of JSON documents.

    Documents are copied on the way in and on the way out, so callers always
    work on their own copy and persist changes with :meth:`update`. Every
    stored document carries an internal ``$loki`` id and a ``meta`` object
    with ``created`` / ``updated`` (epoch milliseconds) and ``revision``.

    Usage:
        users = Collection("users", unique=["id", "userName"])
        users.insert({"id": "bjensen", "userName": "bjensen"})
        user = users.find({"userName": "bjensen"})[0]
        user["title"] = "Manager"
        users.update(user)
    """

    def __init__(self, name: str, unique: Iterable[str] = (), on_change: Optional[Callable[[], None]] = None):
        self.name = name
        self.unique = tuple(unique)
        self._docs: dict[int, dict] = {}
        self._next_id = 1
        self._on_change = on_change

    def __len__(self) -> int:
        return len(self._docs)

    def _check_unique(self, record: dict, skip_id: Optional[int] = None) -> None:
        for field in self.unique:
            value = record.get(field)
            if value is None:
                continue
            for doc_id, doc in self._docs.items():
                if doc_id != skip_id and doc.get(field) == value:
                    raise UniqueConstraintError(field, value)

    def _changed(self) -> None:
        if self._on_change:
            self._on_change()

    def insert(self, record: dict) -> dict:
        """Store a copy of ``record`` and return the stored document.

        Raises:
            UniqueConstraintError: If a unique field value is already taken
        """
        self._check_unique(record)
        doc = clone(record)
        doc.pop(STORE_ID, None)
        meta = doc.get("meta") if isinstance(doc.get("meta"), dict) else {}
        meta.update({"revision": 0, "created": _now_ms(), "version": 0})
        doc["meta"] = meta
        doc[STORE_ID] = self._next_id
        self._docs[self._next_id] = doc
        self._next_id += 1
        self._changed()
        return clone(doc)

    def update(self, record: dict) -> dict:
        """Replace the stored document having the same ``$loki`` id.

        Raises:
            DocumentNotFoundError: If the document is not stored
            UniqueConstraintError: If the change collides on a unique field
        """
        doc_id = record.get(STORE_ID)
        if doc_id not in self._docs:
            raise DocumentNotFoundError(f"{self.name}: document is not in the collection")
        self._check_unique(record, skip_id=doc_id)
        doc = clone(record)
        meta = doc.get("meta") if isinstance(doc.get("meta"), dict) else {}
        meta["revision"] = int(meta.get("revision", 0)) + 1
        meta["updated"] = _now_ms()
        doc["meta"] = meta
        self._docs[doc_id] = doc
        self._changed()
        return clone(doc)

    def remove(self, record: dict) -> None:
        """Remove the stored document having the same ``$loki`` id."""
        doc_id = record.get(STORE_ID)
        if doc_id not in self._docs:
            raise DocumentNotFoundError(f"{self.name}: document is not in the collection")
        del self._docs[doc_id]
        self._changed()

    def find(self, query: Optional[dict] = None) -> list[dict]:
        """Return copies of documents whose fields equal every query value.

        Dotted query fields (``emails.value``) match when any value reached
        through multi-valued attributes is equal.
        """
        query = query or {}
        return [
            clone(doc) for doc in self._docs.values()
            if all(_matches(doc, field, expected) for field, expected in query.items())
        ]

    def all(self) -> list[dict]:
        return self.find()

    def dump(self) -> dict:
        """Serializable state of the collection."""
        return {"unique": list(self.unique), "nextId": self._next_id, "data": list(self._docs.values())}

    def load(self, state: dict) -> None:
        """Replace contents with a state produced by :meth:`dump`."""
        self._docs = {doc[STORE_ID]: doc for doc in state.get("data", [])}
        self._next_id = max([state.get("nextId", 1), *[doc_id + 1 for doc_id in self._docs]])
