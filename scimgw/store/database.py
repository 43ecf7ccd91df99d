"""Document store holding the ``users`` and ``groups`` collections.

With persistence enabled the store is loaded from, and saved after every
change to, a JSON file. Without persistence it lives in memory only and is
seeded with two demo users and two demo groups.
"""
from __future__ import annotations
import json
import logging
import os
from pathlib import Path
from typing import Optional

from scimgw.core.cloning import clone

from .collection import Collection

logger = logging.getLogger(__name__)

DEMO_USERS = [
    {
        "id": "bjensen",
        "userName": "bjensen",
        "active": True,
        "name": {
            "formatted": "Ms. Barbara J Jensen III",
            "familyName": "Jensen",
            "givenName": "Barbara",
        },
        "title": "",
        "emails": [{"value": "bjensen@example.com", "type": "work"}],
        "phoneNumbers": [{"value": "tel:555-555-5555", "type": "work"}],
    },
    {
        "id": "jsmith",
        "userName": "jsmith",
        "active": True,
        "name": {
            "formatted": "Mr. John Smith",
            "familyName": "Smith",
            "givenName": "John",
        },
        "title": "",
        "emails": [{"value": "jsmith@example.com", "type": "work"}],
        "phoneNumbers": [{"value": "tel:555-555-8377", "type": "work"}],
    },
]

DEMO_GROUPS = [
    {
        "id": "Admins",
        "displayName": "Admins",
        "members": [{"value": "bjensen", "display": "bjensen"}],
    },
    {
        "id": "Employees",
        "displayName": "Employees",
        "members": [{"value": "jsmith", "display": "jsmith"}],
    },
]


class DocumentStore:
    """Users and groups collections with optional JSON file persistence.

    Args:
        path: Database file, used when ``persistence`` is True
        persistence: Load from / save to ``path``
        seed_demo_data: Insert demo records (default: when not persistent)
    """

    def __init__(self, path: Optional[str | Path] = None, persistence: bool = False,
                 seed_demo_data: Optional[bool] = None):
        self.path = Path(path) if path else None
        self.persistence = persistence and self.path is not None
        self._loading = False

        self.users = Collection("users", unique=["id", "userName"], on_change=self._autosave)
        self.groups = Collection("groups", unique=["id", "displayName"], on_change=self._autosave)

        if self.persistence:
            self.load()

        if seed_demo_data is None:
            seed_demo_data = not self.persistence
        if seed_demo_data:
            self._seed()

    def _seed(self) -> None:
        for record in DEMO_USERS:
            self.users.insert(clone(record))
        for record in DEMO_GROUPS:
            self.groups.insert(clone(record))
        logger.info(f"loaded {len(DEMO_USERS)} demo users and {len(DEMO_GROUPS)} demo groups")

    def _autosave(self) -> None:
        if self.persistence and not self._loading:
            self.save()

    def load(self) -> None:
        """Load collections from the database file (missing file means empty store)."""
        if not self.path or not self.path.exists():
            logger.info(f"database {self.path} does not exist, starting empty")
            return
        state = json.loads(self.path.read_text(encoding="utf-8"))
        self._loading = True
        try:
            self.users.load(state.get("users", {}))
            self.groups.load(state.get("groups", {}))
        finally:
            self._loading = False
        logger.info(f"loaded database {self.path} ({len(self.users)} users, {len(self.groups)} groups)")

    def save(self) -> None:
        """Write both collections to the database file atomically."""
        if not self.path:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        state = {"users": self.users.dump(), "groups": self.groups.dump()}
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(json.dumps(state, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def close(self) -> None:
        if self.persistence:
            self.save()
