"""Document store backing the endpoint plugin.

Architecture:
- collection.py: Collection (find/insert/update/remove with unique constraints)
- database.py: DocumentStore (users + groups, JSON file persistence, demo data)
"""
from .collection import (
    STORE_ID,
    Collection,
    DocumentNotFoundError,
    Repository,
    StoreError,
    UniqueConstraintError,
)
from .database import DEMO_GROUPS, DEMO_USERS, DocumentStore

__all__ = [
    "STORE_ID",
    "Collection",
    "DocumentNotFoundError",
    "Repository",
    "StoreError",
    "UniqueConstraintError",
    "DEMO_GROUPS",
    "DEMO_USERS",
    "DocumentStore",
]
