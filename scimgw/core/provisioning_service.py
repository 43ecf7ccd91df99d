"""
Provisioning Service Layer: SCIM endpoint plugin on a document store

This module implements the endpoint operations invoked by the SCIM API for
users and groups, keeping records consistent in the backing document store.

Architecture:
    SCIM API (/scim/v2/*) ──> provisioning_service.py ──> scimgw.store (users, groups)
                                      │
                                      └──> core.patch / core.merge / core.projection

Features:
    - Supported-attribute validation (empty list: all attributes supported)
    - Type-keyed multi-value attributes (one entry per "type")
    - Partial updates: upsert/delete by type, add/delete by value, clear by path
    - Group membership changes checked against existing users
    - Passwords are never persisted
    - Signed audit trail of every change
"""

from __future__ import annotations
import datetime
import logging
from typing import Any, Optional

from scimgw import audit
from scimgw.config.settings import AppConfig
from scimgw.core.cloning import clone
from scimgw.core.exceptions import (
    DuplicateKey,
    MembershipReferenceError,
    NotFound,
    ProvisioningError,
    UnsupportedAttribute,
    UnsupportedOperation,
)
from scimgw.core.merge import DELETE
from scimgw.core.patch import apply_user_patch, from_type_keyed, normalize_user_patch, to_type_keyed
from scimgw.core.projection import parse_attribute_list, project
from scimgw.core.utils import json_stringify
from scimgw.store import STORE_ID, DocumentStore, Repository, UniqueConstraintError

logger = logging.getLogger(__name__)

# Attributes accepted regardless of the supported-attribute list
ALWAYS_ACCEPTED = ("schemas", "id", "meta")

DEFAULT_BASE_ENTITY = "undefined"


# ─────────────────────────────────────────────────────────────────────────────
# Store ⇔ SCIM meta
# ─────────────────────────────────────────────────────────────────────────────

def _iso(epoch_ms: Any) -> Any:
    """Epoch milliseconds as ISO-8601; anything else is returned unchanged."""
    if isinstance(epoch_ms, bool) or not isinstance(epoch_ms, (int, float)):
        return epoch_ms
    dt = datetime.datetime.fromtimestamp(epoch_ms / 1000.0, tz=datetime.timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def strip_store_meta(record: dict) -> dict:
    """Return a copy of a stored record with store bookkeeping turned into SCIM meta.

    ``$loki`` is removed, ``meta.created`` / ``meta.updated`` (epoch ms) become
    ISO-8601 ``created`` / ``lastModified`` and ``meta.revision`` becomes
    ``meta.version``.
    """
    ret = clone(record)
    ret.pop(STORE_ID, None)
    meta = ret.get("meta")
    if isinstance(meta, dict):
        if meta.get("created"):
            meta["created"] = _iso(meta["created"])
        meta.pop("lastModified", None)
        if meta.get("updated"):
            meta["lastModified"] = _iso(meta.pop("updated"))
        if "revision" in meta:
            meta["version"] = meta.pop("revision")
    return ret


# ─────────────────────────────────────────────────────────────────────────────
# Service
# ─────────────────────────────────────────────────────────────────────────────

class ProvisioningService:
    """User and group operations of the endpoint plugin.

    Args:
        users: Repository of user records (unique ``id`` and ``userName``)
        groups: Repository of group records (unique ``id`` and ``displayName``)
        config: Application configuration (supported attributes, multi-value types)
    """

    def __init__(self, users: Repository, groups: Repository, config: Optional[AppConfig] = None):
        self.users = users
        self.groups = groups
        self.config = config or AppConfig(demo_mode=False)
        self.plugin_name = self.config.plugin_name

    @classmethod
    def from_store(cls, store: DocumentStore, config: Optional[AppConfig] = None) -> "ProvisioningService":
        return cls(store.users, store.groups, config)

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────

    def _log_action(self, base_entity: str, action: str, message: str) -> None:
        logger.debug(f'{self.plugin_name}[{base_entity}] handling "{action}" {message}')

    def not_valid_attributes(self, obj: dict) -> list[str]:
        """Top-level attributes of ``obj`` outside the supported set."""
        supported = self.config.supported_attributes
        if not supported:
            return []
        return [key for key in obj if key not in supported and key not in ALWAYS_ACCEPTED]

    def _check_supported(self, obj: dict) -> None:
        not_valid = self.not_valid_attributes(obj)
        if not_valid:
            raise UnsupportedAttribute(not_valid, self.config.supported_attributes)

    @staticmethod
    def _find_one(repository: Repository, resource_id: str, message: str) -> dict:
        res = repository.find({"id": resource_id})
        if len(res) != 1:
            raise NotFound(message)
        return res[0]

    def _normalize_multi_values(self, record: dict) -> None:
        """Convert type-keyed objects (and entry lists) into entry lists, one entry per type."""
        for key in list(record):
            if key not in self.config.multi_value_types:
                continue
            value = record[key]
            if value is None or value == "":
                del record[key]
            elif isinstance(value, dict):
                record[key] = from_type_keyed(value)
            elif isinstance(value, list):
                record[key] = from_type_keyed(to_type_keyed(value))

    @staticmethod
    def _page(records: list, start_index: Optional[int], count: Optional[int]) -> list:
        start = max(1, int(start_index or 1))
        if count is None:
            return records[start - 1:]
        return records[start - 1:start - 1 + max(0, int(count))]

    # ─────────────────────────────────────────────────────────────────────────
    # Users
    # ─────────────────────────────────────────────────────────────────────────

    def explore_users(
        self,
        attributes: Optional[str] = None,
        start_index: Optional[int] = None,
        count: Optional[int] = None,
        excluded_attributes: Optional[str] = None,
        base_entity: str = DEFAULT_BASE_ENTITY,
    ) -> dict:
        """List users.

        Without paging at most ``page_size_limit`` users are returned.

        Returns:
            {"Resources": [...], "totalResults": <number of stored users>}
        """
        self._log_action(base_entity, "exploreUsers",
                         f"attributes={attributes} startIndex={start_index} count={count}")
        records = self.users.all()
        if not start_index and not count:
            count = min(len(records), self.config.page_size_limit)
        delta = [strip_store_meta(r) for r in self._page(records, start_index, count)]
        return {
            "Resources": project(delta, include=attributes, exclude=excluded_attributes),
            "totalResults": len(records),
        }

    def get_user(
        self,
        filter_attr: str,
        identifier: Any,
        attributes: Optional[str] = None,
        excluded_attributes: Optional[str] = None,
        base_entity: str = DEFAULT_BASE_ENTITY,
    ) -> Optional[dict]:
        """Return the single user whose ``filter_attr`` equals ``identifier``.

        Args:
            filter_attr: Lookup attribute, e.g. ``userName``, ``id`` or ``emails.value``
            identifier: Value to match
            attributes: Attributes to return (comma separated)
            excluded_attributes: Attributes to leave out (comma separated)

        Returns:
            User record, or None when no user or more than one user matched
        """
        self._log_action(base_entity, "getUser", f"{filter_attr}={identifier} attributes={attributes}")
        res = self.users.find({filter_attr: identifier})
        if len(res) != 1:
            return None
        return project(strip_store_meta(res[0]), include=attributes, exclude=excluded_attributes)

    def create_user(self, user: dict, base_entity: str = DEFAULT_BASE_ENTITY) -> dict:
        """Create a user; ``id`` is set to ``userName``.

        Raises:
            UnsupportedAttribute: On attributes outside the supported set
            DuplicateKey: If ``id`` or ``userName`` already exists
        """
        self._check_supported(user)
        record = clone(user)
        record.pop("password", None)  # never stored
        self._log_action(base_entity, "createUser", f"userObj={json_stringify(record)}")

        if not record.get("userName"):
            raise ProvisioningError("userName is required", status=400, scim_type="invalidValue")
        self._normalize_multi_values(record)
        record.pop("meta", None)  # bookkeeping belongs to the store
        record["id"] = record["userName"]

        try:
            created = self.users.insert(record)
        except UniqueConstraintError as exc:
            raise DuplicateKey(str(exc)) from exc

        audit.safe_log_event("create_user", record["id"], base_entity=base_entity)
        return strip_store_meta(created)

    def delete_user(self, user_id: str, base_entity: str = DEFAULT_BASE_ENTITY) -> None:
        """Delete a user.

        Raises:
            NotFound: Unless exactly one user has this id
        """
        self._log_action(base_entity, "deleteUser", f"id={user_id}")
        user = self._find_one(self.users, user_id, f"Failed to delete user with id={user_id}")
        self.users.remove(user)
        audit.safe_log_event("delete_user", user_id, base_entity=base_entity)

    def modify_user(self, user_id: str, attrs: dict, base_entity: str = DEFAULT_BASE_ENTITY) -> dict:
        """Apply a partial update to a user and persist it.

        The payload is validated and normalized before the user is touched.

        Raises:
            UnsupportedAttribute: On attributes outside the supported set
            UnsupportedOperation: On malformed multi-value payloads
            NotFound: Unless exactly one user has this id
            DuplicateKey: If the change collides on ``userName``
        """
        self._check_supported(attrs)
        attrs = {k: v for k, v in attrs.items() if k not in ("password", "schemas", "id")}
        self._log_action(base_entity, "modifyUser", f"id={user_id} attrObj={json_stringify(attrs)}")

        operations = normalize_user_patch(attrs, self.config.multi_value_types)
        user = self._find_one(self.users, user_id, f"Could not find user with id={user_id}")
        apply_user_patch(user, operations)

        try:
            updated = self.users.update(user)
        except UniqueConstraintError as exc:
            raise DuplicateKey(str(exc)) from exc

        audit.safe_log_event("modify_user", user_id, base_entity=base_entity,
                             details={"attributes": sorted(attrs)})
        return strip_store_meta(updated)

    # ─────────────────────────────────────────────────────────────────────────
    # Groups
    # ─────────────────────────────────────────────────────────────────────────

    def explore_groups(
        self,
        attributes: Optional[str] = None,
        start_index: Optional[int] = None,
        count: Optional[int] = None,
        excluded_attributes: Optional[str] = None,
        base_entity: str = DEFAULT_BASE_ENTITY,
    ) -> dict:
        """List groups (members included)."""
        self._log_action(base_entity, "exploreGroups",
                         f"attributes={attributes} startIndex={start_index} count={count}")
        records = self.groups.all()
        delta = [strip_store_meta(r) for r in self._page(records, start_index, count)]
        return {
            "Resources": project(delta, include=attributes, exclude=excluded_attributes),
            "totalResults": len(records),
        }

    def get_group(
        self,
        filter_attr: str,
        identifier: Any,
        attributes: Optional[str] = None,
        excluded_attributes: Optional[str] = None,
        base_entity: str = DEFAULT_BASE_ENTITY,
    ) -> Optional[dict]:
        """Return the single group whose ``filter_attr`` equals ``identifier``, else None."""
        self._log_action(base_entity, "getGroup", f"{filter_attr}={identifier} attributes={attributes}")
        res = self.groups.find({filter_attr: identifier})
        if len(res) != 1:
            return None
        return project(strip_store_meta(res[0]), include=attributes, exclude=excluded_attributes)

    def get_group_members(
        self,
        user_id: str,
        attributes: Optional[str] = None,
        base_entity: str = DEFAULT_BASE_ENTITY,
    ) -> list[dict]:
        """Groups the user is a member of.

        Each group only lists the requested attributes (e.g. ``id,displayName``)
        and ``members`` restricted to this user.
        """
        self._log_action(base_entity, "getGroupMembers", f"user id={user_id} attributes={attributes}")
        requested = parse_attribute_list(attributes)
        ret = []
        for group in self.groups.all():
            members = group.get("members") or []
            if not any(isinstance(m, dict) and m.get("value") == user_id for m in members):
                continue
            user_group = {attr: group[attr] for attr in requested if group.get(attr)}
            user_group["members"] = [{"value": user_id}]
            ret.append(user_group)
        return ret

    def get_group_users(self, group_id: str, base_entity: str = DEFAULT_BASE_ENTITY) -> list[dict]:
        """Users whose ``groups`` attribute references the group."""
        self._log_action(base_entity, "getGroupUsers", f"id={group_id}")
        ret = []
        for user in self.users.all():
            for group in user.get("groups") or []:
                if isinstance(group, dict) and group.get("value") == group_id:
                    ret.append({"userName": user.get("userName"), "groups": [{"value": group_id}]})
                    break
        return ret

    def create_group(self, group: dict, base_entity: str = DEFAULT_BASE_ENTITY) -> dict:
        """Create a group; ``id`` is set to ``displayName``.

        Raises:
            UnsupportedAttribute: On attributes outside the supported set
            DuplicateKey: If ``displayName`` already exists
        """
        self._check_supported(group)
        self._log_action(base_entity, "createGroup", f"groupObj={json_stringify(group)}")
        record = clone(group)
        if not record.get("displayName"):
            raise ProvisioningError("displayName is required", status=400, scim_type="invalidValue")
        self._normalize_multi_values(record)
        record.pop("meta", None)
        record["id"] = record["displayName"]

        try:
            created = self.groups.insert(record)
        except UniqueConstraintError as exc:
            raise DuplicateKey(str(exc)) from exc

        audit.safe_log_event("create_group", record["id"], base_entity=base_entity)
        return strip_store_meta(created)

    def delete_group(self, group_id: str, base_entity: str = DEFAULT_BASE_ENTITY) -> None:
        """Delete a group.

        Raises:
            NotFound: Unless exactly one group has this id
        """
        self._log_action(base_entity, "deleteGroup", f"id={group_id}")
        group = self._find_one(self.groups, group_id, f"Failed to delete group with id={group_id}")
        self.groups.remove(group)
        audit.safe_log_event("delete_group", group_id, base_entity=base_entity)

    def modify_group(self, group_id: str, attrs: dict, base_entity: str = DEFAULT_BASE_ENTITY) -> dict:
        """Apply membership changes to a group.

        Payload: ``{"members": [{"value": <user id>, "operation": "delete"?}, ...]}``.
        A delete without value removes all members. Added members must be
        existing users; unknown ones are skipped, the remaining changes are
        persisted, and only then MembershipReferenceError is raised.

        Raises:
            UnsupportedOperation: On anything else than a well-formed members list
            NotFound: Unless exactly one group has this id
            MembershipReferenceError: If added members do not exist (after persisting)
        """
        action = "modifyGroup"
        self._log_action(base_entity, action, f"id={group_id} attrObj={json_stringify(attrs)}")

        changes = {k: v for k, v in attrs.items() if k != "schemas"}
        if not changes.get("members"):
            raise UnsupportedOperation(f'plugin handling "{action}" only supports modification of members')
        if set(changes) != {"members"}:
            others = ",".join(sorted(set(changes) - {"members"}))
            raise UnsupportedOperation(f'plugin handling "{action}" only supports modification of members, got: {others}')
        if not isinstance(changes["members"], list):
            raise UnsupportedOperation(
                f'plugin handling "{action}" error: {json_stringify(attrs)} - correct syntax is {{ "members": [...] }}'
            )
        for member in changes["members"]:
            if not isinstance(member, dict):
                raise UnsupportedOperation(f'plugin handling "{action}" error: member must be an object: {member!r}')
            if member.get("operation") != DELETE and not member.get("value"):
                raise UnsupportedOperation(f'plugin handling "{action}" error: member to add has no value')

        group = self._find_one(self.groups, group_id, f"Failed to find group with id={group_id}")
        members = [m for m in group.get("members") or []]
        users_not_exist = []

        for member in changes["members"]:
            value = member.get("value")
            if member.get("operation") == DELETE:
                if not value:
                    members = []
                else:
                    members = [m for m in members if not (isinstance(m, dict) and m.get("value") == value)]
                continue

            if self.get_user("id", value, attributes="id", base_entity=base_entity) is None:
                users_not_exist.append(value)
                continue
            if not any(isinstance(m, dict) and m.get("value") == value for m in members):
                members.append({"display": member.get("display") or value, "value": value})

        if members:
            group["members"] = members
        else:
            group.pop("members", None)
        updated = self.groups.update(group)

        audit.safe_log_event(
            "modify_group", group_id, base_entity=base_entity,
            details={"unknown_members": users_not_exist},
            success=not users_not_exist,
        )
        if users_not_exist:
            raise MembershipReferenceError(action, users_not_exist)
        return strip_store_meta(updated)
