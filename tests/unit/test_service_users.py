"""Tests for user operations of the provisioning service."""
import json

import pytest

from scimgw.config import AppConfig
from scimgw.core.exceptions import DuplicateKey, NotFound, UnsupportedAttribute, UnsupportedOperation
from scimgw.core.provisioning_service import ProvisioningService, strip_store_meta
from scimgw.store import STORE_ID, DocumentStore


def _stored(store, user_id):
    return store.users.find({"id": user_id})[0]


# ─────────────────────────────────────────────────────────────────────────────
# Read
# ─────────────────────────────────────────────────────────────────────────────

def test_explore_users_returns_all_demo_users(service):
    res = service.explore_users()
    assert res["totalResults"] == 2
    assert [u["id"] for u in res["Resources"]] == ["bjensen", "jsmith"]
    assert all(STORE_ID not in u for u in res["Resources"])


def test_explore_users_paging_is_one_based(service):
    res = service.explore_users(start_index=2, count=1)
    assert [u["id"] for u in res["Resources"]] == ["jsmith"]
    assert res["totalResults"] == 2


def test_explore_users_caps_unpaged_result(store):
    service = ProvisioningService.from_store(store, AppConfig(demo_mode=True, page_size_limit=1))
    assert len(service.explore_users()["Resources"]) == 1


def test_explore_users_projection(service):
    res = service.explore_users(attributes="userName")
    assert res["Resources"] == [{"userName": "bjensen"}, {"userName": "jsmith"}]


def test_get_user_by_business_key(service):
    user = service.get_user("userName", "bjensen")
    assert user["id"] == "bjensen"
    assert user["name"]["familyName"] == "Jensen"
    assert STORE_ID not in user
    assert user["meta"]["version"] == 0
    assert user["meta"]["created"].endswith("Z")


def test_get_user_by_multi_value_sub_attribute(service):
    assert service.get_user("emails.value", "jsmith@example.com")["id"] == "jsmith"


def test_get_user_none_unless_exactly_one_match(service):
    assert service.get_user("userName", "nobody") is None
    # both demo users have an empty title
    assert service.get_user("title", "") is None


def test_get_user_projection(service):
    user = service.get_user("id", "bjensen", attributes="userName,emails.value")
    assert user == {"userName": "bjensen", "emails": [{"value": "bjensen@example.com"}]}

    user = service.get_user("id", "bjensen", excluded_attributes="name,phoneNumbers,meta")
    assert "name" not in user and "phoneNumbers" not in user and "meta" not in user
    assert user["userName"] == "bjensen"


def test_strip_store_meta_converts_bookkeeping():
    record = {"id": "a", STORE_ID: 3, "meta": {"created": 86400000, "updated": 86401000, "revision": 2, "version": 0}}
    ret = strip_store_meta(record)
    assert ret == {"id": "a", "meta": {"created": "1970-01-02T00:00:00.000Z",
                                       "lastModified": "1970-01-02T00:00:01.000Z", "version": 2}}
    assert STORE_ID in record


# ─────────────────────────────────────────────────────────────────────────────
# Create
# ─────────────────────────────────────────────────────────────────────────────

def test_create_user_sets_id_and_strips_password(service, store):
    created = service.create_user({"userName": "alice", "password": "secret", "title": "Dev"})
    assert created["id"] == "alice"
    stored = _stored(store, "alice")
    assert "password" not in stored
    assert stored["title"] == "Dev"


def test_create_user_converts_type_keyed_multi_values(service, store):
    service.create_user({
        "userName": "alice",
        "emails": {"work": {"value": "alice@work.com"}, "undefined": {"value": "alice@x.com"}},
        "phoneNumbers": [{"value": "1", "type": "home"}, {"value": "2", "type": "home"}],
    })
    stored = _stored(store, "alice")
    assert stored["emails"] == [{"value": "alice@work.com", "type": "work"}, {"value": "alice@x.com"}]
    assert stored["phoneNumbers"] == [{"value": "2", "type": "home"}]


def test_create_user_duplicate(service):
    with pytest.raises(DuplicateKey) as exc:
        service.create_user({"userName": "bjensen"})
    assert exc.value.status == 409


def test_create_user_unsupported_attribute(store):
    cfg = AppConfig(demo_mode=True, supported_attributes=["userName", "name"])
    service = ProvisioningService.from_store(store, cfg)
    with pytest.raises(UnsupportedAttribute) as exc:
        service.create_user({"schemas": [], "userName": "alice", "title": "x", "nickName": "y"})
    assert exc.value.attributes == ["title", "nickName"]
    assert "unsupported scim attributes: title,nickName" in str(exc.value)
    assert store.users.find({"id": "alice"}) == []


def test_create_user_logs_without_password(service, caplog):
    caplog.set_level("DEBUG", logger="scimgw.core.provisioning_service")
    service.create_user({"userName": "alice", "password": "very-secret"})
    assert "createUser" in caplog.text
    assert "very-secret" not in caplog.text


# ─────────────────────────────────────────────────────────────────────────────
# Delete
# ─────────────────────────────────────────────────────────────────────────────

def test_delete_user(service, store):
    service.delete_user("jsmith")
    assert store.users.find({"id": "jsmith"}) == []


def test_delete_user_not_found(service):
    with pytest.raises(NotFound) as exc:
        service.delete_user("nobody")
    assert exc.value.status == 404


# ─────────────────────────────────────────────────────────────────────────────
# Modify
# ─────────────────────────────────────────────────────────────────────────────

def test_modify_user_scalars_and_containers(service, store):
    service.modify_user("bjensen", {
        "title": "Manager",
        "active": False,
        "name": {"givenName": "Babs", "formatted": ""},
        "password": "never-stored",
    })
    user = _stored(store, "bjensen")
    assert user["title"] == "Manager"
    assert user["active"] is False
    assert user["name"] == {"familyName": "Jensen", "givenName": "Babs"}
    assert "password" not in user
    assert user["meta"]["revision"] == 1


def test_modify_user_multi_values_by_type(service, store):
    service.modify_user("bjensen", {
        "emails": {"work": {"value": "barbara@example.com"}, "home": {"value": "babs@home.com"}},
        "phoneNumbers": {"work": {"operation": "delete"}},
    })
    user = _stored(store, "bjensen")
    assert user["emails"] == [
        {"value": "barbara@example.com", "type": "work"},
        {"value": "babs@home.com", "type": "home"},
    ]
    assert "phoneNumbers" not in user


def test_modify_user_clear_by_meta_attributes(service, store):
    service.modify_user("bjensen", {"meta": {"attributes": ["name.familyName", "title"]}})
    user = _stored(store, "bjensen")
    assert user["name"]["familyName"] == ""
    assert user["title"] == ""
    assert user["meta"]["revision"] == 1


def test_modify_user_sequence_add_and_delete(service, store):
    service.modify_user("bjensen", {"groups": [{"value": "Admins"}, {"value": "Employees"}]})
    service.modify_user("bjensen", {"groups": [{"value": "Admins", "operation": "delete"}]})
    assert _stored(store, "bjensen")["groups"] == [{"value": "Employees"}]


def test_modify_user_is_idempotent_for_upserts(service, store):
    payload = {"emails": {"work": {"value": "barbara@example.com"}}, "title": "Manager"}
    service.modify_user("bjensen", payload)
    first = _stored(store, "bjensen")
    service.modify_user("bjensen", payload)
    second = _stored(store, "bjensen")
    first.pop("meta"), second.pop("meta")
    assert first == second


def test_modify_user_not_found(service):
    with pytest.raises(NotFound):
        service.modify_user("nobody", {"title": "x"})


def test_modify_user_malformed_payload_leaves_record_untouched(service, store):
    before = _stored(store, "bjensen")
    with pytest.raises(UnsupportedOperation):
        service.modify_user("bjensen", {"title": "changed", "emails": "flat@x.com"})
    assert _stored(store, "bjensen") == before


def test_modify_user_unsupported_attribute(store):
    service = ProvisioningService.from_store(store, AppConfig(demo_mode=True, supported_attributes=["title"]))
    with pytest.raises(UnsupportedAttribute):
        service.modify_user("bjensen", {"nickName": "Babs"})


def test_modify_user_audited(service, _isolated_audit_log):
    service.modify_user("bjensen", {"title": "Manager"})
    lines = (_isolated_audit_log / "provisioning-events.jsonl").read_text().splitlines()
    event = json.loads(lines[-1])
    assert event["event_type"] == "modify_user"
    assert event["resource_id"] == "bjensen"
    assert event["details"] == {"attributes": ["title"]}


def test_persistent_modify_survives_reopen(tmp_path, app_config):
    db = tmp_path / "loki.db"
    store = DocumentStore(db, persistence=True, seed_demo_data=True)
    ProvisioningService.from_store(store, app_config).modify_user("bjensen", {"title": "Manager"})

    reopened = DocumentStore(db, persistence=True)
    assert reopened.users.find({"id": "bjensen"})[0]["title"] == "Manager"


def test_modify_user_ignores_echoed_meta(service, store):
    echoed = service.get_user("id", "bjensen")["meta"]
    service.modify_user("bjensen", {"title": "Manager", "meta": dict(echoed, updated="2024-01-01T00:00:00.000Z")})

    stored = _stored(store, "bjensen")
    assert isinstance(stored["meta"]["created"], int)
    assert "lastModified" not in stored["meta"]
    assert stored["meta"]["revision"] == 1

    res = service.explore_users()
    assert res["totalResults"] == 2
    user = service.get_user("id", "bjensen")
    assert user["title"] == "Manager"
    assert user["meta"]["version"] == 1


def test_create_user_drops_client_meta(service, store):
    service.create_user({"userName": "alice", "meta": {"created": "2024-01-01T00:00:00.000Z", "updated": "x"}})
    meta = _stored(store, "alice")["meta"]
    assert isinstance(meta["created"], int)
    assert "updated" not in meta
    assert service.get_user("id", "alice")["meta"]["created"].endswith("Z")


def test_strip_store_meta_keeps_non_numeric_values():
    ret = strip_store_meta({"id": "a", "meta": {"created": "2024-01-01T00:00:00.000Z", "updated": "bad"}})
    assert ret["meta"] == {"created": "2024-01-01T00:00:00.000Z", "lastModified": "bad"}
