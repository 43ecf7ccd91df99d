"""Tests for attributes / excludedAttributes projection."""
import copy

from scimgw.core.projection import parse_attribute_list, project

USER = {
    "id": "bjensen",
    "userName": "bjensen",
    "title": "Manager",
    "password": "secret",
    "name": {"givenName": "Barbara", "familyName": "Jensen", "middleName": "J"},
    "emails": [
        {"value": "bjensen@example.com", "type": "work", "primary": True},
        {"type": "home", "primary": False},
    ],
}


def test_parse_attribute_list():
    assert parse_attribute_list("a, b ,,c") == ["a", "b", "c"]
    assert parse_attribute_list(["a", " b "]) == ["a", "b"]
    assert parse_attribute_list(None) == []
    assert parse_attribute_list("") == []


def test_project_without_lists_is_identity():
    assert project(USER) is USER
    assert project(USER, include="", exclude="") is USER


def test_include_top_level_and_nested():
    ret = project(USER, include="userName,name.familyName")
    assert ret == {"userName": "bjensen", "name": {"familyName": "Jensen"}}


def test_include_multi_value_sub_attribute_drops_empty_entries():
    ret = project(USER, include="emails.value")
    assert ret == {"emails": [{"value": "bjensen@example.com"}]}


def test_include_two_sub_attributes_of_same_multi_value():
    ret = project(USER, include="emails.value,emails.type")
    assert ret == {
        "emails": [
            {"value": "bjensen@example.com", "type": "work"},
            {"type": "home"},
        ]
    }


def test_include_absent_attribute_is_omitted():
    assert project(USER, include="nickName,name.honorificPrefix") == {}


def test_include_wins_over_exclude():
    ret = project(USER, include="userName", exclude="userName")
    assert ret == {"userName": "bjensen"}


def test_exclude_top_level_and_nested():
    ret = project(USER, exclude="password,name.middleName")
    assert "password" not in ret
    assert ret["name"] == {"givenName": "Barbara", "familyName": "Jensen"}
    assert ret["title"] == "Manager"


def test_exclude_prunes_emptied_entries():
    record = {"id": "x", "emails": [{"value": "a@x.com"}, {"value": "b@x.com", "type": "home"}]}
    ret = project(record, exclude="emails.value")
    assert ret == {"id": "x", "emails": [{"type": "home"}]}


def test_exclude_prunes_emptied_containers():
    record = {"id": "x", "name": {"middleName": "J"}, "emails": [{"value": "a@x.com"}]}
    ret = project(record, exclude="name.middleName,emails.value")
    assert ret == {"id": "x"}


def test_project_never_mutates_input():
    before = copy.deepcopy(USER)
    project(USER, include="emails.value,name.familyName")
    project(USER, exclude="emails.value,name.familyName,password")
    assert USER == before


def test_project_list_keeps_length_and_order():
    records = [{"id": "a", "title": "t"}, {"id": "b"}, {"id": "c", "title": "u"}]
    ret = project(records, include="title")
    assert ret == [{"title": "t"}, {}, {"title": "u"}]


def test_project_empty_list():
    assert project([], include="id") == []


def test_include_projection_is_idempotent():
    once = project(USER, include="userName,name.familyName,emails.value")
    assert project(once, include="userName,name.familyName,emails.value") == once


def test_exclude_multi_value_type():
    ret = project(USER, exclude="emails.type")
    assert ret["emails"] == [{"value": "bjensen@example.com", "primary": True}, {"primary": False}]
