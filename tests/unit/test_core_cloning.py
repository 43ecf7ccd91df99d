"""Tests for record cloning."""
from scimgw.core.cloning import CloneKind, clone, clone_kind


class Agent:
    def __init__(self, host):
        self.host = host
        self.options = {"keepAlive": True}


class Attributes(dict):
    pass


def test_clone_kind_classification():
    assert clone_kind({}) is CloneKind.PLAIN_MAPPING
    assert clone_kind([]) is CloneKind.PLAIN_SEQUENCE
    assert clone_kind("x") is CloneKind.SCALAR
    assert clone_kind(3) is CloneKind.SCALAR
    assert clone_kind(None) is CloneKind.SCALAR
    assert clone_kind(Agent("proxy")) is CloneKind.OPAQUE
    assert clone_kind(Attributes()) is CloneKind.OPAQUE


def test_clone_is_structurally_independent():
    original = {"name": {"givenName": "Barbara"}, "emails": [{"value": "a@x.com"}]}
    copy = clone(original)
    assert copy == original

    copy["name"]["givenName"] = "Babs"
    copy["emails"][0]["value"] = "b@x.com"
    copy["emails"].append({"value": "c@x.com"})

    assert original == {"name": {"givenName": "Barbara"}, "emails": [{"value": "a@x.com"}]}


def test_clone_scalars_returned_as_is():
    assert clone("abc") == "abc"
    assert clone(0) == 0
    assert clone(None) is None


def test_clone_keeps_opaque_class_and_fields():
    agent = Agent("proxy.example.com")
    copy = clone({"proxy": {"agent": agent}})

    copied = copy["proxy"]["agent"]
    assert isinstance(copied, Agent)
    assert copied is not agent
    assert copied.host == "proxy.example.com"
    # shallow: fields are shared
    assert copied.options is agent.options


def test_clone_dict_subclass_is_opaque():
    attrs = Attributes(a=1)
    copied = clone(attrs)
    assert type(copied) is Attributes
    assert copied == {"a": 1}
