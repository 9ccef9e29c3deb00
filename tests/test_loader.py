"""Tests for desired-state and state document loading."""

import json

import pytest

from stackplan.errors import DocumentError
from stackplan.loader import (
    load_desired,
    load_state,
    parse_desired,
    parse_reference,
    parse_state,
)
from stackplan.models import ResourceIdentity
from tests.conftest import DESIRED_DOCUMENT, STATE_DOCUMENT


def test_parse_desired_builds_identities_and_dependencies():
    declared = parse_desired(DESIRED_DOCUMENT)
    assert (declared.stack, declared.environment, declared.tenant) == ("shop", "prod", "acme")
    app = next(r for r in declared.resources if r.name == "app-1")
    assert app.identity == ResourceIdentity("MicroService", "app-1", "acme", "core")
    assert app.depends_on == (
        ResourceIdentity("Database", "db-1", "acme", "core"),
        ResourceIdentity("Queue", "orders", "acme", "core"),
    )
    assert app.attributes == {"spec": {"replicas": 2}}


def test_parse_desired_applies_tag_precedence():
    declared = parse_desired(
        {
            "stack": "shop",
            "default_tags": {"team": "platform", "env": "default"},
            "resources": [
                {
                    "kind": "Queue",
                    "name": "q",
                    "labels": {"env": "prod", "ManagedBy": "someone"},
                    "tags": {"team": "payments"},
                }
            ],
        }
    )
    tags = declared.resources[0].attributes["tags"]
    assert tags["env"] == "prod"
    assert tags["team"] == "payments"
    assert tags["ManagedBy"] == "stackplan"
    assert tags["stackplan:stack"] == "shop"
    assert tags["stackplan:resource"] == "q"
    assert tags["stackplan:kind"] == "Queue"


def test_parse_desired_without_tags_has_no_tag_attribute():
    declared = parse_desired({"resources": [{"kind": "Queue", "name": "q"}]})
    assert "tags" not in declared.resources[0].attributes
    assert declared.environment == "default"


def test_parse_desired_sensitive_paths():
    declared = parse_desired(
        {"resources": [{"kind": "Queue", "name": "q", "sensitive": ["spec.key"]}]}
    )
    assert declared.resources[0].sensitive_paths == ("spec.key",)


@pytest.mark.parametrize(
    "document",
    [
        [],
        {"resources": [{"kind": "Queue"}]},
        {"resources": ["Queue/q"]},
        {"resources": {"kind": "Queue", "name": "q"}},
        {"default_tags": ["team"], "resources": []},
    ],
)
def test_parse_desired_rejects_bad_documents(document):
    with pytest.raises(DocumentError):
        parse_desired(document)


@pytest.mark.parametrize(
    "field,value,message",
    [
        ("labels", ["env"], r"resources\[0\].labels must be an object"),
        ("tags", "team=payments", r"resources\[0\].tags must be an object"),
        ("sensitive", "spec.password", r"resources\[0\].sensitive must be a list"),
        ("sensitive", [1], r"resources\[0\].sensitive must be a list of attribute paths"),
        ("depends_on", "Queue/orders", r"resources\[0\].depends_on must be a list"),
    ],
)
def test_parse_desired_rejects_malformed_fields(field, value, message):
    with pytest.raises(DocumentError, match=message):
        parse_desired({"resources": [{"kind": "Queue", "name": "q", field: value}]})


def test_parse_state_rejects_malformed_metadata():
    with pytest.raises(DocumentError, match="metadata must be an object"):
        parse_state({"metadata": "shop", "resources": {}})


def test_parse_reference_forms():
    assert parse_reference("VPC/main", "acme", "core") == ResourceIdentity("VPC", "main", "acme", "core")
    assert parse_reference({"kind": "VPC", "name": "main", "service": "net"}, "acme", "core") == (
        ResourceIdentity("VPC", "main", "acme", "net")
    )
    with pytest.raises(DocumentError, match="Kind/name"):
        parse_reference("main", "acme", "core")
    with pytest.raises(DocumentError):
        parse_reference({"kind": "VPC"}, "acme", "core")


def test_parse_state_builds_actual_resources():
    snapshot = parse_state(STATE_DOCUMENT)
    assert (snapshot.stack, snapshot.environment, snapshot.tenant) == ("shop", "prod", "acme")
    assert [r.identity.name for r in snapshot.resources] == ["old-cache", "orders"]
    orders = snapshot.resources[1]
    assert orders.resource_id == "https://sqs.us-east-1.amazonaws.com/123/orders"
    assert orders.identity == ResourceIdentity("Queue", "orders", "acme", "core")
    assert orders.observed_kind == "Queue"


def test_parse_state_separates_declared_and_observed_kind():
    snapshot = parse_state(
        {"resources": {"q": {"kind": "Queue", "type": "SQS", "attributes": {}}}}
    )
    [resource] = snapshot.resources
    assert resource.identity.kind == "Queue"
    assert resource.observed_kind == "SQS"


def test_parse_state_requires_type():
    with pytest.raises(DocumentError, match="needs a type"):
        parse_state({"resources": {"q": {"name": "q"}}})


def test_load_state_missing_file_is_empty(tmp_path):
    snapshot = load_state(tmp_path / "missing.json")
    assert snapshot.resources == ()
    assert load_state(None).resources == ()


def test_load_files_round_trip(tmp_path):
    desired_path = tmp_path / "desired.json"
    state_path = tmp_path / "state.json"
    desired_path.write_text(json.dumps(DESIRED_DOCUMENT))
    state_path.write_text(json.dumps(STATE_DOCUMENT))
    assert len(load_desired(desired_path).resources) == 3
    assert len(load_state(state_path).resources) == 2


def test_invalid_json_reported(tmp_path):
    path = tmp_path / "desired.json"
    path.write_text("{not json")
    with pytest.raises(DocumentError, match="not valid JSON"):
        load_desired(path)
