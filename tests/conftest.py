"""Shared test fixtures."""

from datetime import UTC, datetime

import boto3
import pytest
from moto import mock_aws

from stackplan.models import ActualResource, DesiredResource, ResourceIdentity
from stackplan.planner import ChangeSetBuilder
from stackplan.policy import default_registry

FIXED_NOW = datetime(2026, 2, 25, 13, 30, 0, tzinfo=UTC)


def ident(kind, name, tenant="acme", service="core"):
    return ResourceIdentity(kind=kind, name=name, tenant=tenant, service=service)


def desired(kind, name, spec=None, depends_on=(), sensitive=(), **kwargs):
    return DesiredResource(
        identity=ident(kind, name, **kwargs),
        attributes={"spec": spec if spec is not None else {}},
        depends_on=tuple(depends_on),
        sensitive_paths=tuple(sensitive),
    )


def actual(kind, name, spec=None, resource_id=None, depends_on=(), **kwargs):
    return ActualResource(
        identity=ident(kind, name, **kwargs),
        resource_id=resource_id or f"id-{name}",
        attributes={"spec": spec if spec is not None else {}},
        depends_on=tuple(depends_on),
    )


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def builder(registry):
    return ChangeSetBuilder(registry, max_concurrent=4, clock=lambda: FIXED_NOW)


@pytest.fixture
def aws_credentials(monkeypatch):
    """Set dummy AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def s3_client(aws_credentials):
    """Create a moto-mocked S3 client with a state bucket."""
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket="state-bucket")
        yield client


STATE_DOCUMENT = {
    "version": "1.0",
    "metadata": {"stack": "shop", "environment": "prod", "tenant": "acme"},
    "resources": {
        "orders": {
            "id": "https://sqs.us-east-1.amazonaws.com/123/orders",
            "type": "Queue",
            "name": "orders",
            "service": "core",
            "attributes": {"spec": {"retentionDays": 4, "fifo": False}},
        },
        "old-cache": {
            "id": "cache-0abc",
            "type": "Cache",
            "name": "old-cache",
            "service": "core",
            "attributes": {"spec": {"engine": "redis"}},
        },
    },
}

DESIRED_DOCUMENT = {
    "stack": "shop",
    "environment": "prod",
    "tenant": "acme",
    "resources": [
        {
            "kind": "Queue",
            "name": "orders",
            "service": "core",
            "spec": {"retentionDays": 7, "fifo": False},
        },
        {
            "kind": "Database",
            "name": "db-1",
            "service": "core",
            "spec": {"engine": "postgres", "password": "hunter2"},
        },
        {
            "kind": "MicroService",
            "name": "app-1",
            "service": "core",
            "spec": {"replicas": 2},
            "depends_on": ["Database/db-1", "Queue/orders"],
        },
    ],
}
