"""Reads desired-state and state-snapshot documents into planning models."""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from stackplan.errors import DocumentError
from stackplan.models import ActualResource, DesiredResource, ResourceIdentity
from stackplan.tags import merge_tags, standard_tags

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DesiredState:
    """Everything declared for one stack and environment."""

    stack: str
    environment: str
    tenant: str
    resources: tuple[DesiredResource, ...]


@dataclass(frozen=True)
class StateSnapshot:
    """Last observed resources for one stack and environment."""

    stack: str = ""
    environment: str = ""
    tenant: str = ""
    resources: tuple[ActualResource, ...] = field(default_factory=tuple)


def read_json(path: str | Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except OSError as exc:
        raise DocumentError(f"cannot read {path}: {exc.strerror}") from exc
    except json.JSONDecodeError as exc:
        raise DocumentError(f"{path} is not valid JSON: {exc}") from exc


def _mapping(value: Any, where: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise DocumentError(f"{where} must be an object")
    return dict(value)


def _sequence(value: Any, where: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise DocumentError(f"{where} must be a list")
    return value


def _paths(value: Any, where: str) -> tuple[str, ...]:
    paths = _sequence(value, where)
    if not all(isinstance(p, str) for p in paths):
        raise DocumentError(f"{where} must be a list of attribute paths")
    return tuple(paths)


def parse_reference(ref: Any, tenant: str, service: str) -> ResourceIdentity:
    """Parse a dependency reference.

    A reference is either ``"Kind/name"`` or an object with ``kind`` and
    ``name`` and optional ``tenant`` and ``service``. Omitted parts default to
    the declaring resource's tenant and service.
    """
    if isinstance(ref, str):
        kind, sep, name = ref.partition("/")
        if not sep or not kind or not name:
            raise DocumentError(f"invalid dependency reference {ref!r} (expected 'Kind/name')")
        return ResourceIdentity(kind=kind, name=name, tenant=tenant, service=service)
    if isinstance(ref, Mapping) and ref.get("kind") and ref.get("name"):
        return ResourceIdentity(
            kind=ref["kind"],
            name=ref["name"],
            tenant=ref.get("tenant", tenant),
            service=ref.get("service", service),
        )
    raise DocumentError(f"invalid dependency reference {ref!r}")


def parse_desired(data: Any) -> DesiredState:
    if not isinstance(data, Mapping):
        raise DocumentError("desired document must be a JSON object")
    stack = data.get("stack", "")
    environment = data.get("environment", "default")
    tenant = data.get("tenant", "")
    default_tags = data.get("default_tags")
    if default_tags is not None:
        default_tags = _mapping(default_tags, "default_tags")

    resources = []
    for index, entry in enumerate(_sequence(data.get("resources"), "resources")):
        if not isinstance(entry, Mapping) or not entry.get("kind") or not entry.get("name"):
            raise DocumentError(f"resources[{index}] needs a kind and a name")
        service = entry.get("service", "")
        identity = ResourceIdentity(
            kind=entry["kind"],
            name=entry["name"],
            tenant=entry.get("tenant", tenant),
            service=service,
        )
        where = f"resources[{index}]"
        labels = _mapping(entry.get("labels"), f"{where}.labels")
        attributes: dict[str, Any] = {"spec": entry.get("spec", {})}
        if default_tags is not None or "tags" in entry:
            attributes["tags"] = merge_tags(
                default=default_tags,
                labels=labels,
                standard=standard_tags(stack, identity.tenant, service, identity.name, identity.kind),
                custom=_mapping(entry.get("tags"), f"{where}.tags"),
            )
        resources.append(
            DesiredResource(
                identity=identity,
                attributes=attributes,
                labels=labels,
                depends_on=tuple(
                    parse_reference(ref, identity.tenant, service)
                    for ref in _sequence(entry.get("depends_on"), f"{where}.depends_on")
                ),
                sensitive_paths=_paths(entry.get("sensitive"), f"{where}.sensitive"),
            )
        )

    logger.debug("Loaded %d desired resource(s) for %s/%s", len(resources), stack, environment)
    return DesiredState(stack=stack, environment=environment, tenant=tenant, resources=tuple(resources))


def parse_state(data: Any) -> StateSnapshot:
    if not isinstance(data, Mapping):
        raise DocumentError("state document must be a JSON object")
    metadata = _mapping(data.get("metadata"), "metadata")
    tenant = metadata.get("tenant", "")

    raw = data.get("resources") or {}
    if not isinstance(raw, Mapping):
        raise DocumentError("state resources must be an object keyed by resource")

    resources = []
    for key in sorted(raw):
        entry = raw[key]
        if not isinstance(entry, Mapping) or not entry.get("type"):
            raise DocumentError(f"state resource {key!r} needs a type")
        service = entry.get("service", "")
        resource_tenant = entry.get("tenant", tenant)
        identity = ResourceIdentity(
            kind=entry.get("kind", entry["type"]),
            name=entry.get("name", key),
            tenant=resource_tenant,
            service=service,
        )
        resources.append(
            ActualResource(
                identity=identity,
                resource_id=entry.get("id", ""),
                kind=entry["type"],
                # Left as-is so a malformed tree surfaces as a per-resource error.
                attributes=entry.get("attributes", {}),
                depends_on=tuple(
                    parse_reference(ref, resource_tenant, service)
                    for ref in _sequence(entry.get("depends_on"), f"state resource {key!r} depends_on")
                ),
            )
        )

    return StateSnapshot(
        stack=metadata.get("stack", ""),
        environment=metadata.get("environment", ""),
        tenant=tenant,
        resources=tuple(resources),
    )


def load_desired(path: str | Path) -> DesiredState:
    return parse_desired(read_json(path))


def load_state(path: str | Path | None) -> StateSnapshot:
    """Load a state file. A missing path means nothing is deployed yet."""
    if path is None or not Path(path).exists():
        logger.info("No state at %s; treating every resource as new", path)
        return StateSnapshot()
    return parse_state(read_json(path))
