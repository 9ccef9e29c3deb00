"""Resource tag resolution."""

from collections.abc import Mapping

TAG_PREFIX = "stackplan"


def standard_tags(
    stack: str = "",
    tenant: str = "",
    service: str = "",
    name: str = "",
    kind: str = "",
) -> dict[str, str]:
    """Tags stamped on every managed resource. Empty values are skipped."""
    tags = {"ManagedBy": TAG_PREFIX}
    for field, value in (
        ("stack", stack),
        ("tenant", tenant),
        ("service", service),
        ("resource", name),
        ("kind", kind),
    ):
        if value:
            tags[f"{TAG_PREFIX}:{field}"] = value
    return tags


def merge_tags(
    default: Mapping[str, str] | None = None,
    labels: Mapping[str, str] | None = None,
    standard: Mapping[str, str] | None = None,
    custom: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Merge tag layers, later layers winning.

    Precedence, lowest to highest: default tags, resource labels, standard
    tags, custom tags. The result is keyed in sorted order.
    """
    merged: dict[str, str] = {}
    for layer in (default, labels, standard, custom):
        if layer:
            merged.update(layer)
    return {key: merged[key] for key in sorted(merged)}
