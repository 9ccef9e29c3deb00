"""Structural, path-addressed comparison of attribute trees."""

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from stackplan.models import ABSENT, AttributeChange
from stackplan.policy import path_matches

_PLAIN_KEY = re.compile(r"^[^.\[\]\"]+$")


class AttributeTreeError(TypeError):
    """Raised when an attribute tree root is not a mapping."""


def join_path(parent: str, key: Any) -> str:
    """Append a mapping key or sequence index to a path."""
    if isinstance(key, int):
        return f"{parent}[{key}]"
    key = str(key)
    if not _PLAIN_KEY.match(key):
        escaped = key.replace("\\", "\\\\").replace('"', '\\"')
        return f'{parent}["{escaped}"]'
    return f"{parent}.{key}" if parent else key


def values_equal(a: Any, b: Any) -> bool:
    """Deep value equality. Booleans never equal numbers."""
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if _is_mapping(a) and _is_mapping(b):
        if a.keys() != b.keys():
            return False
        return all(values_equal(a[k], b[k]) for k in a)
    if _is_sequence(a) and _is_sequence(b):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if _is_mapping(a) or _is_mapping(b) or _is_sequence(a) or _is_sequence(b):
        return False
    return a == b


def diff_attributes(
    old: Mapping[str, Any] | None,
    new: Mapping[str, Any] | None,
    sensitive_paths: Iterable[str] = (),
    ignore_paths: Iterable[str] = (),
) -> list[AttributeChange]:
    """Compare two attribute trees and return the differences sorted by path.

    Either tree may be None, which is treated as an empty mapping. A key that
    exists on one side only is reported once at its own path, without
    descending into the added or removed subtree.
    """
    old = _root(old, "old")
    new = _root(new, "new")
    sensitive = tuple(sensitive_paths)
    ignored = tuple(ignore_paths)

    raw: list[tuple[str, Any, Any]] = []
    _walk("", old, new, raw, ignored)

    changes = [
        AttributeChange(
            path=path,
            old_value=old_value,
            new_value=new_value,
            sensitive=_is_sensitive(path, sensitive),
        )
        for path, old_value, new_value in raw
    ]
    changes.sort(key=lambda c: c.path)
    return changes


def _walk(path, old, new, out, ignored):
    if path and any(path_matches(p, path) for p in ignored):
        return
    if _is_mapping(old) and _is_mapping(new):
        # Sort keys by their string form so mixed key types cannot break ordering.
        for key in sorted(old.keys() | new.keys(), key=str):
            _walk(
                join_path(path, key),
                old.get(key, ABSENT),
                new.get(key, ABSENT),
                out,
                ignored,
            )
        return
    if _is_sequence(old) and _is_sequence(new):
        for index in range(max(len(old), len(new))):
            _walk(
                join_path(path, index),
                old[index] if index < len(old) else ABSENT,
                new[index] if index < len(new) else ABSENT,
                out,
                ignored,
            )
        return
    if old is ABSENT or new is ABSENT or not values_equal(old, new):
        out.append((path, old, new))


def _is_sensitive(path: str, patterns: tuple[str, ...]) -> bool:
    # A change above a sensitive path carries the secret inside its subtree.
    return any(path_matches(p, path) or path_matches(path, p) for p in patterns)


def _root(tree, side):
    if tree is None:
        return {}
    if not _is_mapping(tree):
        raise AttributeTreeError(
            f"{side} attribute tree must be a mapping, got {type(tree).__name__}"
        )
    return tree


def _is_mapping(value) -> bool:
    return isinstance(value, Mapping)


def _is_sequence(value) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))
