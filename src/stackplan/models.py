"""Core data models for change planning."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class _Absent:
    """Marker for an attribute that does not exist on one side of a diff."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<absent>"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


class ChangeType(StrEnum):
    """Action required to reconcile one resource."""

    CREATE = "create"
    UPDATE = "update"
    RECREATE = "recreate"
    DELETE = "delete"
    NO_CHANGE = "no-change"

    @property
    def precedence(self) -> int:
        """Display precedence. Lower values are shown first."""
        return _PRECEDENCE[self]

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]


_PRECEDENCE = {
    ChangeType.CREATE: 0,
    ChangeType.UPDATE: 1,
    ChangeType.RECREATE: 2,
    ChangeType.DELETE: 3,
    ChangeType.NO_CHANGE: 4,
}

_SYMBOLS = {
    ChangeType.CREATE: "+",
    ChangeType.UPDATE: "~",
    ChangeType.RECREATE: "±",
    ChangeType.DELETE: "-",
    ChangeType.NO_CHANGE: " ",
}


@dataclass(frozen=True)
class ResourceIdentity:
    """Stable key used to match desired and actual resources."""

    kind: str
    name: str
    tenant: str = ""
    service: str = ""

    @property
    def key(self) -> str:
        return "/".join((self.kind, self.tenant, self.service, self.name))

    @property
    def sort_key(self) -> tuple[str, ...]:
        return (self.key, self.kind, self.tenant, self.service, self.name)

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class DesiredResource:
    """Declared target configuration for one infrastructure object."""

    identity: ResourceIdentity
    attributes: dict[str, Any]
    labels: dict[str, str] = field(default_factory=dict)
    depends_on: tuple[ResourceIdentity, ...] = ()
    sensitive_paths: tuple[str, ...] = ()

    @property
    def kind(self) -> str:
        return self.identity.kind

    @property
    def name(self) -> str:
        return self.identity.name


@dataclass(frozen=True)
class ActualResource:
    """Last observed configuration of a deployed object."""

    identity: ResourceIdentity
    resource_id: str
    attributes: dict[str, Any]
    depends_on: tuple[ResourceIdentity, ...] = ()
    kind: str | None = None

    @property
    def observed_kind(self) -> str:
        """Kind recorded by the provider, falling back to the identity kind."""
        return self.kind or self.identity.kind


@dataclass(frozen=True)
class AttributeChange:
    """A single attribute difference, addressed by path."""

    path: str
    old_value: Any = ABSENT
    new_value: Any = ABSENT
    sensitive: bool = False
    force_recreate: bool = False

    def __post_init__(self):
        if self.old_value is ABSENT and self.new_value is ABSENT:
            raise ValueError(f"attribute change at {self.path!r} has neither side")

    @property
    def has_old(self) -> bool:
        return self.old_value is not ABSENT

    @property
    def has_new(self) -> bool:
        return self.new_value is not ABSENT


@dataclass(frozen=True)
class Change:
    """Computed delta and action for one resource identity."""

    identity: ResourceIdentity
    change_type: ChangeType
    attribute_changes: tuple[AttributeChange, ...] = ()
    reason: str = ""
    depends_on: tuple[ResourceIdentity, ...] = ()
    resource_id: str = ""
    kind_label: str = ""

    def __post_init__(self):
        if self.change_type == ChangeType.NO_CHANGE and self.attribute_changes:
            raise ValueError("a no-change entry cannot carry attribute changes")
        if self.change_type == ChangeType.UPDATE and self.requires_recreate:
            raise ValueError("an update cannot contain a force-recreate attribute change")
        if self.change_type == ChangeType.RECREATE and not self.requires_recreate:
            raise ValueError("a recreate needs at least one force-recreate attribute change")
        if self.change_type != ChangeType.NO_CHANGE and not self.reason:
            raise ValueError(f"{self.change_type} change for {self.identity.key} has no reason")

    @property
    def requires_recreate(self) -> bool:
        return any(ac.force_recreate for ac in self.attribute_changes)

    @property
    def resource_kind(self) -> str:
        return self.identity.kind

    @property
    def label(self) -> str:
        """Human-readable kind name, falling back to the kind itself."""
        return self.kind_label or self.identity.kind

    @property
    def resource_name(self) -> str:
        return self.identity.name

    @property
    def service(self) -> str:
        return self.identity.service


@dataclass(frozen=True)
class ChangeSummary:
    """Counts of changes by type."""

    create: int = 0
    update: int = 0
    recreate: int = 0
    delete: int = 0
    no_change: int = 0

    @property
    def total(self) -> int:
        return self.create + self.update + self.recreate + self.delete

    @property
    def has_changes(self) -> bool:
        return self.total > 0

    @classmethod
    def count(cls, change_types) -> "ChangeSummary":
        counts = {t: 0 for t in ChangeType}
        for change_type in change_types:
            counts[change_type] += 1
        return cls(
            create=counts[ChangeType.CREATE],
            update=counts[ChangeType.UPDATE],
            recreate=counts[ChangeType.RECREATE],
            delete=counts[ChangeType.DELETE],
            no_change=counts[ChangeType.NO_CHANGE],
        )


@dataclass(frozen=True)
class ChangeSet:
    """Ordered, summarized collection of changes for one planning run.

    ``changes`` is in execution order. Use ``by_display_order`` for grouping
    by change type.
    """

    stack: str
    environment: str
    tenant: str
    changes: tuple[Change, ...]
    summary: ChangeSummary
    created_at: datetime

    def changes_of(self, change_type: ChangeType) -> list[Change]:
        return [c for c in self.changes if c.change_type == change_type]

    @property
    def creates(self) -> list[Change]:
        return self.changes_of(ChangeType.CREATE)

    @property
    def updates(self) -> list[Change]:
        return self.changes_of(ChangeType.UPDATE)

    @property
    def recreates(self) -> list[Change]:
        return self.changes_of(ChangeType.RECREATE)

    @property
    def deletes(self) -> list[Change]:
        return self.changes_of(ChangeType.DELETE)

    def by_display_order(self) -> list[Change]:
        return sorted(self.changes, key=lambda c: (c.change_type.precedence, c.identity.sort_key))


@dataclass(frozen=True)
class PlanResult:
    """A change set together with the per-resource errors collected while planning."""

    change_set: ChangeSet
    errors: tuple = ()

    @property
    def ok(self) -> bool:
        return not self.errors
