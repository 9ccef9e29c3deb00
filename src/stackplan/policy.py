"""Per-kind provider capabilities and recreate policies."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Protocol

from stackplan.errors import DocumentError, UnknownKindError
from stackplan.models import ResourceIdentity


def path_matches(pattern: str, path: str) -> bool:
    """Return True if path equals pattern or extends it with a nested segment."""
    if path == pattern:
        return True
    if not path.startswith(pattern):
        return False
    return path[len(pattern)] in ".["


@dataclass(frozen=True)
class RecreateDecision:
    forced: bool
    triggers: tuple[str, ...] = ()


@dataclass(frozen=True)
class RecreatePolicy:
    """Immutable attribute path patterns for one resource kind."""

    kind: str
    immutable_paths: frozenset[str] = frozenset()

    def forces_recreate(self, path: str) -> bool:
        return any(path_matches(pattern, path) for pattern in self.immutable_paths)

    def evaluate(self, paths: Iterable[str]) -> RecreateDecision:
        """Decide whether changing the given paths forces recreation."""
        triggers = sorted({p for p in paths if self.forces_recreate(p)})
        return RecreateDecision(forced=bool(triggers), triggers=tuple(triggers))


class KindCapability(Protocol):
    """What the planner needs to know about a resource kind."""

    kind: str
    label: str

    @property
    def recreate_policy(self) -> RecreatePolicy: ...

    @property
    def ignore_paths(self) -> tuple[str, ...]: ...

    @property
    def sensitive_paths(self) -> tuple[str, ...]: ...


DEFAULT_IGNORE_PATHS = ("created_at", "updated_at")


@dataclass(frozen=True)
class ResourceKind:
    """Capability record for a kind, as published by a provider."""

    kind: str
    label: str
    immutable_paths: frozenset[str] = frozenset()
    sensitive: tuple[str, ...] = ()
    ignored: tuple[str, ...] = DEFAULT_IGNORE_PATHS

    @property
    def recreate_policy(self) -> RecreatePolicy:
        return RecreatePolicy(self.kind, self.immutable_paths)

    @property
    def ignore_paths(self) -> tuple[str, ...]:
        return self.ignored

    @property
    def sensitive_paths(self) -> tuple[str, ...]:
        return self.sensitive


@dataclass
class ProviderRegistry:
    """Lookup table of kind capabilities.

    Registration happens before planning starts; the planner only reads.
    """

    _kinds: dict[str, KindCapability] = field(default_factory=dict)

    def register(self, capability: KindCapability) -> None:
        self._kinds[capability.kind] = capability

    def get(self, identity: ResourceIdentity) -> KindCapability:
        try:
            return self._kinds[identity.kind]
        except KeyError:
            raise UnknownKindError(identity) from None

    def __contains__(self, kind: str) -> bool:
        return kind in self._kinds

    def kinds(self) -> list[str]:
        return sorted(self._kinds)

    def label_for(self, kind: str) -> str:
        capability = self._kinds.get(kind)
        return capability.label if capability else kind

    @classmethod
    def from_mapping(cls, data: Mapping, base: "ProviderRegistry | None" = None) -> "ProviderRegistry":
        """Build a registry from a policy document.

        The document maps kind names to ``{"label", "immutable", "sensitive",
        "ignore"}``. Entries override same-named kinds in ``base``.
        """
        registry = cls(dict(base._kinds) if base else {})
        if not isinstance(data, Mapping):
            raise DocumentError("policy document must be an object keyed by kind")
        for kind, entry in data.items():
            if not isinstance(entry, Mapping):
                raise DocumentError(f"policy for kind {kind!r} must be an object")
            registry.register(
                ResourceKind(
                    kind=kind,
                    label=entry.get("label", kind),
                    immutable_paths=frozenset(_paths(entry, "immutable", kind, ())),
                    sensitive=_paths(entry, "sensitive", kind, ()),
                    ignored=_paths(entry, "ignore", kind, DEFAULT_IGNORE_PATHS),
                )
            )
        return registry


def _paths(entry: Mapping, name: str, kind: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = entry.get(name, default)
    if isinstance(value, str) or not isinstance(value, (list, tuple)) or not all(isinstance(p, str) for p in value):
        raise DocumentError(f"policy for kind {kind!r}: {name!r} must be a list of attribute paths")
    return tuple(value)


BUILTIN_KINDS: tuple[ResourceKind, ...] = (
    # Networking
    ResourceKind("VPC", "Virtual Private Cloud", frozenset({"spec.cidrBlock"})),
    ResourceKind("Subnet", "VPC Subnet", frozenset({"spec.vpcId", "spec.cidrBlock", "spec.availabilityZone"})),
    ResourceKind("SecurityGroup", "Security Group", frozenset({"spec.vpcId", "spec.groupName", "spec.description"})),
    ResourceKind("InternetGateway", "Internet Gateway", frozenset({"spec.vpcId"})),
    ResourceKind("NATGateway", "NAT Gateway", frozenset({"spec.subnetId", "spec.connectivityType"})),
    ResourceKind("RouteTable", "Route Table", frozenset({"spec.vpcId"})),
    # Compute
    ResourceKind("VM", "Virtual Machine", frozenset({"spec.vpcId", "spec.subnetId", "spec.imageId"})),
    ResourceKind("MicroService", "Containerized Microservice"),
    ResourceKind("Worker", "Background Worker"),
    ResourceKind("CronJob", "Scheduled Job"),
    ResourceKind("Lambda", "Lambda Function", frozenset({"spec.packageType"})),
    # Databases
    ResourceKind(
        "RDS",
        "Relational Database",
        frozenset({"spec.engine.type", "spec.instance.storage.encrypted"}),
        sensitive=("spec.masterPassword",),
    ),
    ResourceKind(
        "Database",
        "Managed Database",
        frozenset({"spec.engine", "spec.vpcId"}),
        sensitive=("spec.password",),
    ),
    ResourceKind("DynamoDB", "DynamoDB Table", frozenset({"spec.hashKey", "spec.rangeKey"})),
    ResourceKind("Cache", "In-memory Cache", frozenset({"spec.engine"}), sensitive=("spec.authToken",)),
    # Storage
    ResourceKind("S3", "S3 Bucket", frozenset({"spec.bucket.name", "spec.bucket.region"})),
    # Messaging
    ResourceKind("SQS", "SQS Queue", frozenset({"spec.type"})),
    ResourceKind("SNS", "SNS Topic", frozenset({"spec.fifoTopic"})),
    ResourceKind("Queue", "Message Queue", frozenset({"spec.fifo"})),
)


def default_registry() -> ProviderRegistry:
    registry = ProviderRegistry()
    for kind in BUILTIN_KINDS:
        registry.register(kind)
    return registry
