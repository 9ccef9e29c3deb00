"""Exception hierarchy for planning runs.

Classification errors are scoped to one resource and are collected into the
plan result. Every other PlanError aborts the whole planning call.
"""

from stackplan.models import ResourceIdentity


class PlanError(Exception):
    """Base class for planning errors."""


class ClassificationError(PlanError):
    """A single resource pair could not be classified."""

    def __init__(self, identity: ResourceIdentity, message: str):
        super().__init__(f"{identity.key}: {message}")
        self.identity = identity
        self.message = message


class UnknownKindError(ClassificationError):
    """No provider capability is registered for the resource kind."""

    def __init__(self, identity: ResourceIdentity):
        super().__init__(identity, f"unknown resource kind {identity.kind!r}")


class MalformedAttributesError(ClassificationError):
    """An attribute tree is not a mapping at its root."""


class DependencyCycleError(PlanError):
    """Declared dependencies form a cycle."""

    def __init__(self, cycle: list[ResourceIdentity]):
        self.cycle = cycle
        path = " -> ".join(identity.key for identity in cycle)
        super().__init__(f"dependency cycle detected: {path}")


class DuplicateIdentityError(PlanError):
    """The same identity was declared more than once on one side of the plan."""

    def __init__(self, identity: ResourceIdentity, side: str):
        self.identity = identity
        self.side = side
        super().__init__(f"duplicate {side} resource {identity.key}")


class PlanCancelledError(PlanError):
    """The caller cancelled the planning run."""

    def __init__(self):
        super().__init__("planning cancelled")


class DocumentError(ValueError):
    """A desired-state, state or policy document could not be loaded."""
