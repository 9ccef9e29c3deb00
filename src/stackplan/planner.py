"""Builds ordered change sets from desired and actual resources."""

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import UTC, datetime

from stackplan.comparator import ResourceComparator
from stackplan.errors import (
    ClassificationError,
    DuplicateIdentityError,
    PlanCancelledError,
)
from stackplan.graph import DependencyGraph
from stackplan.models import (
    ActualResource,
    Change,
    ChangeSet,
    ChangeSummary,
    ChangeType,
    DesiredResource,
    PlanResult,
    ResourceIdentity,
)
from stackplan.policy import ProviderRegistry

logger = logging.getLogger(__name__)

_FORWARD_TYPES = (ChangeType.CREATE, ChangeType.UPDATE, ChangeType.RECREATE)


@dataclass
class PlanContext:
    """Per-call cancellation signal and diagnostics sink."""

    cancel_event: threading.Event = field(default_factory=threading.Event)
    logger: logging.Logger = logger

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def check(self) -> None:
        if self.cancelled:
            raise PlanCancelledError()


class ChangeSetBuilder:
    """Compares every resource pair and assembles the ordered change set."""

    def __init__(
        self,
        registry: ProviderRegistry,
        max_concurrent: int = 4,
        clock: Callable[[], datetime] | None = None,
    ):
        self._comparator = ResourceComparator(registry)
        self._max_concurrent = max_concurrent
        self._clock = clock or (lambda: datetime.now(UTC))

    def build(
        self,
        desired: Iterable[DesiredResource],
        actual: Iterable[ActualResource],
        *,
        stack: str,
        environment: str,
        tenant: str = "",
        context: PlanContext | None = None,
    ) -> PlanResult:
        """Plan the changes that reconcile actual resources with desired ones.

        Raises DependencyCycleError, DuplicateIdentityError or
        PlanCancelledError. Per-resource classification errors are returned
        in the result next to the partial change set.
        """
        context = context or PlanContext()
        log = context.logger

        desired_by_id = _index(desired, "desired")
        actual_by_id = _index(actual, "actual")

        # Declared dependencies are checked before any comparison runs.
        creation_graph = DependencyGraph.from_resources(desired_by_id.values())
        creation_graph.check_acyclic()
        for identity, deps in creation_graph.external_dependencies.items():
            log.debug("%s depends on undeclared %s", identity.key, ", ".join(d.key for d in deps))

        identities = sorted(desired_by_id.keys() | actual_by_id.keys(), key=lambda i: i.sort_key)
        log.info(
            "Planning %s/%s: %d desired, %d actual, %d identities",
            stack,
            environment,
            len(desired_by_id),
            len(actual_by_id),
            len(identities),
        )

        changes, errors = self._compare_all(identities, desired_by_id, actual_by_id, context)

        forward = _ordered(changes, creation_graph, _FORWARD_TYPES, reverse=False)
        # Recorded dependencies only matter between resources being removed; a
        # cycle among them leaves no safe deletion order.
        deletion_graph = DependencyGraph.from_resources(actual_by_id.values())
        deletes = _ordered(changes, deletion_graph, (ChangeType.DELETE,), reverse=True)
        summary = ChangeSummary.count(c.change_type for c in changes.values())

        change_set = ChangeSet(
            stack=stack,
            environment=environment,
            tenant=tenant,
            changes=tuple(forward + deletes),
            summary=summary,
            created_at=self._clock(),
        )
        log.info(
            "Plan complete: %d to create, %d to update, %d to recreate, %d to delete, "
            "%d unchanged, %d error(s)",
            summary.create,
            summary.update,
            summary.recreate,
            summary.delete,
            summary.no_change,
            len(errors),
        )
        return PlanResult(change_set=change_set, errors=tuple(errors))

    def _compare_all(self, identities, desired_by_id, actual_by_id, context):
        changes: dict[ResourceIdentity, Change] = {}
        errors: list[ClassificationError] = []
        context.check()

        with ThreadPoolExecutor(max_workers=self._max_concurrent) as executor:
            futures = {
                executor.submit(
                    self._comparator.compare,
                    identity,
                    desired_by_id.get(identity),
                    actual_by_id.get(identity),
                ): identity
                for identity in identities
            }
            pending = set(futures)
            while pending:
                done, pending = wait(pending, timeout=0.1, return_when=FIRST_COMPLETED)
                if context.cancelled:
                    executor.shutdown(wait=False, cancel_futures=True)
                    context.logger.warning("Planning cancelled; discarding partial results")
                    raise PlanCancelledError()
                for future in done:
                    identity = futures[future]
                    try:
                        change = future.result()
                    except ClassificationError as exc:
                        context.logger.warning("Could not classify %s: %s", identity.key, exc.message)
                        errors.append(exc)
                        continue
                    except Exception as exc:
                        context.logger.exception("Failed to compare %s", identity.key)
                        errors.append(ClassificationError(identity, f"comparison failed: {exc}"))
                        continue
                    if change is not None:
                        changes[identity] = change

        errors.sort(key=lambda e: e.identity.sort_key)
        return changes, errors


def _index(resources, side: str) -> dict[ResourceIdentity, object]:
    indexed = {}
    for resource in resources:
        if resource.identity in indexed:
            raise DuplicateIdentityError(resource.identity, side)
        indexed[resource.identity] = resource
    return indexed


def _ordered(changes, graph, types, reverse) -> list[Change]:
    selected = [i for i, c in changes.items() if c.change_type in types]
    order = graph.order(
        selected,
        reverse=reverse,
        priority=lambda i: changes[i].change_type.precedence,
    )
    return [changes[i] for i in order]
