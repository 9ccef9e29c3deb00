"""Classifies a single desired/actual resource pair into a change."""

import dataclasses
import logging

from stackplan.differ import AttributeTreeError, diff_attributes
from stackplan.errors import MalformedAttributesError
from stackplan.models import (
    ActualResource,
    AttributeChange,
    Change,
    ChangeType,
    DesiredResource,
    ResourceIdentity,
)
from stackplan.policy import ProviderRegistry

logger = logging.getLogger(__name__)


class ResourceComparator:
    """Compares one resource pair using the kind's registered capability."""

    def __init__(self, registry: ProviderRegistry):
        self._registry = registry

    def compare(
        self,
        identity: ResourceIdentity,
        desired: DesiredResource | None,
        actual: ActualResource | None,
    ) -> Change | None:
        """Return the change for one identity, or None if neither side exists.

        Raises a ClassificationError subclass when the pair cannot be
        classified. Other identities are unaffected by the failure.
        """
        if desired is None and actual is None:
            return None

        if desired is None:
            return Change(
                identity=identity,
                change_type=ChangeType.DELETE,
                reason="resource no longer declared",
                depends_on=actual.depends_on,
                resource_id=actual.resource_id,
                kind_label=self._registry.label_for(identity.kind),
            )

        capability = self._registry.get(identity)

        if actual is None:
            return Change(
                identity=identity,
                change_type=ChangeType.CREATE,
                reason="resource does not exist",
                depends_on=desired.depends_on,
                kind_label=capability.label,
            )

        if actual.observed_kind != desired.kind:
            return Change(
                identity=identity,
                change_type=ChangeType.RECREATE,
                attribute_changes=(
                    AttributeChange(
                        path="kind",
                        old_value=actual.observed_kind,
                        new_value=desired.kind,
                        force_recreate=True,
                    ),
                ),
                reason="resource kind changed from "
                f"{actual.observed_kind} to {desired.kind}",
                depends_on=desired.depends_on,
                resource_id=actual.resource_id,
                kind_label=capability.label,
            )

        sensitive = tuple(capability.sensitive_paths) + tuple(desired.sensitive_paths)
        try:
            diffs = diff_attributes(
                actual.attributes,
                desired.attributes,
                sensitive_paths=sensitive,
                ignore_paths=capability.ignore_paths,
            )
        except AttributeTreeError as exc:
            raise MalformedAttributesError(identity, str(exc)) from exc

        if not diffs:
            return Change(
                identity=identity,
                change_type=ChangeType.NO_CHANGE,
                depends_on=desired.depends_on,
                resource_id=actual.resource_id,
                kind_label=capability.label,
            )

        decision = capability.recreate_policy.evaluate(d.path for d in diffs)
        triggers = set(decision.triggers)
        attribute_changes = tuple(
            dataclasses.replace(d, force_recreate=True) if d.path in triggers else d
            for d in diffs
        )

        if decision.forced:
            logger.debug("%s requires replacement via %s", identity.key, ", ".join(decision.triggers))
            change_type = ChangeType.RECREATE
            reason = _replacement_reason(decision.triggers)
        else:
            change_type = ChangeType.UPDATE
            reason = f"{len(diffs)} attribute(s) changed"

        return Change(
            identity=identity,
            change_type=change_type,
            attribute_changes=attribute_changes,
            reason=reason,
            depends_on=desired.depends_on,
            resource_id=actual.resource_id,
            kind_label=capability.label,
        )


def _replacement_reason(triggers: tuple[str, ...]) -> str:
    if len(triggers) == 1:
        return f"attribute {triggers[0]} requires replacement"
    return f"attributes {', '.join(triggers)} require replacement"
