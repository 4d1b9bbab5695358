"""Utilities for managing the fixed Attester status conditions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from ..models import AttesterResource, Condition, ConditionStatus, ConditionType
from .errors import ConditionsNotInitializedError

if TYPE_CHECKING:
    from ..services.store import ResourceStore

# Slot order of the serialized conditions list
CONDITION_SLOTS: tuple[ConditionType, ...] = (
    ConditionType.COMPILED,
    ConditionType.SECRET_READY,
)


def is_initialized(resource: AttesterResource) -> bool:
    """Whether both condition slots exist in their fixed order."""
    return tuple(cond.type for cond in resource.conditions) == CONDITION_SLOTS


def conditions_as_mapping(resource: AttesterResource) -> dict[ConditionType, ConditionStatus]:
    """Keyed view of the conditions list."""
    return {cond.type: cond.status for cond in resource.conditions}


class ConditionTracker:
    """Reads and writes the two status conditions of an Attester.

    Every write persists the status sub-resource with a single update. Writes
    that would not change anything are skipped.
    """

    def __init__(self, store: ResourceStore):
        self.store = store

    def initialize(self, resource: AttesterResource) -> bool:
        """Create both condition slots with status False.

        A malformed list (missing slot, wrong order, duplicates) is rebuilt in
        slot order, keeping any condition already recorded for a type. The
        list is owned outright: conditions of other types are dropped.

        Returns:
            True if the status was written
        """
        if is_initialized(resource):
            return False

        known = {cond.type: cond for cond in resource.conditions}
        now = datetime.now(timezone.utc).isoformat()
        resource.conditions = [
            known.get(cond_type) or Condition(cond_type, ConditionStatus.FALSE, {"lastTransitionTime": now})
            for cond_type in CONDITION_SLOTS
        ]
        self.store.update_status(resource)
        return True

    def get_status(self, resource: AttesterResource, condition_type: ConditionType) -> ConditionStatus:
        self._require_initialized(resource)
        return resource.conditions[CONDITION_SLOTS.index(condition_type)].status

    def set_condition(
        self,
        resource: AttesterResource,
        condition_type: ConditionType,
        status: ConditionStatus,
    ) -> bool:
        """Set one condition and persist the status.

        Returns:
            True if the status was written, False if it already held ``status``

        Raises:
            ConditionsNotInitializedError: If ``initialize`` has not run
            TransientStoreError: If the status write failed
        """
        self._require_initialized(resource)
        slot = CONDITION_SLOTS.index(condition_type)
        if resource.conditions[slot].status == status:
            return False

        # Other fields on the condition are carried over
        extra = dict(resource.conditions[slot].extra)
        extra["lastTransitionTime"] = datetime.now(timezone.utc).isoformat()
        resource.conditions[slot] = Condition(type=condition_type, status=status, extra=extra)
        self.store.update_status(resource)
        return True

    def _require_initialized(self, resource: AttesterResource) -> None:
        if not is_initialized(resource):
            raise ConditionsNotInitializedError(
                f"Attester {resource.identity} conditions are not initialized"
            )
