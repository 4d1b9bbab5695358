"""Watch event filters that suppress notifications caused by our own writes.

Every status or finalizer write made by a pass comes back as a watch event.
Most of those carry nothing new for the reconciler; dropping them bounds the
number of passes per logical change. Dropping an event never affects
correctness, only how soon the next pass runs.
"""

from __future__ import annotations

import dataclasses
import threading
from typing import Any, Callable, Protocol

from . import metrics
from .models import AttesterResource, Condition, ConditionStatus, ConditionType


class Conditioner(Protocol):
    """Anything reconciled that carries conditions and finalizers."""

    def get_conditions(self) -> list[Condition]: ...

    def get_finalizers(self) -> list[str]: ...


# (old, new) -> True to let the event through
UpdatePredicate = Callable[[Conditioner, Conditioner], bool]


def attester_to_conditioner(body: dict[str, Any]) -> Conditioner:
    """Read an Attester body as a Conditioner, without keeping the raw body."""
    return dataclasses.replace(AttesterResource.from_body(body), body={})


def condition_status(conditioner: Conditioner, condition_type: ConditionType) -> ConditionStatus | None:
    for cond in conditioner.get_conditions():
        if cond.type == condition_type:
            return cond.status
    return None


def ignore_condition_status_update_to_active(condition_type: ConditionType) -> UpdatePredicate:
    """Drop updates that flip ``condition_type`` to True."""
    def predicate(old: Conditioner, new: Conditioner) -> bool:
        old_status = condition_status(old, condition_type)
        new_status = condition_status(new, condition_type)
        return not (old_status != ConditionStatus.TRUE and new_status == ConditionStatus.TRUE)

    return predicate


def ignore_finalizer_update() -> UpdatePredicate:
    """Drop updates that change the finalizer list."""
    def predicate(old: Conditioner, new: Conditioner) -> bool:
        return old.get_finalizers() == new.get_finalizers()

    return predicate


class AttesterEventFilter:
    """kopf ``when=`` callback for Attester watch events.

    kopf raw-event handlers only see the new object, so the filter keeps the
    last object seen per uid to compare against.
    """

    def __init__(
        self,
        predicates: list[tuple[str, UpdatePredicate]] | None = None,
        to_conditioner: Callable[[dict[str, Any]], Conditioner] = attester_to_conditioner,
    ):
        if predicates is None:
            predicates = [
                ("compiled_to_true", ignore_condition_status_update_to_active(ConditionType.COMPILED)),
                ("secret_ready_to_true", ignore_condition_status_update_to_active(ConditionType.SECRET_READY)),
                ("finalizer_update", ignore_finalizer_update()),
            ]
        self.predicates = predicates
        self.to_conditioner = to_conditioner
        self._lock = threading.Lock()
        self._last_seen: dict[str, Conditioner] = {}

    def __call__(self, event: dict[str, Any], body: dict[str, Any], **_: Any) -> bool:
        event_type = (event or {}).get("type")
        meta = body.get("metadata") or {}
        key = meta.get("uid") or f"{meta.get('namespace')}/{meta.get('name')}"

        if event_type == "DELETED":
            # Let through so the pass that finds nothing drops the registry entry
            with self._lock:
                self._last_seen.pop(key, None)
            return True

        new = self.to_conditioner(body)
        with self._lock:
            old = self._last_seen.get(key)
            self._last_seen[key] = new

        if old is None:
            return True

        for reason, predicate in self.predicates:
            if not predicate(old, new):
                metrics.filtered_events_total.labels(reason=reason).inc()
                return False
        return True
