"""Models for Attester resources and reconciliation results."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .constants import (
    API_GROUP_VERSION,
    COND_COMPILED,
    COND_SECRET_READY,
    KIND_ATTESTER,
    STATUS_FALSE,
    STATUS_TRUE,
    STATUS_UNKNOWN,
)


class ConditionType(str, Enum):
    """Condition types tracked on an Attester."""

    COMPILED = COND_COMPILED
    SECRET_READY = COND_SECRET_READY


class ConditionStatus(str, Enum):
    """Tri-state condition status."""

    TRUE = STATUS_TRUE
    FALSE = STATUS_FALSE
    UNKNOWN = STATUS_UNKNOWN


@dataclass(frozen=True)
class NamespacedName:
    """Namespace-qualified name of a Kubernetes object."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class Condition:
    """A single status condition.

    Only ``type`` and ``status`` are interpreted. Any other fields on the stored
    condition (``lastTransitionTime``, ``message`` and so on) are kept in
    ``extra`` and written back.
    """

    type: ConditionType
    status: ConditionStatus
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "status": self.status.value, **copy.deepcopy(self.extra)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        """Build a condition from its serialized form.

        Unknown statuses are read as ``Unknown`` rather than rejected, since the
        status block may have been edited by hand.

        Raises:
            ValueError: If the condition type is not one this operator manages
        """
        try:
            status = ConditionStatus(data.get("status", STATUS_UNKNOWN))
        except ValueError:
            status = ConditionStatus.UNKNOWN
        extra = {key: value for key, value in data.items() if key not in ("type", "status")}
        return cls(type=ConditionType(data.get("type")), status=status, extra=copy.deepcopy(extra))


@dataclass
class ReconcileResult:
    """Outcome of a successful reconciliation pass."""

    requeue: bool = False


@dataclass
class AttesterResource:
    """In-memory view of an Attester object.

    The raw body is kept so writes round-trip fields this operator does not
    manage (labels, annotations, managedFields and so on).
    """

    name: str
    namespace: str
    policy: str = ""
    pgp_secret: str = ""
    finalizers: list[str] = field(default_factory=list)
    conditions: list[Condition] = field(default_factory=list)
    deletion_timestamp: str | None = None
    resource_version: str | None = None
    uid: str | None = None
    generation: int = 0
    body: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def identity(self) -> NamespacedName:
        return NamespacedName(self.namespace, self.name)

    @property
    def is_being_deleted(self) -> bool:
        return bool(self.deletion_timestamp)

    def get_conditions(self) -> list[Condition]:
        return list(self.conditions)

    def get_finalizers(self) -> list[str]:
        return list(self.finalizers)

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> AttesterResource:
        """Build a resource from a Kubernetes object body."""
        meta = body.get("metadata") or {}
        spec = body.get("spec") or {}
        status = body.get("status") or {}
        conditions = []
        for raw in status.get("conditions") or []:
            try:
                conditions.append(Condition.from_dict(raw))
            except ValueError:
                # The list holds only the two managed types; others are dropped on write
                continue
        return cls(
            name=meta.get("name", ""),
            namespace=meta.get("namespace", "default"),
            policy=spec.get("policy") or "",
            pgp_secret=spec.get("pgpSecret") or "",
            finalizers=list(meta.get("finalizers") or []),
            conditions=conditions,
            deletion_timestamp=meta.get("deletionTimestamp"),
            resource_version=meta.get("resourceVersion"),
            uid=meta.get("uid"),
            generation=meta.get("generation", 0),
            body=copy.deepcopy(dict(body)),
        )

    def to_body(self) -> dict[str, Any]:
        """Render the resource as a Kubernetes object body."""
        body = copy.deepcopy(self.body)
        body.setdefault("apiVersion", API_GROUP_VERSION)
        body.setdefault("kind", KIND_ATTESTER)

        meta = body.setdefault("metadata", {})
        meta["name"] = self.name
        meta["namespace"] = self.namespace
        meta["finalizers"] = list(self.finalizers)
        if self.resource_version is not None:
            meta["resourceVersion"] = self.resource_version

        spec = body.setdefault("spec", {})
        if self.policy or "policy" in spec:
            spec["policy"] = self.policy
        if self.pgp_secret:
            spec["pgpSecret"] = self.pgp_secret

        status = body.get("status") or {}
        if self.conditions:
            status["conditions"] = [cond.to_dict() for cond in self.conditions]
        if status:
            body["status"] = status
        return body

    def refresh(self, body: dict[str, Any]) -> None:
        """Adopt the server's copy after a successful write."""
        meta = body.get("metadata") or {}
        self.resource_version = meta.get("resourceVersion", self.resource_version)
        self.generation = meta.get("generation", self.generation)
        self.body = copy.deepcopy(dict(body))
