"""Shared fixtures and in-memory collaborators for the unit tests."""

from __future__ import annotations

import copy
from typing import Any, Callable
from unittest.mock import patch

import pytest

from attester_operator.constants import API_GROUP_VERSION, KIND_ATTESTER
from attester_operator.models import AttesterResource, NamespacedName
from attester_operator.reconciler import AttesterReconciler
from attester_operator.registry import AttesterRegistry
from attester_operator.secret_lifecycle import SecretLifecycleManager
from attester_operator.services.policy import Policy
from attester_operator.services.secrets import SecretRecord
from attester_operator.services.signer import Ed25519SignerBackend
from attester_operator.utils.errors import AlreadyExistsError, CompileError, NotFoundError

VALID_POLICY = """package demo

violation[msg] {
    input.unsigned
    msg := "image is unsigned"
}
"""

INVALID_POLICY = "package demo\n\nviolation[msg] { invalid"


class InMemoryResourceStore:
    """ResourceStore keeping Attester bodies in a dict.

    Mimics the API server: spec updates leave status alone, status updates
    leave everything else alone, and an object marked for deletion disappears
    once its last finalizer is removed.
    """

    def __init__(self) -> None:
        self.objects: dict[NamespacedName, dict[str, Any]] = {}
        self.writes: list[tuple[str, str]] = []
        self.fail_on: dict[str, Exception] = {}
        self._version = 0

    def add(self, body: dict[str, Any]) -> NamespacedName:
        meta = body["metadata"]
        identity = NamespacedName(meta["namespace"], meta["name"])
        self.objects[identity] = copy.deepcopy(body)
        return identity

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def get(self, identity: NamespacedName) -> AttesterResource:
        if "get" in self.fail_on:
            raise self.fail_on["get"]
        if identity not in self.objects:
            raise NotFoundError(f"Attester {identity} not found")
        return AttesterResource.from_body(copy.deepcopy(self.objects[identity]))

    def update(self, resource: AttesterResource) -> None:
        if "update" in self.fail_on:
            raise self.fail_on["update"]
        identity = resource.identity
        if identity not in self.objects:
            raise NotFoundError(f"Attester {identity} not found")

        stored = self.objects[identity]
        new = resource.to_body()
        if "status" in stored:
            new["status"] = copy.deepcopy(stored["status"])
        else:
            new.pop("status", None)
        new["metadata"]["resourceVersion"] = self._next_version()
        self.writes.append(("update", str(identity)))

        if new["metadata"].get("deletionTimestamp") and not new["metadata"].get("finalizers"):
            del self.objects[identity]
        else:
            self.objects[identity] = new
        resource.refresh(new)

    def update_status(self, resource: AttesterResource) -> None:
        if "update_status" in self.fail_on:
            raise self.fail_on["update_status"]
        identity = resource.identity
        if identity not in self.objects:
            raise NotFoundError(f"Attester {identity} not found")

        stored = copy.deepcopy(self.objects[identity])
        stored["status"] = resource.to_body().get("status", {})
        stored["metadata"]["resourceVersion"] = self._next_version()
        self.writes.append(("status", str(identity)))
        self.objects[identity] = stored
        resource.refresh(stored)

    def status_of(self, identity: NamespacedName) -> dict[str, str]:
        conditions = self.objects[identity].get("status", {}).get("conditions", [])
        return {cond["type"]: cond["status"] for cond in conditions}


class InMemorySecretStore:
    """SecretStore keeping secret data in a dict."""

    def __init__(self) -> None:
        self.secrets: dict[NamespacedName, dict[str, bytes]] = {}
        self.calls: list[tuple[str, NamespacedName]] = []
        self.fail_on: dict[str, Exception] = {}

    def get(self, identity: NamespacedName) -> SecretRecord:
        self.calls.append(("get", identity))
        if "get" in self.fail_on:
            raise self.fail_on["get"]
        if identity not in self.secrets:
            raise NotFoundError(f"Secret {identity} not found")
        return SecretRecord(identity=identity, data=dict(self.secrets[identity]))

    def create(self, identity: NamespacedName, data: dict[str, bytes], owner: str | None = None) -> None:
        self.calls.append(("create", identity))
        if "create" in self.fail_on:
            raise self.fail_on["create"]
        if identity in self.secrets:
            raise AlreadyExistsError(f"Secret {identity} already exists")
        self.secrets[identity] = dict(data)

    def delete(self, identity: NamespacedName) -> None:
        self.calls.append(("delete", identity))
        if "delete" in self.fail_on:
            raise self.fail_on["delete"]
        if identity not in self.secrets:
            raise NotFoundError(f"Secret {identity} not found")
        del self.secrets[identity]


class FakePolicyCompiler:
    """Accepts any non-empty source that does not contain the word 'invalid'."""

    def __init__(self) -> None:
        self.calls = 0

    def compile(self, name: str, source: str, trace: bool = False) -> Policy:
        self.calls += 1
        if not source.strip() or "invalid" in source:
            raise CompileError(f"Policy {name} failed to compile: rego_parse_error")
        return Policy(name=name, source=source, trace=trace)


@pytest.fixture(autouse=True)
def mock_kopf_event():
    """Kubernetes events need a running operator; capture them instead."""
    with patch("attester_operator.utils.events.kopf.event") as mock_event:
        yield mock_event


@pytest.fixture
def make_body() -> Callable[..., dict[str, Any]]:
    def _make_body(
        name: str = "demo",
        namespace: str = "default",
        policy: str = VALID_POLICY,
        pgp_secret: str | None = None,
        finalizers: list[str] | None = None,
        conditions: list[dict[str, str]] | None = None,
        deletion_timestamp: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "apiVersion": API_GROUP_VERSION,
            "kind": KIND_ATTESTER,
            "metadata": {
                "name": name,
                "namespace": namespace,
                "uid": f"uid-{namespace}-{name}",
                "resourceVersion": "1",
                "generation": 1,
                "labels": {"team": "platform"},
            },
            "spec": {"policy": policy},
        }
        if pgp_secret is not None:
            body["spec"]["pgpSecret"] = pgp_secret
        if finalizers is not None:
            body["metadata"]["finalizers"] = finalizers
        if conditions is not None:
            body["status"] = {"conditions": conditions}
        if deletion_timestamp is not None:
            body["metadata"]["deletionTimestamp"] = deletion_timestamp
        return body

    return _make_body


@pytest.fixture
def store() -> InMemoryResourceStore:
    return InMemoryResourceStore()


@pytest.fixture
def secret_store() -> InMemorySecretStore:
    return InMemorySecretStore()


@pytest.fixture
def compiler() -> FakePolicyCompiler:
    return FakePolicyCompiler()


@pytest.fixture
def registry() -> AttesterRegistry:
    return AttesterRegistry()


@pytest.fixture
def secrets_manager(secret_store: InMemorySecretStore) -> SecretLifecycleManager:
    return SecretLifecycleManager(secret_store, Ed25519SignerBackend())


@pytest.fixture
def reconciler(
    store: InMemoryResourceStore,
    compiler: FakePolicyCompiler,
    secrets_manager: SecretLifecycleManager,
    registry: AttesterRegistry,
) -> AttesterReconciler:
    return AttesterReconciler(store, compiler, secrets_manager, registry)
