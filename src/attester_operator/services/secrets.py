"""Signer secret storage backed by Kubernetes secrets."""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from kubernetes import client

from .. import metrics
from ..constants import CONTROLLER_NAME, FIELD_MANAGER, LABEL_ATTESTER_NAME, LABEL_MANAGED_BY
from ..models import NamespacedName
from ..utils.errors import AlreadyExistsError, NotFoundError, TransientStoreError
from ..utils.rate_limit import rate_limit_k8s


@dataclass
class SecretRecord:
    """Decoded contents of a stored secret."""

    identity: NamespacedName
    data: dict[str, bytes] = field(default_factory=dict)


class SecretStore(Protocol):
    def get(self, identity: NamespacedName) -> SecretRecord: ...

    def create(self, identity: NamespacedName, data: dict[str, bytes], owner: str | None = None) -> None: ...

    def delete(self, identity: NamespacedName) -> None: ...


def _decode(value: Any) -> bytes:
    # The client hands back base64 text; tolerate raw bytes as well
    if isinstance(value, bytes):
        return value
    return base64.b64decode(value)


class KubernetesSecretStore:
    """SecretStore over the CoreV1Api.

    Raises:
        NotFoundError: For 404 responses
        AlreadyExistsError: For 409 responses on create
        TransientStoreError: For any other API failure
    """

    def __init__(self, api: client.CoreV1Api | None = None):
        self.api = api or client.CoreV1Api()

    def _call(self, operation: str, secret_name: str, fn: Any, **kwargs: Any) -> Any:
        start_time = time.time()
        try:
            result = rate_limit_k8s(fn)(**kwargs)
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="success").inc()
            return result
        except client.exceptions.ApiException as e:
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
            if e.status == 404:
                raise NotFoundError(f"Secret {secret_name} not found") from e
            if e.status == 409:
                raise AlreadyExistsError(f"Secret {secret_name} already exists") from e
            raise TransientStoreError(f"{operation} failed with status {e.status}: {e.reason}") from e
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(duration)

    def get(self, identity: NamespacedName) -> SecretRecord:
        secret = self._call(
            "read_secret",
            identity.name,
            self.api.read_namespaced_secret,
            name=identity.name,
            namespace=identity.namespace,
        )
        data = {key: _decode(value) for key, value in (secret.data or {}).items()}
        return SecretRecord(identity=identity, data=data)

    def create(self, identity: NamespacedName, data: dict[str, bytes], owner: str | None = None) -> None:
        labels = {LABEL_MANAGED_BY: CONTROLLER_NAME}
        if owner:
            labels[LABEL_ATTESTER_NAME] = owner

        secret = client.V1Secret(
            metadata=client.V1ObjectMeta(
                name=identity.name,
                namespace=identity.namespace,
                labels=labels,
            ),
            type="Opaque",
            data={k: base64.b64encode(v).decode("utf-8") for k, v in data.items()},
        )

        self._call(
            "create_secret",
            identity.name,
            self.api.create_namespaced_secret,
            namespace=identity.namespace,
            body=secret,
            field_manager=FIELD_MANAGER,
        )

    def delete(self, identity: NamespacedName) -> None:
        self._call(
            "delete_secret",
            identity.name,
            self.api.delete_namespaced_secret,
            name=identity.name,
            namespace=identity.namespace,
        )
