"""Resource store for Attester objects backed by the Kubernetes API."""

from __future__ import annotations

import time
from typing import Any, Protocol

from kubernetes import client, config

from .. import metrics
from ..constants import API_GROUP, API_VERSION, FIELD_MANAGER, PLURAL_ATTESTERS
from ..models import AttesterResource, NamespacedName
from ..utils.errors import NotFoundError, TransientStoreError
from ..utils.rate_limit import rate_limit_k8s


class ResourceStore(Protocol):
    """Persistence for Attester objects.

    ``update`` writes metadata and spec, ``update_status`` writes the status
    sub-resource. Both leave fields they do not manage untouched and refresh
    the resource version of the passed object.
    """

    def get(self, identity: NamespacedName) -> AttesterResource: ...

    def update(self, resource: AttesterResource) -> None: ...

    def update_status(self, resource: AttesterResource) -> None: ...


def load_kube_config() -> None:
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


class KubernetesResourceStore:
    """ResourceStore over the CustomObjectsApi."""

    def __init__(self, api: client.CustomObjectsApi | None = None):
        self.api = api or client.CustomObjectsApi()

    def _call(self, operation: str, fn: Any, **kwargs: Any) -> dict[str, Any]:
        start_time = time.time()
        try:
            result = rate_limit_k8s(fn)(
                group=API_GROUP,
                version=API_VERSION,
                plural=PLURAL_ATTESTERS,
                **kwargs,
            )
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="success").inc()
            return result
        except client.exceptions.ApiException as e:
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
            if e.status == 404:
                raise NotFoundError(
                    f"Attester {kwargs.get('name')} not found in namespace {kwargs.get('namespace')}"
                ) from e
            raise TransientStoreError(f"{operation} failed with status {e.status}: {e.reason}") from e
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(duration)

    def get(self, identity: NamespacedName) -> AttesterResource:
        body = self._call(
            "get_attester",
            self.api.get_namespaced_custom_object,
            namespace=identity.namespace,
            name=identity.name,
        )
        return AttesterResource.from_body(body)

    def update(self, resource: AttesterResource) -> None:
        body = self._call(
            "update_attester",
            self.api.replace_namespaced_custom_object,
            namespace=resource.namespace,
            name=resource.name,
            body=resource.to_body(),
            field_manager=FIELD_MANAGER,
        )
        resource.refresh(body)

    def update_status(self, resource: AttesterResource) -> None:
        body = self._call(
            "update_attester_status",
            self.api.replace_namespaced_custom_object_status,
            namespace=resource.namespace,
            name=resource.name,
            body=resource.to_body(),
            field_manager=FIELD_MANAGER,
        )
        resource.refresh(body)
