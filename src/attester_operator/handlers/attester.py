"""kopf handlers that dispatch Attester watch events to the reconciler."""

from __future__ import annotations

import os
from typing import Any

import kopf

from ..constants import API_GROUP_VERSION, KIND_ATTESTER
from ..filters import AttesterEventFilter
from ..models import NamespacedName
from ..reconciler import AttesterReconciler
from ..registry import AttesterRegistry
from ..secret_lifecycle import SecretLifecycleManager
from ..services.policy import OpaPolicyCompiler
from ..services.secrets import KubernetesSecretStore
from ..services.signer import Ed25519SignerBackend
from ..services.store import KubernetesResourceStore, load_kube_config
from ..utils.context import with_correlation_id
from ..utils.errors import SecretCreationError, TransientStoreError, sanitize_exception

_MAX_REQUEUE_PASSES = int(os.getenv("MAX_REQUEUE_PASSES", "5"))
_RESYNC_INTERVAL_SECONDS = float(os.getenv("RESYNC_INTERVAL_SECONDS", "60"))
_RESYNC_IDLE_SECONDS = float(os.getenv("RESYNC_IDLE_SECONDS", "10"))
_RETRY_DELAY_SECONDS = float(os.getenv("RETRY_DELAY_SECONDS", "10"))

# Failures that may clear without any change to the Attester
RETRYABLE_ERRORS = (TransientStoreError, SecretCreationError)

# Configured at startup; built lazily otherwise
_reconciler: AttesterReconciler | None = None

event_filter = AttesterEventFilter()


def build_default_reconciler() -> AttesterReconciler:
    """Wire the reconciler to the Kubernetes API and the OPA compiler."""
    load_kube_config()
    return AttesterReconciler(
        store=KubernetesResourceStore(),
        compiler=OpaPolicyCompiler(),
        secrets=SecretLifecycleManager(KubernetesSecretStore(), Ed25519SignerBackend()),
        registry=AttesterRegistry(),
        opa_trace=os.getenv("OPA_TRACE", "false").lower() == "true",
    )


def configure_reconciler(reconciler: AttesterReconciler | None) -> None:
    global _reconciler
    _reconciler = reconciler


def get_reconciler() -> AttesterReconciler:
    global _reconciler
    if _reconciler is None:
        _reconciler = build_default_reconciler()
    return _reconciler


def is_configured() -> bool:
    return _reconciler is not None


def dispatch(
    reconciler: AttesterReconciler,
    identity: NamespacedName,
    body: dict[str, Any],
    max_passes: int = _MAX_REQUEUE_PASSES,
) -> int:
    """Run passes for one event until no requeue is requested.

    Each pass reloads the resource from the store. Errors propagate after
    being logged, counted and recorded as a Warning event.

    Returns:
        Number of passes run
    """
    for attempt in range(1, max_passes + 1):
        result = reconciler.reconcile_with_metrics(identity, body, lambda: reconciler.reconcile(identity))
        if not result.requeue:
            return attempt

    reconciler.log_warning(
        identity,
        f"Still requesting requeue after {max_passes} passes, waiting for the next event",
        reason="RequeueLimitReached",
    )
    return max_passes


def run_passes(reconciler: AttesterReconciler, identity: NamespacedName, body: dict[str, Any]) -> int:
    """Dispatch, reporting retryable failures to kopf as temporary errors."""
    try:
        return dispatch(reconciler, identity, body)
    except RETRYABLE_ERRORS as e:
        raise kopf.TemporaryError(sanitize_exception(e), delay=_RETRY_DELAY_SECONDS) from e


def needs_resync(reconciler: AttesterReconciler, identity: NamespacedName) -> bool:
    """Whether a periodic pass has work left for this Attester.

    Only a pass that reaches the end publishes, so anything missing from the
    registry either failed part way or has not been reconciled yet.
    """
    return str(identity) not in reconciler.registry


@kopf.on.event(API_GROUP_VERSION, KIND_ATTESTER, when=event_filter)
def handle_attester_event(
    body: kopf.Body,
    name: str,
    namespace: str,
    **kwargs: Any,
) -> None:
    """Handle Attester watch events."""
    identity = NamespacedName(namespace=namespace or "default", name=name)
    with with_correlation_id():
        run_passes(get_reconciler(), identity, body)


@kopf.timer(
    API_GROUP_VERSION,
    KIND_ATTESTER,
    interval=_RESYNC_INTERVAL_SECONDS,
    idle=_RESYNC_IDLE_SECONDS,
)
def resync_attester(
    body: kopf.Body,
    name: str,
    namespace: str,
    **kwargs: Any,
) -> None:
    """Retry Attesters that are not published.

    Watch events are not redelivered after a failed pass, and a failure that
    writes no status produces no new event. kopf retries this timer after
    ``RETRY_DELAY_SECONDS`` when it raises a temporary error.
    """
    identity = NamespacedName(namespace=namespace or "default", name=name)
    reconciler = get_reconciler()
    if not needs_resync(reconciler, identity):
        return
    with with_correlation_id():
        run_passes(reconciler, identity, body)
