"""Reconciliation state machine for Attester resources.

One call to ``AttesterReconciler.reconcile`` is one pass. Passes are
level-triggered: each one reloads the resource and works out what is left to
do from its fields alone, so any pass may be repeated, interrupted or run
alongside another pass for the same Attester.

Steps, in order:

1. Load the resource; a missing resource is already gone.
2. Register the finalizer before anything that needs cleanup.
3. On deletion, drop the finalizer, then the secret, then the registry entry.
4. Initialize the two conditions.
5. Compile the policy on every pass.
6. Default the secret reference to the Attester's name.
7. Load or create the signer secret.
8. Publish the attester.

Steps 5 and 6 end the pass right after their write and ask for a requeue.
The write produces a new version of the resource, and the next pass starts
from that version instead of continuing with this pass's in-memory copy.
"""

from __future__ import annotations

from .constants import KIND_ATTESTER
from .handlers.base import BaseHandler
from .models import (
    AttesterResource,
    ConditionStatus,
    ConditionType,
    NamespacedName,
    ReconcileResult,
)
from .registry import Attester, AttesterRegistry
from .secret_lifecycle import SecretLifecycleManager
from .services.policy import PolicyCompiler
from .services.store import ResourceStore
from .tracing import add_span_attribute, trace_span
from .utils.conditions import ConditionTracker
from .utils.errors import (
    AttesterError,
    BestEffortError,
    CompileError,
    NotFoundError,
    ParseError,
    SecretCreationError,
    sanitize_exception,
)
from .utils.events import (
    emit_attester_deleted,
    emit_attester_ready,
    emit_policy_compiled,
    emit_policy_invalid,
    emit_secret_created,
    emit_secret_invalid,
)
from .utils.finalizers import FinalizerManager


class AttesterReconciler(BaseHandler):
    """Drives Attester resources toward a published, ready attester."""

    def __init__(
        self,
        store: ResourceStore,
        compiler: PolicyCompiler,
        secrets: SecretLifecycleManager,
        registry: AttesterRegistry,
        opa_trace: bool = False,
    ):
        super().__init__(KIND_ATTESTER)
        self.store = store
        self.compiler = compiler
        self.secrets = secrets
        self.registry = registry
        self.opa_trace = opa_trace
        self.conditions = ConditionTracker(store)
        self.finalizers = FinalizerManager(store)

    def list_active_attesters(self) -> dict[str, Attester]:
        """Attesters currently ready to produce attestations, by identity."""
        return self.registry.snapshot()

    def reconcile(self, identity: NamespacedName) -> ReconcileResult:
        """Run one reconciliation pass.

        Returns:
            The pass result; ``requeue`` is set when the pass stopped after a
            write and another pass is needed to continue

        Raises:
            TransientStoreError: If loading or persisting failed
            CompileError: If the policy does not compile
            ParseError: If the stored key material is malformed
            SecretCreationError: If a new signer secret could not be created
        """
        key = str(identity)
        with trace_span("reconcile_attester", kind=KIND_ATTESTER, identity=identity):
            self.log_info(identity, "Reconciling attester", event="reconcile", reason="Reconciling")

            try:
                attester = self.store.get(identity)
            except NotFoundError:
                self.registry.remove(key)
                self.log_info(identity, "Attester not found, nothing to do", reason="NotFound")
                return ReconcileResult()

            if self.finalizers.ensure_present(attester):
                self.log_info(identity, "Registered finalizer", event="finalizer", reason="FinalizerAdded")

            if attester.is_being_deleted:
                return self._finalize(attester)

            if self.conditions.initialize(attester):
                self.log_info(identity, "Initialized conditions", event="status", reason="ConditionsInitialized")

            try:
                policy = self.compiler.compile(identity.name, attester.policy, self.opa_trace)
            except CompileError as e:
                self.registry.remove(key)
                self.log_error(identity, "Unable to compile policy", error=e, reason="PolicyInvalid")
                emit_policy_invalid(attester.body, sanitize_exception(e))
                self._record_failure(attester, ConditionType.COMPILED)
                raise

            if self.conditions.get_status(attester, ConditionType.COMPILED) != ConditionStatus.TRUE:
                self.conditions.set_condition(attester, ConditionType.COMPILED, ConditionStatus.TRUE)
                self.log_info(identity, "Policy compiled", event="status", reason="PolicyCompiled")
                emit_policy_compiled(attester.body)
                return ReconcileResult(requeue=True)

            if not attester.pgp_secret:
                attester.pgp_secret = identity.name
                self.store.update(attester)
                self.log_info(
                    identity,
                    "Defaulted signer secret reference",
                    event="spec",
                    reason="SecretReferenceAssigned",
                    secret=attester.pgp_secret,
                )
                return ReconcileResult(requeue=True)

            try:
                signer, created = self.secrets.resolve_or_create(identity, attester.pgp_secret)
            except (ParseError, SecretCreationError) as e:
                self.registry.remove(key)
                self.log_error(identity, "Unable to obtain signer", error=e, reason="SecretInvalid")
                emit_secret_invalid(attester.body, sanitize_exception(e))
                self._record_failure(attester, ConditionType.SECRET_READY)
                raise

            if created:
                self.log_info(identity, "Created signer secret", event="secret", reason="SecretCreated")
                emit_secret_created(attester.body, attester.pgp_secret)
            self.conditions.set_condition(attester, ConditionType.SECRET_READY, ConditionStatus.TRUE)

            newly_ready = key not in self.registry
            self.registry.publish(key, policy, signer)
            add_span_attribute("attester.key_id", signer.key_id)
            if newly_ready:
                self.log_info(identity, "Attester is ready", event="ready", reason="AttesterReady", key_id=signer.key_id)
                emit_attester_ready(attester.body)
            return ReconcileResult()

    def _finalize(self, attester: AttesterResource) -> ReconcileResult:
        """Tear down a deleted Attester.

        The finalizer is removed before the secret so that a crash in between
        leaves an orphaned secret rather than an Attester stuck in deletion.
        """
        identity = attester.identity
        key = str(identity)

        if not self.finalizers.contains(attester):
            self.registry.remove(key)
            return ReconcileResult()

        self.log_info(identity, "Removing finalizer", event="deletion", reason="Finalizing")
        self.finalizers.remove(attester)

        try:
            self.secrets.delete_secret(identity, attester.pgp_secret)
        except AttesterError as e:
            error = BestEffortError(f"Failed to delete secret {attester.pgp_secret}: {e}")
            self.log_error(identity, "Failed to delete the signer secret", error=error, reason="SecretCleanupFailed")

        self.registry.remove(key)
        emit_attester_deleted(attester.body)
        return ReconcileResult()

    def _record_failure(self, attester: AttesterResource, condition_type: ConditionType) -> None:
        """Set a condition to False, logging rather than raising if the write fails."""
        try:
            self.conditions.set_condition(attester, condition_type, ConditionStatus.FALSE)
        except AttesterError as e:
            self.log_error(
                attester.identity,
                f"Unable to set {condition_type.value} to False",
                error=e,
                reason="StatusUpdateFailed",
            )
