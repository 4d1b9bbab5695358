"""Lifecycle of the signing secret behind each Attester."""

from __future__ import annotations

import dataclasses
import logging

from . import metrics
from .constants import SECRET_KEYS_FIELD
from .models import NamespacedName
from .services.secrets import SecretStore
from .services.signer import Signer, SignerBackend
from .tracing import trace_span
from .utils.errors import (
    AlreadyExistsError,
    NotFoundError,
    ParseError,
    SecretCreationError,
    TransientStoreError,
)

logger = logging.getLogger(__name__)


class SecretLifecycleManager:
    """Resolves, creates and deletes signer secrets.

    The secret lives in the Attester's namespace under the name given by the
    Attester's secret reference, with the key material stored in the ``keys``
    data field.
    """

    def __init__(self, secret_store: SecretStore, signer_backend: SignerBackend):
        self.secret_store = secret_store
        self.signer_backend = signer_backend

    def resolve_or_create(self, identity: NamespacedName, secret_ref: str) -> tuple[Signer, bool]:
        """Return the signer for an Attester, creating its secret when missing.

        Args:
            identity: Attester identity
            secret_ref: Name of the secret in the Attester's namespace

        Returns:
            The signer and whether a new secret was created

        Raises:
            ParseError: If the stored key material is missing or malformed
            SecretCreationError: If new key material could not be generated or stored
            TransientStoreError: If the secret could not be read
        """
        secret_id = NamespacedName(identity.namespace, secret_ref)

        with trace_span("resolve_signer_secret", identity=identity, attributes={"secret.name": secret_ref}):
            try:
                signer = self._load(secret_id)
            except NotFoundError:
                logger.info(f"Secret {secret_id} not found, creating a new one")
            else:
                return dataclasses.replace(signer, identity=str(identity)), False

            try:
                return self._create(identity, secret_id), True
            except AlreadyExistsError:
                # Another pass created it between our read and write; use theirs
                logger.info(f"Secret {secret_id} was created concurrently, loading it")
                signer = self._load(secret_id)
                return dataclasses.replace(signer, identity=str(identity)), False

    def _load(self, secret_id: NamespacedName) -> Signer:
        record = self.secret_store.get(secret_id)
        key_material = record.data.get(SECRET_KEYS_FIELD)
        if not key_material:
            metrics.secret_operations_total.labels(operation="parse", result="failed").inc()
            raise ParseError(f"Secret {secret_id} has no {SECRET_KEYS_FIELD!r} field")

        try:
            signer = self.signer_backend.parse_signer(key_material)
        except ParseError:
            metrics.secret_operations_total.labels(operation="parse", result="failed").inc()
            raise
        metrics.secret_operations_total.labels(operation="parse", result="success").inc()
        return signer

    def _create(self, identity: NamespacedName, secret_id: NamespacedName) -> Signer:
        try:
            signer, key_material = self.signer_backend.new_signer(str(identity))
        except Exception as e:
            metrics.secret_operations_total.labels(operation="create", result="failed").inc()
            raise SecretCreationError(f"Unable to generate key material for {identity}: {e}") from e

        try:
            self.secret_store.create(secret_id, {SECRET_KEYS_FIELD: key_material}, owner=identity.name)
        except AlreadyExistsError:
            raise
        except TransientStoreError as e:
            metrics.secret_operations_total.labels(operation="create", result="failed").inc()
            raise SecretCreationError(f"Unable to store secret {secret_id}: {e}") from e

        metrics.secret_operations_total.labels(operation="create", result="success").inc()
        return signer

    def delete_secret(self, identity: NamespacedName, secret_ref: str) -> bool:
        """Delete the signer secret of an Attester.

        A missing secret counts as deleted.

        Returns:
            True if a secret was removed, False if there was nothing to remove

        Raises:
            TransientStoreError: If the delete call failed
        """
        if not secret_ref:
            return False

        secret_id = NamespacedName(identity.namespace, secret_ref)
        try:
            self.secret_store.delete(secret_id)
        except NotFoundError:
            metrics.secret_operations_total.labels(operation="delete", result="not_found").inc()
            return False
        except TransientStoreError:
            metrics.secret_operations_total.labels(operation="delete", result="failed").inc()
            raise

        metrics.secret_operations_total.labels(operation="delete", result="success").inc()
        return True
