"""Deletion guard handling for Attester resources."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..constants import FINALIZER
from ..models import AttesterResource

if TYPE_CHECKING:
    from ..services.store import ResourceStore


class FinalizerManager:
    """Adds and removes the operator's finalizer."""

    def __init__(self, store: ResourceStore, finalizer: str = FINALIZER):
        self.store = store
        self.finalizer = finalizer

    def contains(self, resource: AttesterResource) -> bool:
        return self.finalizer in resource.finalizers

    def ensure_present(self, resource: AttesterResource) -> bool:
        """Ensure finalizer is present on a live resource.

        Returns:
            True if the finalizer was added and persisted
        """
        if resource.is_being_deleted or self.contains(resource):
            return False

        resource.finalizers.append(self.finalizer)
        self.store.update(resource)
        return True

    def remove(self, resource: AttesterResource) -> bool:
        """Remove finalizer and persist.

        Returns:
            True if the finalizer was removed and persisted
        """
        if not self.contains(resource):
            return False

        resource.finalizers = [f for f in resource.finalizers if f != self.finalizer]
        self.store.update(resource)
        return True
