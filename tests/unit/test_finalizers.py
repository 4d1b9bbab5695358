"""Tests for finalizer handling."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from attester_operator.constants import FINALIZER
from attester_operator.models import AttesterResource
from attester_operator.utils.errors import TransientStoreError
from attester_operator.utils.finalizers import FinalizerManager


class TestFinalizerManager:
    """Test cases for FinalizerManager."""

    def test_ensure_present_adds(self):
        """Test that a missing finalizer is added and persisted."""
        store = MagicMock()
        resource = AttesterResource(name="demo", namespace="default", finalizers=["other"])

        assert FinalizerManager(store).ensure_present(resource) is True

        assert resource.finalizers == ["other", FINALIZER]
        store.update.assert_called_once_with(resource)

    def test_ensure_present_no_duplicate(self):
        """Test that an existing finalizer is not added again."""
        store = MagicMock()
        resource = AttesterResource(name="demo", namespace="default", finalizers=[FINALIZER])

        assert FinalizerManager(store).ensure_present(resource) is False

        assert resource.finalizers == [FINALIZER]
        store.update.assert_not_called()

    def test_ensure_present_skips_deleting(self):
        """Test that no finalizer is added to a resource being deleted."""
        store = MagicMock()
        resource = AttesterResource(name="demo", namespace="default", deletion_timestamp="2024-01-01T00:00:00Z")

        assert FinalizerManager(store).ensure_present(resource) is False
        store.update.assert_not_called()

    def test_remove_keeps_others(self):
        """Test that only our finalizer is removed."""
        store = MagicMock()
        resource = AttesterResource(name="demo", namespace="default", finalizers=["a", FINALIZER, "b"])

        assert FinalizerManager(store).remove(resource) is True

        assert resource.finalizers == ["a", "b"]
        store.update.assert_called_once_with(resource)

    def test_remove_absent(self):
        """Test that removing an absent finalizer does not write."""
        store = MagicMock()
        resource = AttesterResource(name="demo", namespace="default", finalizers=["a"])

        assert FinalizerManager(store).remove(resource) is False
        store.update.assert_not_called()

    def test_custom_finalizer(self):
        """Test that the finalizer name is configurable."""
        manager = FinalizerManager(MagicMock(), finalizer="example.com/cleanup")
        resource = AttesterResource(name="demo", namespace="default", finalizers=["example.com/cleanup"])

        assert manager.contains(resource)

    def test_update_failure_propagates(self):
        """Test that a failed write is raised."""
        store = MagicMock()
        store.update.side_effect = TransientStoreError("conflict")
        resource = AttesterResource(name="demo", namespace="default")

        with pytest.raises(TransientStoreError):
            FinalizerManager(store).ensure_present(resource)
