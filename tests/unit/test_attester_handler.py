"""Tests for the kopf entry point and requeue dispatch."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import kopf
import pytest

from attester_operator.filters import AttesterEventFilter
from attester_operator.handlers import attester as attester_handlers
from attester_operator.models import NamespacedName, ReconcileResult
from attester_operator.utils.context import get_correlation_id
from attester_operator.utils.errors import CompileError, TransientStoreError

IDENTITY = NamespacedName("default", "demo")


@pytest.fixture
def configured(reconciler):
    attester_handlers.configure_reconciler(reconciler)
    yield reconciler
    attester_handlers.configure_reconciler(None)


class TestDispatch:
    """Test cases for dispatch."""

    def test_runs_until_settled(self, reconciler, store, registry, make_body):
        """Test that one event drives a new Attester all the way to ready."""
        body = make_body()
        identity = store.add(body)

        passes = attester_handlers.dispatch(reconciler, identity, body)

        assert passes == 3
        assert "default/demo" in registry

    def test_stops_at_limit(self, make_body):
        """Test that a reconciler that keeps requeueing is cut off."""
        reconciler = MagicMock()
        reconciler.reconcile_with_metrics.return_value = ReconcileResult(requeue=True)

        passes = attester_handlers.dispatch(reconciler, IDENTITY, make_body(), max_passes=4)

        assert passes == 4
        assert reconciler.reconcile_with_metrics.call_count == 4
        assert reconciler.log_warning.call_args[1]["reason"] == "RequeueLimitReached"

    def test_error_propagates(self, store, reconciler, make_body):
        """Test that a failing pass ends dispatch with the error."""
        body = make_body(policy="package demo\ninvalid")
        identity = store.add(body)

        with pytest.raises(CompileError):
            attester_handlers.dispatch(reconciler, identity, body)


class TestHandleAttesterEvent:
    """Test cases for handle_attester_event."""

    def test_uses_configured_reconciler(self, configured, store, registry, make_body):
        """Test that the handler reconciles through the configured reconciler."""
        body = make_body()
        store.add(body)

        attester_handlers.handle_attester_event(body=body, name="demo", namespace="default")

        assert "default/demo" in registry

    def test_sets_correlation_id(self, configured, make_body):
        """Test that every event runs under its own correlation id."""
        seen = []

        def record(*args, **kwargs):
            seen.append(get_correlation_id())
            return 1

        with patch.object(attester_handlers, "dispatch", side_effect=record):
            attester_handlers.handle_attester_event(body=make_body(), name="demo", namespace="default")
            attester_handlers.handle_attester_event(body=make_body(), name="demo", namespace="default")

        assert all(seen)
        assert seen[0] != seen[1]
        assert get_correlation_id() is None

    def test_is_configured(self, reconciler):
        """Test readiness tracks configuration."""
        attester_handlers.configure_reconciler(None)
        assert not attester_handlers.is_configured()

        attester_handlers.configure_reconciler(reconciler)
        try:
            assert attester_handlers.is_configured()
            assert attester_handlers.get_reconciler() is reconciler
        finally:
            attester_handlers.configure_reconciler(None)

    @patch("attester_operator.handlers.attester.load_kube_config")
    @patch("attester_operator.handlers.attester.KubernetesSecretStore")
    @patch("attester_operator.handlers.attester.KubernetesResourceStore")
    def test_build_default_reconciler(self, mock_store, mock_secret_store, mock_load, monkeypatch):
        """Test wiring of the production reconciler."""
        monkeypatch.setenv("OPA_TRACE", "true")

        reconciler = attester_handlers.build_default_reconciler()

        mock_load.assert_called_once()
        assert reconciler.store is mock_store.return_value
        assert reconciler.secrets.secret_store is mock_secret_store.return_value
        assert reconciler.opa_trace is True


class TestRetry:
    """Test cases for retrying failed passes."""

    def test_transient_failure_is_temporary(self, configured, store, secret_store, registry, make_body):
        """Test that a store outage is reported to kopf as retryable."""
        body = make_body()
        identity = store.add(body)
        secret_store.fail_on["get"] = TransientStoreError("get_secret failed with status 503: Service Unavailable")

        with pytest.raises(kopf.TemporaryError) as exc_info:
            attester_handlers.handle_attester_event(body=body, name="demo", namespace="default")

        assert isinstance(exc_info.value.__cause__, TransientStoreError)
        assert exc_info.value.delay == attester_handlers._RETRY_DELAY_SECONDS
        assert "default/demo" not in registry
        assert store.status_of(identity) == {"Compiled": "True", "SecretReady": "False"}

    def test_resync_publishes_after_transient_failure(self, configured, store, secret_store, registry, make_body):
        """Test that the next periodic pass finishes what the failed one started."""
        body = make_body()
        identity = store.add(body)
        secret_store.fail_on["get"] = TransientStoreError("get_secret failed with status 503: Service Unavailable")

        with pytest.raises(kopf.TemporaryError):
            attester_handlers.handle_attester_event(body=body, name="demo", namespace="default")

        del secret_store.fail_on["get"]
        attester_handlers.resync_attester(body=store.objects[identity], name="demo", namespace="default")

        assert "default/demo" in registry
        assert store.status_of(identity) == {"Compiled": "True", "SecretReady": "True"}

    def test_resync_raises_while_failing(self, configured, store, secret_store, make_body):
        """Test that a resync that fails again is retried by kopf too."""
        body = make_body()
        store.add(body)
        secret_store.fail_on["get"] = TransientStoreError("get_secret failed with status 503: Service Unavailable")

        with pytest.raises(kopf.TemporaryError):
            attester_handlers.resync_attester(body=body, name="demo", namespace="default")

    def test_resync_skips_published(self, configured, store, registry, make_body):
        """Test that a published Attester is left alone by the resync timer."""
        body = make_body()
        store.add(body)
        attester_handlers.handle_attester_event(body=body, name="demo", namespace="default")

        with patch.object(attester_handlers, "run_passes") as mock_run:
            attester_handlers.resync_attester(body=body, name="demo", namespace="default")

        mock_run.assert_not_called()
        assert attester_handlers.needs_resync(configured, IDENTITY) is False

    def test_secret_creation_failure_is_temporary(self, configured, store, secret_store, make_body):
        """Test that a failed secret create is retried after being recorded."""
        body = make_body()
        identity = store.add(body)
        secret_store.fail_on["create"] = TransientStoreError("create_secret failed with status 500: Internal Error")

        with pytest.raises(kopf.TemporaryError):
            attester_handlers.handle_attester_event(body=body, name="demo", namespace="default")

        assert store.status_of(identity)["SecretReady"] == "False"

    def test_status_write_failure_is_temporary(self, configured, store, make_body):
        """Test that a failed condition write is retried."""
        body = make_body()
        store.add(body)
        store.fail_on["update_status"] = TransientStoreError("replace_status failed with status 500: Internal Error")

        with pytest.raises(kopf.TemporaryError):
            attester_handlers.handle_attester_event(body=body, name="demo", namespace="default")

    def test_compile_error_is_not_temporary(self, configured, store, make_body):
        """Test that an invalid policy waits for a fix instead of a quick retry."""
        body = make_body(policy="package demo\ninvalid")
        store.add(body)

        with pytest.raises(CompileError):
            attester_handlers.handle_attester_event(body=body, name="demo", namespace="default")


class TestDeletedEvent:
    """Test cases for deletion events."""

    def test_vanished_attester_is_unpublished(self, configured, store, registry, make_body):
        """Test that an object removed without a teardown pass leaves the registry."""
        body = make_body()
        identity = store.add(body)
        attester_handlers.handle_attester_event(body=body, name="demo", namespace="default")
        assert "default/demo" in registry

        # Finalizer stripped by hand, so the object is gone without a teardown pass
        del store.objects[identity]
        event_filter = AttesterEventFilter()
        event_filter(event={"type": "ADDED"}, body=body)

        assert event_filter(event={"type": "DELETED"}, body=body) is True
        attester_handlers.handle_attester_event(body=body, name="demo", namespace="default")

        assert "default/demo" not in registry
