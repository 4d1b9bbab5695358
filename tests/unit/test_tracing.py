"""Tests for tracing helpers."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from attester_operator import tracing
from attester_operator.models import NamespacedName


class TestTraceSpan:
    """Test cases for trace_span."""

    def test_noop_without_tracer(self):
        """Test that spans are skipped when tracing is not initialized."""
        with patch.object(tracing, "_tracer", None):
            with tracing.trace_span("reconcile_attester") as span:
                assert span is None

    def test_span_attributes(self):
        """Test that kind and identity are added to the span attributes."""
        tracer = MagicMock()
        with patch.object(tracing, "_tracer", tracer):
            with tracing.trace_span(
                "reconcile_attester",
                kind="Attester",
                identity=NamespacedName("default", "demo"),
                attributes={"secret.name": "demo"},
            ):
                pass

        tracer.start_as_current_span.assert_called_once_with(
            "reconcile_attester",
            attributes={
                "secret.name": "demo",
                "resource.kind": "Attester",
                "attester.namespace": "default",
                "attester.name": "demo",
            },
        )

    def test_records_exception(self):
        """Test that errors are recorded on the span and re-raised."""
        tracer = MagicMock()
        span = tracer.start_as_current_span.return_value.__enter__.return_value
        span.is_recording.return_value = True

        with patch.object(tracing, "_tracer", tracer):
            with pytest.raises(RuntimeError):
                with tracing.trace_span("reconcile_attester"):
                    raise RuntimeError("boom")

        span.record_exception.assert_called_once()


class TestInitializeTracing:
    """Test cases for initialize_tracing."""

    def test_disabled(self, monkeypatch):
        """Test that tracing can be switched off."""
        monkeypatch.setenv("OTEL_TRACES_ENABLED", "false")

        with patch.object(tracing, "_tracer", None), patch.object(tracing.trace, "set_tracer_provider") as mock_set:
            tracing.initialize_tracing()
            assert tracing.get_tracer() is None

        mock_set.assert_not_called()

    @patch("attester_operator.tracing.OTLPSpanExporter")
    @patch("attester_operator.tracing.BatchSpanProcessor")
    def test_enabled(self, mock_processor, mock_exporter, monkeypatch):
        """Test that the exporter targets the configured endpoint."""
        monkeypatch.setenv("OTEL_TRACES_ENABLED", "true")
        monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://collector:4317")

        with patch.object(tracing, "_tracer", None), patch.object(tracing, "_provider", None), patch.object(
            tracing.trace, "set_tracer_provider"
        ):
            tracing.initialize_tracing()
            assert tracing.get_tracer() is not None

        mock_exporter.assert_called_once_with(endpoint="http://collector:4317")

    def test_shutdown_flushes_provider(self):
        """Test that shutdown stops the provider and clears the tracer."""
        provider = MagicMock()
        with patch.object(tracing, "_provider", provider), patch.object(tracing, "_tracer", MagicMock()):
            tracing.shutdown_tracing()
            assert tracing.get_tracer() is None

        provider.shutdown.assert_called_once()
