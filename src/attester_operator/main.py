"""Main entry point for the Attester Operator."""

from __future__ import annotations

import os
from typing import Any

import kopf

from . import health
from . import logging as structured_logging
from .handlers import attester as attester_handlers
from .tracing import initialize_tracing, shutdown_tracing


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure the operator."""
    structured_logging.setup_structured_logging()
    initialize_tracing()

    settings.posting.level = 0
    settings.networking.request_timeout = 30.0
    settings.execution.max_workers = int(os.getenv("MAX_WORKERS", "4"))

    reconciler = attester_handlers.build_default_reconciler()
    attester_handlers.configure_reconciler(reconciler)

    # Metrics, health checks and the attester listing share one port
    metrics_port = int(os.getenv("METRICS_PORT", "8080"))
    app = health.create_combined_wsgi_app(
        reconciler.list_active_attesters,
        is_ready=attester_handlers.is_configured,
    )
    health.start_http_server(metrics_port, app)


@kopf.on.cleanup()
def cleanup(**_: Any) -> None:
    """Flush spans before the process exits."""
    shutdown_tracing()


def watch_namespaces() -> list[str]:
    """Namespaces from WATCH_NAMESPACE; empty means cluster-wide."""
    raw = os.getenv("WATCH_NAMESPACE", "")
    return [ns.strip() for ns in raw.split(",") if ns.strip()]


def main() -> None:
    """Run the operator until interrupted."""
    namespaces = watch_namespaces()
    kopf.run(
        standalone=True,
        clusterwide=not namespaces,
        namespaces=namespaces,
    )


if __name__ == "__main__":
    main()
