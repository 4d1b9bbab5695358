"""Health, readiness and attester listing endpoints for the operator."""

from __future__ import annotations

import json
import threading
from typing import Any, Callable

from prometheus_client import make_wsgi_app
from werkzeug.serving import make_server
from werkzeug.wrappers import Request, Response

from .registry import Attester


def _json_response(payload: Any, status: int = 200) -> Response:
    return Response(json.dumps(payload, separators=(",", ":")), mimetype="application/json", status=status)


def create_combined_wsgi_app(
    list_attesters: Callable[[], dict[str, Attester]],
    is_ready: Callable[[], bool] = lambda: True,
) -> Any:
    """Create a WSGI app that combines metrics, health check and attester endpoints.

    Args:
        list_attesters: Returns the active attesters by identity
        is_ready: Readiness probe; /readyz answers 503 until it returns True

    Returns:
        Combined WSGI application
    """
    metrics_app = make_wsgi_app()

    def combined_app(environ: dict[str, Any], start_response: Any) -> list[bytes]:
        """Route /healthz, /readyz and /attesters; delegate the rest to prometheus."""
        request = Request(environ)
        path = request.path

        if path == "/healthz":
            response = _json_response({"status": "ok"})
        elif path == "/readyz":
            if is_ready():
                response = _json_response({"status": "ready"})
            else:
                response = _json_response({"status": "not ready"}, status=503)
        elif path == "/attesters":
            attesters = [
                {"identity": identity, "keyId": attester.signer.key_id}
                for identity, attester in sorted(list_attesters().items())
            ]
            response = _json_response({"attesters": attesters})
        else:
            return metrics_app(environ, start_response)

        return response(environ, start_response)

    return combined_app


def start_http_server(port: int, app: Any) -> Any:
    """Serve ``app`` from a daemon thread.

    Returns:
        The werkzeug server, so callers can shut it down
    """
    server = make_server("", port, app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server
