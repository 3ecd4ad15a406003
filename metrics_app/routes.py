"""
Metrics service endpoints.

Endpoints:
    GET /health    -- Liveness probe for orchestration tools.
    GET /metrics   -- Prometheus text exposition (path set by METRICS_PATH).

The exposition view is registered by the application factory rather
than on the blueprint, because its URL comes from configuration.

Key Concepts Demonstrated:
- Blueprint-based route organisation
- Reading a per-app extension object from ``current_app``
- Consistent JSON error envelopes for unknown routes and server errors
"""

from __future__ import annotations

import os

from flask import Blueprint, Response, current_app, jsonify
from werkzeug.exceptions import HTTPException

from .collector import EXPOSITION_CONTENT_TYPE, EXTENSION_KEY, RequestMetrics

metrics_bp = Blueprint("metrics", __name__)


def _json_error(message: str, status_code: int) -> tuple[Response, int]:
    """Build a ``{"error": ...}`` response with the given status."""
    return jsonify({"error": message}), status_code


@metrics_bp.route("/health", methods=["GET"])
def health_check() -> tuple[Response, int]:
    """
    Liveness / readiness health-check endpoint.

    Returns:
        A 200 JSON response with ``status``, ``service``, and
        ``environment`` fields.
    """
    return jsonify(
        {
            "status": "healthy",
            "service": "metrics",
            "environment": os.getenv("ENVIRONMENT", "unknown"),
        }
    ), 200


def export_metrics() -> Response:
    """
    Serve the collector's current state to the scraping agent.

    The snapshot is rendered on each call; the view itself never touches
    the collector's counters, so scrapes cannot skew the numbers other
    than by being counted as requests themselves.
    """
    collector: RequestMetrics = current_app.extensions[EXTENSION_KEY]
    return Response(collector.snapshot(), status=200, content_type=EXPOSITION_CONTENT_TYPE)


@metrics_bp.app_errorhandler(HTTPException)
def handle_http_error(error: HTTPException) -> tuple[Response, int]:
    """Render any HTTP error (404, 405, ...) as a JSON envelope."""
    return _json_error(error.description or error.name, error.code or 500)
