"""
Metrics service application factory.

Builds the Flask application that carries the live request
instrumentation: a ``RequestMetrics`` collector hooked into the request
lifecycle, a health probe, and the Prometheus scrape endpoint.  Business
endpoints live in other services; any blueprint registered on the
returned app is instrumented the same way.

Key Concepts Demonstrated:
- Application factory pattern (create_app)
- One explicitly constructed metrics registry per application instance
- Config-driven URL registration for the scrape endpoint
"""

from __future__ import annotations

import logging

from flask import Flask

from config import get_config

from .collector import RequestMetrics

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    config_name: str | None = None,
    metrics: RequestMetrics | None = None,
) -> Flask:
    """
    Create and configure the metrics service Flask application.

    Args:
        config_name: Configuration environment name ("development",
            "testing", "production").  If None, uses the FLASK_ENV
            environment variable.
        metrics: Pre-built collector to attach.  When None, a new one is
            created from the ``METRICS_*`` configuration values.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    logger.info("Creating metrics app with config: %s", config_class.__name__)

    if metrics is None:
        metrics = RequestMetrics(
            buckets=app.config["METRICS_DURATION_BUCKETS_MS"],
            default_collectors=app.config["METRICS_DEFAULT_COLLECTORS"],
        )
    metrics.init_app(app)

    from .routes import export_metrics, metrics_bp

    app.register_blueprint(metrics_bp)
    app.add_url_rule(
        app.config["METRICS_PATH"],
        endpoint="export_metrics",
        view_func=export_metrics,
        methods=["GET"],
    )
    logger.info(
        "Request metrics exposed at %s (buckets: %s)",
        app.config["METRICS_PATH"],
        ", ".join(f"{bound:g}" for bound in metrics.buckets),
    )
    return app
