"""
Metrics service configuration.

Defines environment-specific configuration classes for the instrumented
Flask service.  Values are read from environment variables with
defaults that match the production scrape setup, and ``get_config``
picks the class from ``FLASK_ENV`` (or an explicit name).

Key Concepts Demonstrated:
- Class-based configuration with inheritance for shared defaults
- Environment-variable overrides for 12-factor deployability
- Parsing structured values (bucket lists, flags) from plain strings
"""

from __future__ import annotations

import os

from shared.metric_types import DEFAULT_DURATION_BUCKETS_MS


def _parse_buckets(raw: str) -> tuple[float, ...]:
    """
    Turn a comma-separated list such as ``"50,100,200"`` into bucket bounds.

    An empty string yields the default boundaries.  Ordering is checked
    later by the collector, which refuses non-increasing bounds.
    """
    if not raw.strip():
        return tuple(float(bound) for bound in DEFAULT_DURATION_BUCKETS_MS)
    try:
        return tuple(float(part) for part in raw.split(",") if part.strip())
    except ValueError as exc:
        raise RuntimeError(
            f"METRICS_DURATION_BUCKETS_MS must be comma-separated numbers, got {raw!r}"
        ) from exc


def _env_flag(name: str, default: bool) -> bool:
    """Read a boolean flag (``1/true/yes/on``) from the environment."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Base configuration with default settings."""

    # Path the scraping agent polls for the exposition text.
    METRICS_PATH: str = os.environ.get("METRICS_PATH", "/metrics")

    # Inclusive upper bounds, in milliseconds, of the duration histogram.
    METRICS_DURATION_BUCKETS_MS: tuple[float, ...] = _parse_buckets(
        os.environ.get("METRICS_DURATION_BUCKETS_MS", "")
    )

    # Register prometheus_client's process, platform and GC collectors.
    METRICS_DEFAULT_COLLECTORS: bool = _env_flag("METRICS_DEFAULT_COLLECTORS", True)


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG: bool = True
    TESTING: bool = False


class TestingConfig(Config):
    """
    Testing environment configuration.

    Runtime collectors are switched off so that assertions on the
    exposition text only see the metrics the tests produced.
    """

    DEBUG: bool = True
    TESTING: bool = True
    METRICS_DEFAULT_COLLECTORS: bool = _env_flag("TEST_METRICS_DEFAULT_COLLECTORS", False)


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG: bool = False
    TESTING: bool = False


# Configuration mapping for easy access
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Get the configuration class for the specified environment.

    Args:
        env: Environment name (development, testing, production).
             If None, uses FLASK_ENV environment variable.

    Returns:
        Configuration class for the specified environment.
    """
    if env is None:
        env = os.environ.get("FLASK_ENV", "development")
    return config.get(env, config["default"])
