"""
Shared pytest fixtures for the metrics service and results analyzer.

Every fixture that touches metrics builds a fresh ``RequestMetrics``
collector with its own registry, so counters never leak between tests.

Key SDET Concepts Demonstrated:
- Function-scoped fixtures for isolated metric registries
- Injectable clocks and probes to make timing assertions deterministic
- Factory fixtures for sample records with realistic labels
"""

from __future__ import annotations

import os
from collections.abc import Callable

import pytest
from faker import Faker
from flask import Flask, Response, abort
from flask.testing import FlaskClient

os.environ["FLASK_ENV"] = "testing"

from metrics_app import create_app
from metrics_app.collector import RequestMetrics
from perf_results.records import SampleRecord

fake = Faker()
Faker.seed(2024)


class DrainingClient(FlaskClient):
    """
    Test client that reads and closes every response body, like a WSGI server.

    Request metrics are finalized when the response is closed, so the
    default unbuffered test client would leave every request in flight.
    Pass ``buffered=False`` explicitly to hold a response open.
    """

    def open(self, *args, buffered: bool = True, **kwargs):
        return super().open(*args, buffered=buffered, **kwargs)


class FakeClock:
    """Monotonic clock that only moves when a test advances it."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, milliseconds: float) -> None:
        self.now += milliseconds / 1000.0


# -----------------------------------------------------------------------------
# Collector Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    """Provide a manually advanced monotonic clock."""
    return FakeClock()


@pytest.fixture
def metrics(clock) -> RequestMetrics:
    """Provide an isolated collector with a fixed heap ratio and fake clock."""
    return RequestMetrics(heap_ratio_supplier=lambda: 0.25, clock=clock)


# -----------------------------------------------------------------------------
# Application Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def app(metrics, clock):
    """
    Create a metrics app with a few extra routes to instrument.

    Function-scoped so each test starts with an empty registry.  The
    extra routes stand in for the business endpoints of a real service.
    """
    application = create_app("testing", metrics=metrics)

    @application.route("/items/<int:item_id>", methods=["GET"])
    def get_item(item_id: int):
        return {"id": item_id}, 200

    @application.route("/cart", methods=["POST"])
    def add_to_cart():
        abort(401)

    @application.route("/slow", methods=["GET"])
    def slow():
        clock.advance_ms(250)
        return {"ok": True}, 200

    @application.route("/boom", methods=["GET"])
    def boom():
        raise RuntimeError("handler exploded")

    @application.route("/stream", methods=["GET"])
    def stream():
        def generate():
            yield "chunk-1\n"
            clock.advance_ms(300)
            yield "chunk-2\n"

        return Response(generate(), mimetype="text/plain")

    application.test_client_class = DrainingClient
    yield application


@pytest.fixture
def client(app):
    """Provide a Flask test client for the instrumented app."""
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def client_for() -> Callable[[Flask], FlaskClient]:
    """Return a factory that builds a draining test client for any app."""

    def _client_for(application: Flask) -> FlaskClient:
        application.test_client_class = DrainingClient
        return application.test_client()

    return _client_for


# -----------------------------------------------------------------------------
# Sample Record Factories
# -----------------------------------------------------------------------------


@pytest.fixture
def sample_factory() -> Callable[..., list[SampleRecord]]:
    """
    Provide a factory that builds an evenly spaced run of sample records.

    The first ``successes`` records succeed and the rest fail; every
    record takes ``elapsed_ms``.  Timestamps start at ``start_ms`` and
    advance by ``spacing_ms``.
    """

    def _build(
        total: int,
        successes: int,
        elapsed_ms: float = 300.0,
        start_ms: int = 1_700_000_000_000,
        spacing_ms: int = 100,
    ) -> list[SampleRecord]:
        return [
            SampleRecord(
                timestamp_ms=start_ms + index * spacing_ms,
                elapsed_ms=elapsed_ms,
                success=index < successes,
                label=fake.uri_path(),
                response_code="200" if index < successes else "500",
            )
            for index in range(total)
        ]

    return _build


@pytest.fixture
def write_results_csv(tmp_path) -> Callable[..., os.PathLike]:
    """Provide a helper that writes JTL-style CSV text to a temp file."""

    def _write(lines: list[str], name: str = "results.jtl"):
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
