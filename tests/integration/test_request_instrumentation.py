"""
Integration tests for request instrumentation through Flask.

Drives real requests through the Flask test client and inspects the
collector afterwards.  The app fixture registers a handful of stand-in
business routes (``/items/<int:item_id>``, ``/cart``, ``/slow``,
``/boom``) so that route templates, error statuses and handler
exceptions can all be observed.

Key SDET Concepts Demonstrated:
- Black-box checks on the ``/metrics`` exposition text
- White-box checks through ``read_state`` on the same registry
- Proving that a broken metrics layer cannot change a response
"""

from __future__ import annotations

import pytest

from metrics_app import create_app
from metrics_app.collector import EXTENSION_KEY, RequestMetrics

pytestmark = pytest.mark.integration


def test_health_endpoint(client):
    """Test that the health probe answers 200 with the service name."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "healthy"
    assert response.get_json()["service"] == "metrics"


def test_metrics_endpoint_serves_prometheus_text(client):
    """Test that /metrics returns the text exposition with the right content type."""
    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.content_type.startswith("text/plain")
    body = response.get_data(as_text=True)
    assert "# TYPE http_request_duration_ms histogram" in body
    assert "# TYPE http_active_connections gauge" in body
    assert "process_heap_usage_ratio 0.25" in body


def test_scrape_sees_itself_in_flight(client):
    """Test that the scrape request is counted while it renders the snapshot."""
    body = client.get("/metrics").get_data(as_text=True)

    assert "http_active_connections 1.0" in body


def test_request_is_recorded_under_route_template(client, metrics):
    """Test that path parameters collapse into the matched route template."""
    # Act
    client.get("/items/1")
    client.get("/items/2")
    client.get("/items/3")

    # Assert
    state = metrics.read_state()
    assert state.active_connections == 0
    assert state.duration_histogram[("GET", "/items/<int:item_id>", "200")].count == 3
    assert not any(route == "/items/1" for _, route, _ in state.duration_histogram)


def test_unmatched_path_falls_back_to_literal_path(client, metrics):
    """Test that 404s are labelled with the raw path when no route matches."""
    response = client.get("/no/such/page")

    assert response.status_code == 404
    assert set(response.get_json()) == {"error"}
    assert ("GET", "/no/such/page", "404") in metrics.read_state().duration_histogram


def test_error_status_is_recorded(client, metrics):
    """Test that handler-issued error codes become the status_code label."""
    response = client.post("/cart")

    assert response.status_code == 401
    assert metrics.read_state().duration_histogram[("POST", "/cart", "401")].count == 1


def test_duration_is_measured_across_the_handler(client, metrics):
    """Test that time spent inside the handler lands in the right bucket."""
    client.get("/slow")

    series = metrics.read_state().duration_histogram[("GET", "/slow", "200")]
    assert series.sum_ms == pytest.approx(250.0)
    assert series.cumulative_count(200.0) == 0
    assert series.cumulative_count(400.0) == 1


def test_unhandled_exception_is_recorded_as_500(client, metrics):
    """Test that a handler crash still finalizes the request exactly once."""
    with pytest.raises(RuntimeError):
        client.get("/boom")

    state = metrics.read_state()
    assert state.active_connections == 0
    assert state.duration_histogram[("GET", "/boom", "500")].count == 1


def test_unhandled_exception_without_propagation_returns_json_500(metrics, client_for):
    """Test the production path: the crash becomes a 500 response and one observation."""
    # Arrange
    app = create_app("production", metrics=metrics)

    @app.route("/boom")
    def boom():
        raise RuntimeError("handler exploded")

    # Act
    response = client_for(app).get("/boom")

    # Assert
    assert response.status_code == 500
    assert set(response.get_json()) == {"error"}
    state = metrics.read_state()
    assert state.active_connections == 0
    assert state.duration_histogram[("GET", "/boom", "500")].count == 1


def test_request_stays_in_flight_until_response_is_closed(client, metrics):
    """Test that a returned handler does not finalize while the body is unsent."""
    # Act
    response = client.get("/items/7", buffered=False)

    # Assert
    state = metrics.read_state()
    assert state.active_connections == 1
    assert ("GET", "/items/<int:item_id>", "200") not in state.duration_histogram

    response.close()

    state = metrics.read_state()
    assert state.active_connections == 0
    assert state.duration_histogram[("GET", "/items/<int:item_id>", "200")].count == 1


def test_streamed_body_time_is_measured(client, metrics):
    """Test that time spent producing a streamed body lands in the histogram."""
    # Arrange
    response = client.get("/stream", buffered=False)

    # Act
    body = response.get_data(as_text=True)
    response.close()

    # Assert
    assert body == "chunk-1\nchunk-2\n"
    state = metrics.read_state()
    series = state.duration_histogram[("GET", "/stream", "200")]
    assert state.active_connections == 0
    assert series.count == 1
    assert series.sum_ms == pytest.approx(300.0)


def test_closing_the_response_twice_does_not_double_count(client, metrics):
    """Test that a repeated connection-close signal is a no-op."""
    # Act
    response = client.get("/items/7", buffered=False)
    response.close()
    response.close()

    # Assert
    state = metrics.read_state()
    assert state.active_connections == 0
    assert state.duration_histogram[("GET", "/items/<int:item_id>", "200")].count == 1


def test_broken_metrics_never_change_the_response(app, client, metrics, monkeypatch):
    """Test that recording failures are swallowed and the caller sees a normal reply."""

    def _explode(*_args, **_kwargs):
        raise RuntimeError("metrics backend down")

    # Arrange
    monkeypatch.setattr(metrics.duration, "labels", _explode)

    # Act
    response = client.get("/items/9")

    # Assert
    assert response.status_code == 200
    assert response.get_json() == {"id": 9}
    assert metrics.read_state().active_connections == 0


def test_metrics_path_is_configurable(monkeypatch, client_for):
    """Test that METRICS_PATH moves the scrape endpoint."""
    # Arrange
    from config import TestingConfig

    monkeypatch.setattr(TestingConfig, "METRICS_PATH", "/internal/prometheus")
    app = create_app("testing", metrics=RequestMetrics(heap_ratio_supplier=lambda: 0.0))
    client = client_for(app)

    # Act
    moved = client.get("/internal/prometheus")
    old = client.get("/metrics")

    # Assert
    assert moved.status_code == 200
    assert "http_request_duration_ms" in moved.get_data(as_text=True)
    assert old.status_code == 404


def test_factory_builds_collector_from_config():
    """Test that create_app wires a collector with the configured buckets."""
    app = create_app("testing")

    collector = app.extensions[EXTENSION_KEY]

    assert isinstance(collector, RequestMetrics)
    assert collector.buckets == (50.0, 100.0, 200.0, 400.0, 800.0, 1600.0, 3200.0)


def test_each_app_has_its_own_registry(client_for):
    """Test that two app instances never share metric state."""
    first = create_app("testing")
    second = create_app("testing")

    client_for(first).get("/health")

    assert first.extensions[EXTENSION_KEY].read_state().duration_histogram
    assert not second.extensions[EXTENSION_KEY].read_state().duration_histogram
