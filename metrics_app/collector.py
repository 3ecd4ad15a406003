"""
Live request instrumentation.

``RequestMetrics`` observes every request's lifecycle and keeps three
Prometheus metrics in its own ``CollectorRegistry``:

  * ``http_request_duration_ms`` -- histogram labelled by ``method``,
    ``route`` and ``status_code``.
  * ``http_active_connections`` -- gauge of requests currently in flight.
  * ``process_heap_usage_ratio`` -- gauge recomputed on every scrape.

A request can end in two ways: the handler completes, or the
connection is closed by the server.  Both signals may fire for the same
request, so each in-flight request carries a ``RequestToken`` whose
``PENDING -> FINALIZED`` transition is a one-shot compare-and-set.
Only the signal that wins the transition decrements the gauge and
records the duration; the loser is a no-op.

The registry is an explicit object rather than the process-wide default
registry, so every test (and every application instance) gets an
isolated set of metrics.

Key Concepts Demonstrated:
- Flask request hooks (before/after/teardown) as instrumentation seams
- Exactly-once finalisation guarded by a non-blocking lock acquire
- Metrics failures that are logged and swallowed, never surfaced to callers
- Read-only snapshots rendered in the Prometheus text exposition format
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

from flask import Flask, Response, g, request
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    GCCollector,
    Gauge,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

from shared.metric_types import DEFAULT_DURATION_BUCKETS_MS

from .memory import heap_usage_ratio

logger = logging.getLogger(__name__)

DURATION_METRIC = "http_request_duration_ms"
ACTIVE_CONNECTIONS_METRIC = "http_active_connections"
HEAP_USAGE_METRIC = "process_heap_usage_ratio"
DURATION_LABELS = ("method", "route", "status_code")

EXPOSITION_CONTENT_TYPE = CONTENT_TYPE_LATEST

# Key under ``app.extensions`` and attribute name on ``flask.g``.
EXTENSION_KEY = "request_metrics"
_TOKEN_ATTR = "request_metrics_token"


# =====================================================================
# Value Objects
# =====================================================================


class RequestState(str, Enum):
    """Lifecycle of a single in-flight request."""

    PENDING = "pending"
    FINALIZED = "finalized"


class RequestToken:
    """
    Handle for one in-flight request.

    The token remembers when the request started, whether the start was
    actually counted on the gauge, and (once known) the response status.
    ``try_finalize`` is the compare-and-set: it acquires a lock that is
    never released, so exactly one caller ever sees ``True``.
    """

    __slots__ = ("started_at", "counted", "status_code", "close_hooked", "_finalized")

    def __init__(self, started_at: float) -> None:
        self.started_at = started_at
        self.counted = False
        self.status_code: int | None = None
        self.close_hooked = False
        self._finalized = threading.Lock()

    @property
    def state(self) -> RequestState:
        return RequestState.FINALIZED if self._finalized.locked() else RequestState.PENDING

    def try_finalize(self) -> bool:
        """Move ``PENDING -> FINALIZED``; return False if already finalized."""
        return self._finalized.acquire(blocking=False)


@dataclass(frozen=True)
class RequestEvent:
    """A finished request, as recorded into the duration histogram."""

    method: str
    route: str
    status_code: int
    start_time: float
    duration_ms: float


@dataclass(frozen=True)
class HistogramSeries:
    """
    One labelled histogram series.

    Attributes:
        buckets: ``(upper_bound, cumulative_count)`` pairs in ascending
            order, ending with the ``+Inf`` bucket.
        sum_ms: Sum of every observed duration.
        count: Number of observations.
    """

    buckets: tuple[tuple[float, int], ...]
    sum_ms: float
    count: int

    def cumulative_count(self, upper_bound: float) -> int:
        """Return the cumulative count of the bucket with this exact bound."""
        for bound, count in self.buckets:
            if bound == upper_bound:
                return count
        raise KeyError(f"No bucket with upper bound {upper_bound}")


@dataclass(frozen=True)
class MetricSnapshot:
    """Point-in-time, read-only view of the collector's state."""

    active_connections: int
    heap_usage_ratio: float
    duration_histogram: dict[tuple[str, str, str], HistogramSeries] = field(default_factory=dict)


# =====================================================================
# Route Resolution
# =====================================================================


def resolve_route() -> str:
    """
    Return the route label for the current request.

    The matched URL rule (e.g. ``/items/<int:item_id>``) keeps label
    cardinality bounded by the routing table.  Unmatched requests (404s)
    fall back to the literal path, which is unbounded: a client probing
    random URLs creates one series per distinct path.
    """
    rule = request.url_rule
    if rule is not None:
        return rule.rule
    return request.path


def _validate_buckets(buckets: Iterable[float]) -> tuple[float, ...]:
    """Reject empty or non-increasing bucket bounds."""
    bounds = tuple(float(bound) for bound in buckets)
    if not bounds:
        raise ValueError("At least one histogram bucket is required")
    for lower, upper in zip(bounds, bounds[1:]):
        if upper <= lower:
            raise ValueError(f"Histogram buckets must be strictly increasing: {bounds}")
    return bounds


# =====================================================================
# Collector
# =====================================================================


class RequestMetrics:
    """
    Request lifecycle collector backed by a private Prometheus registry.

    Args:
        buckets: Inclusive upper bounds (ms) for the duration histogram.
        registry: Registry to register metrics in.  A fresh one is
            created when omitted.
        heap_ratio_supplier: Zero-argument callable returning the current
            heap usage ratio.  Called on every scrape.
        default_collectors: Also register prometheus_client's process,
            platform and GC collectors.
        clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        buckets: Iterable[float] = DEFAULT_DURATION_BUCKETS_MS,
        registry: CollectorRegistry | None = None,
        heap_ratio_supplier: Callable[[], float] = heap_usage_ratio,
        default_collectors: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self.buckets = _validate_buckets(buckets)
        self._heap_ratio_supplier = heap_ratio_supplier
        self._clock = clock

        self.duration = Histogram(
            DURATION_METRIC,
            "Duration of HTTP requests in ms",
            DURATION_LABELS,
            buckets=self.buckets,
            registry=self.registry,
        )
        self.active_connections = Gauge(
            ACTIVE_CONNECTIONS_METRIC,
            "Number of HTTP requests currently in flight",
            registry=self.registry,
        )
        self.heap_usage = Gauge(
            HEAP_USAGE_METRIC,
            "Resident memory of the process as a ratio of total system memory",
            registry=self.registry,
        )
        self.heap_usage.set_function(self._read_heap_ratio)

        if default_collectors:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    def on_request_start(self) -> RequestToken:
        """Count a new in-flight request and return its token."""
        token = RequestToken(self._clock())
        try:
            self.active_connections.inc()
            token.counted = True
        except Exception:
            logger.exception("Failed to record request start")
        return token

    def on_request_terminal(
        self,
        token: RequestToken,
        method: str,
        route: str,
        status_code: int,
        duration_ms: float | None = None,
    ) -> bool:
        """
        Finalize a request from whichever terminal signal arrives first.

        Args:
            token: The token returned by ``on_request_start``.
            method: HTTP method label.
            route: Route template (or literal path) label.
            status_code: Response status code label.
            duration_ms: Explicit duration.  Derived from the token's
                start time when omitted.

        Returns:
            True if this call performed the finalization, False if the
            request had already been finalized by another signal.
        """
        if not token.try_finalize():
            return False

        try:
            # Decrement first: a histogram failure must not leak a connection.
            if token.counted:
                self.active_connections.dec()
            if duration_ms is None:
                duration_ms = (self._clock() - token.started_at) * 1000.0
            self.record(
                RequestEvent(
                    method=method,
                    route=route,
                    status_code=int(status_code),
                    start_time=token.started_at,
                    duration_ms=duration_ms,
                )
            )
        except Exception:
            logger.exception("Failed to record request completion for %s %s", method, route)
        return True

    def record(self, event: RequestEvent) -> None:
        """Observe one finished request into the duration histogram."""
        self.duration.labels(event.method, event.route, str(event.status_code)).observe(
            event.duration_ms
        )

    # -----------------------------------------------------------------
    # Reading
    # -----------------------------------------------------------------

    def snapshot(self) -> str:
        """Render every registered metric in the Prometheus text format."""
        return generate_latest(self.registry).decode("utf-8")

    def read_state(self) -> MetricSnapshot:
        """Build a ``MetricSnapshot`` from the registry's current samples."""
        active = 0
        heap_ratio = math.nan
        partial: dict[tuple[str, str, str], dict] = {}

        for family in self.registry.collect():
            if family.name == ACTIVE_CONNECTIONS_METRIC:
                active = int(family.samples[0].value)
            elif family.name == HEAP_USAGE_METRIC:
                heap_ratio = family.samples[0].value
            elif family.name == DURATION_METRIC:
                for sample in family.samples:
                    labels = dict(sample.labels)
                    bound = labels.pop("le", None)
                    key = (labels["method"], labels["route"], labels["status_code"])
                    entry = partial.setdefault(key, {"buckets": [], "sum": 0.0, "count": 0})
                    if sample.name.endswith("_bucket"):
                        entry["buckets"].append((float(bound), int(sample.value)))
                    elif sample.name.endswith("_sum"):
                        entry["sum"] = sample.value
                    elif sample.name.endswith("_count"):
                        entry["count"] = int(sample.value)

        histogram = {
            key: HistogramSeries(
                buckets=tuple(sorted(entry["buckets"])),
                sum_ms=entry["sum"],
                count=entry["count"],
            )
            for key, entry in partial.items()
        }
        return MetricSnapshot(
            active_connections=active,
            heap_usage_ratio=heap_ratio,
            duration_histogram=histogram,
        )

    def _read_heap_ratio(self) -> float:
        try:
            return float(self._heap_ratio_supplier())
        except Exception as exc:
            logger.warning("Heap usage probe failed: %s", exc)
            return math.nan

    # -----------------------------------------------------------------
    # Flask Integration
    # -----------------------------------------------------------------

    def init_app(self, app: Flask) -> None:
        """
        Attach the collector to a Flask application.

        A response's ``call_on_close`` callback is the normal terminal
        signal.  The WSGI server calls it once the body has been sent, so
        streamed bodies are counted as in flight and timed until the last
        chunk goes out.  ``teardown_request`` runs before the body is sent
        and only finalizes when no close callback was attached: the
        handler raised, or hooking the response failed.
        """
        app.extensions[EXTENSION_KEY] = self
        app.before_request(self._before_request)
        app.after_request(self._after_request)
        app.teardown_request(self._teardown_request)

    def _before_request(self) -> None:
        setattr(g, _TOKEN_ATTR, self.on_request_start())

    def _after_request(self, response: Response) -> Response:
        token = g.get(_TOKEN_ATTR)
        if token is None:
            return response
        try:
            token.status_code = response.status_code
            # Labels are captured now: the close callback runs outside the
            # request context.
            method, route, status_code = request.method, resolve_route(), response.status_code
            response.call_on_close(
                lambda: self.on_request_terminal(token, method, route, status_code)
            )
            token.close_hooked = True
        except Exception:
            logger.exception("Failed to attach connection-close hook")
        return response

    def _teardown_request(self, exc: BaseException | None) -> None:
        token = g.pop(_TOKEN_ATTR, None)
        if token is None:
            return
        # An exception here means the hooked response may never be sent.
        if token.close_hooked and exc is None:
            return
        try:
            # No status means the handler raised before a response existed.
            status_code = token.status_code if token.status_code is not None else 500
            self.on_request_terminal(token, request.method, resolve_route(), status_code)
        except Exception:
            logger.exception("Failed to finalize request metrics")
