"""
Shared metric vocabulary.

Both halves of the project speak about request latency in milliseconds
and grade results into the same small set of outcomes.  The constants
and enumerations below are that common vocabulary: the live collector
uses the bucket boundaries, the results analyzer uses the verdict and
band enums, and the report renderer uses all of them.

Key Concepts Demonstrated:
- ``str``-based enums so values serialise cleanly to JSON and YAML
- A single source of truth for histogram bucket boundaries
"""

from __future__ import annotations

from enum import Enum

# Upper bounds (inclusive, milliseconds) of the request-duration histogram.
# Prometheus appends the implicit ``+Inf`` bucket on its own.
DEFAULT_DURATION_BUCKETS_MS: tuple[float, ...] = (50, 100, 200, 400, 800, 1600, 3200)


class Verdict(str, Enum):
    """Overall outcome of a load-test run."""

    PASS = "PASS"
    UNSTABLE = "UNSTABLE"
    FAIL = "FAIL"


class Band(str, Enum):
    """Per-metric grade shown next to each value in a rendered report."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"
