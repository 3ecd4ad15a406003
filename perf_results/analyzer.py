"""
Load-test result analysis.

``analyze`` turns the ordered sample rows of a finished load-test run
into a ``PerformanceReport``: counts, success and error rates, response
time statistics, run duration, throughput, and a three-level verdict.

The function is pure.  It reads its input once, keeps no state between
calls, and returns a frozen report, so the same input always yields an
identical report.

Edge cases handled explicitly rather than by crashing:

  * **Malformed rows** are skipped and counted in ``malformed_count``,
    never folded into the success or error tallies.
  * **Out-of-order timestamps** (last row earlier than the first) clamp
    the duration to zero, and throughput is reported as 0.

Key Concepts Demonstrated:
- Single-pass aggregation over an already-collected sequence
- Integer arithmetic before division to keep percentages exact
- Separating harness defects (malformed rows) from application failures
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from typing import Any

from shared.metric_types import Verdict
from shared.thresholds import DEFAULT_THRESHOLDS, VerdictThresholds

from .errors import EmptyInputError, MalformedRecordError
from .records import SampleRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerformanceReport:
    """Summary of one load-test run.  Built once, never mutated."""

    total_count: int
    success_count: int
    error_count: int
    malformed_count: int
    success_rate_pct: float
    error_rate_pct: float
    avg_response_ms: float
    min_response_ms: float
    max_response_ms: float
    duration_sec: float
    throughput_rps: float
    verdict: Verdict

    @property
    def throughput_degenerate(self) -> bool:
        """True when the run had no measurable duration, so throughput is undefined."""
        return self.duration_sec <= 0

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable dictionary of every field."""
        data = asdict(self)
        data["verdict"] = self.verdict.value
        data["throughput_degenerate"] = self.throughput_degenerate
        return data


def parse_records(
    rows: Iterable[SampleRecord | Mapping[str, Any]],
) -> tuple[list[SampleRecord], int]:
    """
    Split input into valid records and a count of malformed rows.

    ``SampleRecord`` instances are re-validated; mappings (raw CSV rows)
    are parsed with ``SampleRecord.from_row``.  Either kind counts as
    malformed when it fails.

    Returns:
        ``(records, malformed_count)`` with records in input order.
    """
    records: list[SampleRecord] = []
    malformed = 0
    for index, row in enumerate(rows):
        try:
            if isinstance(row, SampleRecord):
                records.append(row.validate())
            else:
                records.append(SampleRecord.from_row(row))
        except MalformedRecordError as exc:
            malformed += 1
            logger.debug("Skipping malformed sample row %d: %s", index, exc)

    if malformed:
        logger.warning("Skipped %d malformed sample row(s)", malformed)
    return records, malformed


def analyze(
    records: Iterable[SampleRecord | Mapping[str, Any]],
    thresholds: VerdictThresholds = DEFAULT_THRESHOLDS,
) -> PerformanceReport:
    """
    Compute summary statistics and a verdict for a load-test run.

    Args:
        records: Samples in the order the harness recorded them.  Each
            item is either a ``SampleRecord`` or a raw row mapping.
        thresholds: Limits used to classify the run.

    Returns:
        The frozen ``PerformanceReport`` for the run.

    Raises:
        EmptyInputError: If there are no records, or every row was
            malformed, leaving nothing to average.
    """
    valid, malformed = parse_records(records)
    if not valid:
        if malformed:
            raise EmptyInputError(f"All {malformed} sample row(s) were malformed")
        raise EmptyInputError("No sample records to analyze")

    total = len(valid)
    success = 0
    elapsed_sum = 0.0
    elapsed_min = valid[0].elapsed_ms
    elapsed_max = valid[0].elapsed_ms
    for record in valid:
        if record.success:
            success += 1
        elapsed_sum += record.elapsed_ms
        if record.elapsed_ms < elapsed_min:
            elapsed_min = record.elapsed_ms
        if record.elapsed_ms > elapsed_max:
            elapsed_max = record.elapsed_ms

    success_rate = success * 100 / total
    avg_response = elapsed_sum / total

    # Sequence order, not min/max: a shuffled file yields a negative span.
    duration_sec = (valid[-1].timestamp_ms - valid[0].timestamp_ms) / 1000
    if duration_sec < 0:
        logger.warning(
            "Sample timestamps are out of order (span %.3fs); throughput reported as 0",
            duration_sec,
        )
        duration_sec = 0.0
    throughput = total / duration_sec if duration_sec > 0 else 0.0

    report = PerformanceReport(
        total_count=total,
        success_count=success,
        error_count=total - success,
        malformed_count=malformed,
        success_rate_pct=success_rate,
        error_rate_pct=100 - success_rate,
        avg_response_ms=avg_response,
        min_response_ms=elapsed_min,
        max_response_ms=elapsed_max,
        duration_sec=duration_sec,
        throughput_rps=throughput,
        verdict=thresholds.classify(success_rate, avg_response),
    )
    logger.info(
        "Analyzed %d samples: %.2f%% success, %.1f ms avg -> %s",
        total,
        success_rate,
        avg_response,
        report.verdict.value,
    )
    return report
