"""
Human-readable rendering of a ``PerformanceReport``.

Rendering is pure formatting: every number shown comes straight from the
report, and every pass/warn/fail colour comes from the same
``VerdictThresholds`` object that produced the verdict.  Two outputs
are supported:

  * ``render_text`` -- fixed-width table for CI logs.
  * ``render_html`` -- standalone HTML page (Jinja2 template) suitable
    for archiving as a build artifact.

Key Concepts Demonstrated:
- One row model shared by both output formats
- Jinja2 templates with autoescaping for HTML output
- Surfacing data-quality problems (malformed rows, zero duration) next
  to the verdict instead of hiding them
"""

from __future__ import annotations

from dataclasses import dataclass

from jinja2 import Environment, PackageLoader, select_autoescape

from shared.metric_types import Band
from shared.thresholds import DEFAULT_THRESHOLDS, VerdictThresholds

from .analyzer import PerformanceReport

_environment = Environment(
    loader=PackageLoader("perf_results", "templates"),
    autoescape=select_autoescape(["html", "j2"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass(frozen=True)
class ReportRow:
    """One line of the metrics table."""

    metric: str
    actual: str
    pass_limit: str = ""
    warn_limit: str = ""
    band: Band | None = None


def build_rows(
    report: PerformanceReport,
    thresholds: VerdictThresholds = DEFAULT_THRESHOLDS,
) -> list[ReportRow]:
    """
    Lay out every report field as a table row.

    Rows for graded metrics carry the band and the limits that produced
    it; informational rows leave them blank.
    """
    success_band = thresholds.success_rate_band(report.success_rate_pct)
    throughput = (
        "n/a (zero duration)" if report.throughput_degenerate else f"{report.throughput_rps:.2f}"
    )
    return [
        ReportRow("Total samples", str(report.total_count)),
        ReportRow("Successful", str(report.success_count)),
        ReportRow("Errors", str(report.error_count)),
        ReportRow("Malformed rows", str(report.malformed_count)),
        ReportRow(
            "Success rate (%)",
            f"{report.success_rate_pct:.2f}",
            f">= {thresholds.pass_min_success_rate_pct:g}",
            f">= {thresholds.unstable_min_success_rate_pct:g}",
            success_band,
        ),
        # Error rate is the complement of success rate and shares its band.
        ReportRow(
            "Error rate (%)",
            f"{report.error_rate_pct:.2f}",
            f"<= {100 - thresholds.pass_min_success_rate_pct:g}",
            f"<= {100 - thresholds.unstable_min_success_rate_pct:g}",
            success_band,
        ),
        ReportRow(
            "Avg response (ms)",
            f"{report.avg_response_ms:.2f}",
            f"<= {thresholds.pass_max_avg_response_ms:g}",
            f"<= {thresholds.unstable_max_avg_response_ms:g}",
            thresholds.avg_response_band(report.avg_response_ms),
        ),
        ReportRow("Min response (ms)", f"{report.min_response_ms:.2f}"),
        ReportRow("Max response (ms)", f"{report.max_response_ms:.2f}"),
        ReportRow("Duration (s)", f"{report.duration_sec:.3f}"),
        ReportRow("Throughput (req/s)", throughput),
    ]


def _notes(report: PerformanceReport) -> list[str]:
    notes = []
    if report.malformed_count:
        notes.append(
            f"{report.malformed_count} malformed row(s) were skipped; "
            "check the load-test harness output."
        )
    if report.throughput_degenerate:
        notes.append(
            "Run duration is zero or timestamps are out of order; throughput is undefined."
        )
    return notes


def render_text(
    report: PerformanceReport,
    thresholds: VerdictThresholds = DEFAULT_THRESHOLDS,
) -> str:
    """Render the report as a fixed-width table for CI logs."""
    width = 76
    lines = [
        "Performance Results",
        "-" * width,
        f"{'Metric':<22}{'Actual':>20}{'Pass':>12}{'Warn':>12}{'Status':>10}",
        "-" * width,
    ]
    for row in build_rows(report, thresholds):
        status = row.band.value.upper() if row.band is not None else ""
        lines.append(
            f"{row.metric:<22}{row.actual:>20}{row.pass_limit:>12}{row.warn_limit:>12}{status:>10}"
        )
    lines.append("-" * width)
    for verdict, rule in thresholds.describe():
        lines.append(f"{verdict.value:<10}{rule}")
    lines.append("-" * width)
    for note in _notes(report):
        lines.append(f"NOTE: {note}")
    lines.append(f"Overall: {report.verdict.value}")
    return "\n".join(lines) + "\n"


def render_html(
    report: PerformanceReport,
    thresholds: VerdictThresholds = DEFAULT_THRESHOLDS,
) -> str:
    """Render the report as a standalone HTML document."""
    template = _environment.get_template("report.html.j2")
    return template.render(
        report=report,
        rows=build_rows(report, thresholds),
        rules=thresholds.describe(),
        notes=_notes(report),
    )


def render(
    report: PerformanceReport,
    thresholds: VerdictThresholds = DEFAULT_THRESHOLDS,
    fmt: str = "text",
) -> str:
    """Render *report* as ``"text"`` or ``"html"``."""
    if fmt == "text":
        return render_text(report, thresholds)
    if fmt == "html":
        return render_html(report, thresholds)
    raise ValueError(f"Unsupported report format: {fmt!r}")
