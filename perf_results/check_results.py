"""
Grade a load-test results file and report the verdict.

After a load-test run completes, CI invokes this script to decide
whether the build passes.  It reads the JTL-style CSV written by the
load generator, computes a ``PerformanceReport``, prints a summary
table, and optionally writes HTML and JSON reports for archiving.

Exit codes let CI tell "the application is slow" apart from "the
script crashed":

- ``0`` -- PASS
- ``1`` -- FAIL
- ``2`` -- the script itself failed (missing file, bad YAML, no samples)
- ``3`` -- UNSTABLE

Usage::

    python -m perf_results.check_results --results results.jtl \\
        --html-report build/perf-report.html

Key Concepts Demonstrated:
- Pure verdict logic wrapped by a thin argparse entry point
- Multi-state exit codes for CI gating
- Report artifacts written alongside the console summary
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from shared.metric_types import Verdict
from shared.thresholds import load_thresholds

from .analyzer import analyze
from .records import load_sample_rows
from .report import render_html, render_text

logger = logging.getLogger(__name__)

EXIT_PASS = 0
EXIT_FAIL = 1
EXIT_SCRIPT_ERROR = 2
EXIT_UNSTABLE = 3

VERDICT_EXIT_CODES = {
    Verdict.PASS: EXIT_PASS,
    Verdict.FAIL: EXIT_FAIL,
    Verdict.UNSTABLE: EXIT_UNSTABLE,
}

DEFAULT_THRESHOLDS_PATH = Path(__file__).with_name("thresholds.yml")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the results checker."""
    parser = argparse.ArgumentParser(
        description="Grade a load-test results CSV against performance thresholds."
    )
    parser.add_argument(
        "--results",
        required=True,
        type=Path,
        help="Path to the load-test results CSV (JTL format)",
    )
    parser.add_argument(
        "--thresholds",
        type=Path,
        default=DEFAULT_THRESHOLDS_PATH,
        help="Path to thresholds YAML file",
    )
    parser.add_argument(
        "--html-report",
        type=Path,
        default=None,
        help="Write an HTML report to this path",
    )
    parser.add_argument(
        "--json-report",
        type=Path,
        default=None,
        help="Write the report fields as JSON to this path",
    )
    return parser.parse_args(argv)


def _write_artifact(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    logger.info("Wrote %s", path)


def main(argv: list[str] | None = None) -> int:
    """
    Entry point: load thresholds and samples, analyze, print and write reports.

    Returns:
        The exit code matching the verdict, or ``EXIT_SCRIPT_ERROR`` (2)
        on any failure before a verdict could be reached.
    """
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        thresholds = load_thresholds(args.thresholds)
        rows = load_sample_rows(args.results)
        report = analyze(rows, thresholds)

        print(render_text(report, thresholds), end="")
        if args.html_report is not None:
            _write_artifact(args.html_report, render_html(report, thresholds))
        if args.json_report is not None:
            _write_artifact(args.json_report, json.dumps(report.to_dict(), indent=2) + "\n")
    except Exception as exc:
        print(f"Results check failed: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR

    return VERDICT_EXIT_CODES[report.verdict]


if __name__ == "__main__":
    raise SystemExit(main())
