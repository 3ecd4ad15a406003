"""
Load-test results analysis.

Reads the sample rows a load generator writes, summarises them into a
``PerformanceReport`` and grades the run as PASS, UNSTABLE or FAIL.
"""

from __future__ import annotations

from .analyzer import PerformanceReport, analyze
from .errors import AnalysisError, EmptyInputError, MalformedRecordError
from .records import SampleRecord, load_sample_rows
from .report import render, render_html, render_text

__all__ = [
    "AnalysisError",
    "EmptyInputError",
    "MalformedRecordError",
    "PerformanceReport",
    "SampleRecord",
    "analyze",
    "load_sample_rows",
    "render",
    "render_html",
    "render_text",
]
