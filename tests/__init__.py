"""
Test suite for the request-metrics collector and the perf results gate.

This package contains:
- unit/: Collector, thresholds, record parsing, analyzer and report tests
- integration/: Flask request instrumentation and the results CLI
"""
