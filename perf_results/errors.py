"""Exceptions raised while analyzing load-test results."""

from __future__ import annotations


class AnalysisError(Exception):
    """Base class for results-analysis failures."""


class EmptyInputError(AnalysisError):
    """Raised when there are no usable sample records to analyze."""


class MalformedRecordError(AnalysisError, ValueError):
    """Raised when a single sample row cannot be parsed."""
