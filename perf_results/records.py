"""
Sample records produced by a load-test run.

The load generator writes one row per completed request.  JMeter's JTL
CSV format is the reference layout (``timeStamp``, ``elapsed``,
``label``, ``responseCode``, ``success``), but a few common aliases are
accepted so that exports from other harnesses can be fed in unchanged.

Rows are kept in file order: the analyzer measures run duration from
the first and last rows, not from the smallest and largest timestamps.

Key Concepts Demonstrated:
- Frozen dataclasses for immutable input records
- Tolerant column lookup across harness versions
- Per-row validation that raises instead of guessing
"""

from __future__ import annotations

import csv
import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TextIO

from .errors import MalformedRecordError

TIMESTAMP_COLUMNS = ("timeStamp", "timestamp", "timestamp_ms")
ELAPSED_COLUMNS = ("elapsed", "elapsed_ms", "latency_ms")
SUCCESS_COLUMNS = ("success", "ok")
LABEL_COLUMNS = ("label", "name")
RESPONSE_CODE_COLUMNS = ("responseCode", "response_code", "status_code")

_TRUE_VALUES = {"true", "1", "yes"}
_FALSE_VALUES = {"false", "0", "no"}


def _first_present(row: Mapping[str, Any], candidates: Iterable[str]) -> Any:
    """Return the first non-empty value among *candidates*, or ``None``."""
    for name in candidates:
        value = row.get(name)
        if value is not None and str(value).strip() != "":
            return value
    return None


def _parse_number(value: Any, field_name: str) -> float:
    """Coerce a CSV cell to ``float`` or raise ``MalformedRecordError``."""
    if value is None:
        raise MalformedRecordError(f"Missing field: {field_name}")
    try:
        number = float(str(value).strip())
    except ValueError as exc:
        raise MalformedRecordError(f"Non-numeric value for {field_name}: {value!r}") from exc
    if not math.isfinite(number):
        raise MalformedRecordError(f"Non-finite value for {field_name}: {value!r}")
    return number


def _parse_success(value: Any) -> bool:
    """Interpret a success flag (``true/false``, ``1/0``, ``yes/no``)."""
    if isinstance(value, bool):
        return value
    if value is None:
        raise MalformedRecordError("Missing field: success")
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise MalformedRecordError(f"Unrecognised success flag: {value!r}")


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


@dataclass(frozen=True)
class SampleRecord:
    """
    One completed request as recorded by the load-test harness.

    Attributes:
        timestamp_ms: Epoch milliseconds when the sample started.
        elapsed_ms: Time the request took, in milliseconds.
        success: Whether the harness counted the request as successful.
        label: Optional sampler/endpoint name.
        response_code: Optional raw response code string.
    """

    timestamp_ms: int
    elapsed_ms: float
    success: bool
    label: str | None = None
    response_code: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> SampleRecord:
        """
        Build a record from one parsed CSV row.

        Raises:
            MalformedRecordError: If the timestamp or elapsed time is
                missing or non-numeric, the elapsed time is negative, or
                the success flag is missing or unrecognised.
        """
        timestamp = _parse_number(_first_present(row, TIMESTAMP_COLUMNS), "timestamp")
        elapsed = _parse_number(_first_present(row, ELAPSED_COLUMNS), "elapsed")
        success = _parse_success(_first_present(row, SUCCESS_COLUMNS))

        return cls(
            timestamp_ms=int(timestamp),
            elapsed_ms=elapsed,
            success=success,
            label=_optional_text(_first_present(row, LABEL_COLUMNS)),
            response_code=_optional_text(_first_present(row, RESPONSE_CODE_COLUMNS)),
        ).validate()

    def validate(self) -> SampleRecord:
        """
        Check the numeric fields of a record and return it unchanged.

        Records built in code skip ``from_row``, so the analyzer calls
        this on them before aggregating.

        Raises:
            MalformedRecordError: If the elapsed time is non-finite or
                negative, or the timestamp is not an integer.
        """
        if isinstance(self.timestamp_ms, bool) or not isinstance(self.timestamp_ms, int):
            raise MalformedRecordError(f"Non-integer timestamp: {self.timestamp_ms!r}")
        if isinstance(self.elapsed_ms, bool) or not isinstance(self.elapsed_ms, (int, float)):
            raise MalformedRecordError(f"Non-numeric elapsed time: {self.elapsed_ms!r}")
        if not math.isfinite(self.elapsed_ms):
            raise MalformedRecordError(f"Non-finite elapsed time: {self.elapsed_ms!r}")
        if self.elapsed_ms < 0:
            raise MalformedRecordError(f"Negative elapsed time: {self.elapsed_ms}")
        return self


def iter_sample_rows(handle: TextIO) -> Iterator[dict[str, str]]:
    """Yield raw CSV rows from an open text handle, in file order."""
    yield from csv.DictReader(handle)


def load_sample_rows(path: Path) -> list[dict[str, str]]:
    """
    Read every row of a load-test results CSV.

    Rows are returned unparsed so that the analyzer can count malformed
    ones instead of failing the whole file.

    Args:
        path: Path to a JTL-style CSV file with a header row.

    Returns:
        The rows as dictionaries, in file order.
    """
    # utf-8-sig drops the byte-order mark some exporters put before the header.
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        return list(iter_sample_rows(handle))
