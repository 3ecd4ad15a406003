"""
Verdict thresholds for load-test results.

A run is graded on two metrics only: the success rate and the average
response time.  Each metric is placed in a band (pass / warn / fail)
and the overall verdict is derived from the two bands:

- ``PASS``      -- both metrics are in the pass band.
- ``UNSTABLE``  -- neither metric is in the fail band.
- ``FAIL``      -- anything else.

Because the verdict is computed *from* the bands, a rendered report
that colours each metric by its band can never contradict the verdict
printed underneath it.

Limits can be loaded from a YAML file shaped like::

    pass:
      min_success_rate_percent: 95
      max_avg_response_ms: 1000
    unstable:
      min_success_rate_percent: 90
      max_avg_response_ms: 2000

Key Concepts Demonstrated:
- Immutable value objects (frozen dataclasses) for configuration
- Strict validation of user-supplied YAML before it reaches business logic
- Deriving a composite decision from per-metric grades
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from shared.metric_types import Band, Verdict


class ThresholdConfigError(ValueError):
    """Raised when a thresholds file is missing keys or holds bad values."""


@dataclass(frozen=True)
class VerdictThresholds:
    """
    Numeric limits for the two verdict tiers.

    Attributes:
        pass_min_success_rate_pct: Lowest success rate that still passes.
        pass_max_avg_response_ms: Highest average latency that still passes.
        unstable_min_success_rate_pct: Lowest success rate that is
            merely unstable rather than failing.
        unstable_max_avg_response_ms: Highest average latency that is
            merely unstable rather than failing.
    """

    pass_min_success_rate_pct: float = 95.0
    pass_max_avg_response_ms: float = 1000.0
    unstable_min_success_rate_pct: float = 90.0
    unstable_max_avg_response_ms: float = 2000.0

    def __post_init__(self) -> None:
        # The pass tier must be nested inside the unstable tier, otherwise
        # a run could pass while one of its metrics sits in the fail band.
        if self.pass_min_success_rate_pct < self.unstable_min_success_rate_pct:
            raise ThresholdConfigError(
                "pass success-rate limit must be >= the unstable success-rate limit"
            )
        if self.pass_max_avg_response_ms > self.unstable_max_avg_response_ms:
            raise ThresholdConfigError(
                "pass avg-response limit must be <= the unstable avg-response limit"
            )

    def success_rate_band(self, success_rate_pct: float) -> Band:
        """Grade a success rate (higher is better)."""
        if success_rate_pct >= self.pass_min_success_rate_pct:
            return Band.PASS
        if success_rate_pct >= self.unstable_min_success_rate_pct:
            return Band.WARN
        return Band.FAIL

    def avg_response_band(self, avg_response_ms: float) -> Band:
        """Grade an average response time (lower is better)."""
        if avg_response_ms <= self.pass_max_avg_response_ms:
            return Band.PASS
        if avg_response_ms <= self.unstable_max_avg_response_ms:
            return Band.WARN
        return Band.FAIL

    def classify(self, success_rate_pct: float, avg_response_ms: float) -> Verdict:
        """
        Derive the overall verdict from the two metric bands.

        Each tier is an AND of both metrics: a perfect success rate does
        not rescue a run whose average latency is in the fail band.

        Args:
            success_rate_pct: Percentage of successful samples (0-100).
            avg_response_ms: Mean elapsed time over all samples.

        Returns:
            ``Verdict.PASS``, ``Verdict.UNSTABLE`` or ``Verdict.FAIL``.
        """
        bands = (
            self.success_rate_band(success_rate_pct),
            self.avg_response_band(avg_response_ms),
        )
        if all(band is Band.PASS for band in bands):
            return Verdict.PASS
        if Band.FAIL not in bands:
            return Verdict.UNSTABLE
        return Verdict.FAIL

    def describe(self) -> list[tuple[Verdict, str]]:
        """Return one human-readable rule per verdict tier, in precedence order."""
        return [
            (
                Verdict.PASS,
                f"success rate >= {self.pass_min_success_rate_pct:g}% "
                f"and avg response <= {self.pass_max_avg_response_ms:g} ms",
            ),
            (
                Verdict.UNSTABLE,
                f"success rate >= {self.unstable_min_success_rate_pct:g}% "
                f"and avg response <= {self.unstable_max_avg_response_ms:g} ms",
            ),
            (Verdict.FAIL, "otherwise"),
        ]


DEFAULT_THRESHOLDS = VerdictThresholds()


def _read_limit(data: dict[str, Any], tier: str, key: str) -> float:
    """Pull ``data[tier][key]`` out of parsed YAML as a float."""
    section = data.get(tier)
    if not isinstance(section, dict):
        raise ThresholdConfigError(f"Thresholds file must define a '{tier}' section")
    try:
        return float(section[key])
    except KeyError as exc:
        raise ThresholdConfigError(f"Missing threshold: {tier}.{key}") from exc
    except (TypeError, ValueError) as exc:
        raise ThresholdConfigError(
            f"Non-numeric threshold {tier}.{key}: {section[key]!r}"
        ) from exc


def load_thresholds(path: Path) -> VerdictThresholds:
    """
    Read verdict thresholds from a YAML file.

    Args:
        path: Path to a YAML file with ``pass`` and ``unstable`` sections,
            each holding ``min_success_rate_percent`` and
            ``max_avg_response_ms``.

    Returns:
        A validated ``VerdictThresholds`` instance.

    Raises:
        ThresholdConfigError: If a section or key is missing, a value is
            non-numeric, or the tiers are not nested.
    """
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, dict):
        raise ThresholdConfigError("Thresholds file must contain a mapping")

    return VerdictThresholds(
        pass_min_success_rate_pct=_read_limit(data, "pass", "min_success_rate_percent"),
        pass_max_avg_response_ms=_read_limit(data, "pass", "max_avg_response_ms"),
        unstable_min_success_rate_pct=_read_limit(data, "unstable", "min_success_rate_percent"),
        unstable_max_avg_response_ms=_read_limit(data, "unstable", "max_avg_response_ms"),
    )
