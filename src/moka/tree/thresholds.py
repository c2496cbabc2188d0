"""Threshold evaluation of root-level coverage percentages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from moka.models.coverage import CoverageNode

THRESHOLD_EXIT_CODE = 2
"""Exit code signalled when any coverage minimum is not met."""


class Metric(Enum):
    """Coverage metric a threshold applies to."""

    LINES = "lines"
    FUNCS = "funcs"


def percentage(covered: int, missed: int) -> int:
    """Return ``covered / (covered + missed)`` as a whole percentage.

    Halves round up (``12.5`` -> ``13``). A zero total yields ``0``.
    """
    total = covered + missed
    if total <= 0:
        return 0
    return (200 * covered + total) // (2 * total)


@dataclass
class ThresholdFailure:
    """A single metric that fell below its configured minimum."""

    metric: Metric
    actual: int
    minimum: float

    @property
    def shortfall(self) -> float:
        """Percentage points missing to reach the minimum."""
        return self.minimum - self.actual

    def describe(self) -> str:
        """Return a one-line human description."""
        label = "Lines" if self.metric is Metric.LINES else "Funcs"
        return f"{label} coverage {self.actual}% < min {self.minimum:g}%"


@dataclass
class ThresholdResult:
    """Verdict of comparing root coverage against minimums."""

    lines_pct: int
    funcs_pct: int
    failures: list[ThresholdFailure] = field(default_factory=list)

    @property
    def lines_ok(self) -> bool:
        return all(f.metric is not Metric.LINES for f in self.failures)

    @property
    def funcs_ok(self) -> bool:
        return all(f.metric is not Metric.FUNCS for f in self.failures)

    @property
    def passed(self) -> bool:
        return not self.failures

    @property
    def exit_code(self) -> int:
        """``0`` when every threshold holds, :data:`THRESHOLD_EXIT_CODE` otherwise."""
        return 0 if self.passed else THRESHOLD_EXIT_CODE


def evaluate_thresholds(
    node: CoverageNode,
    *,
    min_lines: float | None = None,
    min_funcs: float | None = None,
) -> ThresholdResult:
    """Compare *node*'s aggregated coverage with the optional minimums.

    A minimum fails only when the percentage is strictly below it. Unset
    minimums never fail.
    """
    result = ThresholdResult(
        lines_pct=percentage(node.lines_covered, node.lines_missed),
        funcs_pct=percentage(node.funcs_covered, node.funcs_missed),
    )
    if min_lines is not None and result.lines_pct < min_lines:
        result.failures.append(
            ThresholdFailure(metric=Metric.LINES, actual=result.lines_pct, minimum=min_lines)
        )
    if min_funcs is not None and result.funcs_pct < min_funcs:
        result.failures.append(
            ThresholdFailure(metric=Metric.FUNCS, actual=result.funcs_pct, minimum=min_funcs)
        )
    return result


def final_exit_code(test_exit_code: int, result: ThresholdResult | None) -> int:
    """Combine a test run's exit code with the threshold verdict (the larger wins).

    A negative test exit code (process killed by a signal) counts as ``1``.
    """
    if test_exit_code < 0:
        test_exit_code = 1
    threshold_code = result.exit_code if result is not None else 0
    return max(test_exit_code, threshold_code)
