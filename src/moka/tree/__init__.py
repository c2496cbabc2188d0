"""Tree aggregation and rendering engine.

Normalizer -> builder -> aggregator -> {threshold evaluator, renderer}.
"""

from moka.tree.aggregate import aggregate
from moka.tree.builder import build_coverage_tree, build_outcome_tree
from moka.tree.normalize import normalize_source_files, normalize_test_cases
from moka.tree.ranges import compress_lines, expand_ranges
from moka.tree.render import (
    RenderOptions,
    Tier,
    TreeRenderer,
    UncoveredMode,
    coverage_tier,
    format_duration,
    render,
)
from moka.tree.thresholds import (
    ThresholdFailure,
    ThresholdResult,
    evaluate_thresholds,
    final_exit_code,
    percentage,
)

__all__ = [
    "RenderOptions",
    "ThresholdFailure",
    "ThresholdResult",
    "Tier",
    "TreeRenderer",
    "UncoveredMode",
    "aggregate",
    "build_coverage_tree",
    "build_outcome_tree",
    "compress_lines",
    "coverage_tier",
    "evaluate_thresholds",
    "expand_ranges",
    "final_exit_code",
    "format_duration",
    "normalize_source_files",
    "normalize_test_cases",
    "percentage",
    "render",
]
