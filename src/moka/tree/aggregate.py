"""Aggregator: bottom-up rollup of node metrics.

Every call recomputes the metrics of the whole subtree from scratch, so it is
safe to run repeatedly on the same tree. Leaf data is read, never written.
Children (and leaves) are reordered by name for stable output.
"""

from __future__ import annotations

from typing import TypeVar, overload

from moka.models.coverage import CoverageNode
from moka.models.test_result import Counts, OutcomeNode, TestClass

_V = TypeVar("_V")


def _sorted_by_key(mapping: dict[str, _V]) -> dict[str, _V]:
    return dict(sorted(mapping.items()))


def aggregate_coverage(node: CoverageNode) -> CoverageNode:
    """Recompute line and function counters for *node* and its descendants."""
    lines_covered = lines_missed = funcs_covered = funcs_missed = 0

    for child in node.children.values():
        aggregate_coverage(child)
        lines_covered += child.lines_covered
        lines_missed += child.lines_missed
        funcs_covered += child.funcs_covered
        funcs_missed += child.funcs_missed

    for source_file in node.leaves:
        lines_covered += source_file.lines_covered
        lines_missed += source_file.lines_missed
        funcs_covered += source_file.funcs_covered
        funcs_missed += source_file.funcs_missed

    node.lines_covered = lines_covered
    node.lines_missed = lines_missed
    node.funcs_covered = funcs_covered
    node.funcs_missed = funcs_missed

    node.children = _sorted_by_key(node.children)
    node.leaves = sorted(node.leaves, key=lambda source_file: source_file.name)
    return node


def aggregate_class(test_class: TestClass) -> TestClass:
    """Derive a class's counts and duration from its own case list."""
    counts = Counts()
    duration = 0
    for case in test_class.cases:
        counts.record(case.status)
        duration += case.duration_ms
    test_class.counts = counts
    test_class.duration_ms = duration
    return test_class


def aggregate_outcomes(node: OutcomeNode) -> OutcomeNode:
    """Recompute pass/fail/skip counts and durations for *node* and its descendants."""
    counts = Counts()
    duration = 0

    for test_class in node.leaves.values():
        aggregate_class(test_class)
        counts.add(test_class.counts)
        duration += test_class.duration_ms

    for child in node.children.values():
        aggregate_outcomes(child)
        counts.add(child.counts)
        duration += child.duration_ms

    node.counts = counts
    node.duration_ms = duration

    node.children = _sorted_by_key(node.children)
    node.leaves = _sorted_by_key(node.leaves)
    return node


@overload
def aggregate(node: CoverageNode) -> CoverageNode: ...


@overload
def aggregate(node: OutcomeNode) -> OutcomeNode: ...


def aggregate(node: CoverageNode | OutcomeNode) -> CoverageNode | OutcomeNode:
    """Aggregate either tree variant in place and return it."""
    if isinstance(node, CoverageNode):
        return aggregate_coverage(node)
    if isinstance(node, OutcomeNode):
        return aggregate_outcomes(node)
    raise TypeError(f"Cannot aggregate {type(node).__name__}")
