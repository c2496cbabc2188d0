"""Tree builder: group flat leaf records into a namespace hierarchy.

Each record carries a hierarchical name. All segments but the last name the
package path; the last segment is the leaf (a source file, or a test class).
Intermediate nodes are created on first use and reused afterwards.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from moka.models.coverage import CoverageNode, SourceFile, SourceFileRecord
from moka.models.test_result import (
    CaseStatus,
    OutcomeNode,
    TestCase,
    TestCaseRecord,
    TestClass,
)
from moka.tree.aggregate import aggregate

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

COVERAGE_ROOT_NAME = "All files"
OUTCOME_ROOT_NAME = "All tests"

_NodeT = TypeVar("_NodeT", CoverageNode, OutcomeNode)


class MalformedRecordError(ValueError):
    """A leaf record that cannot be placed in a tree."""


def resolve_separator(names: Iterable[object], separator: str | None) -> str:
    """Return *separator*, or ``/`` when any of *names* contains one, else ``.``."""
    if separator:
        return separator
    return "/" if any(isinstance(name, str) and "/" in name for name in names) else "."


def split_name(name: str, separator: str) -> tuple[list[str], str]:
    """Split a hierarchical name into ``(package_path, leaf_name)``.

    Empty segments are dropped. A name without the separator yields an empty
    package path and the whole name as leaf.

    Raises:
        MalformedRecordError: If *name* has no non-empty segment.
    """
    segments = [segment for segment in name.split(separator) if segment]
    if not segments:
        raise MalformedRecordError(f"Empty hierarchical name: {name!r}")
    return (segments[:-1], segments[-1])


def ensure_path(root: _NodeT, path: list[str], separator: str) -> _NodeT:
    """Walk *path* from *root*, creating missing nodes, and return the last one."""
    current = root
    full_name = ""
    for part in path:
        full_name = f"{full_name}{separator}{part}" if full_name else part
        child = current.children.get(part)
        if child is None:
            child = type(root)(name=part, full_name=full_name)
            current.children[part] = child
        current = child
    return current


# ── Coverage ─────────────────────────────────────────────────────


def _non_negative(value: object, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise MalformedRecordError(f"{label} must be a non-negative integer (got: {value!r})")
    return value


def _source_file(record: SourceFileRecord, leaf_name: str) -> SourceFile:
    uncovered = list(record.uncovered_lines)
    for line in uncovered:
        _non_negative(line, "uncovered line")
    return SourceFile(
        name=leaf_name,
        lines_covered=_non_negative(record.lines_covered, "lines_covered"),
        lines_missed=_non_negative(record.lines_missed, "lines_missed"),
        funcs_covered=_non_negative(record.funcs_covered, "funcs_covered"),
        funcs_missed=_non_negative(record.funcs_missed, "funcs_missed"),
        uncovered_lines=uncovered,
    )


def build_coverage_tree(
    records: Iterable[SourceFileRecord],
    *,
    separator: str | None = None,
) -> CoverageNode:
    """Build and aggregate a coverage tree from source file records.

    Args:
        records: Normalized per-file records.
        separator: Namespace separator. ``None`` picks ``/`` for the whole
            build when any record name contains one, ``.`` otherwise.

    Returns:
        The aggregated root node. Malformed records are skipped; an empty
        input yields a root with zero metrics.
    """
    records = list(records)
    sep = resolve_separator((getattr(record, "name", None) for record in records), separator)
    root = CoverageNode(name=COVERAGE_ROOT_NAME)
    skipped = 0
    for record in records:
        try:
            if not isinstance(record, SourceFileRecord):
                raise MalformedRecordError(f"not a source file record: {record!r}")
            path, leaf_name = split_name(record.name, sep)
            leaf = _source_file(record, leaf_name)
        except (MalformedRecordError, TypeError, AttributeError) as e:
            logger.warning("Skipping coverage record: %s", e)
            skipped += 1
            continue
        ensure_path(root, path, sep).leaves.append(leaf)

    if skipped:
        logger.info("Skipped %d malformed coverage record(s)", skipped)
    return aggregate(root)


# ── Test outcomes ────────────────────────────────────────────────


def _test_case(record: TestCaseRecord) -> TestCase:
    if not isinstance(record.status, CaseStatus):
        raise MalformedRecordError(f"unknown status {record.status!r} for {record.name}")
    duration = _non_negative(record.duration_ms, "duration_ms")
    failed = record.status is CaseStatus.FAILED
    return TestCase(
        name=record.name or "unknown",
        status=record.status,
        duration_ms=duration,
        failure_message=record.failure_message if failed else None,
        failure_type=record.failure_type if failed else None,
        failure_detail=record.failure_detail if failed else None,
    )


def ensure_class(node: OutcomeNode, class_name: str, full_name: str) -> TestClass:
    """Return the class leaf *class_name* under *node*, creating it if needed."""
    test_class = node.leaves.get(class_name)
    if test_class is None:
        test_class = TestClass(name=class_name, full_name=full_name)
        node.leaves[class_name] = test_class
    return test_class


def build_outcome_tree(
    records: Iterable[TestCaseRecord],
    *,
    separator: str = ".",
) -> OutcomeNode:
    """Build and aggregate a test outcome tree from test case records.

    The record's ``classname`` is the hierarchical name: its last segment is
    the class, the rest is the package path. Cases of the same class are kept
    in encounter order.
    """
    root = OutcomeNode(name=OUTCOME_ROOT_NAME)
    skipped = 0
    for record in records:
        try:
            if not isinstance(record, TestCaseRecord):
                raise MalformedRecordError(f"not a test case record: {record!r}")
            path, class_name = split_name(record.classname, separator)
            case = _test_case(record)
        except (MalformedRecordError, TypeError, AttributeError) as e:
            logger.warning("Skipping test case record: %s", e)
            skipped += 1
            continue
        package = ensure_path(root, path, separator)
        ensure_class(package, class_name, record.classname).cases.append(case)

    if skipped:
        logger.info("Skipped %d malformed test case record(s)", skipped)
    return aggregate(root)
