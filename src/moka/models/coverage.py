"""Coverage tree models."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class SourceFileRecord:
    """A normalized per-source-file coverage record, before grouping."""

    name: str
    """Hierarchical name (e.g. ``com/example/Foo.java`` or ``A.B.Foo``)."""

    lines_covered: int = 0
    lines_missed: int = 0
    funcs_covered: int = 0
    funcs_missed: int = 0

    uncovered_lines: list[int] = field(default_factory=list)
    """Ascending, unique line numbers that were executable but never hit."""


@dataclass
class SourceFile:
    """A source file leaf attached to a coverage node."""

    name: str
    """Leaf name (last segment of the record's hierarchical name)."""

    lines_covered: int = 0
    lines_missed: int = 0
    funcs_covered: int = 0
    funcs_missed: int = 0
    uncovered_lines: list[int] = field(default_factory=list)


@dataclass
class CoverageNode:
    """A namespace (package) node of the coverage tree.

    The four counters are written by the aggregator only; they always equal
    the node's own files plus the rollups of its children.
    """

    name: str
    full_name: str = ""
    children: dict[str, CoverageNode] = field(default_factory=dict)
    leaves: list[SourceFile] = field(default_factory=list)

    lines_covered: int = 0
    lines_missed: int = 0
    funcs_covered: int = 0
    funcs_missed: int = 0

    def walk(self) -> list[CoverageNode]:
        """Return this node and all descendants in pre-order."""
        nodes = [self]
        for child in self.children.values():
            nodes.extend(child.walk())
        return nodes
