"""Renderer: project an aggregated tree onto indented text.

The renderer decides *what* each line says and which semantic :class:`Tier`
every piece of text belongs to. How a tier looks (colour, weight) is left to
the injected ``style`` callable, so the same output can go to a plain log file
or through Rich markup to a terminal.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from moka.models.coverage import CoverageNode, SourceFile
from moka.models.test_result import CaseStatus, Counts, OutcomeNode, TestCase, TestClass
from moka.tree.ranges import compress_lines
from moka.tree.thresholds import percentage

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

BRANCH = "├── "
LAST_BRANCH = "└── "
VERTICAL = "│   "
BLANK = "    "

_HIGH_COVERAGE = 80
_MEDIUM_COVERAGE = 50
_FULL_COVERAGE = 100

_MS_PER_SECOND = 1000
_MS_PER_MINUTE = 60_000

_STATUS_ICONS = {
    CaseStatus.PASSED: "✓",
    CaseStatus.FAILED: "✗",
    CaseStatus.SKIPPED: "⊘",
}


class Tier(Enum):
    """Semantic class of a rendered text segment."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ROOT = "root"
    LEAF = "leaf"
    DETAIL = "detail"
    PLAIN = "plain"


Style = Callable[[str, Tier], str]


def plain_style(text: str, tier: Tier) -> str:  # noqa: ARG001
    """Default style: text is emitted unchanged."""
    return text


_STATUS_TIERS = {
    CaseStatus.PASSED: Tier.PASSED,
    CaseStatus.FAILED: Tier.FAILED,
    CaseStatus.SKIPPED: Tier.SKIPPED,
}


def coverage_tier(pct: float) -> Tier:
    """Classify a coverage percentage: >=80 high, 50-79 medium, <50 low."""
    if pct >= _HIGH_COVERAGE:
        return Tier.HIGH
    if pct >= _MEDIUM_COVERAGE:
        return Tier.MEDIUM
    return Tier.LOW


def status_tier(status: CaseStatus) -> Tier:
    """Return the tier for a test case status."""
    return _STATUS_TIERS[status]


class UncoveredMode(Enum):
    """When to list a file's uncovered line ranges."""

    AUTO = "auto"
    ALL = "all"
    NONE = "none"

    @classmethod
    def parse(cls, value: object) -> UncoveredMode:
        """Parse *value*, falling back to :attr:`AUTO` for anything unrecognized."""
        if isinstance(value, UncoveredMode):
            return value
        text = str(value).strip().lower() if value is not None else ""
        for mode in cls:
            if mode.value == text:
                return mode
        if value is not None:
            logger.warning("Unknown uncovered mode %r, using %r", value, cls.AUTO.value)
        return cls.AUTO


@dataclass(frozen=True)
class RenderOptions:
    """Filtering and verbosity switches for :func:`render`."""

    include_leaves: bool = False
    """Show source files (coverage) or individual test cases (outcome)."""

    failures_only: bool = False
    """Outcome tree only: drop every package, class and case without failures."""

    uncovered_mode: UncoveredMode = UncoveredMode.AUTO
    """Coverage tree only: when to list uncovered line ranges."""

    @classmethod
    def from_values(
        cls,
        *,
        include_leaves: object = False,
        failures_only: object = False,
        uncovered_mode: object = None,
    ) -> RenderOptions:
        """Build options from loosely typed values (CLI, config files)."""
        return cls(
            include_leaves=bool(include_leaves),
            failures_only=bool(failures_only),
            uncovered_mode=UncoveredMode.parse(uncovered_mode),
        )


def format_duration(ms: int) -> str:
    """Format milliseconds as ``Nms``, ``S.SSs`` or ``Mm SS.Ss``.

    Example:
        >>> format_duration(950), format_duration(1234), format_duration(65_000)
        ('950ms', '1.23s', '1m 05.0s')
    """
    ms = max(int(ms), 0)
    if ms < _MS_PER_SECOND:
        return f"{ms}ms"
    centis = (ms + 5) // 10
    if centis < _MS_PER_MINUTE // 10:
        return f"{centis // 100}.{centis % 100:02d}s"
    tenths = (ms + 50) // 100
    minutes, rem_tenths = divmod(tenths, _MS_PER_MINUTE // 100)
    return f"{minutes}m {rem_tenths // 10:02d}.{rem_tenths % 10}s"


def _connector(is_last: bool) -> str:
    return LAST_BRANCH if is_last else BRANCH


def _continuation(is_last: bool) -> str:
    return BLANK if is_last else VERTICAL


def _first_line(text: str) -> str:
    lines = text.strip().splitlines()
    return lines[0].strip() if lines else ""


class TreeRenderer:
    """Pre-order text projection of coverage and outcome trees."""

    def __init__(self, options: RenderOptions | None = None, style: Style | None = None) -> None:
        self.options = options or RenderOptions()
        self.style = style or plain_style

    def render(self, node: CoverageNode | OutcomeNode) -> str:
        """Render *node* and its subtree; lines are joined with newlines."""
        lines: list[str] = []
        if isinstance(node, CoverageNode):
            self._coverage_node(node, "", is_last=True, is_root=True, out=lines)
        elif isinstance(node, OutcomeNode):
            self._outcome_node(node, "", is_last=True, is_root=True, out=lines)
        else:
            raise TypeError(f"Cannot render {type(node).__name__}")
        return "\n".join(lines)

    # ── Shared ─────────────────────────────────────────────────────

    def _s(self, text: str, tier: Tier = Tier.PLAIN) -> str:
        return self.style(text, tier)

    def _label(self, node_name: str, *, is_root: bool) -> str:
        return self._s(node_name, Tier.ROOT if is_root else Tier.PLAIN)

    def _prefixes(self, prefix: str, *, is_last: bool, is_root: bool) -> tuple[str, str]:
        if is_root:
            return ("", prefix)
        return (prefix + _connector(is_last), prefix + _continuation(is_last))

    # ── Coverage ───────────────────────────────────────────────────

    def _pct(self, pct: int) -> str:
        return self._s(f"{pct}%", coverage_tier(pct))

    def _show_uncovered(self, funcs_pct: int, lines_pct: int) -> bool:
        mode = self.options.uncovered_mode
        if mode is UncoveredMode.ALL:
            return True
        if mode is UncoveredMode.NONE:
            return False
        return funcs_pct < _FULL_COVERAGE or lines_pct < _FULL_COVERAGE

    def _source_file(self, source_file: SourceFile, line_prefix: str) -> str:
        funcs_pct = percentage(source_file.funcs_covered, source_file.funcs_missed)
        lines_pct = percentage(source_file.lines_covered, source_file.lines_missed)
        details = [self._pct(funcs_pct), self._pct(lines_pct)]
        if source_file.uncovered_lines and self._show_uncovered(funcs_pct, lines_pct):
            details.append(self._s(compress_lines(source_file.uncovered_lines), Tier.DETAIL))
        return (
            f"{self._s(line_prefix)}{self._s(source_file.name, Tier.LEAF)} "
            f"{self._s('(')}{self._s(', ').join(details)}{self._s(')')}"
        )

    def _coverage_node(
        self,
        node: CoverageNode,
        prefix: str,
        *,
        is_last: bool,
        is_root: bool,
        out: list[str],
    ) -> None:
        line_prefix, child_prefix = self._prefixes(prefix, is_last=is_last, is_root=is_root)
        funcs_pct = percentage(node.funcs_covered, node.funcs_missed)
        lines_pct = percentage(node.lines_covered, node.lines_missed)
        out.append(
            f"{self._s(line_prefix)}{self._label(node.name, is_root=is_root)} "
            f"{self._s('(')}{self._pct(funcs_pct)}{self._s(', ')}{self._pct(lines_pct)}"
            f"{self._s(')')}"
        )

        files = node.leaves if self.options.include_leaves else []
        children = list(node.children.values())
        for index, source_file in enumerate(files):
            last = index == len(files) - 1 and not children
            out.append(self._source_file(source_file, child_prefix + _connector(last)))

        for index, child in enumerate(children):
            self._coverage_node(
                child,
                child_prefix,
                is_last=index == len(children) - 1,
                is_root=False,
                out=out,
            )

    # ── Outcomes ───────────────────────────────────────────────────

    def _count(self, label: str, value: int, tier: Tier) -> str:
        return f"{self._s(label + ':')}{self._s(str(value), tier if value > 0 else Tier.PLAIN)}"

    def _summary(self, counts: Counts, duration_ms: int) -> str:
        parts = [
            self._count("P", counts.passed, Tier.PASSED),
            self._count("F", counts.failed, Tier.FAILED),
            self._count("S", counts.skipped, Tier.SKIPPED),
            self._s(format_duration(duration_ms)),
        ]
        return f"{self._s('(')}{self._s(', ').join(parts)}{self._s(')')}"

    def _visible_classes(self, node: OutcomeNode) -> list[TestClass]:
        classes = list(node.leaves.values())
        if self.options.failures_only:
            return [c for c in classes if c.counts.failed > 0]
        return classes

    def _visible_children(self, node: OutcomeNode) -> list[OutcomeNode]:
        children = list(node.children.values())
        if self.options.failures_only:
            return [c for c in children if c.counts.failed > 0]
        return children

    def _visible_cases(self, test_class: TestClass) -> Sequence[TestCase]:
        if self.options.failures_only:
            return [c for c in test_class.cases if c.status is CaseStatus.FAILED]
        return test_class.cases

    def _test_cases(self, test_class: TestClass, prefix: str, out: list[str]) -> None:
        cases = self._visible_cases(test_class)
        for index, case in enumerate(cases):
            last = index == len(cases) - 1
            tier = status_tier(case.status)
            out.append(
                f"{self._s(prefix + _connector(last))}"
                f"{self._s(_STATUS_ICONS[case.status], tier)} {self._s(case.name, tier)} "
                f"{self._s('(' + format_duration(case.duration_ms) + ')')}"
            )
            if case.status is CaseStatus.FAILED and case.failure_message:
                message = _first_line(case.failure_message)
                if message:
                    detail_prefix = prefix + _continuation(last)
                    out.append(f"{self._s(detail_prefix + '- ')}{self._s(message, Tier.FAILED)}")

    def _outcome_node(
        self,
        node: OutcomeNode,
        prefix: str,
        *,
        is_last: bool,
        is_root: bool,
        out: list[str],
    ) -> None:
        line_prefix, child_prefix = self._prefixes(prefix, is_last=is_last, is_root=is_root)
        out.append(
            f"{self._s(line_prefix)}{self._label(node.name, is_root=is_root)} "
            f"{self._summary(node.counts, node.duration_ms)}"
        )

        classes = self._visible_classes(node)
        children = self._visible_children(node)
        for index, test_class in enumerate(classes):
            last = index == len(classes) - 1 and not children
            out.append(
                f"{self._s(child_prefix + _connector(last))}{self._s(test_class.name)} "
                f"{self._summary(test_class.counts, test_class.duration_ms)}"
            )
            if self.options.include_leaves:
                self._test_cases(test_class, child_prefix + _continuation(last), out)

        for index, child in enumerate(children):
            self._outcome_node(
                child,
                child_prefix,
                is_last=index == len(children) - 1,
                is_root=False,
                out=out,
            )


def render(
    node: CoverageNode | OutcomeNode,
    options: RenderOptions | None = None,
    *,
    style: Style | None = None,
) -> str:
    """Render a coverage or outcome tree as indented text.

    Args:
        node: An aggregated root (or any subtree).
        options: Filtering/verbosity switches. Defaults to :class:`RenderOptions`.
        style: Maps ``(text, tier)`` to presentation. Defaults to plain text.
    """
    return TreeRenderer(options, style).render(node)
