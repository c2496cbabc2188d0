"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from contextlib import AbstractContextManager, nullcontext
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape

from moka.tree.render import RenderOptions, Tier, format_duration, render

if TYPE_CHECKING:
    from collections.abc import Sequence

    from moka.adapters.unit.junit import JUnitSummary
    from moka.models.coverage import CoverageNode
    from moka.models.test_result import OutcomeNode
    from moka.tree.thresholds import ThresholdResult

console = Console()

_TIER_STYLES = {
    Tier.HIGH: "green",
    Tier.MEDIUM: "yellow",
    Tier.LOW: "red",
    Tier.PASSED: "green",
    Tier.FAILED: "red",
    Tier.SKIPPED: "yellow",
    Tier.ROOT: "bold",
    Tier.LEAF: "cyan",
    Tier.DETAIL: "dim",
    Tier.PLAIN: "",
}

COVERAGE_LEGEND = "(Funcs%, Lines%, Uncovered lines)"
TESTS_LEGEND = "(P,F,S, time)"


def rich_style(text: str, tier: Tier) -> str:
    """Render-style callable that wraps *text* in Rich markup for its tier."""
    escaped = escape(text)
    style = _TIER_STYLES.get(tier, "")
    if not style or not text:
        return escaped
    return f"[{style}]{escaped}[/{style}]"


class CLIReporter:
    """Rich terminal output for test runs, outcome trees and coverage trees."""

    def __init__(self) -> None:
        """Initialize the CLI reporter."""
        self.console = console

    def print_header(self, title: str) -> None:
        """Print a bold header."""
        self.console.print(f"\n[bold cyan]{escape(title)}[/bold cyan]\n")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[red]✗[/red] {escape(message)}")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self.console.print(f"[yellow]⚠[/yellow] {escape(message)}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[dim]{escape(message)}[/dim]")

    def create_status(self, message: str, *, enabled: bool = True) -> AbstractContextManager[Any]:
        """Create a Rich Status spinner, or a no-op context off-terminal."""
        if not enabled or not self.console.is_terminal:
            return nullcontext()
        return self.console.status(message)

    def _print_markup_lines(self, text: str) -> None:
        for line in text.splitlines():
            self.console.print(line, highlight=False, emoji=False, soft_wrap=True)

    # ── Trees ──────────────────────────────────────────────────────

    def print_coverage_tree(self, node: CoverageNode, options: RenderOptions | None = None) -> None:
        """Print the coverage tree preceded by its legend."""
        self.console.print(
            f"\n[bold]Coverage[/bold] [dim]{escape(COVERAGE_LEGEND)}[/dim]", highlight=False
        )
        self.console.print(
            f"[dim]{rich_style('High ≥ 80%', Tier.HIGH)}, "
            f"{rich_style('Medium 50-79%', Tier.MEDIUM)}, "
            f"{rich_style('Low < 50%', Tier.LOW)}[/dim]\n",
            highlight=False,
        )
        self._print_markup_lines(render(node, options, style=rich_style))

    def print_test_tree(self, node: OutcomeNode, options: RenderOptions | None = None) -> None:
        """Print the test outcome tree preceded by its legend."""
        self.console.print(
            f"\n[bold]Tests[/bold] [dim]{escape(TESTS_LEGEND)}[/dim]\n", highlight=False
        )
        if options is not None and options.failures_only and node.counts.failed == 0:
            self.print_success("No failing tests")
            return
        self._print_markup_lines(render(node, options, style=rich_style))

    # ── Run summaries ──────────────────────────────────────────────

    def print_command(self, command: str, args: Sequence[str]) -> None:
        """Echo the build command line before it runs."""
        line = escape(" ".join([command, *args]))
        self.console.print(f"[dim]$ {line}[/dim]\n", highlight=False, soft_wrap=True)

    def print_junit_summary(
        self,
        summary: JUnitSummary | None,
        *,
        returncode: int,
        duration_ms: float = 0.0,
    ) -> bool:
        """Print suite totals, the run duration and the overall build verdict.

        The build only counts as successful when the build tool exited with 0
        and the results record no failures or errors.

        Returns:
            True if the verdict was ``BUILD SUCCESSFUL``.
        """
        duration = escape(format_duration(round(duration_ms)))
        ok = returncode == 0 and (summary is None or summary.ok)
        if summary is None:
            verdict = "[bold green]SUCCESS[/bold green]" if ok else "[bold red]FAILED[/bold red]"
            self.console.print(f"\n{verdict} [dim]({duration})[/dim]", highlight=False)
            if not ok:
                self.console.print("[red]Some tests failed.[/red]")
            return ok

        parts = [f"[bold]{summary.tests}[/bold] tests", f"[green]{summary.passed} passed[/green]"]
        if summary.failures:
            parts.append(f"[red]{summary.failures} failed[/red]")
        if summary.errors:
            parts.append(f"[red]{summary.errors} errors[/red]")
        if summary.skipped:
            parts.append(f"[yellow]{summary.skipped} skipped[/yellow]")
        self.console.print(
            f"\n  {'  ·  '.join(parts)}   [dim]{duration}[/dim]",
            highlight=False,
        )
        if ok:
            self.console.print("[bold green]BUILD SUCCESSFUL[/bold green]")
        else:
            self.console.print("[bold red]BUILD FAILED[/bold red]")
        return ok

    def print_threshold_result(self, result: ThresholdResult) -> None:
        """Print one line per threshold failure, or a success line."""
        if result.passed:
            self.print_success(
                f"Coverage thresholds met (lines {result.lines_pct}%, funcs {result.funcs_pct}%)"
            )
            return
        for failure in result.failures:
            self.print_error(failure.describe())


# Singleton instance for easy import
reporter = CLIReporter()
