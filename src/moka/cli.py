"""moka CLI: run Gradle tests and print outcome and coverage trees."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler

from moka import __version__
from moka.adapters.coverage.jacoco import JaCoCoAdapter, detect_default_coverage_path
from moka.adapters.unit.junit import TEST_TASK, JUnitAdapter, load_outcome_tree, parse_junit_dir
from moka.config import MokaConfig, load_config, validate_config
from moka.reporters.terminal import reporter
from moka.tree.render import RenderOptions, UncoveredMode
from moka.tree.thresholds import ThresholdResult, evaluate_thresholds, final_exit_code
from moka.utils.gradle import detect_gradle_command, gradle_args
from moka.utils.subprocess_runner import SubprocessError, SubprocessResult

logger = logging.getLogger(__name__)

MISSING_REPORT_EXIT_CODE = 1

_MIN_PERCENT = 0.0
_MAX_PERCENT = 100.0


def _configure_logging(*, verbose: bool) -> None:
    """Route ``moka`` loggers through a RichHandler on stderr."""
    moka_logger = logging.getLogger("moka")
    for handler in list(moka_logger.handlers):
        if isinstance(handler, RichHandler):
            moka_logger.removeHandler(handler)

    handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=verbose)
    handler.setFormatter(logging.Formatter("%(message)s"))
    moka_logger.addHandler(handler)
    moka_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@dataclass
class _Settings:
    """Effective options: CLI values layered over the project configuration."""

    project_path: Path
    gradle_command: str
    timeout: float
    verbose: bool
    spinner: bool
    min_lines: float | None
    min_funcs: float | None
    uncovered_mode: UncoveredMode
    config: MokaConfig


def _valid_threshold(value: float | None, key: str) -> float | None:
    if value is None:
        return None
    if not _MIN_PERCENT <= value <= _MAX_PERCENT:
        reporter.print_warning(f"Ignoring coverage.{key}={value:g}: must be between 0 and 100")
        return None
    return value


def _resolve_settings(kwargs: dict[str, Any]) -> _Settings:
    verbose = bool(kwargs.get("verbose"))
    _configure_logging(verbose=verbose)

    config = load_config(kwargs.get("cwd") or ".")
    if config.source:
        logger.debug("Loaded configuration from %s", config.source)
    for error in validate_config(config):
        reporter.print_warning(f"Config: {error}")

    project_path = Path(config.project_dir)
    if not project_path.is_dir():
        raise click.UsageError(f"Project directory does not exist: {project_path}")

    gradle_command = (
        kwargs.get("gradle") or config.gradle.command or detect_gradle_command(project_path)
    )
    min_lines = kwargs.get("min_lines")
    min_funcs = kwargs.get("min_funcs")
    uncovered = kwargs.get("uncovered")

    return _Settings(
        project_path=project_path,
        gradle_command=gradle_command,
        timeout=config.gradle.timeout if config.gradle.timeout > 0 else 1800.0,
        verbose=verbose,
        spinner=not kwargs.get("no_spinner") and not verbose,
        min_lines=(
            min_lines
            if min_lines is not None
            else _valid_threshold(config.coverage.min_lines, "min_lines")
        ),
        min_funcs=(
            min_funcs
            if min_funcs is not None
            else _valid_threshold(config.coverage.min_funcs, "min_funcs")
        ),
        uncovered_mode=(
            UncoveredMode.parse(uncovered) if uncovered else config.coverage.uncovered_mode
        ),
        config=config,
    )


def _run_gradle_step(
    settings: _Settings, message: str, step: Coroutine[Any, Any, SubprocessResult]
) -> SubprocessResult:
    """Run one Gradle coroutine under the spinner and report launch failures."""
    try:
        with reporter.create_status(message, enabled=settings.spinner):
            result: SubprocessResult = asyncio.run(step)
    except SubprocessError as e:
        reporter.print_error(str(e))
        return e.result

    if result.timed_out:
        reporter.print_error(f"Gradle timed out after {settings.timeout:g}s")
    return result


def _show_coverage(
    settings: _Settings,
    report: str | None,
    *,
    generate: bool,
    show_files: bool,
) -> tuple[int, ThresholdResult | None]:
    """Generate (if asked or missing), render and evaluate the coverage report.

    Returns:
        ``(missing_report_code, threshold_result)``; the code is non-zero only
        when no usable report could be read.
    """
    adapter = JaCoCoAdapter()
    project_path = settings.project_path
    configured = report or settings.config.reports.coverage_report

    def _report_path() -> Path:
        if configured:
            return project_path / configured
        return detect_default_coverage_path(project_path)

    coverage_file = _report_path()
    if generate or not coverage_file.is_file():
        if not adapter.detect(project_path):
            reporter.print_warning(
                f"JaCoCo is not configured in {project_path.name}; "
                "add the jacoco plugin to the build so jacocoTestReport exists"
            )
        result = _run_gradle_step(
            settings,
            "Generating JaCoCo report...",
            adapter.generate_report(
                project_path,
                settings.gradle_command,
                verbose=settings.verbose,
                timeout=settings.timeout,
            ),
        )
        if not result.success:
            reporter.print_warning("jacocoTestReport did not complete successfully")
        coverage_file = _report_path()

    tree = adapter.parse_coverage_file(coverage_file)
    if tree is None:
        reporter.print_error(f"No usable JaCoCo report at {coverage_file}")
        return (MISSING_REPORT_EXIT_CODE, None)

    options = RenderOptions.from_values(
        include_leaves=show_files, uncovered_mode=settings.uncovered_mode
    )
    reporter.print_coverage_tree(tree, options)

    if settings.min_lines is None and settings.min_funcs is None:
        return (0, None)

    threshold = evaluate_thresholds(tree, min_lines=settings.min_lines, min_funcs=settings.min_funcs)
    reporter.console.print()
    reporter.print_threshold_result(threshold)
    return (0, threshold)


_COMMON_OPTIONS: list[Callable[[Any], Any]] = [
    click.option(
        "--min-lines",
        type=click.FloatRange(_MIN_PERCENT, _MAX_PERCENT),
        default=None,
        help="Fail (exit 2) when root line coverage is below this percentage.",
    ),
    click.option(
        "--min-funcs",
        type=click.FloatRange(_MIN_PERCENT, _MAX_PERCENT),
        default=None,
        help="Fail (exit 2) when root function coverage is below this percentage.",
    ),
    click.option(
        "--uncovered",
        type=click.Choice([mode.value for mode in UncoveredMode], case_sensitive=False),
        default=None,
        help="When to list uncovered line ranges (default: auto).",
    ),
    click.option("--gradle", type=str, default=None, help="Gradle command to run."),
    click.option(
        "--cwd",
        default=".",
        type=click.Path(exists=True, file_okay=False, resolve_path=True),
        help="Project root directory.",
    ),
    click.option("--verbose", is_flag=True, help="Stream Gradle output and log debug details."),
    click.option("--no-spinner", is_flag=True, help="Disable the progress spinner."),
]


def _common_options(func: Callable[..., Any]) -> Callable[..., Any]:
    for option in reversed(_COMMON_OPTIONS):
        func = option(func)
    return func


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="moka")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """moka: Gradle test runner with test outcome and coverage trees.

    Without a subcommand, runs `moka test`.
    """
    ctx.ensure_object(dict)
    if ctx.invoked_subcommand is None:
        ctx.invoke(test)


@cli.command()
@click.argument("patterns", nargs=-1)
@click.option(
    "--tree/--no-tree",
    default=None,
    help="Print the test outcome tree (per package and class).",
)
@click.option("--tests", "show_tests", is_flag=True, help="Include individual test cases.")
@click.option("--failures-only", is_flag=True, help="Only show failing packages and tests.")
@click.option("--coverage", "with_coverage", is_flag=True, help="Print the coverage tree too.")
@_common_options
@click.pass_context
def test(ctx: click.Context, **kwargs: Any) -> None:
    """Run Gradle tests, optionally filtered by PATTERNS (`--tests` filters)."""
    settings = _resolve_settings(kwargs)
    tree_config = settings.config.tree
    patterns: tuple[str, ...] = kwargs.get("patterns") or ()
    show_tests = bool(kwargs.get("show_tests")) or tree_config.include_tests
    failures_only = bool(kwargs.get("failures_only")) or tree_config.failures_only
    show_tree = kwargs.get("tree")
    if show_tree is None:
        show_tree = tree_config.show or show_tests or failures_only

    reporter.print_header("moka test")
    reporter.print_info(f"project: {settings.project_path}")
    reporter.print_info(f"gradle:  {settings.gradle_command}")
    reporter.print_command(
        settings.gradle_command,
        gradle_args(TEST_TASK, patterns=patterns, verbose=settings.verbose),
    )

    adapter = JUnitAdapter()
    results_dir = adapter.results_dir(
        settings.project_path, settings.config.reports.junit_results_dir
    )
    result = _run_gradle_step(
        settings,
        "Running tests...",
        adapter.run_tests(
            settings.project_path,
            settings.gradle_command,
            patterns=patterns,
            verbose=settings.verbose,
            timeout=settings.timeout,
        ),
    )

    summary = parse_junit_dir(results_dir)
    if summary is None:
        reporter.print_warning(f"No JUnit results found in {results_dir}")
    reporter.print_junit_summary(
        summary, returncode=result.returncode, duration_ms=result.duration_ms
    )

    if show_tree:
        outcome_tree = load_outcome_tree(results_dir)
        if outcome_tree is not None:
            reporter.print_test_tree(
                outcome_tree,
                RenderOptions.from_values(include_leaves=show_tests, failures_only=failures_only),
            )

    missing_code = 0
    threshold: ThresholdResult | None = None
    if kwargs.get("with_coverage"):
        missing_code, threshold = _show_coverage(
            settings,
            None,
            generate=True,
            show_files=settings.config.coverage.show_files,
        )

    ctx.exit(max(final_exit_code(result.returncode, threshold), missing_code))


@cli.command()
@click.argument("report", required=False, type=click.Path(dir_okay=False))
@click.option("--run", "run_report", is_flag=True, help="Run jacocoTestReport before reading.")
@click.option(
    "--files/--no-files",
    default=None,
    help="List source files under their packages.",
)
@_common_options
@click.pass_context
def coverage(ctx: click.Context, **kwargs: Any) -> None:
    """Print the JaCoCo coverage tree and check coverage thresholds.

    REPORT defaults to the configured report, then the Gradle and Maven
    default locations.
    """
    settings = _resolve_settings(kwargs)
    show_files = kwargs.get("files")
    if show_files is None:
        show_files = settings.config.coverage.show_files

    reporter.print_header("moka coverage")
    missing_code, threshold = _show_coverage(
        settings,
        kwargs.get("report"),
        generate=bool(kwargs.get("run_report")),
        show_files=show_files,
    )
    ctx.exit(max(final_exit_code(0, threshold), missing_code))
