"""JUnit/Surefire XML adapter for Gradle test results.

Reads every ``*.xml`` file of a results directory (Gradle writes
``build/test-results/test/TEST-*.xml``), decodes ``<testcase>`` elements into
plain entries for the record normalizer, and sums suite attributes for the
run summary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from defusedxml import ElementTree
from defusedxml.ElementTree import ParseError as DefusedParseError

from moka.tree.builder import build_outcome_tree
from moka.tree.normalize import normalize_test_cases
from moka.utils.gradle import DEFAULT_GRADLE_TIMEOUT, gradle_args, run_gradle

if TYPE_CHECKING:
    from collections.abc import Sequence
    from xml.etree.ElementTree import Element as XmlElement

    from moka.models.test_result import OutcomeNode
    from moka.utils.subprocess_runner import SubprocessResult

logger = logging.getLogger(__name__)

DEFAULT_RESULTS_DIR = Path("build") / "test-results" / "test"

TEST_TASK = "test"


@dataclass
class JUnitSummary:
    """Totals read from ``<testsuite>`` attributes."""

    tests: int = 0
    failures: int = 0
    errors: int = 0
    skipped: int = 0

    @property
    def passed(self) -> int:
        return max(0, self.tests - self.failures - self.errors - self.skipped)

    @property
    def ok(self) -> bool:
        return self.failures == 0 and self.errors == 0

    def add(self, other: JUnitSummary) -> None:
        self.tests += other.tests
        self.failures += other.failures
        self.errors += other.errors
        self.skipped += other.skipped


def _int_attr(element: XmlElement, key: str, default: int = 0) -> int:
    value = element.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _suites(root: XmlElement) -> list[XmlElement]:
    if root.tag == "testsuite":
        return [root]
    if root.tag == "testsuites":
        return root.findall("testsuite")
    return []


def _failure(element: XmlElement | None) -> dict[str, str | None] | None:
    if element is None:
        return None
    text = (element.text or "").strip()
    return {
        "message": element.get("message"),
        "type": element.get("type"),
        "text": text or None,
    }


def _decode_testcase(suite_name: str | None, testcase: XmlElement) -> dict[str, Any]:
    return {
        "name": testcase.get("name"),
        "classname": testcase.get("classname"),
        "suite": suite_name,
        "time": testcase.get("time"),
        "failure": _failure(testcase.find("failure")),
        "error": _failure(testcase.find("error")),
        "skipped": testcase.find("skipped") is not None,
        "status": testcase.get("status"),
    }


def _read_xml(path: Path) -> XmlElement | None:
    try:
        return ElementTree.parse(path).getroot()
    except (DefusedParseError, OSError) as e:
        logger.warning("Skipping unreadable JUnit XML %s: %s", path, e)
        return None


def result_files(results_dir: Path) -> list[Path]:
    """Return the XML files directly inside *results_dir*, sorted by name."""
    return sorted(p for p in results_dir.glob("*.xml") if p.is_file())


def decode_junit_file(path: Path) -> list[dict[str, Any]]:
    """Decode all test cases of one JUnit XML file (empty if unreadable)."""
    root = _read_xml(path)
    if root is None:
        return []
    entries: list[dict[str, Any]] = []
    for suite in _suites(root):
        suite_name = suite.get("name")
        entries.extend(_decode_testcase(suite_name, tc) for tc in suite.findall("testcase"))
    return entries


def decode_junit_dir(results_dir: Path) -> list[dict[str, Any]] | None:
    """Decode every JUnit XML file in *results_dir*.

    Returns:
        Decoded test case entries, or ``None`` if the directory does not exist.
    """
    if not results_dir.is_dir():
        return None
    entries: list[dict[str, Any]] = []
    for path in result_files(results_dir):
        entries.extend(decode_junit_file(path))
    return entries


def load_outcome_tree(results_dir: Path) -> OutcomeNode | None:
    """Build the aggregated test outcome tree for a results directory."""
    entries = decode_junit_dir(results_dir)
    if entries is None:
        return None
    return build_outcome_tree(normalize_test_cases(entries))


def _suite_summary(suite: XmlElement) -> JUnitSummary:
    return JUnitSummary(
        tests=_int_attr(suite, "tests"),
        failures=_int_attr(suite, "failures"),
        errors=_int_attr(suite, "errors"),
        skipped=_int_attr(suite, "skipped") or _int_attr(suite, "ignored"),
    )


def parse_junit_dir(results_dir: Path) -> JUnitSummary | None:
    """Sum ``tests``/``failures``/``errors``/``skipped`` over all suites.

    Returns:
        The totals, or ``None`` if the directory does not exist.
    """
    if not results_dir.is_dir():
        return None
    total = JUnitSummary()
    for path in result_files(results_dir):
        root = _read_xml(path)
        if root is None:
            continue
        if root.tag == "testsuite" and root.get("tests") is None:
            continue
        for suite in _suites(root):
            total.add(_suite_summary(suite))
    return total


class JUnitAdapter:
    """Runs Gradle's ``test`` task and reads its JUnit XML results."""

    @property
    def name(self) -> str:
        return "junit"

    def results_dir(self, project_path: Path, configured: str | None = None) -> Path:
        """Return the results directory, honoring a configured relative path."""
        if configured:
            return project_path / configured
        return project_path / DEFAULT_RESULTS_DIR

    async def run_tests(
        self,
        project_path: Path,
        gradle_command: str,
        *,
        patterns: Sequence[str] = (),
        verbose: bool = False,
        timeout: float = DEFAULT_GRADLE_TIMEOUT,
    ) -> SubprocessResult:
        """Run ``gradle test`` with optional ``--tests`` filters."""
        return await run_gradle(
            gradle_command,
            gradle_args(TEST_TASK, patterns=patterns, verbose=verbose),
            project_path=project_path,
            verbose=verbose,
            timeout=timeout,
        )
