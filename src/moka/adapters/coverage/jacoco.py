"""JaCoCo coverage adapter for Gradle and Maven projects.

Decodes JaCoCo XML reports into plain per-source-file entries for the record
normalizer, and builds the coverage tree from them. Report generation runs
Gradle's ``jacocoTestReport`` task.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from defusedxml import ElementTree
from defusedxml.ElementTree import ParseError as DefusedParseError

from moka.tree.builder import build_coverage_tree
from moka.tree.normalize import normalize_source_files
from moka.utils.gradle import DEFAULT_GRADLE_TIMEOUT, gradle_args, run_gradle

if TYPE_CHECKING:
    from xml.etree.ElementTree import Element as XmlElement

    from moka.models.coverage import CoverageNode
    from moka.utils.subprocess_runner import SubprocessResult

logger = logging.getLogger(__name__)

# Gradle first, then Maven; the first Gradle path is the fallback.
_JACOCO_PATHS = (
    "build/reports/jacoco/test/jacocoTestReport.xml",
    "build/reports/jacoco/jacocoTestReport.xml",
    "target/site/jacoco/jacoco.xml",
)

_COUNTER_KINDS = ("LINE", "METHOD")
_LINE_ATTRS = ("nr", "mi", "ci", "mb", "cb")

REPORT_TASK = "jacocoTestReport"


def detect_default_coverage_path(project_path: Path) -> Path:
    """Return the first existing JaCoCo report under *project_path*.

    Falls back to the Gradle default location when none exists yet.
    """
    for candidate in _JACOCO_PATHS:
        path = project_path / candidate
        if path.is_file():
            return path
    return project_path / _JACOCO_PATHS[0]


def _counters(element: XmlElement) -> dict[str, dict[str, str | None]]:
    counters: dict[str, dict[str, str | None]] = {}
    for counter in element.findall("counter"):
        kind = counter.get("type", "")
        if kind in _COUNTER_KINDS:
            counters[kind] = {"covered": counter.get("covered"), "missed": counter.get("missed")}
    return counters


def _decode_sourcefile(package_name: str, sourcefile: XmlElement) -> dict[str, Any]:
    return {
        "package": package_name,
        "name": sourcefile.get("name") or "unknown",
        "counters": _counters(sourcefile),
        "lines": [
            {attr: line.get(attr) for attr in _LINE_ATTRS} for line in sourcefile.findall("line")
        ],
    }


def _sum_counter(total: dict[str, int], counter: dict[str, str | None]) -> None:
    for key in ("covered", "missed"):
        try:
            total[key] += int(counter.get(key) or 0)
        except ValueError:
            logger.debug("Ignoring non-numeric class counter %s=%r", key, counter.get(key))


def _decode_classes(package_name: str, package: XmlElement) -> list[dict[str, Any]]:
    """Group ``<class>`` counters by source file for reports without ``<sourcefile>``."""
    grouped: dict[str, dict[str, dict[str, int]]] = {}
    for class_elem in package.findall("class"):
        source_name = class_elem.get("sourcefilename") or "unknown"
        totals = grouped.setdefault(
            source_name, {kind: {"covered": 0, "missed": 0} for kind in _COUNTER_KINDS}
        )
        for kind, counter in _counters(class_elem).items():
            _sum_counter(totals[kind], counter)

    return [
        {
            "package": package_name,
            "name": source_name,
            "counters": {
                kind: {key: str(value) for key, value in counter.items()}
                for kind, counter in totals.items()
            },
            "lines": [],
        }
        for source_name, totals in grouped.items()
    ]


def decode_report(root: XmlElement) -> list[dict[str, Any]]:
    """Decode a parsed ``<report>`` element into per-source-file entries."""
    entries: list[dict[str, Any]] = []
    for package in root.iter("package"):
        package_name = package.get("name", "")
        sourcefiles = package.findall("sourcefile")
        if sourcefiles:
            entries.extend(_decode_sourcefile(package_name, sf) for sf in sourcefiles)
        else:
            entries.extend(_decode_classes(package_name, package))
    return entries


def _read_report(coverage_file: Path) -> XmlElement | None:
    if not coverage_file.is_file():
        logger.info("JaCoCo report not found: %s", coverage_file)
        return None
    try:
        tree = ElementTree.parse(coverage_file)
    except (DefusedParseError, OSError) as e:
        logger.error("Failed to parse JaCoCo XML %s: %s", coverage_file, e)
        return None

    root = tree.getroot()
    if root.tag != "report":
        logger.warning("JaCoCo XML root is not <report>: %s", root.tag)
        return None
    return root


def decode_jacoco_xml(coverage_file: Path) -> list[dict[str, Any]] | None:
    """Read and decode a JaCoCo XML file.

    Returns:
        Decoded entries, or ``None`` when the file is missing or unreadable.
    """
    root = _read_report(coverage_file)
    if root is None:
        return None
    return decode_report(root)


def load_coverage_tree(coverage_file: Path) -> CoverageNode | None:
    """Build the aggregated coverage tree for a JaCoCo report.

    Returns:
        The tree, or ``None`` if the report is missing, unreadable, or has no
        packages.
    """
    root = _read_report(coverage_file)
    if root is None:
        return None
    if next(root.iter("package"), None) is None:
        logger.warning("JaCoCo report has no packages: %s", coverage_file)
        return None
    records = normalize_source_files(decode_report(root))
    return build_coverage_tree(records, separator="/")


class JaCoCoAdapter:
    """JaCoCo coverage adapter for Gradle projects (Maven reports are read only)."""

    @property
    def name(self) -> str:
        return "jacoco"

    def detect(self, project_path: Path) -> bool:
        """Return True if JaCoCo is configured (Gradle/Maven) or a report exists."""
        for build_file in ("build.gradle", "build.gradle.kts", "pom.xml"):
            path = project_path / build_file
            if path.is_file():
                try:
                    if "jacoco" in path.read_text(encoding="utf-8", errors="replace").lower():
                        return True
                except OSError:
                    pass
        return any((project_path / p).is_file() for p in _JACOCO_PATHS)

    async def generate_report(
        self,
        project_path: Path,
        gradle_command: str,
        *,
        verbose: bool = False,
        timeout: float = DEFAULT_GRADLE_TIMEOUT,
    ) -> SubprocessResult:
        """Run ``jacocoTestReport`` with Gradle."""
        return await run_gradle(
            gradle_command,
            gradle_args(REPORT_TASK, verbose=verbose),
            project_path=project_path,
            verbose=verbose,
            timeout=timeout,
        )

    def parse_coverage_file(self, coverage_file: Path | str) -> CoverageNode | None:
        """Parse a JaCoCo XML report into an aggregated coverage tree."""
        return load_coverage_tree(Path(coverage_file))
