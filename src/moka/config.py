"""Configuration parsing from ``.moka.yml`` (or the legacy ``.mokarc.json``)."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from moka.tree.render import UncoveredMode

logger = logging.getLogger(__name__)

CONFIG_FILE = ".moka.yml"
LEGACY_CONFIG_FILES = (".mokarc.json", ".mokarc")

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")

_MAX_PERCENTAGE = 100.0

# Legacy camelCase keys -> (section, key)
_LEGACY_KEYS = {
    "gradleCommand": ("gradle", "command"),
    "projectDir": ("project", "dir"),
    "junitResultsDir": ("reports", "junit_results_dir"),
    "coverageReport": ("reports", "coverage_report"),
}


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = _resolve_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _resolve_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _resolve_env_vars(item) if isinstance(item, str) else item for item in value
            ]
        else:
            result[key] = value
    return result


@dataclass
class GradleConfig:
    """Build tool invocation."""

    command: str = ""
    """Gradle command (empty = ``./gradlew`` if present, else ``gradle``)."""

    timeout: float = 1800.0
    """Seconds before a Gradle run is killed."""


@dataclass
class ReportsConfig:
    """Where the build tool writes its reports (relative to the project)."""

    junit_results_dir: str = ""
    """JUnit XML directory (empty = ``build/test-results/test``)."""

    coverage_report: str = ""
    """JaCoCo XML file (empty = auto-detect Gradle/Maven locations)."""


@dataclass
class CoverageConfig:
    """Coverage tree display and thresholds."""

    min_lines: float | None = None
    """Minimum root line coverage percentage (unset = no check)."""

    min_funcs: float | None = None
    """Minimum root function coverage percentage (unset = no check)."""

    uncovered: str = UncoveredMode.AUTO.value
    """Uncovered line ranges: auto, all, or none."""

    show_files: bool = True
    """List source files under their packages."""

    @property
    def uncovered_mode(self) -> UncoveredMode:
        return UncoveredMode.parse(self.uncovered)


@dataclass
class TreeConfig:
    """Test outcome tree display."""

    show: bool = False
    """Print the test tree after a run."""

    include_tests: bool = False
    """List individual test cases under their classes."""

    failures_only: bool = False
    """Only show packages, classes and cases with failures."""


@dataclass
class MokaConfig:
    """Complete moka configuration."""

    project_dir: str
    """Project root directory."""

    gradle: GradleConfig = field(default_factory=GradleConfig)
    reports: ReportsConfig = field(default_factory=ReportsConfig)
    coverage: CoverageConfig = field(default_factory=CoverageConfig)
    tree: TreeConfig = field(default_factory=TreeConfig)

    source: str = ""
    """File the configuration was read from (empty = defaults only)."""

    raw: dict[str, Any] = field(default_factory=dict)
    """Raw parsed data for extension/debugging."""


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {})
    return value if isinstance(value, dict) else {}


def _optional_float(value: object, key: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(str(value))
    except ValueError:
        logger.warning("Ignoring non-numeric %s: %r", key, value)
        return None


def _bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _read_yaml(path: Path) -> dict[str, Any] | None:
    try:
        parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (yaml.YAMLError, OSError) as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        return None
    return parsed if isinstance(parsed, dict) else {}


def _read_legacy(path: Path) -> dict[str, Any] | None:
    """Read a legacy JSON rc file and map its camelCase keys onto sections."""
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring malformed config %s: %s", path, e)
        return None
    if not isinstance(parsed, dict):
        return {}

    raw: dict[str, Any] = {}
    for legacy_key, (section, key) in _LEGACY_KEYS.items():
        if legacy_key in parsed:
            raw.setdefault(section, {})[key] = parsed[legacy_key]
    return raw


def _find_raw(root_path: Path) -> tuple[dict[str, Any], str]:
    moka_yml = root_path / CONFIG_FILE
    if moka_yml.is_file():
        raw = _read_yaml(moka_yml)
        if raw is not None:
            return (raw, str(moka_yml))
    for name in LEGACY_CONFIG_FILES:
        path = root_path / name
        if path.is_file():
            raw = _read_legacy(path)
            if raw is not None:
                return (raw, str(path))
    return ({}, "")


def load_config(root: str | Path) -> MokaConfig:
    """Load and parse the moka configuration for a project.

    ``.moka.yml`` wins over the legacy ``.mokarc.json``/``.mokarc`` files.
    Unreadable files are logged and skipped, so the result always falls back
    to defaults.
    """
    root_path = Path(root).resolve()
    raw, source = _find_raw(root_path)
    raw = _resolve_dict(raw)

    project_raw = _section(raw, "project")
    gradle_raw = _section(raw, "gradle")
    reports_raw = _section(raw, "reports")
    coverage_raw = _section(raw, "coverage")
    tree_raw = _section(raw, "tree")

    gradle = GradleConfig(
        command=str(gradle_raw.get("command") or ""),
        timeout=_optional_float(gradle_raw.get("timeout"), "gradle.timeout") or 1800.0,
    )
    reports = ReportsConfig(
        junit_results_dir=str(reports_raw.get("junit_results_dir") or ""),
        coverage_report=str(reports_raw.get("coverage_report") or ""),
    )
    coverage = CoverageConfig(
        min_lines=_optional_float(coverage_raw.get("min_lines"), "coverage.min_lines"),
        min_funcs=_optional_float(coverage_raw.get("min_funcs"), "coverage.min_funcs"),
        uncovered=str(coverage_raw.get("uncovered") or UncoveredMode.AUTO.value),
        show_files=_bool(coverage_raw.get("show_files"), default=True),
    )
    tree = TreeConfig(
        show=_bool(tree_raw.get("show"), default=False),
        include_tests=_bool(tree_raw.get("include_tests"), default=False),
        failures_only=_bool(tree_raw.get("failures_only"), default=False),
    )

    project_dir = project_raw.get("dir")
    return MokaConfig(
        project_dir=str(root_path / project_dir) if project_dir else str(root_path),
        gradle=gradle,
        reports=reports,
        coverage=coverage,
        tree=tree,
        source=source,
        raw=raw,
    )


def _validate_coverage_config(coverage: CoverageConfig) -> list[str]:
    """Validate coverage threshold settings."""
    errors: list[str] = []

    for key, value in (("min_lines", coverage.min_lines), ("min_funcs", coverage.min_funcs)):
        if value is not None and not 0.0 <= value <= _MAX_PERCENTAGE:
            errors.append(f"coverage.{key} must be between 0 and 100 (got: {value})")

    known = {mode.value for mode in UncoveredMode}
    if coverage.uncovered.strip().lower() not in known:
        errors.append(
            f"coverage.uncovered must be one of {', '.join(sorted(known))} "
            f"(got: {coverage.uncovered})"
        )

    return errors


def validate_config(config: MokaConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid.
    """
    errors: list[str] = []

    if not config.project_dir:
        errors.append("project.dir is required")

    if config.gradle.timeout <= 0:
        errors.append(f"gradle.timeout must be positive (got: {config.gradle.timeout})")

    errors.extend(_validate_coverage_config(config.coverage))
    return errors
