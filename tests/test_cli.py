"""Tests for the moka CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
import yaml
from click.testing import CliRunner

from moka import __version__
from moka.cli import cli
from moka.utils.subprocess_runner import SubprocessError, SubprocessResult

_JUNIT_PASS = """\
<?xml version="1.0" encoding="UTF-8"?>
<testsuite name="com.example.CalcTest" tests="2" failures="0" errors="0" skipped="0">
  <testcase classname="com.example.CalcTest" name="adds" time="0.004"/>
  <testcase classname="com.example.CalcTest" name="subtracts" time="0.002"/>
</testsuite>
"""

_JUNIT_FAIL = """\
<?xml version="1.0" encoding="UTF-8"?>
<testsuite name="com.example.io.ReaderTest" tests="2" failures="1" errors="0" skipped="0">
  <testcase classname="com.example.io.ReaderTest" name="reads" time="0.010"/>
  <testcase classname="com.example.io.ReaderTest" name="rejectsEmpty" time="0.020">
    <failure message="expected exception" type="java.lang.AssertionError">trace</failure>
  </testcase>
</testsuite>
"""

_JACOCO = """\
<?xml version="1.0" encoding="UTF-8"?>
<report name="demo">
  <package name="com/example">
    <sourcefile name="Calc.java">
      <line nr="7" mi="2" ci="0" mb="0" cb="0"/>
      <line nr="8" mi="1" ci="0" mb="0" cb="0"/>
      <counter type="LINE" missed="2" covered="8"/>
      <counter type="METHOD" missed="1" covered="3"/>
    </sourcefile>
  </package>
</report>
"""

_REPORT = "build/reports/jacoco/test/jacocoTestReport.xml"
_RESULTS = "build/test-results/test"


def _write_file(root: Path, rel: str, content: str) -> Path:
    f = root / rel
    f.parent.mkdir(parents=True, exist_ok=True)
    f.write_text(content, encoding="utf-8")
    return f


def _result(returncode: int = 0) -> SubprocessResult:
    return SubprocessResult(
        returncode=returncode, stdout="", stderr="", success=returncode == 0
    )


@pytest.fixture
def project(tmp_path: Path) -> Path:
    _write_file(tmp_path, f"{_RESULTS}/TEST-com.example.CalcTest.xml", _JUNIT_PASS)
    _write_file(tmp_path, _REPORT, _JACOCO)
    return tmp_path


@pytest.fixture
def gradle_test() -> Any:
    with patch("moka.adapters.unit.junit.run_gradle", new=AsyncMock(return_value=_result())) as m:
        yield m


@pytest.fixture
def gradle_report() -> Any:
    with patch(
        "moka.adapters.coverage.jacoco.run_gradle", new=AsyncMock(return_value=_result())
    ) as m:
        yield m


def _invoke(*args: str) -> Any:
    return CliRunner().invoke(cli, list(args))


# ── Group ────────────────────────────────────────────────────────


class TestGroup:
    def test_version(self) -> None:
        result = _invoke("--version")
        assert result.exit_code == 0
        assert f"moka, version {__version__}" in result.output

    def test_bare_invocation_runs_tests(
        self, project: Path, gradle_test: AsyncMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(project)
        result = _invoke()
        assert result.exit_code == 0, result.output
        assert "BUILD SUCCESSFUL" in result.output
        gradle_test.assert_awaited_once()


# ── moka test ────────────────────────────────────────────────────


class TestTestCommand:
    def test_successful_run(self, project: Path, gradle_test: AsyncMock) -> None:
        result = _invoke("test", "--cwd", str(project))

        assert result.exit_code == 0, result.output
        assert "2 tests" in result.output
        assert "BUILD SUCCESSFUL" in result.output
        args, kwargs = gradle_test.call_args
        assert args[1] == ["test", "--no-daemon", "--console=plain", "--warning-mode=none", "-q"]
        assert kwargs["project_path"] == project.resolve()

    def test_patterns_become_test_filters(self, project: Path, gradle_test: AsyncMock) -> None:
        result = _invoke("test", "*CalcTest", "com.example.*", "--cwd", str(project))

        assert result.exit_code == 0, result.output
        args = gradle_test.call_args.args[1]
        assert args[-4:] == ["--tests", "*CalcTest", "--tests", "com.example.*"]

    def test_gradle_option_and_wrapper_detection(
        self, project: Path, gradle_test: AsyncMock
    ) -> None:
        _write_file(project, "gradlew", "#!/bin/sh\n")
        _invoke("test", "--cwd", str(project))
        assert gradle_test.call_args.args[0] == str(project.resolve() / "gradlew")

        _invoke("test", "--cwd", str(project), "--gradle", "/opt/gradle/bin/gradle")
        assert gradle_test.call_args.args[0] == "/opt/gradle/bin/gradle"

    def test_failed_run_exits_with_gradle_code(self, project: Path) -> None:
        _write_file(project, f"{_RESULTS}/TEST-com.example.io.ReaderTest.xml", _JUNIT_FAIL)
        with patch(
            "moka.adapters.unit.junit.run_gradle", new=AsyncMock(return_value=_result(1))
        ):
            result = _invoke("test", "--cwd", str(project), "--failures-only", "--tests")

        assert result.exit_code == 1
        assert "BUILD FAILED" in result.output
        assert "(P,F,S, time)" in result.output
        assert "ReaderTest (P:1, F:1, S:0, 30ms)" in result.output
        assert "✗ rejectsEmpty (20ms)" in result.output
        assert "- expected exception" in result.output
        assert "CalcTest" not in result.output.split("(P,F,S, time)")[1]

    def test_recorded_failures_fail_the_verdict(
        self, project: Path, gradle_test: AsyncMock
    ) -> None:
        _write_file(project, f"{_RESULTS}/TEST-com.example.io.ReaderTest.xml", _JUNIT_FAIL)
        result = _invoke("test", "--cwd", str(project))

        assert result.exit_code == 0
        assert "4 tests  ·  3 passed  ·  1 failed" in result.output
        assert "BUILD FAILED" in result.output
        assert "BUILD SUCCESSFUL" not in result.output

    def test_echoes_command_and_duration(self, project: Path) -> None:
        timed = SubprocessResult(
            returncode=0, stdout="", stderr="", success=True, duration_ms=2500
        )
        with patch("moka.adapters.unit.junit.run_gradle", new=AsyncMock(return_value=timed)):
            result = _invoke("test", "Calc*", "--cwd", str(project))

        assert "$ gradle test --no-daemon --console=plain" in result.output
        assert "--tests Calc*" in result.output
        assert "2.50s" in result.output

    def test_tree_shows_all_classes(self, project: Path, gradle_test: AsyncMock) -> None:
        result = _invoke("test", "--cwd", str(project), "--tree")
        assert "All tests (P:2, F:0, S:0, 6ms)" in result.output
        assert "CalcTest (P:2, F:0, S:0, 6ms)" in result.output
        assert "adds" not in result.output

    def test_tests_flag_implies_tree_with_cases(
        self, project: Path, gradle_test: AsyncMock
    ) -> None:
        result = _invoke("test", "--cwd", str(project), "--tests")
        assert "CalcTest (P:2, F:0, S:0, 6ms)" in result.output
        assert "adds (4ms)" in result.output

    def test_missing_results_warns(self, tmp_path: Path, gradle_test: AsyncMock) -> None:
        result = _invoke("test", "--cwd", str(tmp_path))
        assert result.exit_code == 0
        assert "No JUnit results found" in result.output

    def test_missing_gradle(self, project: Path) -> None:
        error = SubprocessError("Command not found: gradle", result=_result(127))
        with patch("moka.adapters.unit.junit.run_gradle", new=AsyncMock(side_effect=error)):
            result = _invoke("test", "--cwd", str(project))

        assert result.exit_code == 127
        assert "Command not found: gradle" in result.output

    def test_coverage_threshold_fails_clean_run(
        self, project: Path, gradle_test: AsyncMock, gradle_report: AsyncMock
    ) -> None:
        result = _invoke("test", "--cwd", str(project), "--coverage", "--min-lines", "90")

        assert result.exit_code == 2
        assert "BUILD SUCCESSFUL" in result.output
        assert "All files (75%, 80%)" in result.output
        assert "Lines coverage 80% < min 90%" in result.output
        gradle_report.assert_awaited_once()
        assert gradle_report.call_args.args[1][0] == "jacocoTestReport"

    def test_coverage_and_thresholds_pass(
        self, project: Path, gradle_test: AsyncMock, gradle_report: AsyncMock
    ) -> None:
        result = _invoke(
            "test", "--cwd", str(project), "--coverage", "--min-lines", "80", "--min-funcs", "75"
        )
        assert result.exit_code == 0, result.output
        assert "Coverage thresholds met" in result.output

    def test_invalid_threshold_rejected(self, project: Path) -> None:
        result = _invoke("test", "--cwd", str(project), "--min-lines", "120")
        assert result.exit_code == 2
        assert "--min-lines" in result.output


# ── moka coverage ────────────────────────────────────────────────


class TestCoverageCommand:
    def test_renders_existing_report(self, project: Path, gradle_report: AsyncMock) -> None:
        result = _invoke("coverage", "--cwd", str(project))

        assert result.exit_code == 0, result.output
        assert "(Funcs%, Lines%, Uncovered lines)" in result.output
        assert "Calc.java (75%, 80%, 7-8)" in result.output
        gradle_report.assert_not_awaited()

    def test_explicit_report_path(self, project: Path, gradle_report: AsyncMock) -> None:
        _write_file(project, "custom/jacoco.xml", _JACOCO)
        (project / _REPORT).unlink()
        result = _invoke("coverage", "custom/jacoco.xml", "--cwd", str(project))

        assert result.exit_code == 0, result.output
        assert "Calc.java" in result.output
        gradle_report.assert_not_awaited()

    def test_no_files_and_uncovered_none(self, project: Path, gradle_report: AsyncMock) -> None:
        result = _invoke("coverage", "--cwd", str(project), "--no-files")
        assert "Calc.java" not in result.output
        assert "example (75%, 80%)" in result.output

        result = _invoke("coverage", "--cwd", str(project), "--uncovered", "none")
        assert "Calc.java (75%, 80%)" in result.output
        assert "7-8" not in result.output

    def test_run_generates_report(self, project: Path, gradle_report: AsyncMock) -> None:
        result = _invoke("coverage", "--cwd", str(project), "--run")
        assert result.exit_code == 0, result.output
        gradle_report.assert_awaited_once()

    def test_missing_report_generates_then_fails(
        self, tmp_path: Path, gradle_report: AsyncMock
    ) -> None:
        result = _invoke("coverage", "--cwd", str(tmp_path), "--no-spinner")

        assert result.exit_code == 1
        assert "No usable JaCoCo report" in result.output
        gradle_report.assert_awaited_once()

    def test_warns_when_jacoco_not_configured(
        self, tmp_path: Path, gradle_report: AsyncMock
    ) -> None:
        result = _invoke("coverage", "--cwd", str(tmp_path))
        assert "JaCoCo is not configured" in result.output

        _write_file(tmp_path, "build.gradle", "plugins {\n    id 'jacoco'\n}\n")
        result = _invoke("coverage", "--cwd", str(tmp_path))
        assert result.exit_code == 1
        assert "JaCoCo is not configured" not in result.output
        assert gradle_report.await_count == 2

    def test_existing_report_skips_jacoco_check(
        self, project: Path, gradle_report: AsyncMock
    ) -> None:
        result = _invoke("coverage", "--cwd", str(project))
        assert "JaCoCo is not configured" not in result.output

    def test_funcs_threshold(self, project: Path, gradle_report: AsyncMock) -> None:
        result = _invoke("coverage", "--cwd", str(project), "--min-funcs", "76")
        assert result.exit_code == 2
        assert "Funcs coverage 75% < min 76%" in result.output

    def test_thresholds_from_config(self, project: Path, gradle_report: AsyncMock) -> None:
        (project / ".moka.yml").write_text(
            yaml.dump({"coverage": {"min_lines": 85, "uncovered": "none"}}), encoding="utf-8"
        )
        result = _invoke("coverage", "--cwd", str(project))

        assert result.exit_code == 2
        assert "Lines coverage 80% < min 85%" in result.output
        assert "7-8" not in result.output

    def test_cli_threshold_overrides_config(
        self, project: Path, gradle_report: AsyncMock
    ) -> None:
        (project / ".moka.yml").write_text(
            yaml.dump({"coverage": {"min_lines": 85}}), encoding="utf-8"
        )
        result = _invoke("coverage", "--cwd", str(project), "--min-lines", "50")
        assert result.exit_code == 0, result.output

    def test_out_of_range_config_threshold_ignored(
        self, project: Path, gradle_report: AsyncMock
    ) -> None:
        (project / ".moka.yml").write_text(
            yaml.dump({"coverage": {"min_lines": 150}}), encoding="utf-8"
        )
        result = _invoke("coverage", "--cwd", str(project))
        assert result.exit_code == 0, result.output
        assert "coverage.min_lines must be between 0 and 100" in result.output
