"""Tests for the build tool subprocess runner (utils/subprocess_runner.py)."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from moka.utils.subprocess_runner import (
    JVM_NATIVE_ACCESS_FLAG,
    SubprocessError,
    build_env,
    run_subprocess,
)

# ── Basic Execution ──────────────────────────────────────────────────


async def test_run_subprocess_success() -> None:
    result = await run_subprocess([sys.executable, "-c", "print('hello')"])

    assert result.success
    assert result.returncode == 0
    assert "hello" in result.stdout
    assert result.timed_out is False
    assert result.duration_ms > 0


async def test_run_subprocess_with_working_directory(tmp_path: Path) -> None:
    (tmp_path / "build.gradle").write_text("plugins { id 'java' }\n")

    result = await run_subprocess(
        [sys.executable, "-c", "import os; print(sorted(os.listdir('.')))"], cwd=tmp_path
    )

    assert result.success
    assert "build.gradle" in result.stdout


async def test_run_subprocess_nonzero_exit_code() -> None:
    result = await run_subprocess([sys.executable, "-c", "import sys; sys.exit(3)"])

    assert not result.success
    assert result.returncode == 3


async def test_run_subprocess_captures_stderr() -> None:
    result = await run_subprocess(
        [sys.executable, "-c", "import sys; sys.stderr.write('BUILD FAILED')"]
    )

    assert "BUILD FAILED" in result.stderr


async def test_run_subprocess_streamed_output_is_not_captured() -> None:
    result = await run_subprocess([sys.executable, "-c", "print('x')"], stream_output=True)

    assert result.success
    assert result.stdout == ""


# ── Error Handling ───────────────────────────────────────────────────


async def test_run_subprocess_command_not_found() -> None:
    with pytest.raises(SubprocessError) as exc_info:
        await run_subprocess(["nonexistent_gradle_xyz123", "test"])

    assert "Command not found" in str(exc_info.value)
    assert exc_info.value.result.returncode == 127
    assert not exc_info.value.result.success


async def test_run_subprocess_empty_command() -> None:
    with pytest.raises(ValueError, match="Command cannot be empty"):
        await run_subprocess([])


async def test_run_subprocess_invalid_timeout() -> None:
    with pytest.raises(ValueError, match="Timeout must be positive"):
        await run_subprocess([sys.executable, "-V"], timeout=0)


async def test_run_subprocess_invalid_working_directory() -> None:
    with pytest.raises(ValueError, match="Working directory does not exist"):
        await run_subprocess([sys.executable, "-V"], cwd=Path("/nonexistent/path/xyz"))


async def test_run_subprocess_check_raises_on_failure() -> None:
    with pytest.raises(SubprocessError) as exc_info:
        await run_subprocess([sys.executable, "-c", "import sys; sys.exit(1)"], check=True)

    assert "Command failed" in str(exc_info.value)
    assert exc_info.value.result.returncode == 1


# ── Timeout ──────────────────────────────────────────────────────────


async def test_run_subprocess_timeout() -> None:
    result = await run_subprocess(
        [sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.2
    )

    assert not result.success
    assert result.timed_out is True
    assert result.returncode != 0
    assert "timed out" in result.stderr.lower()


# ── Environment ──────────────────────────────────────────────────────


async def test_run_subprocess_with_environment_variables() -> None:
    result = await run_subprocess(
        [sys.executable, "-c", "import os; print(os.getenv('MOKA_TEST_VAR', 'not_set'))"],
        env=build_env({"MOKA_TEST_VAR": "test_value"}),
    )

    assert result.success
    assert "test_value" in result.stdout


class TestBuildEnv:
    def test_merges_extra_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MOKA_BASE", "1")
        env = build_env({"MOKA_EXTRA": "2"})
        assert env["MOKA_BASE"] == "1"
        assert env["MOKA_EXTRA"] == "2"

    def test_leaves_java_options_alone_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("JAVA_TOOL_OPTIONS", raising=False)
        assert "JAVA_TOOL_OPTIONS" not in build_env()

    def test_adds_native_access_flag(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("JAVA_TOOL_OPTIONS", "-Xmx1g")
        env = build_env(suppress_jvm_native_warning=True)
        assert env["JAVA_TOOL_OPTIONS"] == f"-Xmx1g {JVM_NATIVE_ACCESS_FLAG}"

    def test_native_access_flag_added_once(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("JAVA_TOOL_OPTIONS", JVM_NATIVE_ACCESS_FLAG)
        env = build_env(suppress_jvm_native_warning=True)
        assert env["JAVA_TOOL_OPTIONS"] == JVM_NATIVE_ACCESS_FLAG
