"""Gradle invocation helpers: wrapper detection and task command lines."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from moka.utils.subprocess_runner import SubprocessResult, build_env, run_subprocess

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

_QUIET_ARGS = ("--console=plain", "--warning-mode=none", "-q")

DEFAULT_GRADLE_TIMEOUT = 1800.0


def detect_gradle_command(project_path: Path) -> str:
    """Return the project's ``gradlew`` wrapper if present, else ``gradle``."""
    wrapper = project_path / "gradlew"
    if wrapper.is_file():
        return str(wrapper)
    return "gradle"


def gradle_args(
    task: str,
    *,
    patterns: Sequence[str] = (),
    verbose: bool = False,
) -> list[str]:
    """Build the argument list for a Gradle *task*.

    Non-verbose runs are quiet and plain. Each test filter pattern becomes a
    ``--tests`` pair.
    """
    args = [task, "--no-daemon"]
    if not verbose:
        args.extend(_QUIET_ARGS)
    for pattern in patterns:
        args.extend(["--tests", pattern])
    return args


async def run_gradle(
    gradle_command: str,
    args: Sequence[str],
    *,
    project_path: Path,
    verbose: bool = False,
    timeout: float = DEFAULT_GRADLE_TIMEOUT,
) -> SubprocessResult:
    """Run Gradle with *args* in *project_path*.

    Verbose runs stream Gradle's output to the terminal; otherwise the output
    is captured and only logged at debug level.
    """
    result = await run_subprocess(
        [gradle_command, *args],
        cwd=project_path,
        timeout=timeout,
        env=build_env(suppress_jvm_native_warning=True),
        stream_output=verbose,
    )
    if not verbose and result.stdout:
        logger.debug("gradle stdout:\n%s", result.stdout)
    if not verbose and result.stderr:
        logger.debug("gradle stderr:\n%s", result.stderr)
    return result
