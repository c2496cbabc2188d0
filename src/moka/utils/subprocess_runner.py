"""Subprocess runner for the external build tool, with timeout and error handling."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

logger = logging.getLogger(__name__)

JVM_NATIVE_ACCESS_FLAG = "--enable-native-access=ALL-UNNAMED"


@dataclass
class SubprocessResult:
    """Result of subprocess execution."""

    returncode: int
    """Exit code of the process."""

    stdout: str
    """Standard output captured from the process (empty when streamed)."""

    stderr: str
    """Standard error captured from the process (empty when streamed)."""

    success: bool
    """True if returncode is 0."""

    timed_out: bool = False
    """True if the process was terminated due to timeout."""

    duration_ms: float = 0.0
    """Actual duration of execution in milliseconds."""


class SubprocessError(Exception):
    """Exception raised when subprocess execution fails."""

    def __init__(self, message: str, result: SubprocessResult) -> None:
        """Initialize with error message and result.

        Args:
            message: Error description.
            result: The SubprocessResult from the failed execution.
        """
        super().__init__(message)
        self.result = result


def build_env(
    extra: Mapping[str, str] | None = None,
    *,
    suppress_jvm_native_warning: bool = False,
) -> dict[str, str]:
    """Return the current environment merged with *extra*.

    With *suppress_jvm_native_warning*, ``JAVA_TOOL_OPTIONS`` gains
    :data:`JVM_NATIVE_ACCESS_FLAG` (once) so recent JDKs stop printing
    native-access warnings into the build output.
    """
    env = dict(os.environ)
    if extra:
        env.update(extra)
    if suppress_jvm_native_warning:
        previous = env.get("JAVA_TOOL_OPTIONS", "")
        if JVM_NATIVE_ACCESS_FLAG not in previous:
            env["JAVA_TOOL_OPTIONS"] = f"{previous} {JVM_NATIVE_ACCESS_FLAG}".strip()
    return env


async def run_subprocess(
    command: Sequence[str],
    *,
    cwd: Path | None = None,
    timeout: float = 1800.0,
    env: Mapping[str, str] | None = None,
    stream_output: bool = False,
    check: bool = False,
) -> SubprocessResult:
    """Execute a command in a subprocess with timeout and error handling.

    Args:
        command: Command and arguments (e.g. ``['./gradlew', 'test']``).
        cwd: Working directory for the subprocess. Defaults to current directory.
        timeout: Maximum seconds to wait for completion.
        env: Full environment for the child (see :func:`build_env`). ``None``
            inherits the current environment.
        stream_output: Let the child write straight to this process's
            stdout/stderr instead of capturing its output.
        check: If True, raise SubprocessError on non-zero exit code.

    Returns:
        SubprocessResult with exit code, output, and metadata.

    Raises:
        SubprocessError: If the command cannot be started, or if check=True
            and the command returns a non-zero exit code.
        ValueError: If command is empty or timeout is invalid.
    """
    if not command:
        raise ValueError("Command cannot be empty")

    if timeout <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout}")

    work_dir = cwd.resolve() if cwd else Path.cwd()
    if not work_dir.exists():
        raise ValueError(f"Working directory does not exist: {work_dir}")

    logger.debug(
        "Running subprocess: %s (cwd=%s, timeout=%s)",
        " ".join(str(c) for c in command),
        work_dir,
        timeout,
    )

    pipe = None if stream_output else asyncio.subprocess.PIPE
    start_time = time.perf_counter()
    timed_out = False

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=pipe,
            stderr=pipe,
            cwd=work_dir,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as exc:
        logger.error("Command not found: %s", command[0])
        raise SubprocessError(
            f"Command not found: {command[0]}",
            result=SubprocessResult(returncode=127, stdout="", stderr=str(exc), success=False),
        ) from exc
    except OSError as exc:
        raise SubprocessError(
            f"Subprocess execution failed: {exc}",
            result=SubprocessResult(returncode=-1, stdout="", stderr=str(exc), success=False),
        ) from exc

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        logger.warning("Subprocess timed out after %s seconds", timeout)
        timed_out = True
        try:
            process.kill()
            await process.wait()
        except ProcessLookupError:
            pass
        stdout_bytes = b""
        stderr_bytes = b"Process timed out and was killed"

    duration_ms = (time.perf_counter() - start_time) * 1000

    stdout = (stdout_bytes or b"").decode("utf-8", errors="replace")
    stderr = (stderr_bytes or b"").decode("utf-8", errors="replace")
    returncode = process.returncode if process.returncode is not None else -1
    if timed_out and returncode == 0:
        returncode = -1

    result = SubprocessResult(
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
        success=(returncode == 0 and not timed_out),
        timed_out=timed_out,
        duration_ms=duration_ms,
    )

    logger.debug(
        "Subprocess completed: returncode=%d, duration=%.2fms, success=%s",
        returncode,
        duration_ms,
        result.success,
    )

    if check and not result.success:
        raise SubprocessError(
            f"Command failed with exit code {returncode}: {' '.join(str(c) for c in command)}",
            result=result,
        )

    return result
