"""Record normalizer: decoded report entries to flat leaf records.

Decoders (see ``moka.adapters``) turn XML into plain mappings. This module
turns those mappings into :class:`SourceFileRecord` and
:class:`TestCaseRecord` values. An entry that cannot be normalized is logged
and skipped; it never aborts the batch.

Coverage entry shape::

    {
        "package": "com/example",
        "name": "Foo.java",
        "counters": {"LINE": {"covered": "8", "missed": "2"}, "METHOD": {...}},
        "lines": [{"nr": "10", "mi": "3", "ci": "0", "mb": "0", "cb": "0"}, ...],
    }

Test case entry shape::

    {
        "name": "adds",
        "classname": "com.example.CalculatorTest",
        "suite": "com.example.CalculatorTest",
        "time": "0.012",
        "failure": {"message": "...", "type": "...", "text": "..."} | None,
        "error": {...} | None,
        "skipped": False,
        "status": "",
    }
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from typing import Any

from moka.models.coverage import SourceFileRecord
from moka.models.test_result import CaseStatus, TestCaseRecord

logger = logging.getLogger(__name__)

UNKNOWN_CLASS = "unknown.UnknownClass"
UNKNOWN_NAME = "unknown"


class MalformedEntryError(ValueError):
    """Raised internally when a decoded entry cannot be normalized."""


def _count(raw: object, key: str) -> int:
    if raw is None or raw == "":
        return 0
    try:
        value = int(str(raw).strip())
    except ValueError as e:
        raise MalformedEntryError(f"{key} is not an integer: {raw!r}") from e
    if value < 0:
        raise MalformedEntryError(f"{key} is negative: {value}")
    return value


def _counter(counters: Mapping[str, Any], kind: str) -> tuple[int, int]:
    counter = counters.get(kind)
    if counter is None:
        return (0, 0)
    if not isinstance(counter, Mapping):
        raise MalformedEntryError(f"{kind} counter is not a mapping")
    return (
        _count(counter.get("covered"), f"{kind}.covered"),
        _count(counter.get("missed"), f"{kind}.missed"),
    )


def uncovered_line_numbers(lines: Iterable[Mapping[str, Any]]) -> list[int]:
    """Return sorted, unique numbers of executable lines with nothing covered.

    A line is uncovered when it has missed instructions or branches
    (``mi + mb > 0``) and no covered ones (``ci + cb == 0``).
    """
    uncovered: set[int] = set()
    for line in lines:
        try:
            nr = _count(line.get("nr"), "nr")
            mi = _count(line.get("mi"), "mi")
            ci = _count(line.get("ci"), "ci")
            mb = _count(line.get("mb"), "mb")
            cb = _count(line.get("cb"), "cb")
        except (MalformedEntryError, AttributeError):
            logger.debug("Skipping unparseable line entry: %r", line)
            continue
        if mi + mb > 0 and ci + cb == 0:
            uncovered.add(nr)
    return sorted(uncovered)


def _hierarchical_file_name(package: str, name: str) -> str:
    parts = [part for part in package.replace(".", "/").split("/") if part]
    parts.append(name)
    return "/".join(parts)


def normalize_source_file(entry: object) -> SourceFileRecord | None:
    """Normalize one decoded coverage entry, or return ``None`` if malformed."""
    if not isinstance(entry, Mapping):
        logger.warning("Skipping coverage entry that is not a mapping: %r", entry)
        return None

    name = str(entry.get("name") or UNKNOWN_NAME)
    counters = entry.get("counters") or {}
    lines = entry.get("lines") or []
    if isinstance(lines, Mapping):
        lines = [lines]
    elif not isinstance(lines, list | tuple):
        lines = []
    try:
        if not isinstance(counters, Mapping):
            raise MalformedEntryError("counters is not a mapping")
        lines_covered, lines_missed = _counter(counters, "LINE")
        funcs_covered, funcs_missed = _counter(counters, "METHOD")
    except MalformedEntryError as e:
        logger.warning("Skipping malformed coverage entry %s: %s", name, e)
        return None

    return SourceFileRecord(
        name=_hierarchical_file_name(str(entry.get("package") or ""), name),
        lines_covered=lines_covered,
        lines_missed=lines_missed,
        funcs_covered=funcs_covered,
        funcs_missed=funcs_missed,
        uncovered_lines=uncovered_line_numbers(lines),
    )


def normalize_source_files(entries: Iterable[object]) -> list[SourceFileRecord]:
    """Normalize decoded coverage entries, dropping malformed ones."""
    records = [normalize_source_file(entry) for entry in entries]
    return [record for record in records if record is not None]


def classify(entry: Mapping[str, Any]) -> CaseStatus:
    """Classify a decoded test case; a failure or error wins over a skip."""
    if entry.get("failure") is not None or entry.get("error") is not None:
        return CaseStatus.FAILED
    if entry.get("skipped") or str(entry.get("status") or "").lower() == "skipped":
        return CaseStatus.SKIPPED
    return CaseStatus.PASSED


def duration_ms(seconds: object) -> int:
    """Convert a JUnit ``time`` value (seconds) to whole milliseconds.

    Halves round up; missing, unparseable or negative values become ``0``.
    """
    if seconds is None:
        return 0
    try:
        value = float(str(seconds).strip())
    except ValueError:
        return 0
    if not math.isfinite(value) or value <= 0:
        return 0
    return int(value * 1000 + 0.5)


def _failure_field(failure: object, key: str) -> str | None:
    if not isinstance(failure, Mapping):
        return None
    value = failure.get(key)
    return str(value) if value is not None else None


def normalize_test_case(entry: object) -> TestCaseRecord | None:
    """Normalize one decoded test case entry, or return ``None`` if malformed."""
    if not isinstance(entry, Mapping):
        logger.warning("Skipping test case entry that is not a mapping: %r", entry)
        return None

    status = classify(entry)
    classname = str(entry.get("classname") or entry.get("suite") or UNKNOWN_CLASS)
    record = TestCaseRecord(
        name=str(entry.get("name") or UNKNOWN_NAME),
        classname=classname,
        status=status,
        duration_ms=duration_ms(entry.get("time")),
    )
    if status is CaseStatus.FAILED:
        failure = entry.get("failure")
        if failure is None:
            failure = entry.get("error")
        record.failure_message = _failure_field(failure, "message")
        record.failure_type = _failure_field(failure, "type")
        record.failure_detail = _failure_field(failure, "text")
    return record


def normalize_test_cases(entries: Iterable[object]) -> list[TestCaseRecord]:
    """Normalize decoded test case entries, dropping malformed ones."""
    records = [normalize_test_case(entry) for entry in entries]
    return [record for record in records if record is not None]
