"""Run-length formatting of line numbers (``1-3,7,9-10``)."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


def _token(start: int, end: int) -> str:
    return str(start) if start == end else f"{start}-{end}"


def compress_lines(lines: Sequence[int]) -> str:
    """Collapse ascending, unique line numbers into comma-separated runs.

    Runs of consecutive integers render as ``start-end``; isolated integers
    render alone. Input order is preserved as given.

    Example:
        >>> compress_lines([1, 2, 3, 7, 9, 10])
        '1-3,7,9-10'
    """
    if not lines:
        return ""
    tokens: list[str] = []
    start = end = lines[0]
    for value in lines[1:]:
        if value == end + 1:
            end = value
            continue
        tokens.append(_token(start, end))
        start = end = value
    tokens.append(_token(start, end))
    return ",".join(tokens)


def expand_ranges(text: str) -> list[int]:
    """Expand the output of :func:`compress_lines` back into line numbers.

    Raises:
        ValueError: If a token is not ``N`` or ``N-M`` with ``N <= M``.
    """
    text = text.strip()
    if not text:
        return []
    lines: list[int] = []
    for raw_token in text.split(","):
        token = raw_token.strip()
        start_text, sep, end_text = token.partition("-")
        start = int(start_text)
        end = int(end_text) if sep else start
        if end < start:
            raise ValueError(f"Descending range token: {token!r}")
        lines.extend(range(start, end + 1))
    return lines
