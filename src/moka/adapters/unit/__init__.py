"""Unit test result adapters."""

from moka.adapters.unit.junit import (
    JUnitAdapter,
    JUnitSummary,
    decode_junit_dir,
    load_outcome_tree,
    parse_junit_dir,
)

__all__ = [
    "JUnitAdapter",
    "JUnitSummary",
    "decode_junit_dir",
    "load_outcome_tree",
    "parse_junit_dir",
]
