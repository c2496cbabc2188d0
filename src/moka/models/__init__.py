"""Data models for moka."""

from moka.models.coverage import CoverageNode, SourceFile, SourceFileRecord
from moka.models.test_result import (
    CaseStatus,
    Counts,
    OutcomeNode,
    TestCase,
    TestCaseRecord,
    TestClass,
)

__all__ = [
    "CaseStatus",
    "Counts",
    "CoverageNode",
    "OutcomeNode",
    "SourceFile",
    "SourceFileRecord",
    "TestCase",
    "TestCaseRecord",
    "TestClass",
]
