"""Reporters for printing runs, trees and coverage verdicts."""

from __future__ import annotations

from moka.reporters.terminal import CLIReporter, reporter, rich_style

__all__ = [
    "CLIReporter",
    "reporter",
    "rich_style",
]
