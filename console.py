"""Colored per-result console lines."""
from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.text import Text

from test_types import TestResult, TestStatus


STATUS_STYLES = {
    TestStatus.PASSED: "green",
    TestStatus.FAILED: "red",
    TestStatus.SKIPPED: "bright_blue",
    TestStatus.BLOCKED: "bright_blue",
    TestStatus.DISABLED: "grey50",
    TestStatus.INVALID: "bright_yellow",
}


def format_result_line(result: TestResult) -> Text:
    """Return ``Test <title> <status>`` styled by status."""
    return Text(
        f"Test {result.title} {result.status.value}",
        style=STATUS_STYLES.get(result.status, ""),
    )


class ResultConsole:
    """Prints one line per reported result."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True, highlight=False)

    def log_result(self, result: TestResult) -> None:
        self.console.print(format_result_line(result))
