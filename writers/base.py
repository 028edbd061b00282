"""Base writer interface for local report files."""
from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path

from test_types import RunSummary, TestResult


class ReportFormat(str, Enum):
    """Supported local report formats."""
    JSON = "json"
    JUNIT = "junit"


class BaseWriter(ABC):
    """Abstract base class for local report writers."""

    @abstractmethod
    def write_result(self, result: TestResult, output_dir: Path) -> Path:
        """
        Write a single test result.

        Args:
            result: Finished test result
            output_dir: Directory to write into

        Returns:
            Path to the written file
        """
        pass

    @abstractmethod
    def write_run(self, summary: RunSummary, output_dir: Path) -> Path:
        """
        Write the combined report for a whole run.

        Args:
            summary: Aggregated run results
            output_dir: Directory to write into

        Returns:
            Path to the written file
        """
        pass

    @property
    @abstractmethod
    def format(self) -> ReportFormat:
        """Return the report format this writer produces."""
        pass
