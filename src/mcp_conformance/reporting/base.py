"""
Base class for report generators.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from ..models import TestResult, TestSuiteResult


class ReportFormat(Enum):
    """Supported report formats."""

    CONSOLE = "console"
    JSON = "json"
    HTML = "html"
    JUNIT = "junit"
    MARKDOWN = "markdown"


@dataclass
class ReportOptions:
    """What a report includes. ``use_colors=None`` means detect from the terminal."""

    include_errors: bool = True
    include_responses: bool = False
    include_timing: bool = True
    include_validation: bool = True
    use_colors: Optional[bool] = None
    verbose: bool = False


def format_duration(ms: float) -> str:
    """Human readable duration: milliseconds below one second, else seconds or minutes."""
    if ms < 1000:
        return f"{ms:.0f}ms"
    if ms < 60000:
        return f"{ms / 1000:.2f}s"
    return f"{ms / 60000:.2f}m"


def status_label(result: TestResult) -> str:
    if result.passed:
        return "PASSED"
    if result.skipped:
        return "SKIPPED"
    return "FAILED"


class ReportGenerator(ABC):
    """Base class for generating test reports."""

    def __init__(self, options: Optional[ReportOptions] = None):
        self.options = options or ReportOptions()

    @staticmethod
    def _as_list(
        results: Union[TestSuiteResult, List[TestSuiteResult]],
    ) -> List[TestSuiteResult]:
        if isinstance(results, TestSuiteResult):
            return [results]
        return list(results)

    @abstractmethod
    def generate(self, results: Union[TestSuiteResult, List[TestSuiteResult]]) -> str:
        """
        Generate a report from suite results.

        Args:
            results: One suite result or a list of them

        Returns:
            Report as a string
        """
        pass
