"""
Test result aggregation and utilities.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .models import TestResult, TestSuite, TestSuiteResult

SLOWEST_LIMIT = 10


def build_suite_result(
    suite: TestSuite,
    results: List[TestResult],
    start_time: datetime,
    end_time: datetime,
) -> TestSuiteResult:
    """
    Aggregate the recorded results of one suite run.

    Args:
        suite: The suite that was run
        results: Recorded results in execution order
        start_time: When the run started
        end_time: When the run finished

    Returns:
        TestSuiteResult whose counts always add up to total_tests
    """
    passed = sum(1 for r in results if r.passed)
    skipped = sum(1 for r in results if r.skipped)
    failed = sum(1 for r in results if r.failed)

    return TestSuiteResult(
        suite_id=suite.id,
        suite_name=suite.name,
        total_tests=len(results),
        passed_tests=passed,
        failed_tests=failed,
        skipped_tests=skipped,
        results=list(results),
        duration_ms=(end_time - start_time).total_seconds() * 1000,
        start_time=start_time,
        end_time=end_time,
    )


def failure_message(result: TestResult) -> str:
    """Best description of why a case did not pass."""
    if result.error:
        return result.error
    messages = [v.message for v in result.validation_results if not v.passed and v.message]
    if messages:
        return "; ".join(messages)
    return "Test failed" if not result.skipped else "Test skipped"


@dataclass
class ReportSummary:
    """Cross-suite statistics shared by every report format."""

    total_suites: int = 0
    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    pass_rate: float = 0.0
    total_duration_ms: float = 0.0
    average_duration_ms: float = 0.0
    tests_by_category: Dict[str, int] = field(default_factory=dict)
    tests_by_severity: Dict[str, int] = field(default_factory=dict)
    failures_by_category: Dict[str, int] = field(default_factory=dict)
    slowest_tests: List[Tuple[str, float]] = field(default_factory=list)
    failed_tests: List[Tuple[str, str]] = field(default_factory=list)
    generated_at: Optional[datetime] = None
    suites: List[TestSuiteResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Return True if no case failed."""
        return self.failed == 0


def summarize(suite_results: List[TestSuiteResult]) -> ReportSummary:
    """
    Summarize one or more suite results.

    Category and severity counts come from the ``category``/``severity``
    entries the runner stores in each result's metadata.

    Args:
        suite_results: Finished suite results

    Returns:
        ReportSummary with totals, slowest cases and failures
    """
    summary = ReportSummary(total_suites=len(suite_results), suites=list(suite_results))
    all_results: List[TestResult] = []
    by_category: Counter = Counter()
    by_severity: Counter = Counter()
    failures_by_category: Counter = Counter()

    for suite in suite_results:
        summary.total_tests += suite.total_tests
        summary.passed += suite.passed_tests
        summary.failed += suite.failed_tests
        summary.skipped += suite.skipped_tests
        summary.total_duration_ms += suite.duration_ms
        all_results.extend(suite.results)

        for result in suite.results:
            category = result.metadata.get("category")
            if category:
                by_category[category] += 1
                if result.failed:
                    failures_by_category[category] += 1
            severity = result.metadata.get("severity")
            if severity:
                by_severity[severity] += 1

    if summary.total_tests > 0:
        summary.pass_rate = summary.passed / summary.total_tests * 100
        summary.average_duration_ms = summary.total_duration_ms / summary.total_tests

    summary.tests_by_category = dict(by_category)
    summary.tests_by_severity = dict(by_severity)
    summary.failures_by_category = dict(failures_by_category)

    executed = sorted(
        (r for r in all_results if not r.skipped), key=lambda r: r.duration_ms, reverse=True
    )
    summary.slowest_tests = [(r.test_name, r.duration_ms) for r in executed[:SLOWEST_LIMIT]]
    summary.failed_tests = [(r.test_name, failure_message(r)) for r in all_results if r.failed]

    if suite_results:
        summary.generated_at = max(s.end_time for s in suite_results)

    return summary
