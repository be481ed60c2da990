"""
JSON reporter for test results.
"""

import json
from typing import Any, Dict, List, Union

from ..models import TestResult, TestSuiteResult
from ..results import summarize
from .base import ReportGenerator


class JSONReporter(ReportGenerator):
    """Generate JSON format for programmatic analysis."""

    def _test_entry(self, result: TestResult) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "test_id": result.test_id,
            "test_name": result.test_name,
            "passed": result.passed,
            "skipped": result.skipped,
            "attempts": result.attempts,
            "timestamp": result.timestamp.isoformat(),
        }
        if self.options.include_errors:
            entry["error"] = result.error
        if self.options.include_timing:
            entry["duration_ms"] = result.duration_ms
        if self.options.include_validation:
            entry["validation"] = [
                {
                    "type": v.rule.type.value,
                    "field": v.rule.field,
                    "passed": v.passed,
                    "message": v.message,
                }
                for v in result.validation_results
            ]
        if self.options.include_responses:
            entry["response"] = result.actual_response
        entry["metadata"] = result.metadata
        return entry

    def generate(self, results: Union[TestSuiteResult, List[TestSuiteResult]]) -> str:
        """Generate JSON report."""
        suites = self._as_list(results)
        summary = summarize(suites)

        report = {
            "generated_at": summary.generated_at.isoformat() if summary.generated_at else None,
            "summary": {
                "total_suites": summary.total_suites,
                "total_tests": summary.total_tests,
                "passed": summary.passed,
                "failed": summary.failed,
                "skipped": summary.skipped,
                "pass_rate": summary.pass_rate,
                "total_duration_ms": summary.total_duration_ms,
                "average_duration_ms": summary.average_duration_ms,
                "tests_by_category": summary.tests_by_category,
                "tests_by_severity": summary.tests_by_severity,
                "failures_by_category": summary.failures_by_category,
                "slowest_tests": [
                    {"name": name, "duration_ms": duration}
                    for name, duration in summary.slowest_tests
                ],
                "failed_tests": [
                    {"name": name, "error": error} for name, error in summary.failed_tests
                ],
                "success": summary.success,
            },
            "suites": [
                {
                    "id": suite.suite_id,
                    "name": suite.suite_name,
                    "total_tests": suite.total_tests,
                    "passed_tests": suite.passed_tests,
                    "failed_tests": suite.failed_tests,
                    "skipped_tests": suite.skipped_tests,
                    "pass_rate": suite.pass_rate,
                    "duration_ms": suite.duration_ms,
                    "start_time": suite.start_time.isoformat(),
                    "end_time": suite.end_time.isoformat(),
                    "tests": [self._test_entry(r) for r in suite.results],
                }
                for suite in suites
            ],
        }

        # Responses are server data and may hold values json cannot encode.
        return json.dumps(report, indent=2, default=str)
