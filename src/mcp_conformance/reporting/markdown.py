"""
Markdown reporter for test results.
"""

from typing import List, Union

from ..models import TestSuiteResult
from ..results import summarize
from .base import ReportGenerator, format_duration

_STATUS = {"passed": "✅ PASS", "skipped": "⏭️ SKIP", "failed": "❌ FAIL"}


def _cell(text: str) -> str:
    """Make text safe inside a table cell."""
    return text.replace("|", "\\|").replace("\n", " ")


class MarkdownReporter(ReportGenerator):
    """Generate a Markdown report with summary and per-suite tables."""

    def generate(self, results: Union[TestSuiteResult, List[TestSuiteResult]]) -> str:
        """Generate Markdown report."""
        options = self.options
        suites = self._as_list(results)
        summary = summarize(suites)
        lines = ["# MCP Test Report"]
        if summary.generated_at:
            lines.append(f"*Generated: {summary.generated_at.isoformat()}*")
        lines.append("")

        lines.append("## Summary")
        lines.append("")
        lines.append("| Metric | Value |")
        lines.append("|--------|-------|")
        lines.append(f"| Total Tests | {summary.total_tests} |")
        lines.append(f"| Passed | {summary.passed} |")
        lines.append(f"| Failed | {summary.failed} |")
        lines.append(f"| Skipped | {summary.skipped} |")
        lines.append(f"| Pass Rate | {summary.pass_rate:.2f}% |")
        if options.include_timing:
            lines.append(f"| Total Duration | {format_duration(summary.total_duration_ms)} |")
        lines.append("")

        lines.append("## Test Suites")
        lines.append("")
        for suite in suites:
            lines.append(f"### {suite.suite_name}")
            lines.append("")
            if options.include_timing:
                lines.append("| Test Name | Status | Duration |")
                lines.append("|-----------|--------|----------|")
            else:
                lines.append("| Test Name | Status |")
                lines.append("|-----------|--------|")
            for result in suite.results:
                if result.passed:
                    status = _STATUS["passed"]
                elif result.skipped:
                    status = _STATUS["skipped"]
                else:
                    status = _STATUS["failed"]
                row = f"| {_cell(result.test_name)} | {status} |"
                if options.include_timing:
                    row += f" {result.duration_ms:.0f}ms |"
                lines.append(row)
            lines.append("")

        if summary.failed_tests and options.include_errors:
            lines.append("## Failed Tests")
            lines.append("")
            for name, error in summary.failed_tests:
                lines.append(f"- **{name}**")
                lines.append(f"  - Error: {error}")
            lines.append("")

        if summary.slowest_tests and options.include_timing and options.verbose:
            lines.append("## Slowest Tests")
            lines.append("")
            for name, duration_ms in summary.slowest_tests:
                lines.append(f"- {name}: {format_duration(duration_ms)}")
            lines.append("")

        return "\n".join(lines)
