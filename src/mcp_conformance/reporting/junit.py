"""
JUnit XML reporter for test results.
"""

from typing import List, Union
from xml.sax.saxutils import escape

from ..models import TestSuiteResult
from ..results import failure_message
from .base import ReportGenerator

# Written by hand rather than with ElementTree, which leaves apostrophes
# unescaped; values are escaped for all five predefined XML entities.
_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def xml_escape(value: object) -> str:
    return escape(str(value), _ENTITIES)


class JUnitReporter(ReportGenerator):
    """Generate JUnit XML format for CI/CD integration."""

    def generate(self, results: Union[TestSuiteResult, List[TestSuiteResult]]) -> str:
        """Generate JUnit XML report."""
        suites = self._as_list(results)
        lines = ['<?xml version="1.0" encoding="UTF-8"?>', "<testsuites>"]

        for suite in suites:
            lines.append(
                f'  <testsuite name="{xml_escape(suite.suite_name)}" '
                f'tests="{suite.total_tests}" failures="{suite.failed_tests}" '
                f'errors="0" skipped="{suite.skipped_tests}" '
                f'time="{suite.duration_ms / 1000:.3f}" '
                f'timestamp="{suite.start_time.isoformat(timespec="seconds")}">'
            )

            for result in suite.results:
                opening = (
                    f'    <testcase name="{xml_escape(result.test_name)}" '
                    f'classname="{xml_escape(suite.suite_name)}" '
                    f'time="{result.duration_ms / 1000:.3f}"'
                )
                if result.passed:
                    lines.append(opening + " />")
                    continue

                lines.append(opening + ">")
                if result.skipped:
                    reason = result.error or "Test skipped"
                    lines.append(f'      <skipped message="{xml_escape(reason)}" />')
                else:
                    message = failure_message(result)
                    body = message if self.options.include_errors else ""
                    if self.options.include_validation:
                        details = [
                            f"[{v.rule.type.value}] {v.message or 'failed'}"
                            for v in result.validation_results
                            if not v.passed
                        ]
                        if details:
                            body = "\n".join([body] + details) if body else "\n".join(details)
                    lines.append(
                        f'      <failure message="{xml_escape(message)}">'
                        f"{xml_escape(body)}</failure>"
                    )
                lines.append("    </testcase>")

            lines.append("  </testsuite>")

        lines.append("</testsuites>")
        return "\n".join(lines) + "\n"
