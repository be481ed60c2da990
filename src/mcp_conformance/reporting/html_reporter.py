"""
Self-contained HTML reporter for test results.
"""

import html
import json
from typing import List, Union

from ..models import TestSuiteResult
from ..results import failure_message, summarize
from .base import ReportGenerator, format_duration, status_label

_STYLE = """
        body { font-family: Arial, sans-serif; margin: 20px; }
        h1 { color: #333; }
        .summary { background: #f0f0f0; padding: 15px; border-radius: 5px; margin: 20px 0; }
        .suite { border: 1px solid #ddd; margin: 10px 0; padding: 10px; }
        .passed { color: green; }
        .failed { color: red; }
        .skipped { color: orange; }
        table { width: 100%; border-collapse: collapse; }
        th, td { border: 1px solid #ddd; padding: 8px; text-align: left; vertical-align: top; }
        th { background: #f0f0f0; }
        pre { margin: 0; white-space: pre-wrap; }
"""


class HTMLReporter(ReportGenerator):
    """Generate a single HTML page with one table per suite."""

    def generate(self, results: Union[TestSuiteResult, List[TestSuiteResult]]) -> str:
        """Generate HTML report."""
        esc = html.escape
        options = self.options
        suites = self._as_list(results)
        summary = summarize(suites)

        lines = [
            "<!DOCTYPE html>",
            "<html>",
            "<head>",
            '    <meta charset="utf-8">',
            "    <title>MCP Test Report</title>",
            f"    <style>{_STYLE}    </style>",
            "</head>",
            "<body>",
            "    <h1>MCP Test Report</h1>",
        ]
        if summary.generated_at:
            lines.append(f"    <p>Generated: {esc(summary.generated_at.isoformat())}</p>")

        lines.append('    <div class="summary">')
        lines.append("        <h2>Summary</h2>")
        lines.append(f"        <p>Total Tests: {summary.total_tests}</p>")
        lines.append(f'        <p class="passed">Passed: {summary.passed}</p>')
        lines.append(f'        <p class="failed">Failed: {summary.failed}</p>')
        lines.append(f'        <p class="skipped">Skipped: {summary.skipped}</p>')
        lines.append(f"        <p>Pass Rate: {summary.pass_rate:.2f}%</p>")
        if options.include_timing:
            lines.append(f"        <p>Duration: {format_duration(summary.total_duration_ms)}</p>")
        lines.append("    </div>")

        for suite in suites:
            headers = ["Test Name", "Status"]
            if options.include_timing:
                headers.append("Duration")
            if options.include_errors:
                headers.append("Error")
            if options.include_responses:
                headers.append("Response")

            lines.append('    <div class="suite">')
            lines.append(f"        <h3>{esc(suite.suite_name)}</h3>")
            lines.append("        <table>")
            lines.append(
                "            <thead><tr>"
                + "".join(f"<th>{h}</th>" for h in headers)
                + "</tr></thead>"
            )
            lines.append("            <tbody>")
            for result in suite.results:
                status = status_label(result)
                cells = [
                    f"<td>{esc(result.test_name)}</td>",
                    f'<td class="{status.lower()}">{status}</td>',
                ]
                if options.include_timing:
                    cells.append(f"<td>{result.duration_ms:.0f}ms</td>")
                if options.include_errors:
                    error = failure_message(result) if result.failed else (result.error or "")
                    cells.append(f"<td>{esc(error)}</td>")
                if options.include_responses:
                    response = json.dumps(result.actual_response, indent=2, default=str)
                    cells.append(f"<td><pre>{esc(response)}</pre></td>")
                lines.append("                <tr>" + "".join(cells) + "</tr>")
            lines.append("            </tbody>")
            lines.append("        </table>")
            lines.append("    </div>")

        lines.append("</body>")
        lines.append("</html>")
        return "\n".join(lines) + "\n"
