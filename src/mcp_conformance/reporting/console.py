"""
Console reporter for test results.
"""

import os
import sys
from typing import List, Optional, Union

from ..models import TestSuiteResult
from ..results import failure_message, summarize
from .base import ReportGenerator, ReportOptions, format_duration


def supports_color() -> bool:
    """Return True if the output stream likely supports ANSI colours."""
    # Explicit opt-in / opt-out via environment variable
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    # Non-TTY output (e.g. piped to a file) should not use colour
    if not hasattr(sys.stdout, "isatty") or not sys.stdout.isatty():
        return False
    # Windows: enable ANSI processing via the virtual terminal flag.
    if sys.platform == "win32":
        try:
            import ctypes

            kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
            # STD_OUTPUT_HANDLE = -11
            handle = kernel32.GetStdHandle(-11)
            # ENABLE_VIRTUAL_TERMINAL_PROCESSING = 0x0004
            mode = ctypes.c_ulong()
            kernel32.GetConsoleMode(handle, ctypes.byref(mode))
            kernel32.SetConsoleMode(handle, mode.value | 0x0004)
        except Exception:
            return False
    return True


class Palette:
    """ANSI escape codes, or empty strings when colour is off."""

    def __init__(self, enabled: bool):
        self.GREEN = "\033[92m" if enabled else ""
        self.RED = "\033[91m" if enabled else ""
        self.YELLOW = "\033[93m" if enabled else ""
        self.BLUE = "\033[94m" if enabled else ""
        self.RESET = "\033[0m" if enabled else ""
        self.BOLD = "\033[1m" if enabled else ""


class ConsoleReporter(ReportGenerator):
    """Generate colored console output for test results."""

    def __init__(self, options: Optional[ReportOptions] = None):
        super().__init__(options)
        color = self.options.use_colors
        self.colors = Palette(supports_color() if color is None else color)

    def generate(self, results: Union[TestSuiteResult, List[TestSuiteResult]]) -> str:
        """Generate console report."""
        c = self.colors
        options = self.options
        suites = self._as_list(results)
        summary = summarize(suites)
        lines = []

        # Header
        lines.append("")
        lines.append("=" * 80)
        lines.append(f"{c.BOLD}MCP Test Report{c.RESET}")
        lines.append("=" * 80)

        # Summary statistics
        lines.append(f"\n{c.BOLD}Summary:{c.RESET}")
        lines.append(f"  Total Suites: {summary.total_suites}")
        lines.append(f"  Total Tests: {summary.total_tests}")
        lines.append(f"  {c.GREEN}Passed: {summary.passed}{c.RESET}")
        lines.append(f"  {c.RED}Failed: {summary.failed}{c.RESET}")
        lines.append(f"  {c.YELLOW}Skipped: {summary.skipped}{c.RESET}")
        lines.append(f"  Pass Rate: {summary.pass_rate:.2f}%")
        if options.include_timing:
            lines.append(f"  Total Duration: {format_duration(summary.total_duration_ms)}")
            lines.append(f"  Average Duration: {format_duration(summary.average_duration_ms)}")

        # Per-suite lines
        for suite in suites:
            lines.append("")
            lines.append("-" * 60)
            lines.append(f"{c.BLUE}Suite: {suite.suite_name}{c.RESET}")
            lines.append(
                f"  Tests: {suite.total_tests} | Pass: {suite.passed_tests} | "
                f"Fail: {suite.failed_tests} | Skip: {suite.skipped_tests}"
            )
            if options.include_timing:
                lines.append(f"  Duration: {format_duration(suite.duration_ms)}")

            if options.verbose:
                for result in suite.results:
                    if result.passed:
                        symbol = f"{c.GREEN}✓{c.RESET}"
                    elif result.skipped:
                        symbol = f"{c.YELLOW}○{c.RESET}"
                    else:
                        symbol = f"{c.RED}✗{c.RESET}"
                    timing = f" ({result.duration_ms:.2f}ms)" if options.include_timing else ""
                    lines.append(f"  {symbol} {result.test_name}{timing}")
                    if result.failed and options.include_errors:
                        lines.append(f"      Error: {failure_message(result)}")

        # Failed tests details
        if summary.failed_tests and options.include_errors:
            lines.append(f"\n{c.BOLD}Failed Tests:{c.RESET}")
            for name, message in summary.failed_tests:
                lines.append(f"  {c.RED}✗ {name}{c.RESET}")
                lines.append(f"    Error: {message}")
            if options.include_validation:
                for suite in suites:
                    for result in suite.results:
                        failed_rules = [v for v in result.validation_results if not v.passed]
                        if result.failed and failed_rules:
                            lines.append(f"  Validation failures for {result.test_name}:")
                            for outcome in failed_rules:
                                lines.append(
                                    f"    - [{outcome.rule.type.value}] "
                                    f"{outcome.message or 'failed'}"
                                )

        if summary.slowest_tests and options.include_timing:
            lines.append(f"\n{c.BOLD}Slowest Tests:{c.RESET}")
            for name, duration_ms in summary.slowest_tests:
                lines.append(f"  {name}: {format_duration(duration_ms)}")

        # Overall status
        if summary.success:
            lines.append(f"\n{c.GREEN}{c.BOLD}✓ ALL TESTS PASSED{c.RESET}")
        else:
            lines.append(f"\n{c.RED}{c.BOLD}✗ TESTS FAILED{c.RESET}")

        lines.append("")  # Empty line at end
        return "\n".join(lines)
