"""
Live, line-oriented progress output driven by runner events.
"""

from typing import Callable, List, Optional, Tuple

import click

from ..events import (
    ErrorEvent,
    EventBus,
    EventType,
    ProgressEvent,
    SuiteEndEvent,
    SuiteStartEvent,
    TestFailEvent,
    TestPassEvent,
    TestRetryEvent,
    TestSkipEvent,
    TestStartEvent,
)
from ..results import failure_message
from .base import ReportOptions
from .console import Palette, supports_color


class ProgressReporter:
    """Writes one line per lifecycle event; start and progress lines only when verbose."""

    def __init__(
        self,
        options: Optional[ReportOptions] = None,
        echo: Callable[[str], None] = click.echo,
    ):
        self.options = options or ReportOptions()
        self.echo = echo
        color = self.options.use_colors
        self.colors = Palette(supports_color() if color is None else color)
        self._subscriptions: List[Tuple[EventType, Callable]] = []
        self._bus: Optional[EventBus] = None

    def attach(self, bus: EventBus) -> "ProgressReporter":
        """Subscribe to every event type on the bus."""
        handlers = {
            EventType.SUITE_START: self.on_suite_start,
            EventType.SUITE_END: self.on_suite_end,
            EventType.TEST_START: self.on_test_start,
            EventType.TEST_PASS: self.on_test_pass,
            EventType.TEST_FAIL: self.on_test_fail,
            EventType.TEST_SKIP: self.on_test_skip,
            EventType.TEST_RETRY: self.on_test_retry,
            EventType.PROGRESS: self.on_progress,
            EventType.ERROR: self.on_error,
        }
        for event_type, handler in handlers.items():
            bus.subscribe(event_type, handler)
            self._subscriptions.append((event_type, handler))
        self._bus = bus
        return self

    def detach(self) -> None:
        if self._bus is None:
            return
        for event_type, handler in self._subscriptions:
            self._bus.unsubscribe(event_type, handler)
        self._subscriptions = []
        self._bus = None

    def _timing(self, duration_ms: float) -> str:
        return f" ({duration_ms:.0f}ms)" if self.options.include_timing else ""

    def on_suite_start(self, event: SuiteStartEvent) -> None:
        c = self.colors
        self.echo(f"\n{c.BOLD}Running suite: {event.suite.name}{c.RESET}")

    def on_suite_end(self, event: SuiteEndEvent) -> None:
        result = event.result
        self.echo(
            f"  Suite complete: {result.passed_tests}/{result.total_tests} passed "
            f"({result.pass_rate:.1f}%)"
        )

    def on_test_start(self, event: TestStartEvent) -> None:
        if self.options.verbose:
            self.echo(f"  Starting: {event.test_case.name}")

    def on_test_pass(self, event: TestPassEvent) -> None:
        c = self.colors
        result = event.result
        self.echo(f"  {c.GREEN}PASS{c.RESET}: {result.test_name}{self._timing(result.duration_ms)}")

    def on_test_fail(self, event: TestFailEvent) -> None:
        c = self.colors
        result = event.result
        self.echo(f"  {c.RED}FAIL{c.RESET}: {result.test_name}{self._timing(result.duration_ms)}")
        if self.options.include_errors:
            self.echo(f"     Error: {failure_message(result)}")

    def on_test_skip(self, event: TestSkipEvent) -> None:
        c = self.colors
        result = event.result
        reason = f" ({result.error})" if result.error else ""
        self.echo(f"  {c.YELLOW}SKIP{c.RESET}: {result.test_name}{reason}")

    def on_test_retry(self, event: TestRetryEvent) -> None:
        c = self.colors
        self.echo(f"  {c.YELLOW}RETRY{c.RESET}: {event.test_case.name} (attempt {event.attempt})")

    def on_progress(self, event: ProgressEvent) -> None:
        if not self.options.verbose or event.total == 0:
            return
        percent = event.completed / event.total * 100
        self.echo(f"  Progress: {event.completed}/{event.total} ({percent:.0f}%)")

    def on_error(self, event: ErrorEvent) -> None:
        c = self.colors
        self.echo(f"  {c.RED}ERROR{c.RESET}: {event.error}")
