"""
Test runner for executing MCP conformance suites.
"""

import asyncio
import dataclasses
import inspect
import logging
import re
import time
from datetime import datetime
from typing import AbstractSet, Any, List, Optional, Set, Tuple

from .client import MCPTestClient
from .config import RunnerConfig
from .events import (
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
from .exceptions import ConfigurationError
from .models import Hook, TestCase, TestCategory, TestResult, TestSuite, TestSuiteResult
from .results import build_suite_result
from .validation import validate_response

logger = logging.getLogger(__name__)

# (response, error text, protocol error code)
CallOutcome = Tuple[Any, Optional[str], Optional[int]]

_PRIMARY_CATEGORIES = (TestCategory.TOOL, TestCategory.RESOURCE, TestCategory.PROMPT)


class CallFailedError(Exception):
    """A case's call failed although the case expected it to succeed."""

    pass


async def run_hook(hook: Optional[Hook]) -> None:
    """Call a setup/teardown hook, awaiting it when it returns an awaitable."""
    if hook is None:
        return
    outcome = hook()
    if inspect.isawaitable(outcome):
        await outcome


class TestRunner:
    """
    Runs test suites against a connected MCPTestClient.

    Per-run state (completed ids, failure count, results) is reset at the
    start of every suite. Case-level errors become failed results; suite
    fixture errors are emitted as ``error`` events and re-raised.
    """

    def __init__(
        self,
        client: MCPTestClient,
        config: Optional[RunnerConfig] = None,
        events: Optional[EventBus] = None,
    ):
        self.client = client
        self.config = config or RunnerConfig()
        self.events = events or EventBus()
        self._completed: Set[str] = set()
        self._failure_count = 0
        self._results: List[TestResult] = []

    def get_config(self) -> RunnerConfig:
        """Return a copy of the current configuration."""
        return dataclasses.replace(self.config)

    def set_config(self, **changes: Any) -> None:
        """
        Update configuration fields.

        Raises:
            ConfigurationError: If a field name is unknown
        """
        try:
            self.config = dataclasses.replace(self.config, **changes)
        except TypeError as e:
            raise ConfigurationError(f"Invalid runner configuration: {e}")

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def completed_tests(self) -> Set[str]:
        return set(self._completed)

    def _reset(self) -> None:
        self._completed = set()
        self._failure_count = 0
        self._results = []

    def filter_test_cases(self, test_cases: List[TestCase]) -> List[TestCase]:
        """
        Apply the configured filters; every configured dimension must match.

        Args:
            test_cases: Cases in suite order

        Returns:
            Matching cases, order preserved
        """
        config = self.config
        filtered = list(test_cases)

        if config.filter:
            pattern = re.compile(config.filter)
            filtered = [
                tc for tc in filtered if pattern.search(tc.name) or pattern.search(tc.id)
            ]

        if config.include_tags:
            filtered = [tc for tc in filtered if any(t in tc.tags for t in config.include_tags)]

        if config.exclude_tags:
            filtered = [
                tc for tc in filtered if not any(t in tc.tags for t in config.exclude_tags)
            ]

        if config.categories:
            filtered = [tc for tc in filtered if tc.category in config.categories]

        if config.severities:
            filtered = [tc for tc in filtered if tc.severity in config.severities]

        return filtered

    async def run_suite(self, suite: TestSuite) -> TestSuiteResult:
        """
        Run one suite: fixtures, filtering, scheduling and aggregation.

        Raises:
            Exception: Whatever a before_all/after_all fixture raised
        """
        start_time = datetime.now()
        self.events.emit(EventType.SUITE_START, SuiteStartEvent(suite=suite))
        self._reset()

        try:
            await run_hook(suite.before_all)

            test_cases = self.filter_test_cases(suite.test_cases)
            logger.info(
                "Running suite '%s': %d of %d cases selected (%s)",
                suite.name,
                len(test_cases),
                len(suite.test_cases),
                "parallel" if self.config.parallel else "sequential",
            )

            if self.config.parallel:
                results = await self._run_parallel(suite, test_cases)
            else:
                results = await self._run_sequential(suite, test_cases)

            await run_hook(suite.after_all)
        except Exception as e:
            logger.error("Suite '%s' aborted: %s", suite.name, e)
            self.events.emit(EventType.ERROR, ErrorEvent(error=e, suite_id=suite.id))
            raise

        if len(results) < len(test_cases):
            logger.info(
                "Stopped on failure; %d cases were not started", len(test_cases) - len(results)
            )

        suite_result = build_suite_result(suite, results, start_time, datetime.now())
        self.events.emit(EventType.SUITE_END, SuiteEndEvent(result=suite_result))
        return suite_result

    async def run_suites(self, suites: List[TestSuite]) -> List[TestSuiteResult]:
        """Run suites in order; stop after a failing suite when stop_on_failure is set."""
        results = []
        for suite in suites:
            result = await self.run_suite(suite)
            results.append(result)
            if self.config.stop_on_failure and result.failed_tests > 0:
                logger.info("Stopping after suite '%s' with failures", suite.name)
                break
        return results

    async def _run_sequential(
        self, suite: TestSuite, test_cases: List[TestCase]
    ) -> List[TestResult]:
        total = len(test_cases)
        for index, test_case in enumerate(test_cases):
            self.events.emit(EventType.TEST_START, TestStartEvent(test_case=test_case))
            self.events.emit(EventType.PROGRESS, ProgressEvent(completed=index + 1, total=total))

            result = await self._run_case(suite, test_case, self._completed)
            self._record(result)

            if self.config.stop_on_failure and result.failed:
                break
        return list(self._results)

    def _plan_windows(self, test_cases: List[TestCase]) -> List[List[TestCase]]:
        size = max(1, self.config.max_concurrency)
        windows = [test_cases[i : i + size] for i in range(0, len(test_cases), size)]
        for window in windows:
            ids = {tc.id for tc in window}
            for tc in window:
                same_window = [dep for dep in tc.dependencies if dep in ids]
                if same_window:
                    logger.warning(
                        "Case '%s' depends on %s in the same concurrent window; "
                        "the dependency will be treated as unmet",
                        tc.id,
                        ", ".join(same_window),
                    )
        return windows

    async def _run_parallel(
        self, suite: TestSuite, test_cases: List[TestCase]
    ) -> List[TestResult]:
        total = len(test_cases)
        completed_count = 0

        for window in self._plan_windows(test_cases):
            # Dependencies resolve against the cases completed before the window started.
            completed_before = frozenset(self._completed)
            for test_case in window:
                self.events.emit(EventType.TEST_START, TestStartEvent(test_case=test_case))

            window_results = await asyncio.gather(
                *(self._run_case(suite, tc, completed_before) for tc in window)
            )
            for result in window_results:
                self._record(result)

            completed_count += len(window)
            self.events.emit(
                EventType.PROGRESS, ProgressEvent(completed=completed_count, total=total)
            )

            if self.config.stop_on_failure and any(r.failed for r in window_results):
                break

        return list(self._results)

    def _record(self, result: TestResult) -> None:
        self._results.append(result)
        if result.skipped:
            self.events.emit(EventType.TEST_SKIP, TestSkipEvent(result=result))
        elif result.passed:
            self._completed.add(result.test_id)
            self.events.emit(EventType.TEST_PASS, TestPassEvent(result=result))
        else:
            self._failure_count += 1
            self.events.emit(EventType.TEST_FAIL, TestFailEvent(result=result))

    async def _run_case(
        self, suite: TestSuite, test_case: TestCase, completed: AbstractSet[str]
    ) -> TestResult:
        """Run a case, retrying failed attempts when configured."""
        result = await self._execute(suite, test_case, completed, attempt=1)
        if not self.config.retry_failed_tests:
            return result

        attempt = 1
        while result.failed and attempt <= self.config.max_retries:
            attempt += 1
            logger.info("Retrying '%s' (attempt %d): %s", test_case.id, attempt, result.error)
            self.events.emit(
                EventType.TEST_RETRY,
                TestRetryEvent(test_case=test_case, attempt=attempt, previous=result),
            )
            result = await self._execute(suite, test_case, completed, attempt=attempt)
        return result

    def _skipped(self, test_case: TestCase, reason: Optional[str]) -> TestResult:
        return TestResult(
            test_id=test_case.id,
            test_name=test_case.name,
            passed=False,
            skipped=True,
            error=reason,
            metadata=_metadata(test_case),
        )

    async def _execute(
        self,
        suite: TestSuite,
        test_case: TestCase,
        completed: AbstractSet[str],
        attempt: int,
    ) -> TestResult:
        if test_case.skip:
            return self._skipped(test_case, test_case.skip_reason)

        unmet = [dep for dep in test_case.dependencies if dep not in completed]
        if unmet:
            return self._skipped(test_case, f"Unmet dependencies: {', '.join(unmet)}")

        timeout_ms = test_case.timeout_ms or suite.timeout_ms or self.config.timeout_ms
        started = time.perf_counter()
        response: Any = None
        error: Optional[str] = None
        outcomes = []
        passed = False

        try:
            await run_hook(suite.before_each)
            await run_hook(test_case.setup)
            try:
                response, error, error_code = await self._dispatch(test_case, timeout_ms)
                outcomes = validate_response(
                    response,
                    test_case.validation_rules,
                    test_case.expected_response,
                    error=error,
                    error_code=error_code,
                )
                passed = all(o.passed for o in outcomes)
            finally:
                await run_hook(test_case.teardown)
                await run_hook(suite.after_each)
        except Exception as e:
            logger.debug("Case '%s' raised %s: %s", test_case.id, type(e).__name__, e)
            passed = False
            error = str(e) or type(e).__name__

        duration_ms = (time.perf_counter() - started) * 1000
        max_time = test_case.expected_response and test_case.expected_response.max_response_time_ms
        if passed and max_time is not None and duration_ms > max_time:
            passed = False
            error = f"Response time {duration_ms:.0f}ms exceeded maximum {max_time}ms"

        return TestResult(
            test_id=test_case.id,
            test_name=test_case.name,
            passed=passed,
            error=error,
            actual_response=response,
            validation_results=outcomes,
            duration_ms=duration_ms,
            attempts=attempt,
            metadata=_metadata(test_case),
        )

    async def _dispatch(self, test_case: TestCase, timeout_ms: int) -> CallOutcome:
        """
        Issue the call a case exercises.

        Tool, resource and prompt cases raise CallFailedError when the call
        fails and the case did not expect failure. Other categories record
        the failure and let validation decide.
        """
        expected = test_case.expected_response
        expects_failure = expected is not None and expected.success is False

        if test_case.category in _PRIMARY_CATEGORIES:
            outcome = await self._call_target(test_case, test_case.category, timeout_ms)
            if outcome[1] is not None and not expects_failure:
                raise CallFailedError(outcome[1])
            return outcome

        for target_category, attr in (
            (TestCategory.TOOL, "tool_name"),
            (TestCategory.RESOURCE, "resource_uri"),
            (TestCategory.PROMPT, "prompt_name"),
        ):
            if getattr(test_case, attr):
                return await self._call_target(test_case, target_category, timeout_ms)

        raise ValueError(
            f"Test case '{test_case.id}' of category '{test_case.category.value}' "
            f"has no tool, resource or prompt to call"
        )

    async def _call_target(
        self, test_case: TestCase, target: TestCategory, timeout_ms: int
    ) -> CallOutcome:
        if target is TestCategory.TOOL:
            call = await self.client.call_tool(
                test_case.tool_name, test_case.parameters, timeout_ms=timeout_ms
            )
            return call.response, call.error, call.error_code

        try:
            if target is TestCategory.RESOURCE:
                response = await self.client.read_resource(
                    test_case.resource_uri, timeout_ms=timeout_ms
                )
            else:
                response = await self.client.get_prompt(
                    test_case.prompt_name, test_case.parameters or None, timeout_ms=timeout_ms
                )
        except Exception as e:
            return None, str(e), getattr(e, "code", None)
        return response, None, None


def _metadata(test_case: TestCase) -> dict:
    return {
        "category": test_case.category.value,
        "severity": test_case.severity.value,
        "tags": list(test_case.tags),
    }
