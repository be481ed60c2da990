"""Tests for test runner."""

from unittest.mock import MagicMock

import pytest

from conftest import StubClient, slow_tool, text_response
from mcp_conformance.builder import create_test_case
from mcp_conformance.config import RunnerConfig
from mcp_conformance.events import EventBus, EventType
from mcp_conformance.exceptions import ConfigurationError
from mcp_conformance.models import TestCategory, TestSeverity, TestSuite
from mcp_conformance.runner import TestRunner


def _suite(*cases, **kwargs):
    return TestSuite(id=kwargs.pop("id", "suite"), name="Suite", test_cases=list(cases), **kwargs)


def _echo(test_id="echo-001", **kwargs):
    builder = create_test_case(test_id, kwargs.pop("name", f"Echo {test_id}")).tool("echo")
    builder.parameters({"message": "hello"}).require_field("content")
    # Remaining keyword arguments name builder methods; tuples are spread.
    for key, value in kwargs.items():
        args = value if isinstance(value, tuple) else (value,)
        getattr(builder, key)(*args)
    return builder.build()


def _recorder(bus):
    """Subscribe to every event type and return the (type, payload) log."""
    log = []
    for event_type in EventType:
        bus.subscribe(event_type, lambda payload, t=event_type: log.append((t, payload)))
    return log


class TestRunnerConfig:
    def test_get_config_returns_copy(self, stub_client):
        runner = TestRunner(stub_client, RunnerConfig(max_concurrency=3))
        config = runner.get_config()
        config.max_concurrency = 9
        assert runner.config.max_concurrency == 3

    def test_set_config(self, stub_client):
        runner = TestRunner(stub_client)
        runner.set_config(parallel=True, max_concurrency=2)
        assert runner.config.parallel is True
        assert runner.config.max_concurrency == 2

    def test_set_config_unknown_field(self, stub_client):
        runner = TestRunner(stub_client)
        with pytest.raises(ConfigurationError):
            runner.set_config(warp_speed=True)


class TestSequentialRun:
    @pytest.mark.asyncio
    async def test_passing_case(self, stub_client):
        runner = TestRunner(stub_client)
        result = await runner.run_suite(_suite(_echo()))

        assert result.total_tests == 1
        assert result.passed_tests == 1
        assert result.pass_rate == 100.0
        case = result.results[0]
        assert case.passed
        assert case.actual_response["content"][0]["text"] == "hello"
        assert case.metadata == {"category": "tool", "severity": "medium", "tags": []}
        assert runner.completed_tests == {"echo-001"}

    @pytest.mark.asyncio
    async def test_timeout_fails_case(self, stub_client):
        case = create_test_case("slow-001", "Slow").tool("slow").timeout(50).build()
        runner = TestRunner(stub_client)
        result = await runner.run_suite(_suite(case))

        assert result.failed_tests == 1
        assert result.pass_rate == 0.0
        assert "timed out" in result.results[0].error
        assert runner.failure_count == 1
        assert runner.completed_tests == set()

    @pytest.mark.asyncio
    async def test_suite_timeout_applies_when_case_has_none(self, stub_client):
        case = create_test_case("slow-001", "Slow").tool("slow").build()
        result = await TestRunner(stub_client).run_suite(_suite(case, timeout_ms=50))
        assert result.results[0].error == "Operation callTool:slow timed out"

    @pytest.mark.asyncio
    async def test_config_timeout_is_last_resort(self, stub_client):
        case = create_test_case("slow-001", "Slow").tool("slow").build()
        runner = TestRunner(stub_client, RunnerConfig(timeout_ms=50))
        result = await runner.run_suite(_suite(case))
        assert result.failed_tests == 1

    @pytest.mark.asyncio
    async def test_call_failure_on_tool_case(self, stub_client):
        case = create_test_case("nope-001", "Unknown tool").tool("nope").build()
        result = await TestRunner(stub_client).run_suite(_suite(case))
        assert result.results[0].error == "MCP error -32602: Unknown tool: nope"
        assert result.results[0].failed

    @pytest.mark.asyncio
    async def test_expected_protocol_error_passes(self, stub_client):
        case = (
            create_test_case("nope-001", "Unknown tool is rejected")
            .tool("nope")
            .expect_error("Unknown tool", code=-32602)
            .build()
        )
        result = await TestRunner(stub_client).run_suite(_suite(case))
        assert result.results[0].passed

    @pytest.mark.asyncio
    async def test_error_handling_case_with_is_error_result(self, stub_client):
        case = (
            create_test_case("fail-001", "Failing tool")
            .tool("fail")
            .category(TestCategory.ERROR_HANDLING)
            .parameters({"reason": "boom"})
            .expect_error("Tool failed: boom")
            .build()
        )
        result = await TestRunner(stub_client).run_suite(_suite(case))
        assert result.results[0].passed
        assert result.results[0].metadata["category"] == "error-handling"

    @pytest.mark.asyncio
    async def test_error_handling_records_call_failure(self, stub_client):
        case = (
            create_test_case("param-001", "Bad parameters")
            .tool("nope")
            .category(TestCategory.PARAMETER)
            .expect_success()
            .build()
        )
        result = await TestRunner(stub_client).run_suite(_suite(case))
        outcome = result.results[0]
        assert outcome.failed
        assert outcome.error == "MCP error -32602: Unknown tool: nope"
        assert outcome.validation_results[0].message == "Expected the call to succeed"

    @pytest.mark.asyncio
    async def test_category_without_target_fails(self, stub_client):
        case = create_test_case("sec-001", "Security").category(TestCategory.SECURITY).build()
        result = await TestRunner(stub_client).run_suite(_suite(case))
        assert "has no tool, resource or prompt" in result.results[0].error

    @pytest.mark.asyncio
    async def test_resource_and_prompt_cases(self, stub_client):
        resource = (
            create_test_case("res-001", "Status")
            .resource("mock://status")
            .require_field("contents.0.text")
            .build()
        )
        prompt = (
            create_test_case("prompt-001", "Greeting")
            .prompt("greeting")
            .parameters({"name": "Ada"})
            .expect_structure({"messages": [{"content": {"text": "Hi Ada"}}]})
            .build()
        )
        missing = create_test_case("res-002", "Missing").resource("mock://missing").build()
        result = await TestRunner(stub_client).run_suite(_suite(resource, prompt, missing))
        assert [r.passed for r in result.results] == [True, True, False]
        assert "Resource not found" in result.results[2].error

    @pytest.mark.asyncio
    async def test_max_response_time(self):
        client = StubClient(tools={"slow": slow_tool(0.1)})
        case = create_test_case("slow-001", "Slow").tool("slow").expect_response_time(10).build()
        result = await TestRunner(client).run_suite(_suite(case))
        outcome = result.results[0]
        assert outcome.failed
        assert outcome.error.startswith("Response time ")
        assert outcome.error.endswith("exceeded maximum 10ms")

    @pytest.mark.asyncio
    async def test_stop_on_failure(self, stub_client):
        failing = (
            create_test_case("fail-001", "Failing tool").tool("fail").expect_success().build()
        )
        runner = TestRunner(stub_client, RunnerConfig(stop_on_failure=True))
        result = await runner.run_suite(_suite(failing, _echo()))

        assert result.total_tests == 1
        assert result.failed_tests == 1
        assert result.passed_tests + result.failed_tests + result.skipped_tests == 1
        assert [c[1] for c in stub_client.calls] == ["fail"]

    @pytest.mark.asyncio
    async def test_events_order(self, stub_client):
        bus = EventBus()
        log = _recorder(bus)
        await TestRunner(stub_client, events=bus).run_suite(_suite(_echo()))
        assert [t for t, _ in log] == [
            EventType.SUITE_START,
            EventType.TEST_START,
            EventType.PROGRESS,
            EventType.TEST_PASS,
            EventType.SUITE_END,
        ]
        progress = log[2][1]
        assert (progress.completed, progress.total) == (1, 1)

    @pytest.mark.asyncio
    async def test_state_resets_between_suites(self, stub_client):
        runner = TestRunner(stub_client)
        await runner.run_suite(_suite(_echo()))
        dependent = _echo("echo-002", depends_on="echo-001")
        result = await runner.run_suite(_suite(dependent))
        assert result.skipped_tests == 1


class TestDependenciesAndSkips:
    @pytest.mark.asyncio
    async def test_dependency_met(self, stub_client):
        result = await TestRunner(stub_client).run_suite(
            _suite(_echo("a"), _echo("b", depends_on="a"))
        )
        assert result.passed_tests == 2

    @pytest.mark.asyncio
    async def test_skip_chain(self, stub_client):
        bus = EventBus()
        skipped = MagicMock()
        bus.subscribe(EventType.TEST_SKIP, skipped)
        suite = _suite(
            _echo("a", skip="not ready"),
            _echo("b", depends_on="a"),
            _echo("c", depends_on="b"),
        )
        result = await TestRunner(stub_client, events=bus).run_suite(suite)

        assert result.skipped_tests == 3
        assert result.total_tests == 3
        assert [r.error for r in result.results] == [
            "not ready",
            "Unmet dependencies: a",
            "Unmet dependencies: b",
        ]
        assert skipped.call_count == 3
        assert stub_client.calls == []

    @pytest.mark.asyncio
    async def test_failed_dependency_skips_dependent(self, stub_client):
        failing = create_test_case("a", "Failing tool").tool("fail").expect_success().build()
        result = await TestRunner(stub_client).run_suite(
            _suite(failing, _echo("b", depends_on="a"))
        )
        assert result.failed_tests == 1
        assert result.skipped_tests == 1

    @pytest.mark.asyncio
    async def test_dependency_filtered_out(self, stub_client):
        runner = TestRunner(stub_client, RunnerConfig(filter="^b$"))
        result = await runner.run_suite(_suite(_echo("a"), _echo("b", depends_on="a")))
        assert result.total_tests == 1
        assert result.results[0].skipped
        assert result.results[0].error == "Unmet dependencies: a"


class TestRetries:
    @staticmethod
    def _flaky(failures):
        state = {"calls": 0}

        def handler(params):
            state["calls"] += 1
            if state["calls"] <= failures:
                return text_response("not yet", is_error=True)
            return text_response("ok")

        return handler

    def _case(self):
        return create_test_case("flaky-001", "Flaky").tool("flaky").expect_success().build()

    @pytest.mark.asyncio
    async def test_retry_until_pass(self):
        client = StubClient(tools={"flaky": self._flaky(1)})
        bus = EventBus()
        retries = []
        bus.subscribe(EventType.TEST_RETRY, retries.append)
        config = RunnerConfig(retry_failed_tests=True, max_retries=2)
        result = await TestRunner(client, config, bus).run_suite(_suite(self._case()))

        assert result.passed_tests == 1
        assert result.results[0].attempts == 2
        assert [r.attempt for r in retries] == [2]
        assert retries[0].previous.failed

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        client = StubClient(tools={"flaky": self._flaky(10)})
        config = RunnerConfig(retry_failed_tests=True, max_retries=2)
        result = await TestRunner(client, config).run_suite(_suite(self._case()))
        assert result.failed_tests == 1
        assert result.results[0].attempts == 3
        assert len(client.calls) == 3

    @pytest.mark.asyncio
    async def test_no_retry_by_default(self):
        client = StubClient(tools={"flaky": self._flaky(1)})
        result = await TestRunner(client).run_suite(_suite(self._case()))
        assert result.failed_tests == 1
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_skipped_cases_are_not_retried(self, stub_client):
        config = RunnerConfig(retry_failed_tests=True)
        result = await TestRunner(stub_client, config).run_suite(_suite(_echo("a", skip="x")))
        assert result.results[0].attempts == 1


class TestParallelRun:
    @pytest.mark.asyncio
    async def test_results_keep_input_order(self):
        client = StubClient(
            tools={"slow": slow_tool(0.1, "slow"), "echo": lambda p: text_response("fast")}
        )
        cases = [
            create_test_case("s", "Slow").tool("slow").build(),
            create_test_case("f", "Fast").tool("echo").build(),
        ]
        config = RunnerConfig(parallel=True, max_concurrency=2)
        result = await TestRunner(client, config).run_suite(_suite(*cases))
        assert [r.test_id for r in result.results] == ["s", "f"]
        assert result.passed_tests == 2

    @pytest.mark.asyncio
    async def test_same_window_dependency_is_unmet(self, stub_client):
        suite = _suite(
            _echo("a"),
            _echo("b", depends_on="a"),
            _echo("c", depends_on="a"),
        )
        config = RunnerConfig(parallel=True, max_concurrency=2)
        result = await TestRunner(stub_client, config).run_suite(suite)

        by_id = {r.test_id: r for r in result.results}
        assert by_id["a"].passed
        assert by_id["b"].skipped
        assert by_id["b"].error == "Unmet dependencies: a"
        assert by_id["c"].passed

    @pytest.mark.asyncio
    async def test_progress_per_window(self, stub_client):
        bus = EventBus()
        progress = []
        bus.subscribe(EventType.PROGRESS, progress.append)
        suite = _suite(*[_echo(f"e{i}") for i in range(5)])
        config = RunnerConfig(parallel=True, max_concurrency=2)
        await TestRunner(stub_client, config, bus).run_suite(suite)
        assert [(p.completed, p.total) for p in progress] == [(2, 5), (4, 5), (5, 5)]

    @pytest.mark.asyncio
    async def test_stop_on_failure_between_windows(self, stub_client):
        failing = create_test_case("f", "Failing").tool("fail").expect_success().build()
        config = RunnerConfig(parallel=True, max_concurrency=2, stop_on_failure=True)
        suite = _suite(failing, _echo("a"), _echo("b"), _echo("c"))
        result = await TestRunner(stub_client, config).run_suite(suite)
        assert result.total_tests == 2
        assert result.failed_tests == 1
        assert result.passed_tests == 1


class TestFilters:
    def _cases(self):
        return [
            _echo("core-1", name="Core echo", tags=("core",)),
            _echo("slow-1", name="Slow echo", tags=("core", "slow"), severity=TestSeverity.LOW),
            create_test_case("err-1", "Errors")
            .tool("fail")
            .category(TestCategory.ERROR_HANDLING)
            .severity(TestSeverity.HIGH)
            .build(),
        ]

    def _ids(self, stub_client, **config):
        runner = TestRunner(stub_client, RunnerConfig(**config))
        return [tc.id for tc in runner.filter_test_cases(self._cases())]

    def test_no_filters(self, stub_client):
        assert self._ids(stub_client) == ["core-1", "slow-1", "err-1"]

    def test_regex_matches_name_or_id(self, stub_client):
        assert self._ids(stub_client, filter="^Slow") == ["slow-1"]
        assert self._ids(stub_client, filter="err-") == ["err-1"]

    def test_include_and_exclude_tags(self, stub_client):
        assert self._ids(stub_client, include_tags=["core"]) == ["core-1", "slow-1"]
        assert self._ids(stub_client, include_tags=["core"], exclude_tags=["slow"]) == ["core-1"]

    def test_categories(self, stub_client):
        assert self._ids(stub_client, categories=["error-handling"]) == ["err-1"]

    def test_severities(self, stub_client):
        assert self._ids(stub_client, severities=[TestSeverity.LOW, TestSeverity.HIGH]) == [
            "slow-1",
            "err-1",
        ]


class TestFixtures:
    @pytest.mark.asyncio
    async def test_hooks_run_in_order(self, stub_client):
        calls = []

        async def before_all():
            calls.append("before_all")

        suite = _suite(
            _echo(
                "a",
                setup=lambda: calls.append("setup"),
                teardown=lambda: calls.append("teardown"),
            ),
            before_all=before_all,
            after_all=lambda: calls.append("after_all"),
            before_each=lambda: calls.append("before_each"),
            after_each=lambda: calls.append("after_each"),
        )
        await TestRunner(stub_client).run_suite(suite)
        assert calls == [
            "before_all",
            "before_each",
            "setup",
            "teardown",
            "after_each",
            "after_all",
        ]

    @pytest.mark.asyncio
    async def test_before_all_failure_propagates(self, stub_client):
        bus = EventBus()
        errors = []
        bus.subscribe(EventType.ERROR, errors.append)

        def broken():
            raise RuntimeError("fixture broke")

        runner = TestRunner(stub_client, events=bus)
        with pytest.raises(RuntimeError, match="fixture broke"):
            await runner.run_suite(_suite(_echo(), id="broken", before_all=broken))
        assert errors[0].suite_id == "broken"
        assert stub_client.calls == []

    @pytest.mark.asyncio
    async def test_case_setup_failure_is_a_failed_result(self, stub_client):
        def broken():
            raise ValueError("setup broke")

        result = await TestRunner(stub_client).run_suite(_suite(_echo("a", setup=broken)))
        assert result.results[0].failed
        assert result.results[0].error == "setup broke"

    @pytest.mark.asyncio
    async def test_teardown_runs_when_validation_fails(self, stub_client):
        teardown = MagicMock()
        case = (
            create_test_case("a", "Failing")
            .tool("fail")
            .expect_success()
            .teardown(teardown)
            .build()
        )
        result = await TestRunner(stub_client).run_suite(_suite(case))
        assert result.failed_tests == 1
        teardown.assert_called_once()


class TestRunSuites:
    @pytest.mark.asyncio
    async def test_runs_all(self, stub_client):
        results = await TestRunner(stub_client).run_suites(
            [_suite(_echo(), id="one"), _suite(_echo(), id="two")]
        )
        assert [r.suite_id for r in results] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_stop_on_failure_between_suites(self, stub_client):
        failing = create_test_case("f", "Failing").tool("fail").expect_success().build()
        runner = TestRunner(stub_client, RunnerConfig(stop_on_failure=True))
        results = await runner.run_suites(
            [_suite(failing, id="one"), _suite(_echo(), id="two")]
        )
        assert [r.suite_id for r in results] == ["one"]
