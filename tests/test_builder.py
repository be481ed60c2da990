"""Tests for the fluent test case builder."""

import re

import pytest

from mcp_conformance.builder import create_test_case
from mcp_conformance.models import TestCategory, TestSeverity, ValidationRuleType


class TestBuilderTargets:
    def test_tool_sets_category(self):
        case = create_test_case("t1", "Echo").tool("echo").build()
        assert case.tool_name == "echo"
        assert case.category is TestCategory.TOOL

    def test_resource_sets_category(self):
        case = create_test_case("r1", "Status").resource("mock://status").build()
        assert case.resource_uri == "mock://status"
        assert case.category is TestCategory.RESOURCE

    def test_prompt_sets_category(self):
        case = create_test_case("p1", "Greeting").prompt("greeting").build()
        assert case.prompt_name == "greeting"
        assert case.category is TestCategory.PROMPT

    def test_explicit_category_after_target(self):
        case = create_test_case("e1", "Bad").tool("fail").category(TestCategory.ERROR_HANDLING)
        built = case.build()
        assert built.category is TestCategory.ERROR_HANDLING
        assert built.tool_name == "fail"


class TestBuilderDefaults:
    def test_defaults(self):
        case = create_test_case("t1", "Echo").tool("echo").build()
        assert case.severity is TestSeverity.MEDIUM
        assert case.description == "Echo"
        assert case.parameters == {}
        assert case.validation_rules == []
        assert case.skip is False
        assert case.dependencies == []

    def test_description_kept(self):
        case = create_test_case("t1", "Echo").tool("echo").description("Echo it").build()
        assert case.description == "Echo it"


class TestBuilderValidation:
    def test_missing_id(self):
        with pytest.raises(ValueError, match="id and name"):
            create_test_case("", "Echo").tool("echo").build()

    def test_missing_name(self):
        with pytest.raises(ValueError, match="id and name"):
            create_test_case("t1", "").tool("echo").build()

    def test_missing_category(self):
        with pytest.raises(ValueError, match="must have a category"):
            create_test_case("t1", "Echo").build()

    def test_tool_category_requires_tool_name(self):
        with pytest.raises(ValueError, match="tool name"):
            create_test_case("t1", "Echo").category(TestCategory.TOOL).build()

    def test_resource_category_requires_uri(self):
        with pytest.raises(ValueError, match="resource URI"):
            create_test_case("r1", "Res").category(TestCategory.RESOURCE).build()

    def test_prompt_category_requires_name(self):
        with pytest.raises(ValueError, match="prompt name"):
            create_test_case("p1", "Prompt").category(TestCategory.PROMPT).build()

    def test_other_category_needs_no_target(self):
        case = create_test_case("s1", "Security").category(TestCategory.SECURITY).build()
        assert case.category is TestCategory.SECURITY


class TestBuilderExpectations:
    def test_expect_success(self):
        case = create_test_case("t1", "Echo").tool("echo").expect_success().build()
        assert case.expected_response.success is True

    def test_expect_error(self):
        case = (
            create_test_case("t1", "Bad")
            .tool("invalid")
            .expect_error(re.compile("Invalid"), code=-32602)
            .build()
        )
        assert case.expected_response.success is False
        assert case.expected_response.error_pattern.pattern == "Invalid"
        assert case.expected_response.error_code == -32602

    def test_expect_error_without_pattern(self):
        case = create_test_case("t1", "Bad").tool("invalid").expect_error().build()
        assert case.expected_response.error_pattern is None
        assert case.expected_response.error_code is None

    def test_structure_and_response_time(self):
        case = (
            create_test_case("t1", "Echo")
            .tool("echo")
            .expect_structure({"content": []})
            .expect_response_time(250)
            .build()
        )
        assert case.expected_response.structure == {"content": []}
        assert case.expected_response.max_response_time_ms == 250

    def test_expect_predicate(self):
        case = create_test_case("t1", "Echo").tool("echo").expect(lambda r: True).build()
        assert case.expected_response.custom_validator(None) is True


class TestBuilderRules:
    def test_rule_helpers(self):
        case = (
            create_test_case("t1", "Echo")
            .tool("echo")
            .require_field("content")
            .validate_type("content", "array")
            .validate_pattern("content.0.text", re.compile("hi"))
            .validate_range("count", 1, 10)
            .validate_format("id", "uuid")
            .expect_error_code(-32602)
            .custom_validator(lambda r: True)
            .build()
        )
        types = [r.type for r in case.validation_rules]
        assert types == [
            ValidationRuleType.REQUIRED,
            ValidationRuleType.TYPE,
            ValidationRuleType.PATTERN,
            ValidationRuleType.RANGE,
            ValidationRuleType.FORMAT,
            ValidationRuleType.ERROR_CODE,
            ValidationRuleType.CUSTOM,
        ]
        assert case.validation_rules[0].message == "Field content is required"
        assert case.validation_rules[3].expected == {"min": 1, "max": 10}
        assert case.validation_rules[3].message == "Field count should be between 1 and 10"
        assert case.validation_rules[5].field == "error.code"

    def test_tool_result_shape(self):
        case = create_test_case("t1", "Echo").tool("echo").expect_tool_result_shape().build()
        validator = case.validation_rules[0].validator
        assert validator({"content": [{"type": "text", "text": "ok"}]}) is True
        assert validator({"content": "nope"}) is False


class TestBuilderMisc:
    def test_tags_accumulate(self):
        case = create_test_case("t1", "Echo").tool("echo").tags("a", "b").tags("c").build()
        assert case.tags == ["a", "b", "c"]

    def test_depends_on_skip_timeout(self):
        case = (
            create_test_case("t2", "Add")
            .tool("add")
            .depends_on("t1", "t0")
            .skip("later")
            .timeout(500)
            .build()
        )
        assert case.dependencies == ["t1", "t0"]
        assert case.skip is True
        assert case.skip_reason == "later"
        assert case.timeout_ms == 500

    def test_builds_are_independent(self):
        builder = create_test_case("t1", "Echo").tool("echo").tags("a")
        first = builder.build()
        builder.tags("b")
        assert first.tags == ["a"]
        assert builder.build().tags == ["a", "b"]

    def test_hooks(self):
        setup, teardown = (lambda: None), (lambda: None)
        case = create_test_case("t1", "Echo").tool("echo").setup(setup).teardown(teardown).build()
        assert case.setup is setup
        assert case.teardown is teardown
