"""
Fluent builder for test cases.
"""

from typing import Any, Dict, Optional, Pattern, Union

from .models import (
    ExpectedResponse,
    Hook,
    Predicate,
    TestCase,
    TestCategory,
    TestContext,
    TestSeverity,
    ValidationRule,
    ValidationRuleType,
)
from .protocol_checks import validate_tool_response

# Category -> (attribute holding the target, human name used in errors)
_TARGET_FIELDS = {
    TestCategory.TOOL: ("tool_name", "tool name"),
    TestCategory.RESOURCE: ("resource_uri", "resource URI"),
    TestCategory.PROMPT: ("prompt_name", "prompt name"),
}


class TestCaseBuilder:
    """
    Accumulates test case fields and validates them in build().

    Example::

        case = (
            create_test_case("tool-001", "Get block number")
            .tool("getBlockNumber")
            .parameters({"provider": "ethereum"})
            .expect_success()
            .require_field("content")
            .tags("core")
            .build()
        )
    """

    def __init__(self, test_id: str, name: str):
        self._fields: Dict[str, Any] = {
            "id": test_id,
            "name": name,
            "parameters": {},
            "validation_rules": [],
            "tags": [],
        }

    def _expected(self) -> ExpectedResponse:
        if self._fields.get("expected_response") is None:
            self._fields["expected_response"] = ExpectedResponse()
        return self._fields["expected_response"]

    def description(self, desc: str) -> "TestCaseBuilder":
        self._fields["description"] = desc
        return self

    def category(self, category: TestCategory) -> "TestCaseBuilder":
        self._fields["category"] = category
        return self

    def severity(self, severity: TestSeverity) -> "TestCaseBuilder":
        self._fields["severity"] = severity
        return self

    def tool(self, name: str) -> "TestCaseBuilder":
        """Target a tool and mark the case as a tool check."""
        self._fields["tool_name"] = name
        self._fields["category"] = TestCategory.TOOL
        return self

    def resource(self, uri: str) -> "TestCaseBuilder":
        """Target a resource and mark the case as a resource check."""
        self._fields["resource_uri"] = uri
        self._fields["category"] = TestCategory.RESOURCE
        return self

    def prompt(self, name: str) -> "TestCaseBuilder":
        """Target a prompt and mark the case as a prompt check."""
        self._fields["prompt_name"] = name
        self._fields["category"] = TestCategory.PROMPT
        return self

    def parameters(self, params: Dict[str, Any]) -> "TestCaseBuilder":
        self._fields["parameters"] = params
        return self

    def context(self, context: TestContext) -> "TestCaseBuilder":
        self._fields["context"] = context
        return self

    def expect_success(self) -> "TestCaseBuilder":
        self._expected().success = True
        return self

    def expect_error(
        self, pattern: Union[str, Pattern, None] = None, code: Optional[int] = None
    ) -> "TestCaseBuilder":
        """Expect the call to fail, optionally with a matching message or code."""
        expected = self._expected()
        expected.success = False
        if pattern:
            expected.error_pattern = pattern
        if code is not None:
            expected.error_code = code
        return self

    def expect_structure(self, structure: Dict[str, Any]) -> "TestCaseBuilder":
        self._expected().structure = structure
        return self

    def expect_response_time(self, max_ms: float) -> "TestCaseBuilder":
        self._expected().max_response_time_ms = max_ms
        return self

    def expect(self, predicate: Predicate) -> "TestCaseBuilder":
        """Attach a whole-response predicate to the expected response."""
        self._expected().custom_validator = predicate
        return self

    def add_validation_rule(self, rule: ValidationRule) -> "TestCaseBuilder":
        self._fields["validation_rules"].append(rule)
        return self

    def require_field(self, field: str) -> "TestCaseBuilder":
        return self.add_validation_rule(
            ValidationRule(
                type=ValidationRuleType.REQUIRED,
                field=field,
                message=f"Field {field} is required",
            )
        )

    def validate_type(self, field: str, type_name: str) -> "TestCaseBuilder":
        return self.add_validation_rule(
            ValidationRule(
                type=ValidationRuleType.TYPE,
                field=field,
                expected=type_name,
                message=f"Field {field} should be of type {type_name}",
            )
        )

    def validate_pattern(self, field: str, pattern: Pattern) -> "TestCaseBuilder":
        return self.add_validation_rule(
            ValidationRule(
                type=ValidationRuleType.PATTERN,
                field=field,
                expected=pattern,
                message=f"Field {field} should match pattern {pattern.pattern}",
            )
        )

    def validate_range(
        self, field: str, min_value: Optional[float] = None, max_value: Optional[float] = None
    ) -> "TestCaseBuilder":
        return self.add_validation_rule(
            ValidationRule(
                type=ValidationRuleType.RANGE,
                field=field,
                expected={"min": min_value, "max": max_value},
                message=f"Field {field} should be between {min_value} and {max_value}",
            )
        )

    def validate_format(self, field: str, format_name: str) -> "TestCaseBuilder":
        return self.add_validation_rule(
            ValidationRule(
                type=ValidationRuleType.FORMAT,
                field=field,
                expected=format_name,
                message=f"Field {field} should be a valid {format_name}",
            )
        )

    def expect_error_code(self, code: int, field: str = "error.code") -> "TestCaseBuilder":
        return self.add_validation_rule(
            ValidationRule(
                type=ValidationRuleType.ERROR_CODE,
                field=field,
                expected=code,
                message=f"Expected error code {code}",
            )
        )

    def custom_validator(
        self, validator: Predicate, message: Optional[str] = None
    ) -> "TestCaseBuilder":
        return self.add_validation_rule(
            ValidationRule(
                type=ValidationRuleType.CUSTOM,
                validator=validator,
                message=message or "Custom validation failed",
            )
        )

    def expect_tool_result_shape(self) -> "TestCaseBuilder":
        """Require the response to be a well-formed tool result."""
        return self.custom_validator(
            lambda response: validate_tool_response(response).valid,
            "Response is not a well-formed tool result",
        )

    def timeout(self, ms: int) -> "TestCaseBuilder":
        self._fields["timeout_ms"] = ms
        return self

    def tags(self, *tags: str) -> "TestCaseBuilder":
        self._fields["tags"].extend(tags)
        return self

    def depends_on(self, *test_ids: str) -> "TestCaseBuilder":
        self._fields["dependencies"] = list(test_ids)
        return self

    def skip(self, reason: Optional[str] = None) -> "TestCaseBuilder":
        self._fields["skip"] = True
        self._fields["skip_reason"] = reason
        return self

    def setup(self, fn: Hook) -> "TestCaseBuilder":
        self._fields["setup"] = fn
        return self

    def teardown(self, fn: Hook) -> "TestCaseBuilder":
        self._fields["teardown"] = fn
        return self

    def build(self) -> TestCase:
        """
        Validate accumulated fields and create the TestCase.

        Raises:
            ValueError: If id, name or category is missing, or the category's
                target (tool name, resource URI, prompt name) is not set
        """
        fields = dict(self._fields)
        if not fields.get("id") or not fields.get("name"):
            raise ValueError("Test case must have id and name")
        category = fields.get("category")
        if category is None:
            raise ValueError(f"Test case '{fields['id']}' must have a category")

        target = _TARGET_FIELDS.get(category)
        if target and not fields.get(target[0]):
            raise ValueError(
                f"Test case '{fields['id']}' of category '{category.value}' "
                f"must specify a {target[1]}"
            )

        fields.setdefault("severity", TestSeverity.MEDIUM)
        if not fields.get("description"):
            fields["description"] = fields["name"]

        fields["parameters"] = dict(fields["parameters"])
        fields["validation_rules"] = list(fields["validation_rules"])
        fields["tags"] = list(fields["tags"])
        return TestCase(**fields)


def create_test_case(test_id: str, name: str) -> TestCaseBuilder:
    """Create a new test case builder."""
    return TestCaseBuilder(test_id, name)
