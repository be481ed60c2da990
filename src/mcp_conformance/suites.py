"""
Loading test suites from YAML files.

A suite file looks like::

    id: core
    name: Core tools
    timeout_ms: 5000
    cases:
      - id: echo-001
        name: Echo returns its input
        tool: echo
        parameters: {message: hello}
        expect: {success: true}
        rules:
          - {type: required, field: content}
          - {type: pattern, field: content.0.text, expected: "hello"}
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from .builder import TestCaseBuilder, create_test_case
from .exceptions import ConfigurationError
from .models import (
    TestCase,
    TestCategory,
    TestContext,
    TestSeverity,
    TestSuite,
    ValidationRule,
    ValidationRuleType,
)

logger = logging.getLogger(__name__)

_SUITE_KEYS = {"id", "name", "description", "timeout_ms", "tags", "cases"}
_CASE_KEYS = {
    "id",
    "name",
    "description",
    "category",
    "severity",
    "tool",
    "resource",
    "prompt",
    "parameters",
    "expect",
    "rules",
    "depends_on",
    "tags",
    "timeout_ms",
    "skip",
    "skip_reason",
    "context",
}
_EXPECT_KEYS = {
    "success",
    "structure",
    "error_pattern",
    "error_code",
    "max_response_time_ms",
    "tool_result_shape",
}


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _check_keys(data: Dict[str, Any], allowed: set, where: str) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"unknown keys in {where}: {', '.join(unknown)}")


def _parse_rule(entry: Any) -> ValidationRule:
    if not isinstance(entry, dict) or "type" not in entry:
        raise ValueError(f"rule must be a mapping with a type: {entry!r}")
    try:
        rule_type = ValidationRuleType(entry["type"])
    except ValueError:
        raise ValueError(f"unknown rule type '{entry['type']}'")
    if rule_type is ValidationRuleType.CUSTOM:
        raise ValueError("custom rules need a Python callable and cannot be declared in YAML")

    expected = entry.get("expected")
    if rule_type is ValidationRuleType.PATTERN and isinstance(expected, str):
        expected = re.compile(expected)
    if rule_type is ValidationRuleType.RANGE:
        if not isinstance(expected, dict) or not set(expected) <= {"min", "max"}:
            raise ValueError("range rule expects a mapping with min and/or max")

    return ValidationRule(
        type=rule_type,
        field=entry.get("field"),
        expected=expected,
        message=entry.get("message"),
    )


def _apply_expectations(builder: TestCaseBuilder, expect: Dict[str, Any]) -> None:
    _check_keys(expect, _EXPECT_KEYS, "expect")
    success = expect.get("success")
    if success is True:
        builder.expect_success()
    elif success is False or "error_pattern" in expect or "error_code" in expect:
        pattern = expect.get("error_pattern")
        builder.expect_error(
            re.compile(pattern) if isinstance(pattern, str) else None,
            expect.get("error_code"),
        )
    if "structure" in expect:
        builder.expect_structure(expect["structure"])
    if "max_response_time_ms" in expect:
        builder.expect_response_time(expect["max_response_time_ms"])
    if expect.get("tool_result_shape"):
        builder.expect_tool_result_shape()


def parse_case(data: Dict[str, Any]) -> TestCase:
    """
    Build a TestCase from a mapping.

    Raises:
        ValueError: If the mapping is invalid or the builder rejects it
    """
    if not isinstance(data, dict):
        raise ValueError(f"case must be a mapping, got {type(data).__name__}")
    _check_keys(data, _CASE_KEYS, "case")

    builder = create_test_case(str(data.get("id") or ""), str(data.get("name") or ""))

    if data.get("tool"):
        builder.tool(data["tool"])
    if data.get("resource"):
        builder.resource(data["resource"])
    if data.get("prompt"):
        builder.prompt(data["prompt"])
    if "category" in data:
        builder.category(TestCategory(data["category"]))
    if "severity" in data:
        builder.severity(TestSeverity(data["severity"]))
    if data.get("description"):
        builder.description(data["description"])
    if data.get("parameters"):
        builder.parameters(dict(data["parameters"]))
    if data.get("context"):
        builder.context(TestContext(**data["context"]))

    if data.get("expect"):
        _apply_expectations(builder, data["expect"])
    for entry in _as_list(data.get("rules")):
        builder.add_validation_rule(_parse_rule(entry))

    if data.get("timeout_ms") is not None:
        builder.timeout(int(data["timeout_ms"]))
    if data.get("tags"):
        builder.tags(*[str(t) for t in _as_list(data["tags"])])
    if data.get("depends_on"):
        builder.depends_on(*[str(d) for d in _as_list(data["depends_on"])])
    if data.get("skip"):
        builder.skip(data.get("skip_reason"))

    return builder.build()


def parse_suite(data: Dict[str, Any], source: str = "<suite>") -> TestSuite:
    """
    Build a TestSuite from a mapping.

    Raises:
        ConfigurationError: Naming the source and offending case
    """
    if not isinstance(data, dict):
        raise ConfigurationError(f"{source}: suite must be a mapping")
    try:
        _check_keys(data, _SUITE_KEYS, "suite")
    except ValueError as e:
        raise ConfigurationError(f"{source}: {e}")
    if not data.get("id") or not data.get("name"):
        raise ConfigurationError(f"{source}: suite must have id and name")

    cases: List[TestCase] = []
    seen = set()
    for index, entry in enumerate(_as_list(data.get("cases"))):
        label = entry.get("id") if isinstance(entry, dict) and entry.get("id") else f"#{index}"
        try:
            case = parse_case(entry)
        except (TypeError, ValueError, re.error) as e:
            raise ConfigurationError(f"{source}: case '{label}': {e}")
        if case.id in seen:
            raise ConfigurationError(f"{source}: duplicate case id '{case.id}'")
        seen.add(case.id)
        cases.append(case)

    return TestSuite(
        id=str(data["id"]),
        name=str(data["name"]),
        description=data.get("description") or "",
        test_cases=cases,
        timeout_ms=data.get("timeout_ms"),
        tags=[str(t) for t in _as_list(data.get("tags"))],
    )


def load_suite(path: Union[str, Path]) -> TestSuite:
    """
    Load one suite file.

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigurationError: If the YAML or its content is invalid
    """
    path = Path(path)
    logger.info("Loading suite from %s", path)
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in suite file '{path}': {e}")
    except FileNotFoundError:
        raise FileNotFoundError(f"Suite file not found: {path}")
    suite = parse_suite(data, str(path))
    logger.debug("Loaded suite '%s' with %d cases", suite.id, len(suite.test_cases))
    return suite


def load_suites(paths: List[Union[str, Path]]) -> List[TestSuite]:
    """Load several suite files, in order."""
    return [load_suite(p) for p in paths]
