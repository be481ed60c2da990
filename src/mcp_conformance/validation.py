"""
Rule-based validation of captured responses.

All functions here are pure: they inspect a response and return verdicts,
they never raise for a failing check.
"""

import math
import re
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

from .models import ExpectedResponse, RuleOutcome, ValidationRule, ValidationRuleType


class _Missing:
    """Sentinel type for a path that does not resolve."""

    _instance = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


def resolve_path(value: Any, path: Optional[str]) -> Any:
    """
    Resolve a dot-separated path against a nested value.

    Numeric segments index into lists. Returns MISSING when any segment is
    absent, which is distinct from a present None.
    """
    if not path:
        return value
    head, _, rest = path.partition(".")
    if isinstance(value, dict):
        if head not in value:
            return MISSING
        child = value[head]
    elif isinstance(value, list) and head.lstrip("-").isdigit():
        index = int(head)
        if not -len(value) <= index < len(value):
            return MISSING
        child = value[index]
    else:
        return MISSING
    return resolve_path(child, rest) if rest else child


def has_field(value: Any, path: str) -> bool:
    """Return True if the path resolves, even to None."""
    return resolve_path(value, path) is not MISSING


def _scalars_equal(actual: Any, expected: Any) -> bool:
    # True == 1 in Python; JSON treats booleans and numbers as different types.
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    return actual == expected


def matches_structure(actual: Any, expected: Any) -> bool:
    """
    Partial structural match.

    Scalars compare by equality, lists element-wise over the expected
    elements, dicts by subset (extra keys in actual are allowed).
    """
    if expected is None:
        return actual is None
    if isinstance(expected, dict):
        if not isinstance(actual, dict):
            return False
        return all(
            key in actual and matches_structure(actual[key], value)
            for key, value in expected.items()
        )
    if isinstance(expected, list):
        if not isinstance(actual, list) or len(actual) < len(expected):
            return False
        return all(matches_structure(a, e) for a, e in zip(actual, expected))
    return _scalars_equal(actual, expected)


def type_name(value: Any) -> str:
    """JSON type name of a Python value."""
    if value is MISSING:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


_TYPE_CHECKS: Dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    # Arrays count as objects, as they do for JavaScript's typeof.
    "object": lambda v: isinstance(v, (dict, list)),
    "array": lambda v: isinstance(v, list),
    "null": lambda v: v is None,
    "undefined": lambda v: v is MISSING,
}


def _is_datetime(value: str) -> bool:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _is_uri(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_HEX_RE = re.compile(r"^(0x)?[0-9a-fA-F]+$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_INTEGER_RE = re.compile(r"^-?\d+$")

_FORMAT_CHECKS: Dict[str, Callable[[str], bool]] = {
    "uri": _is_uri,
    "email": lambda v: bool(_EMAIL_RE.match(v)),
    "date-time": _is_datetime,
    "uuid": _is_uuid,
    "hex": lambda v: bool(_HEX_RE.match(v)),
    "address": lambda v: bool(_ADDRESS_RE.match(v)),
    "integer": lambda v: bool(_INTEGER_RE.match(v)),
    "number": lambda v: to_number(v) is not None,
}


def to_number(value: Any) -> Optional[float]:
    """Coerce a value to a finite number, or None when it is not numeric."""
    if value is MISSING or value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _outcome(rule: ValidationRule, passed: bool, default_message: str) -> RuleOutcome:
    if passed:
        return RuleOutcome(rule=rule, passed=True)
    return RuleOutcome(rule=rule, passed=False, message=rule.message or default_message)


def _field_required(rule: ValidationRule) -> Optional[RuleOutcome]:
    if not rule.field:
        return RuleOutcome(
            rule=rule, passed=False, message=f"Rule '{rule.type.value}' requires a field"
        )
    return None


def _check_required(rule: ValidationRule, response: Any) -> RuleOutcome:
    missing_field = _field_required(rule)
    if missing_field:
        return missing_field
    return _outcome(
        rule, has_field(response, rule.field), f"Required field {rule.field} is missing"
    )


def _check_type(rule: ValidationRule, response: Any) -> RuleOutcome:
    missing_field = _field_required(rule)
    if missing_field:
        return missing_field
    value = resolve_path(response, rule.field)
    check = _TYPE_CHECKS.get(str(rule.expected))
    if check is None:
        return RuleOutcome(rule=rule, passed=False, message=f"Unknown type '{rule.expected}'")
    return _outcome(
        rule,
        check(value),
        f"Field {rule.field} type mismatch. Expected {rule.expected}, got {type_name(value)}",
    )


def _check_format(rule: ValidationRule, response: Any) -> RuleOutcome:
    missing_field = _field_required(rule)
    if missing_field:
        return missing_field
    check = _FORMAT_CHECKS.get(str(rule.expected))
    if check is None:
        return RuleOutcome(rule=rule, passed=False, message=f"Unknown format '{rule.expected}'")
    value = resolve_path(response, rule.field)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    passed = isinstance(value, str) and check(value)
    return _outcome(rule, passed, f"Field {rule.field} is not a valid {rule.expected}")


def _check_range(rule: ValidationRule, response: Any) -> RuleOutcome:
    missing_field = _field_required(rule)
    if missing_field:
        return missing_field
    raw = resolve_path(response, rule.field)
    value = to_number(raw)
    if value is None:
        return RuleOutcome(
            rule=rule, passed=False, message=f"Field {rule.field} value {raw!r} is not numeric"
        )
    bounds = rule.expected or {}
    if not isinstance(bounds, dict):
        return RuleOutcome(
            rule=rule,
            passed=False,
            message=f"Range for field {rule.field} must map min/max, got {bounds!r}",
        )
    low, high = bounds.get("min"), bounds.get("max")
    for bound in (low, high):
        if bound is not None and to_number(bound) is None:
            return RuleOutcome(
                rule=rule,
                passed=False,
                message=f"Range bound {bound!r} for field {rule.field} is not numeric",
            )
    low = None if low is None else to_number(low)
    high = None if high is None else to_number(high)
    if low is not None and value < low:
        return RuleOutcome(
            rule=rule,
            passed=False,
            message=f"Field {rule.field} value {value:g} is below minimum {low:g}",
        )
    if high is not None and value > high:
        return RuleOutcome(
            rule=rule,
            passed=False,
            message=f"Field {rule.field} value {value:g} is above maximum {high:g}",
        )
    return RuleOutcome(rule=rule, passed=True)


def _check_pattern(rule: ValidationRule, response: Any) -> RuleOutcome:
    missing_field = _field_required(rule)
    if missing_field:
        return missing_field
    if not isinstance(rule.expected, re.Pattern):
        # Not applicable without a compiled pattern.
        return RuleOutcome(rule=rule, passed=True)
    value = resolve_path(response, rule.field)
    text = "undefined" if value is MISSING else str(value)
    return _outcome(
        rule,
        rule.expected.search(text) is not None,
        f"Field {rule.field} does not match pattern {rule.expected.pattern}",
    )


def _run_predicate(predicate: Callable[[Any], bool], response: Any) -> Optional[str]:
    """Run a user predicate; return None on success or a failure reason."""
    try:
        return None if predicate(response) else ""
    except Exception as e:
        return f"Custom validation raised {type(e).__name__}: {e}"


def _check_custom(rule: ValidationRule, response: Any) -> RuleOutcome:
    if rule.validator is None:
        return RuleOutcome(rule=rule, passed=False, message="Custom rule has no validator")
    reason = _run_predicate(rule.validator, response)
    if reason is None:
        return RuleOutcome(rule=rule, passed=True)
    return RuleOutcome(
        rule=rule, passed=False, message=reason or rule.message or "Custom validation failed"
    )


def _check_structure(rule: ValidationRule, response: Any) -> RuleOutcome:
    target = resolve_path(response, rule.field)
    return _outcome(
        rule,
        target is not MISSING and matches_structure(target, rule.expected),
        "Response structure does not match expected",
    )


def _check_error_code(rule: ValidationRule, response: Any) -> RuleOutcome:
    value = resolve_path(response, rule.field or "error.code")
    return _outcome(
        rule,
        value is not MISSING and _scalars_equal(value, rule.expected),
        f"Expected error code {rule.expected}, got {value}",
    )


_RULE_HANDLERS: Dict[ValidationRuleType, Callable[[ValidationRule, Any], RuleOutcome]] = {
    ValidationRuleType.REQUIRED: _check_required,
    ValidationRuleType.TYPE: _check_type,
    ValidationRuleType.FORMAT: _check_format,
    ValidationRuleType.RANGE: _check_range,
    ValidationRuleType.PATTERN: _check_pattern,
    ValidationRuleType.CUSTOM: _check_custom,
    ValidationRuleType.RESPONSE_STRUCTURE: _check_structure,
    ValidationRuleType.ERROR_CODE: _check_error_code,
}

_unhandled = set(ValidationRuleType) - set(_RULE_HANDLERS)
if _unhandled:
    names = sorted(t.value for t in _unhandled)
    raise RuntimeError(f"No validation handler for rule types: {names}")


def evaluate_rule(rule: ValidationRule, response: Any) -> RuleOutcome:
    """Evaluate one rule against a response."""
    return _RULE_HANDLERS[rule.type](rule, response)


def error_text(response: Any, error: Optional[str]) -> str:
    """Text to match error patterns against: transport error or isError content."""
    if error:
        return error
    if isinstance(response, dict) and response.get("isError") is True:
        parts = [
            item.get("text", "")
            for item in response.get("content") or []
            if isinstance(item, dict)
        ]
        return "\n".join(p for p in parts if isinstance(p, str))
    return ""


def _expectation_outcomes(
    response: Any,
    expected: ExpectedResponse,
    error: Optional[str],
    error_code: Optional[int],
) -> List[RuleOutcome]:
    outcomes: List[RuleOutcome] = []
    is_error_result = isinstance(response, dict) and response.get("isError") is True
    succeeded = error is None and not is_error_result

    if expected.success is not None:
        rule = ValidationRule(
            type=ValidationRuleType.RESPONSE_STRUCTURE, field="success", expected=expected.success
        )
        if succeeded == expected.success:
            outcomes.append(RuleOutcome(rule=rule, passed=True))
        else:
            wanted = "succeed" if expected.success else "fail"
            outcomes.append(
                RuleOutcome(rule=rule, passed=False, message=f"Expected the call to {wanted}")
            )

    if expected.error_pattern:
        pattern = expected.error_pattern
        if not isinstance(pattern, re.Pattern):
            pattern = re.compile(str(pattern))
        rule = ValidationRule(type=ValidationRuleType.PATTERN, field="error", expected=pattern)
        text = error_text(response, error)
        outcomes.append(
            _outcome(
                rule,
                bool(text) and pattern.search(text) is not None,
                f"Error message does not match pattern {pattern.pattern}",
            )
        )

    if expected.error_code is not None:
        observed = error_code
        if observed is None:
            code = resolve_path(response, "error.code")
            observed = None if code is MISSING else code
        rule = ValidationRule(type=ValidationRuleType.ERROR_CODE, expected=expected.error_code)
        outcomes.append(
            _outcome(
                rule,
                observed == expected.error_code,
                f"Expected error code {expected.error_code}, got {observed}",
            )
        )

    return outcomes


def validate_response(
    response: Any,
    rules: List[ValidationRule],
    expected: Optional[ExpectedResponse] = None,
    error: Optional[str] = None,
    error_code: Optional[int] = None,
) -> List[RuleOutcome]:
    """
    Validate a response against an expected response and a list of rules.

    Order: structure match, expected custom predicate, success/error
    expectations, then each rule in declaration order.

    Args:
        response: The captured response (None when the call failed)
        rules: Declared validation rules
        expected: Optional expected response descriptor
        error: Transport or protocol error text of the call, if any
        error_code: Protocol error code of the call, if any

    Returns:
        One RuleOutcome per evaluated check
    """
    outcomes: List[RuleOutcome] = []

    if expected is not None:
        if expected.structure is not None:
            rule = ValidationRule(
                type=ValidationRuleType.RESPONSE_STRUCTURE, expected=expected.structure
            )
            outcomes.append(_check_structure(rule, response))

        if expected.custom_validator is not None:
            rule = ValidationRule(
                type=ValidationRuleType.CUSTOM, validator=expected.custom_validator
            )
            outcomes.append(_check_custom(rule, response))

        outcomes.extend(_expectation_outcomes(response, expected, error, error_code))

    for rule in rules:
        outcomes.append(evaluate_rule(rule, response))

    return outcomes
