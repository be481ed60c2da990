"""
Data models for the MCP conformance harness.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

# Setup/teardown hooks may be plain functions or coroutine functions.
Hook = Callable[[], Optional[Awaitable[None]]]
Predicate = Callable[[Any], bool]


class TestCategory(Enum):
    """Category of a conformance check."""

    TOOL = "tool"
    RESOURCE = "resource"
    PROMPT = "prompt"
    PARAMETER = "parameter"
    ERROR_HANDLING = "error-handling"
    PERFORMANCE = "performance"
    SECURITY = "security"
    COMPATIBILITY = "compatibility"


class TestSeverity(Enum):
    """How important a conformance check is."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ValidationRuleType(Enum):
    """Kinds of validation rule understood by the validation engine."""

    REQUIRED = "required"
    TYPE = "type"
    FORMAT = "format"
    RANGE = "range"
    PATTERN = "pattern"
    CUSTOM = "custom"
    RESPONSE_STRUCTURE = "response-structure"
    ERROR_CODE = "error-code"


@dataclass
class ValidationRule:
    """A single assertion evaluated against a captured response."""

    type: ValidationRuleType
    field: Optional[str] = None
    expected: Any = None
    validator: Optional[Predicate] = None
    message: Optional[str] = None


@dataclass
class ExpectedResponse:
    """Optional expectations attached to a test case."""

    success: Optional[bool] = None
    structure: Optional[Dict[str, Any]] = None
    error_pattern: Any = None
    error_code: Optional[int] = None
    custom_validator: Optional[Predicate] = None
    max_response_time_ms: Optional[float] = None


@dataclass
class TestContext:
    """Descriptive context a case was written for (network, role, ...)."""

    environment: Optional[str] = None
    network: Optional[str] = None
    role: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TestCase:
    """A single declarative conformance check."""

    id: str
    name: str
    description: str
    category: TestCategory
    severity: TestSeverity = TestSeverity.MEDIUM
    tool_name: Optional[str] = None
    resource_uri: Optional[str] = None
    prompt_name: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    expected_response: Optional[ExpectedResponse] = None
    validation_rules: List[ValidationRule] = field(default_factory=list)
    context: Optional[TestContext] = None
    timeout_ms: Optional[int] = None
    skip: bool = False
    skip_reason: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    setup: Optional[Hook] = None
    teardown: Optional[Hook] = None


@dataclass
class TestSuite:
    """A named, ordered collection of test cases with shared fixtures."""

    id: str
    name: str
    description: str = ""
    test_cases: List[TestCase] = field(default_factory=list)
    before_all: Optional[Hook] = None
    after_all: Optional[Hook] = None
    before_each: Optional[Hook] = None
    after_each: Optional[Hook] = None
    timeout_ms: Optional[int] = None
    tags: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RuleOutcome:
    """Verdict of one validation rule."""

    rule: ValidationRule
    passed: bool
    message: Optional[str] = None


@dataclass(frozen=True)
class TestResult:
    """Result of a single executed or skipped test case."""

    test_id: str
    test_name: str
    passed: bool
    skipped: bool = False
    error: Optional[str] = None
    actual_response: Any = None
    validation_results: List[RuleOutcome] = field(default_factory=list)
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)
    attempts: int = 1
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        """Return True if the case ran and did not pass."""
        return not self.passed and not self.skipped


@dataclass
class TestSuiteResult:
    """Aggregated outcome of one suite run."""

    suite_id: str
    suite_name: str
    total_tests: int
    passed_tests: int
    failed_tests: int
    skipped_tests: int
    results: List[TestResult]
    duration_ms: float
    start_time: datetime
    end_time: datetime

    @property
    def pass_rate(self) -> float:
        """Percentage of passed cases, 0 for an empty suite."""
        if self.total_tests == 0:
            return 0.0
        return self.passed_tests / self.total_tests * 100

    @property
    def success(self) -> bool:
        """Return True if no case failed."""
        return self.failed_tests == 0


@dataclass
class ToolCallResult:
    """Outcome of a tool invocation; failures are captured, never raised."""

    success: bool
    tool_name: str
    parameters: Dict[str, Any]
    response: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[int] = None
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class OperationRecord:
    """Entry of the client's operation history."""

    type: str
    timestamp: datetime
    duration_ms: float
    success: bool
    details: Any = None


@dataclass
class ServerCapabilities:
    """Capabilities advertised by the server during the handshake."""

    tools: Optional[Dict[str, Any]] = None
    resources: Optional[Dict[str, Any]] = None
    prompts: Optional[Dict[str, Any]] = None
    logging: Optional[Dict[str, Any]] = None
    experimental: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ServerCapabilities":
        data = data or {}
        return cls(
            tools=data.get("tools"),
            resources=data.get("resources"),
            prompts=data.get("prompts"),
            logging=data.get("logging"),
            experimental=data.get("experimental"),
        )


@dataclass
class CapabilityReport:
    """What the server advertised and what actually answered."""

    has_tools: bool = False
    has_resources: bool = False
    has_prompts: bool = False
    tool_count: int = 0
    resource_count: int = 0
    prompt_count: int = 0
    warnings: List[str] = field(default_factory=list)
