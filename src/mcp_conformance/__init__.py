"""
MCP conformance harness: declarative protocol tests for Model Context Protocol servers.
"""

__version__ = "0.1.0"

from .builder import TestCaseBuilder, create_test_case  # noqa: E402
from .client import MCPTestClient  # noqa: E402
from .config import (  # noqa: E402
    ClientSettings,
    HarnessConfig,
    RunnerConfig,
    load_config,
    validate_config,
)
from .events import EventBus, EventType  # noqa: E402
from .exceptions import (  # noqa: E402
    ClientStateError,
    ConfigurationError,
    HarnessError,
    MCPConnectionError,
    OperationTimeoutError,
    ProtocolError,
)
from .models import (  # noqa: E402
    TestCase,
    TestCategory,
    TestResult,
    TestSeverity,
    TestSuite,
    TestSuiteResult,
    ValidationRule,
    ValidationRuleType,
)
from .reporting import ReportFormat, ReportOptions, get_reporter, save_report  # noqa: E402
from .results import summarize  # noqa: E402
from .runner import TestRunner  # noqa: E402
from .suites import load_suite, load_suites  # noqa: E402
from .validation import validate_response  # noqa: E402

__all__ = [
    "ClientSettings",
    "ClientStateError",
    "ConfigurationError",
    "EventBus",
    "EventType",
    "HarnessConfig",
    "HarnessError",
    "MCPConnectionError",
    "MCPTestClient",
    "OperationTimeoutError",
    "ProtocolError",
    "ReportFormat",
    "ReportOptions",
    "RunnerConfig",
    "TestCase",
    "TestCaseBuilder",
    "TestCategory",
    "TestResult",
    "TestRunner",
    "TestSeverity",
    "TestSuite",
    "TestSuiteResult",
    "ValidationRule",
    "ValidationRuleType",
    "create_test_case",
    "get_reporter",
    "load_config",
    "load_suite",
    "load_suites",
    "save_report",
    "summarize",
    "validate_response",
]
