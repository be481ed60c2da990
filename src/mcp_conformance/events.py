"""
Lifecycle events emitted by the test runner.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List

from .models import TestCase, TestResult, TestSuite, TestSuiteResult

logger = logging.getLogger(__name__)


class EventType(Enum):
    SUITE_START = "suite:start"
    SUITE_END = "suite:end"
    TEST_START = "test:start"
    TEST_PASS = "test:pass"
    TEST_FAIL = "test:fail"
    TEST_SKIP = "test:skip"
    TEST_RETRY = "test:retry"
    PROGRESS = "progress"
    ERROR = "error"


@dataclass(frozen=True)
class SuiteStartEvent:
    suite: TestSuite


@dataclass(frozen=True)
class SuiteEndEvent:
    result: TestSuiteResult


@dataclass(frozen=True)
class TestStartEvent:
    test_case: TestCase


@dataclass(frozen=True)
class TestPassEvent:
    result: TestResult


@dataclass(frozen=True)
class TestFailEvent:
    result: TestResult


@dataclass(frozen=True)
class TestSkipEvent:
    result: TestResult


@dataclass(frozen=True)
class TestRetryEvent:
    """A failed case is about to run again; ``attempt`` is the upcoming attempt number."""

    test_case: TestCase
    attempt: int
    previous: TestResult


@dataclass(frozen=True)
class ProgressEvent:
    completed: int
    total: int


@dataclass(frozen=True)
class ErrorEvent:
    error: BaseException
    suite_id: str = ""


Listener = Callable[[Any], None]


class EventBus:
    """
    Synchronous publish/subscribe channel owned by one runner.

    Listeners run in subscription order inside emit(). A listener that
    raises is logged and skipped; the run is not affected.
    """

    def __init__(self) -> None:
        self._listeners: Dict[EventType, List[Listener]] = {}

    def subscribe(self, event_type: EventType, listener: Listener) -> Listener:
        self._listeners.setdefault(event_type, []).append(listener)
        return listener

    def unsubscribe(self, event_type: EventType, listener: Listener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: EventType) -> int:
        return len(self._listeners.get(event_type, []))

    def emit(self, event_type: EventType, payload: Any) -> None:
        for listener in list(self._listeners.get(event_type, [])):
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener for %s failed", event_type.value)
