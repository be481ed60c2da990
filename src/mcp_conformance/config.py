"""
Configuration management for the MCP conformance harness.
"""

import logging
import os
import re
import shlex
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from . import __version__
from .exceptions import ConfigurationError
from .models import TestCategory, TestSeverity
from .reporting.base import ReportFormat, ReportOptions

logger = logging.getLogger(__name__)

# Module-level lock for thread-safe config loading
_config_lock = threading.Lock()

DEFAULT_TIMEOUT_MS = 30000
DEFAULT_PROTOCOL_VERSION = "2024-11-05"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}

__all__ = [
    "ClientSettings",
    "ConfigurationError",
    "HarnessConfig",
    "RunnerConfig",
    "load_config",
    "validate_config",
]


@dataclass
class ClientSettings:
    """How to launch and talk to the server under test."""

    command: str = ""
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    client_name: str = "mcp-conformance"
    client_version: str = __version__
    protocol_version: str = DEFAULT_PROTOCOL_VERSION
    debug: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.args, str):
            self.args = shlex.split(self.args)
        self.env = {str(k): str(v) for k, v in (self.env or {}).items()}


def _to_enums(values: Any, enum_type: Any, field_name: str) -> List[Any]:
    if values is None:
        return []
    if isinstance(values, (str, enum_type)):
        values = [values]
    converted = []
    for value in values:
        if isinstance(value, enum_type):
            converted.append(value)
            continue
        try:
            converted.append(enum_type(value))
        except ValueError:
            allowed = [member.value for member in enum_type]
            raise ConfigurationError(f"{field_name} must be one of {allowed}, got: '{value}'")
    return converted


@dataclass
class RunnerConfig:
    """Execution settings for TestRunner."""

    parallel: bool = False
    max_concurrency: int = 5
    stop_on_failure: bool = False
    retry_failed_tests: bool = False
    max_retries: int = 2
    verbose: bool = False

    # Filters
    filter: Optional[str] = None
    include_tags: List[str] = field(default_factory=list)
    exclude_tags: List[str] = field(default_factory=list)
    categories: List[TestCategory] = field(default_factory=list)
    severities: List[TestSeverity] = field(default_factory=list)

    timeout_ms: int = DEFAULT_TIMEOUT_MS

    # Reporting
    output_format: str = "console"
    output_path: Optional[str] = None

    def __post_init__(self) -> None:
        """Convert YAML-friendly values into enums."""
        self.categories = _to_enums(self.categories, TestCategory, "categories")
        self.severities = _to_enums(self.severities, TestSeverity, "severities")
        if isinstance(self.output_format, ReportFormat):
            self.output_format = self.output_format.value


@dataclass
class HarnessConfig:
    """Top-level configuration: server, runner and report sections."""

    server: ClientSettings = field(default_factory=ClientSettings)
    runner: RunnerConfig = field(default_factory=RunnerConfig)
    report: ReportOptions = field(default_factory=ReportOptions)

    def __post_init__(self) -> None:
        if isinstance(self.server, dict):
            self.server = ClientSettings(**self.server)
        if isinstance(self.runner, dict):
            self.runner = RunnerConfig(**self.runner)
        if isinstance(self.report, dict):
            self.report = ReportOptions(**self.report)


def _parse_env_int(var_name: str) -> Optional[int]:
    """
    Safely parse an integer from an environment variable.

    Args:
        var_name: Name of the environment variable

    Returns:
        Parsed integer value, or None if the variable is not set

    Raises:
        ConfigurationError: If the value cannot be parsed as an integer
    """
    value = os.environ.get(var_name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(
            f"Environment variable {var_name} must be a valid integer, got: '{value}'"
        )


def _parse_env_bool(var_name: str) -> Optional[bool]:
    value = os.environ.get(var_name)
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigurationError(
        f"Environment variable {var_name} must be a boolean (true/false), got: '{value}'"
    )


def _load_from_env() -> Dict[str, Dict[str, Any]]:
    """
    Load configuration from environment variables.

    Supported environment variables:
    - MCP_SERVER_COMMAND: Executable that starts the server under test
    - MCP_SERVER_ARGS: Arguments for the server, shell-quoted
    - MCP_TIMEOUT_MS: Operation timeout in milliseconds (client and runner)
    - MCP_MAX_CONCURRENCY: Window size for parallel execution
    - MCP_PARALLEL: Run cases in concurrent windows (true/false)
    - MCP_REPORT_FORMAT: console, json, html, junit or markdown
    - MCP_OUTPUT_PATH: File the report is written to

    Returns:
        Section name -> overrides for that section

    Raises:
        ConfigurationError: If environment variable values are invalid
    """
    server: Dict[str, Any] = {}
    runner: Dict[str, Any] = {}

    if "MCP_SERVER_COMMAND" in os.environ:
        server["command"] = os.environ["MCP_SERVER_COMMAND"]

    if "MCP_SERVER_ARGS" in os.environ:
        server["args"] = shlex.split(os.environ["MCP_SERVER_ARGS"])

    timeout = _parse_env_int("MCP_TIMEOUT_MS")
    if timeout is not None:
        if timeout <= 0:
            raise ConfigurationError(
                f"Environment variable MCP_TIMEOUT_MS must be a positive integer, got: {timeout}"
            )
        server["timeout_ms"] = timeout
        runner["timeout_ms"] = timeout

    max_concurrency = _parse_env_int("MCP_MAX_CONCURRENCY")
    if max_concurrency is not None:
        runner["max_concurrency"] = max_concurrency

    parallel = _parse_env_bool("MCP_PARALLEL")
    if parallel is not None:
        runner["parallel"] = parallel

    if "MCP_REPORT_FORMAT" in os.environ:
        runner["output_format"] = os.environ["MCP_REPORT_FORMAT"]

    if "MCP_OUTPUT_PATH" in os.environ:
        runner["output_path"] = os.environ["MCP_OUTPUT_PATH"]

    return {name: values for name, values in (("server", server), ("runner", runner)) if values}


def load_config(config_file: Optional[str] = None) -> HarnessConfig:
    """
    Load configuration from file and environment variables.

    Configuration precedence (highest to lowest):
    1. Environment variables
    2. Configuration file
    3. Default values

    Args:
        config_file: Path to YAML configuration file (optional)

    Returns:
        HarnessConfig object with merged configuration

    Raises:
        FileNotFoundError: If config_file is specified but doesn't exist
        ConfigurationError: If config file has invalid YAML or env vars are invalid
    """
    with _config_lock:
        config_data: Dict[str, Any] = {}

        if config_file:
            logger.info("Loading configuration from %s", config_file)
            try:
                with open(config_file, "r") as f:
                    file_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in config file '{config_file}': {e}")
            except FileNotFoundError:
                raise FileNotFoundError(f"Configuration file not found: {config_file}")
            except PermissionError:
                raise ConfigurationError(f"Permission denied reading config file '{config_file}'")
            except OSError as e:
                raise ConfigurationError(f"Unable to read config file '{config_file}': {e}")

            if not isinstance(file_config, dict):
                raise ConfigurationError(
                    f"Config file '{config_file}' must contain a mapping at the top level"
                )
            for section, values in file_config.items():
                if section in ("server", "runner", "report") and not isinstance(values, dict):
                    raise ConfigurationError(f"Config section '{section}' must be a mapping")
                config_data[section] = dict(values) if isinstance(values, dict) else values

        env_overrides = _load_from_env()
        for section, values in env_overrides.items():
            config_data.setdefault(section, {}).update(values)
        if env_overrides:
            logger.debug(
                "Applied environment variable overrides: %s",
                {section: list(values) for section, values in env_overrides.items()},
            )

        try:
            return HarnessConfig(**config_data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")


def validate_config(config: HarnessConfig) -> List[str]:
    """
    Validate configuration and return list of errors.

    Args:
        config: HarnessConfig to validate

    Returns:
        List of error messages (empty if valid)
    """
    errors: List[str] = []
    server = config.server
    runner = config.runner

    if not server.command:
        errors.append("server.command is required")

    if server.timeout_ms <= 0:
        errors.append(f"server.timeout_ms must be positive: {server.timeout_ms}")

    if runner.timeout_ms <= 0:
        errors.append(f"runner.timeout_ms must be positive: {runner.timeout_ms}")

    if runner.max_concurrency < 1:
        errors.append(f"runner.max_concurrency must be at least 1: {runner.max_concurrency}")

    if runner.max_retries < 0:
        errors.append(f"runner.max_retries must not be negative: {runner.max_retries}")

    valid_formats = [f.value for f in ReportFormat]
    if runner.output_format not in valid_formats:
        errors.append(
            f"runner.output_format must be one of {valid_formats}: {runner.output_format}"
        )

    if runner.filter:
        try:
            re.compile(runner.filter)
        except re.error as e:
            errors.append(f"runner.filter is not a valid regular expression: {e}")

    return errors
