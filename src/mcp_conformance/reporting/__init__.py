"""
Reporting modules for the MCP conformance harness.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Type, Union

from ..exceptions import ConfigurationError
from .base import ReportFormat, ReportGenerator, ReportOptions
from .console import ConsoleReporter
from .html_reporter import HTMLReporter
from .json_reporter import JSONReporter
from .junit import JUnitReporter
from .markdown import MarkdownReporter
from .progress import ProgressReporter

logger = logging.getLogger(__name__)

REPORTERS: Dict[ReportFormat, Type[ReportGenerator]] = {
    ReportFormat.CONSOLE: ConsoleReporter,
    ReportFormat.JSON: JSONReporter,
    ReportFormat.HTML: HTMLReporter,
    ReportFormat.JUNIT: JUnitReporter,
    ReportFormat.MARKDOWN: MarkdownReporter,
}

_missing = set(ReportFormat) - set(REPORTERS)
if _missing:
    raise RuntimeError(f"No reporter for formats: {sorted(f.value for f in _missing)}")


def get_reporter(
    report_format: Union[str, ReportFormat], options: Optional[ReportOptions] = None
) -> ReportGenerator:
    """
    Create the reporter for a format.

    Raises:
        ConfigurationError: If the format is not supported
    """
    if not isinstance(report_format, ReportFormat):
        try:
            report_format = ReportFormat(report_format)
        except ValueError:
            valid = [f.value for f in ReportFormat]
            raise ConfigurationError(
                f"Unsupported report format '{report_format}'; expected one of {valid}"
            )
    return REPORTERS[report_format](options)


def save_report(report: str, output_path: Optional[Union[str, Path]]) -> Path:
    """
    Write a rendered report, creating parent directories as needed.

    Raises:
        ConfigurationError: If no output path is given
    """
    if not output_path:
        raise ConfigurationError("No output path specified")
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(report, encoding="utf-8")
    logger.info("Report written to %s", path)
    return path


__all__ = [
    "ConsoleReporter",
    "HTMLReporter",
    "JSONReporter",
    "JUnitReporter",
    "MarkdownReporter",
    "ProgressReporter",
    "ReportFormat",
    "ReportGenerator",
    "ReportOptions",
    "get_reporter",
    "save_report",
]
