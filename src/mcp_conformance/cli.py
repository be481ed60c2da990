"""
Command-line interface for the MCP conformance harness.
"""

import asyncio
import functools
import logging
import shlex
import sys
from typing import List, Optional, Tuple

import click

from .client import MCPTestClient
from .config import ClientSettings, HarnessConfig, load_config, validate_config
from .events import EventBus
from .exceptions import ConfigurationError, MCPConnectionError
from .models import TestCategory, TestSeverity, TestSuite, TestSuiteResult
from .protocol_checks import (
    validate_list_prompts_response,
    validate_list_resources_response,
    validate_list_tools_response,
)
from .reporting import ProgressReporter, ReportFormat, get_reporter, save_report
from .runner import TestRunner
from .suites import load_suites

logger = logging.getLogger(__name__)


def _count(advertised: bool, count: int) -> str:
    return str(count) if advertised else "not advertised"


async def _probe_server(settings: ClientSettings) -> bool:
    """Connect, list every advertised capability and shape-check the listings."""
    ok = True
    async with MCPTestClient(settings) as client:
        info = client.get_server_info()
        server = info["serverInfo"]
        click.echo(
            f"  Server       : {server.get('name', 'unknown')} {server.get('version', '')}".rstrip()
        )
        click.echo(f"  Protocol     : {info['protocolVersion']}")

        report = await client.validate_capabilities()
        click.echo(f"  Tools        : {_count(report.has_tools, report.tool_count)}")
        click.echo(f"  Resources    : {_count(report.has_resources, report.resource_count)}")
        click.echo(f"  Prompts      : {_count(report.has_prompts, report.prompt_count)}")
        for warning in report.warnings:
            ok = False
            click.echo(f"  Warning: {warning}", err=True)

        listings = []
        if report.has_tools and report.tool_count:
            listings.append(("tools/list", validate_list_tools_response(await client.list_tools())))
        if report.has_resources and report.resource_count:
            listings.append(
                ("resources/list", validate_list_resources_response(await client.list_resources()))
            )
        if report.has_prompts and report.prompt_count:
            listings.append(
                ("prompts/list", validate_list_prompts_response(await client.list_prompts()))
            )
        for method, check in listings:
            if check.valid:
                click.echo(f"  {method}: well-formed")
            else:
                ok = False
                click.echo(f"  {method}: malformed", err=True)
                for line in check.describe():
                    click.echo(f"    - {line}", err=True)
    return ok


def _run_dry_run(harness_config: HarnessConfig, suites: List[TestSuite]) -> None:
    """Validate config, suites and server connectivity without running any cases.

    Exits 0 when the server answers and its listings are well-formed, 1 otherwise.
    """
    server = harness_config.server
    click.echo("Dry-run mode: validating configuration and connectivity only.")
    click.echo(f"  Command      : {shlex.join([server.command] + server.args)}")
    click.echo(f"  Timeout      : {server.timeout_ms}ms")
    click.echo(f"  Report format: {harness_config.runner.output_format}")
    case_count = sum(len(s.test_cases) for s in suites)
    click.echo(f"  Suites       : {len(suites)} loaded, {case_count} cases")

    click.echo("\nProbing MCP server...")
    try:
        ok = asyncio.run(_probe_server(server))
    except MCPConnectionError as e:
        click.echo(f"  Connection failed: {e}", err=True)
        click.echo("\nDry-run failed: could not start or initialize the server.", err=True)
        sys.exit(1)

    if ok:
        click.echo("\nDry-run passed. Configuration is valid and the server is reachable.")
        sys.exit(0)
    click.echo("\nDry-run failed: the server answered with problems (see above).", err=True)
    sys.exit(1)


async def _run_suites(
    harness_config: HarnessConfig, suites: List[TestSuite], progress: ProgressReporter
) -> List[TestSuiteResult]:
    bus = EventBus()
    progress.attach(bus)
    async with MCPTestClient(harness_config.server) as client:
        runner = TestRunner(client, harness_config.runner, bus)
        return await runner.run_suites(suites)


def _apply_overrides(
    harness_config: HarnessConfig,
    server_command: Optional[str],
    parallel: bool,
    max_concurrency: Optional[int],
    stop_on_failure: bool,
    retry: Optional[int],
    filter_pattern: Optional[str],
    include_tags: Tuple[str, ...],
    exclude_tags: Tuple[str, ...],
    categories: Tuple[str, ...],
    severities: Tuple[str, ...],
    report_format: Optional[str],
    output: Optional[str],
    verbose: bool,
) -> None:
    server = harness_config.server
    runner = harness_config.runner
    if server_command:
        parts = shlex.split(server_command)
        server.command, server.args = parts[0], parts[1:]
    if parallel:
        runner.parallel = True
    if max_concurrency is not None:
        runner.max_concurrency = max_concurrency
    if stop_on_failure:
        runner.stop_on_failure = True
    if retry is not None:
        runner.retry_failed_tests = retry > 0
        runner.max_retries = retry
    if filter_pattern:
        runner.filter = filter_pattern
    if include_tags:
        runner.include_tags = list(include_tags)
    if exclude_tags:
        runner.exclude_tags = list(exclude_tags)
    if categories:
        runner.categories = [TestCategory(c) for c in categories]
    if severities:
        runner.severities = [TestSeverity(s) for s in severities]
    if report_format:
        runner.output_format = report_format
    if output:
        runner.output_path = output
    if verbose:
        runner.verbose = True
        harness_config.report.verbose = True


@click.command()
@click.option(
    "--suite",
    "suite_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML suite file (repeatable)",
)
@click.option(
    "--config",
    type=click.Path(exists=True),
    help="Path to configuration file (YAML)",
)
@click.option(
    "--server-command",
    type=str,
    help="Command that starts the server under test, e.g. 'python server.py' (overrides config)",
)
@click.option("--parallel", is_flag=True, help="Run cases in concurrent windows")
@click.option("--max-concurrency", type=click.IntRange(min=1), help="Window size for --parallel")
@click.option("--stop-on-failure", is_flag=True, help="Stop after the first failing case")
@click.option(
    "--retry",
    type=click.IntRange(min=0),
    help="Re-run failed cases up to N more times",
)
@click.option("--filter", "filter_pattern", type=str, help="Regex matched against case name or id")
@click.option("--include-tag", "include_tags", multiple=True, help="Run only cases with this tag")
@click.option("--exclude-tag", "exclude_tags", multiple=True, help="Skip cases with this tag")
@click.option(
    "--category",
    "categories",
    multiple=True,
    type=click.Choice([c.value for c in TestCategory]),
    help="Run only cases of this category",
)
@click.option(
    "--severity",
    "severities",
    multiple=True,
    type=click.Choice([s.value for s in TestSeverity]),
    help="Run only cases of this severity",
)
@click.option(
    "--report-format",
    type=click.Choice([f.value for f in ReportFormat]),
    help="Report format (overrides config)",
)
@click.option(
    "--output",
    type=click.Path(),
    help="Output file for report (default: stdout)",
)
@click.option("--verbose", is_flag=True, help="Show start and progress lines and per-case detail")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="WARNING",
    help="Logging level",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help=(
        "Start the server, check its handshake and listings, and exit without running cases. "
        "Exits 0 if the server is reachable and well-formed, 1 otherwise."
    ),
)
def main(
    suite_files: Tuple[str, ...],
    config: Optional[str],
    server_command: Optional[str],
    parallel: bool,
    max_concurrency: Optional[int],
    stop_on_failure: bool,
    retry: Optional[int],
    filter_pattern: Optional[str],
    include_tags: Tuple[str, ...],
    exclude_tags: Tuple[str, ...],
    categories: Tuple[str, ...],
    severities: Tuple[str, ...],
    report_format: Optional[str],
    output: Optional[str],
    verbose: bool,
    log_level: str,
    dry_run: bool,
) -> None:
    """
    MCP Conformance Harness - protocol tests for Model Context Protocol servers.

    Examples:

      # Check that the server starts and its listings are well-formed
      mcp-conformance --dry-run --server-command "python server.py"

      # Run a suite
      mcp-conformance --suite suites/core.yaml --config config.yaml

      # CI mode with JUnit output
      mcp-conformance --suite suites/core.yaml --report-format junit --output results.xml
    """
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    try:
        logger.info("Loading configuration...")
        harness_config = load_config(config)
        _apply_overrides(
            harness_config,
            server_command,
            parallel,
            max_concurrency,
            stop_on_failure,
            retry,
            filter_pattern,
            include_tags,
            exclude_tags,
            categories,
            severities,
            report_format,
            output,
            verbose,
        )

        errors = validate_config(harness_config)
        if errors:
            click.echo("Configuration errors:", err=True)
            for error in errors:
                click.echo(f"  - {error}", err=True)
            sys.exit(1)

        suites = load_suites(list(suite_files))

        if dry_run:
            _run_dry_run(harness_config, suites)
            return  # _run_dry_run calls sys.exit internally

        if not suites:
            click.echo("Error: at least one --suite is required", err=True)
            sys.exit(1)

        runner_config = harness_config.runner
        reporter = get_reporter(runner_config.output_format, harness_config.report)

        # Keep stdout clean for machine-readable reports.
        is_console = runner_config.output_format == ReportFormat.CONSOLE.value
        to_stderr = not is_console and not runner_config.output_path
        progress = ProgressReporter(
            harness_config.report,
            echo=functools.partial(click.echo, err=True) if to_stderr else click.echo,
        )

        results = asyncio.run(_run_suites(harness_config, suites, progress))
        report = reporter.generate(results)

        if runner_config.output_path:
            save_report(report, runner_config.output_path)
            click.echo(f"Report written to: {runner_config.output_path}")
            if not is_console:
                console_reporter = get_reporter(ReportFormat.CONSOLE, harness_config.report)
                click.echo(console_reporter.generate(results))
        else:
            click.echo(report)

        failed = sum(r.failed_tests for r in results)
        logger.info(
            "Tests complete: %d passed, %d failed, %d skipped",
            sum(r.passed_tests for r in results),
            failed,
            sum(r.skipped_tests for r in results),
        )

        sys.exit(0 if failed == 0 else 1)

    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except MCPConnectionError as e:
        logger.error("Connection error: %s", e)
        click.echo(f"Connection error: {e}", err=True)
        sys.exit(1)
    except FileNotFoundError as e:
        logger.error("File not found: %s", e)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error: %s", e)
        click.echo(f"Unexpected error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
