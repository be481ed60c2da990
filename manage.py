#!/usr/bin/env python3
"""
Cross-platform management script for the MCP conformance harness.
Replaces a Makefile for Windows compatibility.
"""

import argparse
import os
import shutil
import subprocess
import sys
from typing import List, Optional

# Constants
CONFIG_FILE = "config.example.yaml"
EXAMPLE_SUITE = "examples/mock_server_suite.yaml"
MOCK_SERVER_COMMAND = f'"{sys.executable}" mock_mcp_server.py'


def run_command(command: List[str], env: Optional[dict] = None, check: bool = True) -> int:
    """Run a command and return its exit code."""
    print(f"Running: {' '.join(command)}")
    try:
        completed = subprocess.run(command, env=env, check=check)
    except subprocess.CalledProcessError as e:
        print(f"Error executing command: {e}")
        sys.exit(e.returncode)
    return completed.returncode


def clean():
    """Clean up generated files."""
    print("Cleaning up...")
    dirs_to_remove = ["build", "dist", "test-results", "src/mcp_conformance.egg-info"]

    for d in dirs_to_remove:
        if os.path.exists(d):
            print(f"Removing {d}")
            shutil.rmtree(d)

    # Walk to remove __pycache__ and .pyc
    for root, dirs, files in os.walk("."):
        for d in dirs:
            if d == "__pycache__":
                shutil.rmtree(os.path.join(root, d))
        for f in files:
            if f.endswith(".pyc"):
                os.remove(os.path.join(root, f))


def install():
    """Install the package in editable mode with test dependencies."""
    print("Installing package in editable mode...")
    run_command([sys.executable, "-m", "pip", "install", "-e", ".[test]"])


def test():
    """Run all tests."""
    print("Running tests...")
    run_command([sys.executable, "-m", "pytest", "tests/", "-v"])


def _harness(extra: List[str]) -> None:
    command = [
        sys.executable,
        "-m",
        "mcp_conformance.cli",
        "--config",
        CONFIG_FILE,
        "--server-command",
        MOCK_SERVER_COMMAND,
    ] + extra
    sys.exit(run_command(command, check=False))


def run_example(report_format: str):
    """Run the example suite against the bundled mock server."""
    print("Running example suite against mock_mcp_server.py...")
    extra = ["--suite", EXAMPLE_SUITE, "--report-format", report_format]
    if report_format != "console":
        extension = {"junit": "xml", "markdown": "md"}.get(report_format, report_format)
        extra += ["--output", f"test-results/report.{extension}"]
    _harness(extra)


def dry_run():
    """Probe the mock server without running cases."""
    _harness(["--dry-run"])


def main():
    parser = argparse.ArgumentParser(description="Manage the MCP conformance harness")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("install", help="Install package and test dependencies")
    subparsers.add_parser("test", help="Run unit tests")
    run_parser = subparsers.add_parser("run", help="Run the example suite against the mock server")
    run_parser.add_argument(
        "--format",
        default="console",
        choices=["console", "json", "html", "junit", "markdown"],
        help="Report format",
    )
    subparsers.add_parser("dry-run", help="Probe the mock server")
    subparsers.add_parser("clean", help="Clean up artifacts")

    args = parser.parse_args()

    if args.command == "install":
        install()
    elif args.command == "test":
        test()
    elif args.command == "run":
        run_example(args.format)
    elif args.command == "dry-run":
        dry_run()
    elif args.command == "clean":
        clean()
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
