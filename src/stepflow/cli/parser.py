"""CLI argument parser."""

from __future__ import annotations

import argparse

from .. import __version__


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Returns:
        ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="stepflow",
        description="stepflow - run step-by-step workflows against email, chat and HTTP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a workflow with contacts loaded from a data file
  stepflow run workflow.yaml -c config.yaml --data contacts.yaml

  # Check a workflow without running it
  stepflow validate workflow.yaml

  # List the available step types
  stepflow handlers
        """,
    )

    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Execute a workflow")
    run_parser.add_argument("workflow", help="Workflow file (YAML or JSON)")
    _add_config_argument(run_parser)
    run_parser.add_argument(
        "--data",
        default=None,
        help="YAML/JSON file with contacts, groups and integrations",
    )
    run_parser.add_argument("--user-id", default=None, help="Run as this user id")
    run_parser.add_argument("--user-email", default="", help="Email of the running user")
    run_parser.add_argument("--user-name", default=None, help="Name of the running user")
    run_parser.add_argument("--run-id", default=None, help="Run id (random if omitted)")
    run_parser.add_argument(
        "--trigger-data", default=None, help="Trigger payload as a JSON object"
    )
    run_parser.add_argument(
        "--json", action="store_true", help="Print the execution result as JSON"
    )
    run_parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    validate_parser = subparsers.add_parser("validate", help="Validate a workflow")
    validate_parser.add_argument("workflow", help="Workflow file (YAML or JSON)")
    _add_config_argument(validate_parser)

    subparsers.add_parser("handlers", help="List registered step types")

    return parser


def _add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Engine configuration file (YAML or JSON); environment only if omitted",
    )
