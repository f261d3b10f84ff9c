"""Command-line surface."""

from pretested_integration.ui.cli import CLIError, CommandBuildExecutor, build_parser, run_cli

__all__ = ["CLIError", "CommandBuildExecutor", "build_parser", "run_cli"]
