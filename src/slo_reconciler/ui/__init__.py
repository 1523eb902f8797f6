"""UI package exports for the command-line surface."""

from slo_reconciler.ui.cli import AnalysisSummary, CLIError, build_parser, run_cli

__all__ = ["AnalysisSummary", "CLIError", "build_parser", "run_cli"]
