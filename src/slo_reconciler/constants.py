"""Stable constants shared across reconciler layers."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Reconcile defaults (overridable through config).
DEFAULT_MAX_WORKERS: Final[int] = 4
DEFAULT_RETRY_DELAY_SECONDS: Final[float] = 10.0
DEFAULT_COLLECTION_TIMEOUT_SECONDS: Final[float] = 30.0
DEFAULT_NAMESPACE: Final[str] = "default"

# Fraction of an objective's weight credited when it lands in the warning band.
DEFAULT_WARNING_CREDIT: Final[float] = 0.5

# Separator used by objective cache keys; never valid inside a name or namespace.
KEY_SEPARATOR: Final[str] = "/"

# Resource kinds understood by the manifest loader.
ANALYSIS_KIND: Final[str] = "Analysis"
ANALYSIS_DEFINITION_KIND: Final[str] = "AnalysisDefinition"

# Gauge names emitted by the metrics reporter.
ANALYSIS_RESULT_METRIC: Final[str] = "analysis_result"
OBJECTIVE_RESULT_METRIC: Final[str] = "objective_result"

__all__ = [
    "ANALYSIS_DEFINITION_KIND",
    "ANALYSIS_KIND",
    "ANALYSIS_RESULT_METRIC",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_COLLECTION_TIMEOUT_SECONDS",
    "DEFAULT_MAX_WORKERS",
    "DEFAULT_NAMESPACE",
    "DEFAULT_RETRY_DELAY_SECONDS",
    "DEFAULT_WARNING_CREDIT",
    "KEY_SEPARATOR",
    "OBJECTIVE_RESULT_METRIC",
]
