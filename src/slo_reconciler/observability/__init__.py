"""Public observability primitives: structured logging, metrics sink, verdict reporter."""

from slo_reconciler.observability.logging import (
    LoggingConfig,
    LogRedactor,
    StructuredLoggingHandle,
    configure_structlog,
    correlation_scope,
    default_log_redactor,
    flush_logging,
    get_active_logging_handle,
    get_correlation_context,
    setup_structured_logging,
    shutdown_logging,
)
from slo_reconciler.observability.metrics import MetricsRegistry, MetricsSink
from slo_reconciler.observability.reporter import AnalysisMetricsReporter

__all__ = [
    "AnalysisMetricsReporter",
    "LogRedactor",
    "LoggingConfig",
    "MetricsRegistry",
    "MetricsSink",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "flush_logging",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_structured_logging",
    "shutdown_logging",
]
