"""Publish evaluated analysis verdicts to the metrics sink."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from slo_reconciler.constants import ANALYSIS_RESULT_METRIC, OBJECTIVE_RESULT_METRIC

if TYPE_CHECKING:
    from slo_reconciler.domain.models import Analysis
    from slo_reconciler.evaluation.engine import EvalResult
    from slo_reconciler.observability.metrics import MetricsSink


def _format_weight(weight: float) -> str:
    value = float(weight)
    return str(int(value)) if value.is_integer() else repr(value)


class AnalysisMetricsReporter:
    """Emit one aggregate gauge per analysis and one gauge per objective.

    Emission failures are logged and swallowed: reporting never changes the
    outcome of a reconcile.
    """

    def __init__(self, sink: MetricsSink, *, logger: Any | None = None) -> None:
        self._sink = sink
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def report(self, result: EvalResult, analysis: Analysis) -> int:
        """Return the number of gauges written successfully."""

        timeframe = analysis.spec.timeframe.to_dict()
        window = {"from": str(timeframe["from"]), "to": str(timeframe["to"])}
        written = 0

        try:
            self._sink.set_gauge(
                ANALYSIS_RESULT_METRIC,
                result.achieved_percentage,
                labels={
                    "name": analysis.metadata.name,
                    "namespace": analysis.metadata.namespace,
                    **window,
                },
            )
            written += 1
        except Exception as exc:  # noqa: BLE001
            self._logger.error(
                "analysis_metric_emit_failed",
                metric=ANALYSIS_RESULT_METRIC,
                analysis=analysis.metadata.name,
                namespace=analysis.metadata.namespace,
                error=str(exc),
            )

        for item in result.objective_results:
            ref = item.objective.template_ref
            try:
                self._sink.set_gauge(
                    OBJECTIVE_RESULT_METRIC,
                    item.value if item.value is not None else 0.0,
                    labels={
                        "name": ref.name,
                        "namespace": ref.namespace,
                        "analysis_name": analysis.metadata.name,
                        "analysis_namespace": analysis.metadata.namespace,
                        "key_objective": str(item.objective.key_objective).lower(),
                        "weight": _format_weight(item.objective.weight),
                        **window,
                    },
                )
                written += 1
            except Exception as exc:  # noqa: BLE001
                self._logger.error(
                    "objective_metric_emit_failed",
                    metric=OBJECTIVE_RESULT_METRIC,
                    analysis=analysis.metadata.name,
                    namespace=analysis.metadata.namespace,
                    objective=item.objective.key,
                    error=str(exc),
                )
        return written


__all__ = ["AnalysisMetricsReporter"]
