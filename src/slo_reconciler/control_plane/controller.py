"""
Idempotent reconcile loop for SLO analyses.

Each call to ``AnalysisReconciler.reconcile`` moves one analysis forward:

- fresh: nothing stored yet, every objective is outstanding;
- partially_resolved: some objectives stored, the run is requeued after the
  fixed retry delay;
- evaluated: every objective resolved and the verdict persisted (terminal).

Re-running on an evaluated analysis is a no-op. A spec edit (generation
change, see ``generation_changed``) restarts the cycle through the external
scheduler.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from slo_reconciler.constants import (
    DEFAULT_COLLECTION_TIMEOUT_SECONDS,
    DEFAULT_MAX_WORKERS,
    DEFAULT_NAMESPACE,
    DEFAULT_RETRY_DELAY_SECONDS,
    DEFAULT_WARNING_CREDIT,
)
from slo_reconciler.control_plane.result_cache import derive_state, merge_results, partition
from slo_reconciler.control_plane.worker_pool import ObjectiveDispatcher, ObjectiveWorkerPool
from slo_reconciler.domain.models import Analysis, AnalysisState, AnalysisStatus
from slo_reconciler.evaluation.engine import EvalResult, Evaluator, WeightedEvaluator
from slo_reconciler.observability.logging import correlation_scope
from slo_reconciler.observability.reporter import AnalysisMetricsReporter
from slo_reconciler.persistence.store import NotFoundError, StoreError
from slo_reconciler.utils.concurrency import CancellationToken

if TYPE_CHECKING:
    from slo_reconciler.observability.metrics import MetricsSink
    from slo_reconciler.persistence.store import AnalysisStore
    from slo_reconciler.providers.base import ProviderQuery


@dataclass(frozen=True, slots=True)
class ReconcilerSettings:
    max_workers: int = DEFAULT_MAX_WORKERS
    retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS
    collection_timeout_seconds: float | None = DEFAULT_COLLECTION_TIMEOUT_SECONDS
    default_namespace: str = DEFAULT_NAMESPACE
    warning_credit: float = DEFAULT_WARNING_CREDIT

    def __post_init__(self) -> None:
        if isinstance(self.max_workers, bool) or self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if self.retry_delay_seconds <= 0:
            raise ValueError("retry_delay_seconds must be > 0")
        if self.collection_timeout_seconds is not None and self.collection_timeout_seconds <= 0:
            raise ValueError("collection_timeout_seconds must be > 0")
        if not self.default_namespace:
            raise ValueError("default_namespace must not be empty")
        if not 0.0 <= self.warning_credit <= 1.0:
            raise ValueError("warning_credit must be within [0, 1]")

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> ReconcilerSettings:
        """Build settings from a validated config mapping."""

        reconciler = config.get("reconciler", {})
        evaluation = config.get("evaluation", {})
        if not isinstance(reconciler, Mapping) or not isinstance(evaluation, Mapping):
            raise ValueError("config sections 'reconciler' and 'evaluation' must be tables")
        return cls(
            max_workers=int(reconciler.get("max_workers", DEFAULT_MAX_WORKERS)),
            retry_delay_seconds=float(
                reconciler.get("retry_delay_seconds", DEFAULT_RETRY_DELAY_SECONDS)
            ),
            collection_timeout_seconds=float(
                reconciler.get("collection_timeout_seconds", DEFAULT_COLLECTION_TIMEOUT_SECONDS)
            ),
            default_namespace=str(reconciler.get("default_namespace", DEFAULT_NAMESPACE)),
            warning_credit=float(evaluation.get("warning_credit", DEFAULT_WARNING_CREDIT)),
        )


@dataclass(frozen=True, slots=True)
class ReconcileRequest:
    namespace: str
    name: str
    cancel_token: CancellationToken | None = None


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """What the external scheduler should do next.

    ``state`` is ``None`` when the analysis no longer exists.
    """

    requeue_after: float | None = None
    state: AnalysisState | None = None

    @property
    def requeue(self) -> bool:
        return self.requeue_after is not None


def generation_changed(old: Analysis | None, new: Analysis) -> bool:
    """Watch filter: only spec edits (generation bumps) trigger a reconcile."""

    if old is None:
        return True
    return old.metadata.generation != new.metadata.generation


class AnalysisReconciler:
    """Drive analyses from fresh to evaluated across scheduler invocations.

    The dispatcher and evaluator are injected strategies; the reporter is
    optional and runs in the background once a verdict is persisted.
    """

    def __init__(
        self,
        store: AnalysisStore,
        dispatcher: ObjectiveDispatcher,
        *,
        evaluator: Evaluator | None = None,
        reporter: AnalysisMetricsReporter | None = None,
        settings: ReconcilerSettings | None = None,
        logger: Any | None = None,
    ) -> None:
        self._settings = settings if settings is not None else ReconcilerSettings()
        self._store = store
        self._dispatcher = dispatcher
        self._evaluator = (
            evaluator
            if evaluator is not None
            else WeightedEvaluator(warning_credit=self._settings.warning_credit)
        )
        self._reporter = reporter
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._background: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(
        cls,
        store: AnalysisStore,
        provider: ProviderQuery,
        *,
        settings: ReconcilerSettings | None = None,
        metrics: MetricsSink | None = None,
        logger: Any | None = None,
    ) -> AnalysisReconciler:
        resolved = settings if settings is not None else ReconcilerSettings()
        return cls(
            store,
            ObjectiveWorkerPool(
                provider,
                max_workers=resolved.max_workers,
                collection_timeout_seconds=resolved.collection_timeout_seconds,
                logger=logger,
            ),
            evaluator=WeightedEvaluator(warning_credit=resolved.warning_credit),
            reporter=AnalysisMetricsReporter(metrics, logger=logger) if metrics is not None else None,
            settings=resolved,
            logger=logger,
        )

    @property
    def settings(self) -> ReconcilerSettings:
        return self._settings

    @property
    def pending_reports(self) -> int:
        return len(self._background)

    async def reconcile(self, request: ReconcileRequest) -> ReconcileResult:
        with correlation_scope(analysis=request.name, namespace=request.namespace):
            return await self._reconcile(request)

    async def _reconcile(self, request: ReconcileRequest) -> ReconcileResult:
        retry_delay = self._settings.retry_delay_seconds
        self._logger.debug(
            "analysis_reconcile_started", analysis=request.name, namespace=request.namespace
        )

        try:
            analysis = await self._store.get_analysis(request.namespace, request.name)
        except NotFoundError:
            self._logger.info(
                "analysis_not_found",
                analysis=request.name,
                namespace=request.namespace,
                detail="resource must have been deleted, ignoring",
            )
            return ReconcileResult()
        except StoreError as exc:
            self._logger.error(
                "analysis_read_failed",
                analysis=request.name,
                namespace=request.namespace,
                error=str(exc),
            )
            raise

        status = analysis.status
        stored = status.stored_values
        definition_ref = analysis.spec.definition_ref.with_default_namespace(
            self._settings.default_namespace
        )
        try:
            definition = await self._store.get_definition(
                definition_ref.namespace, definition_ref.name
            )
        except NotFoundError:
            self._logger.info(
                "analysis_definition_not_found",
                analysis=request.name,
                namespace=request.namespace,
                definition=definition_ref.name,
                definition_namespace=definition_ref.namespace,
                requeue_after=retry_delay,
            )
            return ReconcileResult(
                requeue_after=retry_delay,
                state=AnalysisState.PARTIALLY_RESOLVED if stored else AnalysisState.FRESH,
            )
        except StoreError as exc:
            self._logger.error(
                "analysis_definition_read_failed",
                analysis=request.name,
                namespace=request.namespace,
                definition=definition_ref.name,
                error=str(exc),
            )
            raise

        split = partition(definition.objectives, stored)
        if split.is_complete and (stored or status.raw):
            self._logger.debug(
                "analysis_already_resolved", analysis=request.name, namespace=request.namespace
            )
            return ReconcileResult(
                state=derive_state(definition.objectives, stored, verdict_recorded=True)
            )

        token = (
            request.cancel_token.child()
            if request.cancel_token is not None
            else CancellationToken()
        )
        outcome = await self._dispatcher.dispatch_and_collect(
            split.outstanding, analysis, cancel_token=token
        )
        merged = merge_results(stored, outcome.results)

        if outcome.error is not None:
            self._logger.warning(
                "analysis_collection_incomplete",
                analysis=request.name,
                namespace=request.namespace,
                error=str(outcome.error),
                collected=len(outcome.results),
                outstanding=len(split.outstanding),
                requeue_after=retry_delay,
            )
            written = await self._write_status(
                analysis,
                AnalysisStatus(
                    raw=status.raw,
                    passed=status.passed,
                    warning=status.warning,
                    stored_values=merged,
                ),
            )
            if written is None:
                return ReconcileResult()
            return ReconcileResult(
                requeue_after=retry_delay, state=AnalysisState.PARTIALLY_RESOLVED
            )

        verdict = self._evaluator.evaluate(merged, definition)
        try:
            raw = verdict.to_json()
        except (TypeError, ValueError) as exc:
            self._logger.error(
                "analysis_verdict_serialization_failed",
                analysis=request.name,
                namespace=request.namespace,
                error=str(exc),
            )
            raw = ""

        updated = await self._write_status(
            analysis,
            AnalysisStatus(
                raw=raw,
                passed=verdict.passed,
                warning=verdict.warning,
                stored_values=merged,
            ),
        )
        if updated is None:
            return ReconcileResult()
        self._logger.info(
            "analysis_evaluated",
            analysis=request.name,
            namespace=request.namespace,
            passed=verdict.passed,
            warning=verdict.warning,
            achieved_percentage=verdict.achieved_percentage,
        )
        self._schedule_report(verdict, updated)
        return ReconcileResult(state=AnalysisState.EVALUATED)

    async def drain_background(self) -> None:
        """Wait for every pending metrics report to finish."""

        while self._background:
            await asyncio.gather(*tuple(self._background), return_exceptions=True)

    async def _write_status(self, analysis: Analysis, status: AnalysisStatus) -> Analysis | None:
        """Persist ``status``; ``None`` when the analysis was deleted meanwhile."""

        try:
            return await self._store.update_status(analysis.with_status(status))
        except NotFoundError:
            self._logger.info(
                "analysis_not_found",
                analysis=analysis.metadata.name,
                namespace=analysis.metadata.namespace,
                detail="resource deleted while objectives were collected, ignoring",
            )
            return None
        except StoreError as exc:
            self._logger.error(
                "analysis_status_write_failed",
                analysis=analysis.metadata.name,
                namespace=analysis.metadata.namespace,
                error=str(exc),
            )
            raise

    def _schedule_report(self, verdict: EvalResult, analysis: Analysis) -> None:
        if self._reporter is None:
            return
        task = asyncio.create_task(self._report(verdict, analysis))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _report(self, verdict: EvalResult, analysis: Analysis) -> None:
        assert self._reporter is not None
        try:
            await asyncio.to_thread(self._reporter.report, verdict, analysis)
        except Exception as exc:  # noqa: BLE001
            self._logger.error(
                "analysis_metrics_report_failed",
                analysis=analysis.metadata.name,
                namespace=analysis.metadata.namespace,
                error=str(exc),
            )


__all__ = [
    "AnalysisReconciler",
    "ReconcileRequest",
    "ReconcileResult",
    "ReconcilerSettings",
    "generation_changed",
]
