"""
slo-reconciler unit tests for the reconcile controller

Purpose
- Drive analyses through fresh, partially resolved, and evaluated states
  against an in-memory store and scripted providers.
- Cover recoverable outcomes (not found, collection errors, serialization and
  metrics failures) and fatal store errors.
"""

from __future__ import annotations

import contextlib
import json
import math
from collections.abc import Mapping
from dataclasses import replace

import pytest
from factories import (
    RecordingLogger,
    ScriptedProvider,
    less_than,
    make_analysis,
    make_definition,
    make_objective,
)

from slo_reconciler.control_plane import (
    AnalysisReconciler,
    ObjectiveWorkerPool,
    ReconcilerSettings,
    ReconcileRequest,
    ReconcileResult,
    generation_changed,
)
from slo_reconciler.domain.models import (
    Analysis,
    AnalysisDefinition,
    AnalysisState,
    ObjectReference,
    ProviderResult,
    Timeframe,
)
from slo_reconciler.evaluation import EvalResult, WeightedEvaluator
from slo_reconciler.observability import AnalysisMetricsReporter, MetricsRegistry
from slo_reconciler.persistence import (
    ConflictError,
    InMemoryAnalysisStore,
    NotFoundError,
    StoreError,
    dump_manifests,
    load_manifest_text,
)
from slo_reconciler.utils import CancellationToken

REQUEST = ReconcileRequest(namespace="default", name="checkout-run")


def _two_objective_definition(**overrides: float) -> AnalysisDefinition:
    return make_definition(
        [
            make_objective("error-rate", failure=less_than(0)),
            make_objective("latency", failure=less_than(0)),
        ],
        pass_percentage=overrides.get("pass_percentage", 90),
        warning_percentage=overrides.get("warning_percentage", 75),
    )


def _seeded_store(
    definition: AnalysisDefinition | None = None,
    analysis: Analysis | None = None,
) -> InMemoryAnalysisStore:
    store = InMemoryAnalysisStore()
    store.put_definition(definition if definition is not None else _two_objective_definition())
    store.put_analysis(analysis if analysis is not None else make_analysis())
    return store


def _reconciler(
    store: InMemoryAnalysisStore,
    provider: ScriptedProvider,
    logger: RecordingLogger,
    **kwargs: object,
) -> AnalysisReconciler:
    return AnalysisReconciler(
        store,
        ObjectiveWorkerPool(provider, max_workers=2, logger=logger),
        logger=logger,
        **kwargs,  # type: ignore[arg-type]
    )


async def _stored(store: InMemoryAnalysisStore) -> Analysis:
    return await store.get_analysis("default", "checkout-run")


async def test_partial_failure_persists_resolved_values_and_requeues(
    recording_logger: RecordingLogger,
) -> None:
    store = _seeded_store()
    provider = ScriptedProvider(
        {"default/error-rate": "0.5", "default/latency": TimeoutError("query timed out")}
    )
    reconciler = _reconciler(store, provider, recording_logger)

    result = await reconciler.reconcile(REQUEST)

    assert result == ReconcileResult(
        requeue_after=10.0, state=AnalysisState.PARTIALLY_RESOLVED
    )
    status = (await _stored(store)).status
    assert status.stored_values["default/error-rate"].value == "0.5"
    assert status.stored_values["default/latency"].err_msg == "query timed out"
    assert status.raw == ""
    assert status.passed is False
    assert "analysis_collection_incomplete" in recording_logger.events("warning")

    retry_provider = ScriptedProvider({"default/latency": "120"})
    retry = _reconciler(store, retry_provider, recording_logger)

    second = await retry.reconcile(REQUEST)

    assert retry_provider.calls == ["default/latency"]
    assert second == ReconcileResult(state=AnalysisState.EVALUATED)
    status = (await _stored(store)).status
    assert status.passed is True
    assert status.stored_values["default/error-rate"].value == "0.5"


async def test_all_objectives_resolved_first_pass_is_terminal(
    recording_logger: RecordingLogger,
) -> None:
    store = _seeded_store()
    provider = ScriptedProvider({"default/error-rate": "0.1", "default/latency": "150"})
    reconciler = _reconciler(store, provider, recording_logger)

    result = await reconciler.reconcile(REQUEST)

    assert result.requeue is False
    assert result.state is AnalysisState.EVALUATED
    status = (await _stored(store)).status
    assert status.passed is True
    assert status.warning is False
    assert set(status.stored_values) == {"default/error-rate", "default/latency"}
    verdict = json.loads(status.raw)
    assert verdict["achievedPercentage"] == 100.0
    assert verdict["pass"] is True
    (fields,) = recording_logger.fields_for("analysis_evaluated")
    assert fields["passed"] is True


async def test_failing_key_objective_fails_despite_full_score(
    recording_logger: RecordingLogger,
) -> None:
    definition = make_definition(
        [
            make_objective("availability", weight=0, key_objective=True, failure=less_than(99)),
            make_objective("error-rate", weight=1, failure=less_than(0)),
            make_objective("latency", weight=1, failure=less_than(0)),
        ]
    )
    store = _seeded_store(definition)
    provider = ScriptedProvider(
        {"default/availability": "95", "default/error-rate": "0.1", "default/latency": "100"}
    )

    result = await _reconciler(store, provider, recording_logger).reconcile(REQUEST)

    assert result.state is AnalysisState.EVALUATED
    status = (await _stored(store)).status
    assert json.loads(status.raw)["achievedPercentage"] == 100.0
    assert status.passed is False


async def test_reconcile_is_idempotent_once_evaluated(recording_logger: RecordingLogger) -> None:
    store = _seeded_store()
    provider = ScriptedProvider({"default/error-rate": "0.1", "default/latency": "150"})
    reconciler = _reconciler(store, provider, recording_logger)
    await reconciler.reconcile(REQUEST)
    before = await _stored(store)

    again = await reconciler.reconcile(REQUEST)

    assert again == ReconcileResult(state=AnalysisState.EVALUATED)
    assert len(provider.calls) == 2
    assert await _stored(store) == before


async def test_missing_analysis_is_ignored_without_requeue(
    recording_logger: RecordingLogger,
) -> None:
    store = InMemoryAnalysisStore()
    provider = ScriptedProvider({})

    result = await _reconciler(store, provider, recording_logger).reconcile(REQUEST)

    assert result == ReconcileResult()
    assert result.requeue is False
    assert "analysis_not_found" in recording_logger.events("info")


class _DeletingProvider(ScriptedProvider):
    """Deletes the analysis under reconcile before answering."""

    def __init__(self, store: InMemoryAnalysisStore, answers: Mapping[str, object]) -> None:
        super().__init__(answers)
        self._store = store

    async def query(
        self,
        objective: ObjectReference,
        timeframe: Timeframe,
        args: Mapping[str, str],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> object:
        with contextlib.suppress(NotFoundError):
            self._store.delete_analysis("default", "checkout-run")
        return await super().query(objective, timeframe, args, cancel_token=cancel_token)


@pytest.mark.parametrize(
    "latency_answer",
    ["1", RuntimeError("backend unavailable")],
    ids=["all-resolved", "partial-failure"],
)
async def test_analysis_deleted_during_collection_is_ignored(
    recording_logger: RecordingLogger,
    latency_answer: object,
) -> None:
    store = _seeded_store()
    provider = _DeletingProvider(
        store, {"default/error-rate": "1", "default/latency": latency_answer}
    )
    reconciler = AnalysisReconciler(
        store,
        ObjectiveWorkerPool(provider, max_workers=2, logger=recording_logger),
        reporter=AnalysisMetricsReporter(MetricsRegistry(), logger=recording_logger),
        logger=recording_logger,
    )

    result = await reconciler.reconcile(REQUEST)

    assert result == ReconcileResult()
    assert result.requeue is False
    assert store.list_analyses() == []
    assert reconciler.pending_reports == 0
    assert "analysis_not_found" in recording_logger.events("info")
    assert "analysis_status_write_failed" not in recording_logger.events("error")


async def test_missing_definition_requeues_after_retry_delay(
    recording_logger: RecordingLogger,
) -> None:
    store = InMemoryAnalysisStore()
    store.put_analysis(make_analysis())
    provider = ScriptedProvider({})
    settings = ReconcilerSettings(retry_delay_seconds=2.5)

    result = await _reconciler(store, provider, recording_logger, settings=settings).reconcile(
        REQUEST
    )

    assert result == ReconcileResult(requeue_after=2.5, state=AnalysisState.FRESH)
    assert provider.calls == []
    (fields,) = recording_logger.fields_for("analysis_definition_not_found")
    assert fields["definition_namespace"] == "default"


async def test_definition_reference_uses_explicit_namespace(
    recording_logger: RecordingLogger,
) -> None:
    definition = replace(
        _two_objective_definition(),
        metadata=replace(_two_objective_definition().metadata, namespace="slo"),
    )
    store = _seeded_store(definition, make_analysis(definition_namespace="slo"))
    provider = ScriptedProvider({"default/error-rate": "1", "default/latency": "1"})

    result = await _reconciler(store, provider, recording_logger).reconcile(REQUEST)

    assert result.state is AnalysisState.EVALUATED


async def test_long_provider_error_survives_manifest_round_trip(
    recording_logger: RecordingLogger,
) -> None:
    store = _seeded_store()
    provider = ScriptedProvider(
        {"default/error-rate": "1", "default/latency": RuntimeError("x" * 9000)}
    )

    result = await _reconciler(store, provider, recording_logger).reconcile(REQUEST)

    assert result.state is AnalysisState.PARTIALLY_RESOLVED
    reloaded = load_manifest_text(dump_manifests(store.list_analyses()))
    (analysis,) = reloaded.analyses
    assert analysis == await _stored(store)
    assert len(analysis.status.stored_values["default/latency"].err_msg) == 8192


async def test_cancelled_request_stores_nothing_new_and_requeues(
    recording_logger: RecordingLogger,
) -> None:
    store = _seeded_store()
    provider = ScriptedProvider({"default/error-rate": "1", "default/latency": "1"})
    token = CancellationToken()
    token.cancel()

    result = await _reconciler(store, provider, recording_logger).reconcile(
        ReconcileRequest(namespace="default", name="checkout-run", cancel_token=token)
    )

    assert result.requeue_after == 10.0
    assert provider.calls == []
    assert (await _stored(store)).status.stored_values == {}


class _NaNEvaluator:
    def evaluate(
        self, results: Mapping[str, ProviderResult], definition: AnalysisDefinition
    ) -> EvalResult:
        verdict = WeightedEvaluator().evaluate(results, definition)
        return replace(verdict, achieved_percentage=math.nan)


async def test_unserializable_verdict_still_persists_flags(
    recording_logger: RecordingLogger,
) -> None:
    store = _seeded_store()
    provider = ScriptedProvider({"default/error-rate": "1", "default/latency": "1"})
    reconciler = _reconciler(store, provider, recording_logger, evaluator=_NaNEvaluator())

    result = await reconciler.reconcile(REQUEST)

    assert result.state is AnalysisState.EVALUATED
    status = (await _stored(store)).status
    assert status.raw == ""
    assert status.passed is True
    assert "analysis_verdict_serialization_failed" in recording_logger.events("error")

    again = await reconciler.reconcile(REQUEST)
    assert again.state is AnalysisState.EVALUATED
    assert len(provider.calls) == 2


async def test_metrics_are_reported_after_evaluation(recording_logger: RecordingLogger) -> None:
    store = _seeded_store()
    provider = ScriptedProvider({"default/error-rate": "0.5", "default/latency": "150"})
    registry = MetricsRegistry()
    reconciler = _reconciler(
        store,
        provider,
        recording_logger,
        reporter=AnalysisMetricsReporter(registry, logger=recording_logger),
    )

    await reconciler.reconcile(REQUEST)
    await reconciler.drain_background()

    assert reconciler.pending_reports == 0
    assert registry.get_gauge(
        "analysis_result",
        labels={
            "name": "checkout-run",
            "namespace": "default",
            "from": "2024-05-01T12:00:00Z",
            "to": "2024-05-01T13:00:00Z",
        },
    ) == 100.0
    objective_gauges = registry.gauges("objective_result")
    assert sorted(objective_gauges.values()) == [0.5, 150.0]


class _ExplodingSink:
    def set_gauge(
        self, name: str, value: float, *, labels: Mapping[str, str] | None = None
    ) -> None:
        raise RuntimeError("metrics backend offline")


async def test_metrics_failure_does_not_change_outcome(recording_logger: RecordingLogger) -> None:
    store = _seeded_store()
    provider = ScriptedProvider({"default/error-rate": "0.5", "default/latency": "150"})
    reconciler = _reconciler(
        store,
        provider,
        recording_logger,
        reporter=AnalysisMetricsReporter(_ExplodingSink(), logger=recording_logger),
    )

    result = await reconciler.reconcile(REQUEST)
    await reconciler.drain_background()

    assert result.state is AnalysisState.EVALUATED
    assert (await _stored(store)).status.passed is True
    errors = recording_logger.events("error")
    assert "analysis_metric_emit_failed" in errors
    assert errors.count("objective_metric_emit_failed") == 2


class _ConflictingStore(InMemoryAnalysisStore):
    async def update_status(self, analysis: Analysis) -> Analysis:
        raise ConflictError(
            "Analysis",
            analysis.metadata.namespace,
            analysis.metadata.name,
            expected=analysis.metadata.resource_version,
            actual="999",
        )


async def test_status_write_conflict_propagates(recording_logger: RecordingLogger) -> None:
    store = _ConflictingStore()
    store.put_definition(_two_objective_definition())
    store.put_analysis(make_analysis())
    provider = ScriptedProvider({"default/error-rate": "1", "default/latency": "1"})

    with pytest.raises(StoreError):
        await _reconciler(store, provider, recording_logger).reconcile(REQUEST)

    assert "analysis_status_write_failed" in recording_logger.events("error")


class _BrokenReadStore(InMemoryAnalysisStore):
    async def get_analysis(self, namespace: str, name: str) -> Analysis:
        raise StoreError("connection reset")


async def test_store_read_error_propagates(recording_logger: RecordingLogger) -> None:
    with pytest.raises(StoreError, match="connection reset"):
        await _reconciler(_BrokenReadStore(), ScriptedProvider({}), recording_logger).reconcile(
            REQUEST
        )

    assert "analysis_read_failed" in recording_logger.events("error")


async def test_from_settings_wires_pool_and_reporter() -> None:
    store = _seeded_store()
    provider = ScriptedProvider({"default/error-rate": "1", "default/latency": "1"})
    registry = MetricsRegistry()
    settings = ReconcilerSettings(max_workers=1, warning_credit=0.25)

    reconciler = AnalysisReconciler.from_settings(
        store, provider, settings=settings, metrics=registry
    )
    result = await reconciler.reconcile(REQUEST)
    await reconciler.drain_background()

    assert reconciler.settings is settings
    assert result.state is AnalysisState.EVALUATED
    assert provider.peak_in_flight == 1
    assert registry.gauges("analysis_result")


def test_generation_changed_filters_status_only_updates() -> None:
    analysis = make_analysis()
    bumped = replace(analysis, metadata=replace(analysis.metadata, generation=2))
    status_only = replace(analysis, metadata=replace(analysis.metadata, resource_version="7"))

    assert generation_changed(None, analysis) is True
    assert generation_changed(analysis, bumped) is True
    assert generation_changed(analysis, status_only) is False


def test_settings_from_config_and_validation() -> None:
    settings = ReconcilerSettings.from_config(
        {
            "reconciler": {
                "max_workers": 8,
                "retry_delay_seconds": 3,
                "collection_timeout_seconds": 12.5,
                "default_namespace": "slo",
            },
            "evaluation": {"warning_credit": 0.75},
        }
    )

    assert settings == ReconcilerSettings(
        max_workers=8,
        retry_delay_seconds=3.0,
        collection_timeout_seconds=12.5,
        default_namespace="slo",
        warning_credit=0.75,
    )
    with pytest.raises(ValueError, match="max_workers"):
        ReconcilerSettings(max_workers=0)
    with pytest.raises(ValueError, match="retry_delay_seconds"):
        ReconcilerSettings(retry_delay_seconds=0)
    with pytest.raises(ValueError, match="warning_credit"):
        ReconcilerSettings(warning_credit=2)
