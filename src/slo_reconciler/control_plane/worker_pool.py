"""
Bounded fan-out/fan-in resolution of outstanding objectives.

Each outstanding objective is queried independently through the injected
provider. A failing query becomes a ``ProviderResult`` carrying ``errMsg`` and
never aborts its siblings. Cancellation of the reconcile token, or reaching
the collection deadline, stops waiting: objectives still in flight are left
out of the results entirely and stay outstanding for the next reconcile.
"""

from __future__ import annotations

import asyncio
import inspect
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog

from slo_reconciler.constants import DEFAULT_COLLECTION_TIMEOUT_SECONDS, DEFAULT_MAX_WORKERS
from slo_reconciler.domain.models import ProviderResult
from slo_reconciler.utils.concurrency import CancellationToken, WorkerPool

if TYPE_CHECKING:
    from slo_reconciler.domain.models import Analysis, ObjectReference, Objective
    from slo_reconciler.providers.base import ProviderQuery


class CollectionError(RuntimeError):
    """At least one outstanding objective was not resolved successfully."""

    def __init__(
        self,
        *,
        failed_keys: Sequence[str] = (),
        missing_keys: Sequence[str] = (),
        interrupted: str | None = None,
    ) -> None:
        self.failed_keys = tuple(sorted(failed_keys))
        self.missing_keys = tuple(sorted(missing_keys))
        self.interrupted = interrupted
        parts: list[str] = []
        if self.failed_keys:
            parts.append(f"failed objectives: {', '.join(self.failed_keys)}")
        if self.missing_keys:
            parts.append(f"unfinished objectives: {', '.join(self.missing_keys)}")
        if interrupted is not None:
            parts.append(f"collection interrupted ({interrupted})")
        super().__init__("; ".join(parts) or "objective collection failed")


@dataclass(frozen=True, slots=True)
class CollectionOutcome:
    """Results gathered by one dispatch and the aggregate failure signal."""

    results: dict[str, ProviderResult] = field(default_factory=dict)
    error: CollectionError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class ResultCollector:
    """Lock-protected result map shared by concurrent workers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._results: dict[str, ProviderResult] = {}

    def record(self, result: ProviderResult) -> None:
        with self._lock:
            self._results[result.key] = result

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def snapshot(self) -> dict[str, ProviderResult]:
        with self._lock:
            return dict(self._results)


@runtime_checkable
class ObjectiveDispatcher(Protocol):
    """Dispatch strategy injected into the reconcile controller."""

    async def dispatch_and_collect(
        self,
        outstanding: Sequence[Objective],
        analysis: Analysis,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> CollectionOutcome: ...


class ObjectiveWorkerPool:
    """Resolve objectives with at most ``max_workers`` queries in flight."""

    def __init__(
        self,
        provider: ProviderQuery,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        collection_timeout_seconds: float | None = DEFAULT_COLLECTION_TIMEOUT_SECONDS,
        logger: Any | None = None,
    ) -> None:
        if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
            raise ValueError("max_workers must be an integer >= 1")
        if collection_timeout_seconds is not None and collection_timeout_seconds <= 0:
            raise ValueError("collection_timeout_seconds must be > 0")
        self._provider = provider
        self._max_workers = max_workers
        self._collection_timeout_seconds = collection_timeout_seconds
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def max_workers(self) -> int:
        return self._max_workers

    async def dispatch_and_collect(
        self,
        outstanding: Sequence[Objective],
        analysis: Analysis,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> CollectionOutcome:
        token = cancel_token if cancel_token is not None else CancellationToken()
        # Fired once this dispatch stops waiting so blocking providers still
        # running in worker threads can give up.
        query_token = token.child()
        collector = ResultCollector()
        pool: WorkerPool[ProviderResult] = WorkerPool(
            max_concurrency=self._max_workers, cancel_token=query_token
        )
        interrupted: str | None = None

        try:
            async for result in pool.run(
                (self._query_one(objective, analysis, query_token) for objective in outstanding),
                timeout_seconds=self._collection_timeout_seconds,
            ):
                collector.record(result)
        except asyncio.CancelledError:
            if not token.is_cancelled:
                raise
            interrupted = "cancelled"
        except TimeoutError:
            interrupted = "deadline exceeded"
        finally:
            query_token.cancel()

        results = collector.snapshot()
        failed = [key for key, result in results.items() if not result.succeeded]
        missing = [objective.key for objective in outstanding if objective.key not in results]

        if interrupted is not None:
            self._logger.warning(
                "objective_collection_interrupted",
                analysis=analysis.metadata.name,
                namespace=analysis.metadata.namespace,
                reason=interrupted,
                completed=len(results),
                unfinished=sorted(missing),
            )

        error: CollectionError | None = None
        if failed or missing or interrupted is not None:
            error = CollectionError(
                failed_keys=failed, missing_keys=missing, interrupted=interrupted
            )
        return CollectionOutcome(results=results, error=error)

    async def _query_one(
        self, objective: Objective, analysis: Analysis, cancel_token: CancellationToken
    ) -> ProviderResult:
        ref = objective.template_ref
        try:
            raw = await self._call_provider(ref, analysis, cancel_token)
        except Exception as exc:  # noqa: BLE001
            return self._failed(objective, analysis, str(exc) or type(exc).__name__)

        value = _as_value_text(raw)
        if not value:
            return self._failed(objective, analysis, "provider returned an empty value")
        try:
            return ProviderResult.success(ref, value)
        except ValueError as exc:
            return self._failed(objective, analysis, f"provider returned an unusable value: {exc}")

    def _failed(self, objective: Objective, analysis: Analysis, message: str) -> ProviderResult:
        result = ProviderResult.failure(objective.template_ref, message)
        self._logger.warning(
            "objective_query_failed",
            analysis=analysis.metadata.name,
            namespace=analysis.metadata.namespace,
            objective=objective.key,
            error=result.err_msg,
        )
        return result

    async def _call_provider(
        self, ref: ObjectReference, analysis: Analysis, cancel_token: CancellationToken
    ) -> object:
        query = self._provider.query
        args: Mapping[str, str] = dict(analysis.spec.args)
        timeframe = analysis.spec.timeframe
        if inspect.iscoroutinefunction(query):
            return await query(ref, timeframe, args, cancel_token=cancel_token)
        outcome = await asyncio.to_thread(query, ref, timeframe, args, cancel_token=cancel_token)
        if inspect.isawaitable(outcome):
            return await outcome
        return outcome


def _as_value_text(raw: object) -> str:
    if raw is None or isinstance(raw, bool):
        return ""
    if isinstance(raw, (int, float)):
        return str(raw)
    if isinstance(raw, str):
        return raw.strip()
    return ""


__all__ = [
    "CollectionError",
    "CollectionOutcome",
    "ObjectiveDispatcher",
    "ObjectiveWorkerPool",
    "ResultCollector",
]
