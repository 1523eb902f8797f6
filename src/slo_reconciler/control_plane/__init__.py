"""Control-plane public API: result cache, worker pool, reconcile controller."""

from slo_reconciler.control_plane.controller import (
    AnalysisReconciler,
    ReconcileRequest,
    ReconcileResult,
    ReconcilerSettings,
    generation_changed,
)
from slo_reconciler.control_plane.result_cache import (
    Partition,
    derive_state,
    merge_results,
    partition,
)
from slo_reconciler.control_plane.worker_pool import (
    CollectionError,
    CollectionOutcome,
    ObjectiveDispatcher,
    ObjectiveWorkerPool,
    ResultCollector,
)

__all__ = [
    "AnalysisReconciler",
    "CollectionError",
    "CollectionOutcome",
    "ObjectiveDispatcher",
    "ObjectiveWorkerPool",
    "Partition",
    "ReconcileRequest",
    "ReconcileResult",
    "ReconcilerSettings",
    "ResultCollector",
    "derive_state",
    "generation_changed",
    "merge_results",
    "partition",
]
