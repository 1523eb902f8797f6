"""
Domain types shared across layers: analyses, definitions, objectives, results.

The domain layer is free of IO side effects; every model validates on
construction and serializes to the persisted camelCase document format.
"""

from slo_reconciler.domain.keys import compute_key, split_key
from slo_reconciler.domain.models import (
    Analysis,
    AnalysisDefinition,
    AnalysisSpec,
    AnalysisState,
    AnalysisStatus,
    ObjectMeta,
    ObjectReference,
    Objective,
    Operator,
    OperatorName,
    ProviderResult,
    Target,
    Timeframe,
    TotalScore,
)

__all__ = [
    "Analysis",
    "AnalysisDefinition",
    "AnalysisSpec",
    "AnalysisState",
    "AnalysisStatus",
    "ObjectMeta",
    "ObjectReference",
    "Objective",
    "Operator",
    "OperatorName",
    "ProviderResult",
    "Target",
    "Timeframe",
    "TotalScore",
    "compute_key",
    "split_key",
]
