"""Evaluation public API: weighted verdicts and the pluggable target grammar."""

from slo_reconciler.evaluation.engine import (
    EvalResult,
    EvaluationError,
    Evaluator,
    ObjectiveEvaluation,
    WeightedEvaluator,
    evaluate,
    parse_value,
)
from slo_reconciler.evaluation.targets import (
    DEFAULT_OPERATORS,
    ObjectiveOutcome,
    OperatorRegistry,
    classify,
    criterion_met,
)

__all__ = [
    "DEFAULT_OPERATORS",
    "EvalResult",
    "EvaluationError",
    "Evaluator",
    "ObjectiveEvaluation",
    "ObjectiveOutcome",
    "OperatorRegistry",
    "WeightedEvaluator",
    "classify",
    "criterion_met",
    "evaluate",
    "parse_value",
]
