"""Pure weighted evaluation of resolved objective results.

``evaluate`` never performs IO and never mutates its inputs: the same results
and definition always produce an equal ``EvalResult``. Individual objective
problems (missing value, provider error, unparseable value, unknown operator)
are recorded on that objective's entry and scored as a failure.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from slo_reconciler.constants import DEFAULT_WARNING_CREDIT
from slo_reconciler.evaluation.targets import (
    DEFAULT_OPERATORS,
    ObjectiveOutcome,
    OperatorRegistry,
    classify,
)

if TYPE_CHECKING:
    from slo_reconciler.domain.models import (
        AnalysisDefinition,
        JSONValue,
        Objective,
        ProviderResult,
    )


class EvaluationError(ValueError):
    """Raised when an objective value cannot be evaluated."""


@dataclass(frozen=True, slots=True)
class ObjectiveEvaluation:
    """Outcome of one objective inside an evaluation."""

    objective: Objective
    outcome: ObjectiveOutcome
    score: float
    value: float | None = None
    message: str = ""

    @property
    def passed(self) -> bool:
        return self.outcome is ObjectiveOutcome.PASS

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "objective": self.objective.to_dict(),
            "result": self.outcome.value,
            "score": self.score,
            "value": self.value,
        }
        if self.message:
            out["error"] = self.message
        return out


@dataclass(frozen=True, slots=True)
class EvalResult:
    """Weighted verdict over every objective of a definition."""

    objective_results: tuple[ObjectiveEvaluation, ...]
    total_score: float
    maximum_score: float
    achieved_percentage: float
    passed: bool
    warning: bool

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "objectiveResults": [item.to_dict() for item in self.objective_results],
            "totalScore": self.total_score,
            "maximumScore": self.maximum_score,
            "achievedPercentage": self.achieved_percentage,
            "pass": self.passed,
            "warning": self.warning,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), allow_nan=False)


@runtime_checkable
class Evaluator(Protocol):
    """Evaluation strategy injected into the reconcile controller."""

    def evaluate(
        self,
        results: Mapping[str, ProviderResult],
        definition: AnalysisDefinition,
    ) -> EvalResult: ...


def parse_value(raw: str) -> float:
    """Parse a provider value into a finite float."""

    try:
        value = float(raw.strip())
    except (AttributeError, ValueError) as exc:
        raise EvaluationError(f"value {raw!r} is not a number") from exc
    if not math.isfinite(value):
        raise EvaluationError(f"value {raw!r} is not finite")
    return value


def _evaluate_objective(
    objective: Objective,
    result: ProviderResult | None,
    *,
    warning_credit: float,
    operators: OperatorRegistry,
) -> ObjectiveEvaluation:
    if result is None:
        return ObjectiveEvaluation(
            objective=objective,
            outcome=ObjectiveOutcome.FAIL,
            score=0.0,
            message="no value resolved for objective",
        )
    if result.err_msg:
        return ObjectiveEvaluation(
            objective=objective,
            outcome=ObjectiveOutcome.FAIL,
            score=0.0,
            message=result.err_msg,
        )

    try:
        value = parse_value(result.value)
        outcome = classify(value, objective.target, operators)
    except EvaluationError as exc:
        return ObjectiveEvaluation(
            objective=objective,
            outcome=ObjectiveOutcome.FAIL,
            score=0.0,
            message=str(exc),
        )
    except KeyError as exc:
        return ObjectiveEvaluation(
            objective=objective,
            outcome=ObjectiveOutcome.FAIL,
            score=0.0,
            value=value,
            message=str(exc.args[0]) if exc.args else "unknown operator",
        )

    credit = {
        ObjectiveOutcome.PASS: 1.0,
        ObjectiveOutcome.WARNING: warning_credit,
        ObjectiveOutcome.FAIL: 0.0,
    }[outcome]
    return ObjectiveEvaluation(
        objective=objective,
        outcome=outcome,
        score=objective.weight * credit,
        value=value,
    )


def evaluate(
    results: Mapping[str, ProviderResult],
    definition: AnalysisDefinition,
    *,
    warning_credit: float = DEFAULT_WARNING_CREDIT,
    operators: OperatorRegistry = DEFAULT_OPERATORS,
) -> EvalResult:
    """Compute the weighted verdict of ``definition`` over ``results``.

    ``results`` is keyed by objective key. ``pass`` requires the achieved
    percentage to reach the pass threshold and every key objective to pass;
    ``warning`` is only ever set on a non-passing verdict.
    """

    if not 0.0 <= warning_credit <= 1.0:
        raise ValueError("warning_credit must be within [0, 1]")

    evaluations = tuple(
        _evaluate_objective(
            objective,
            results.get(objective.key),
            warning_credit=warning_credit,
            operators=operators,
        )
        for objective in definition.objectives
    )

    total_score = math.fsum(item.score for item in evaluations)
    maximum_score = math.fsum(objective.weight for objective in definition.objectives)
    if maximum_score > 0:
        achieved = min(100.0, max(0.0, 100.0 * total_score / maximum_score))
    else:
        achieved = 0.0

    key_objectives_passed = all(
        item.passed for item in evaluations if item.objective.key_objective
    )
    passed = achieved >= definition.total_score.pass_percentage and key_objectives_passed
    any_warning = any(item.outcome is ObjectiveOutcome.WARNING for item in evaluations)
    warning = not passed and (
        achieved >= definition.total_score.warning_percentage or any_warning
    )

    return EvalResult(
        objective_results=evaluations,
        total_score=total_score,
        maximum_score=maximum_score,
        achieved_percentage=achieved,
        passed=passed,
        warning=warning,
    )


@dataclass(frozen=True, slots=True)
class WeightedEvaluator:
    """Default ``Evaluator`` binding a warning credit and operator registry."""

    warning_credit: float = DEFAULT_WARNING_CREDIT
    operators: OperatorRegistry = field(default_factory=lambda: DEFAULT_OPERATORS)

    def __post_init__(self) -> None:
        if not 0.0 <= self.warning_credit <= 1.0:
            raise ValueError("warning_credit must be within [0, 1]")

    def evaluate(
        self,
        results: Mapping[str, ProviderResult],
        definition: AnalysisDefinition,
    ) -> EvalResult:
        return evaluate(
            results,
            definition,
            warning_credit=self.warning_credit,
            operators=self.operators,
        )


__all__ = [
    "EvalResult",
    "EvaluationError",
    "Evaluator",
    "ObjectiveEvaluation",
    "WeightedEvaluator",
    "evaluate",
    "parse_value",
]
