"""Target grammar: operator comparisons and per-objective classification."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING

from slo_reconciler.domain.models import OperatorName

if TYPE_CHECKING:
    from slo_reconciler.domain.models import Operator, Target

Comparison = Callable[[float, "Operator"], bool]
OperatorRegistry = Mapping[str, Comparison]


class ObjectiveOutcome(StrEnum):
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


def _fixed(operator: Operator) -> float:
    if operator.fixed_value is None:
        raise ValueError(f"{operator.name}: fixedValue is required")
    return operator.fixed_value


def _bounds(operator: Operator) -> tuple[float, float]:
    if operator.low_bound is None or operator.high_bound is None:
        raise ValueError(f"{operator.name}: lowBound and highBound are required")
    return operator.low_bound, operator.high_bound


def _in_range(value: float, operator: Operator) -> bool:
    low, high = _bounds(operator)
    return low <= value <= high


DEFAULT_OPERATORS: OperatorRegistry = MappingProxyType(
    {
        OperatorName.LESS_THAN.value: lambda value, op: value < _fixed(op),
        OperatorName.LESS_THAN_OR_EQUAL.value: lambda value, op: value <= _fixed(op),
        OperatorName.GREATER_THAN.value: lambda value, op: value > _fixed(op),
        OperatorName.GREATER_THAN_OR_EQUAL.value: lambda value, op: value >= _fixed(op),
        OperatorName.EQUAL_TO.value: lambda value, op: value == _fixed(op),
        OperatorName.IN_RANGE.value: _in_range,
        OperatorName.NOT_IN_RANGE.value: lambda value, op: not _in_range(value, op),
    }
)


def criterion_met(
    value: float,
    operator: Operator,
    operators: OperatorRegistry = DEFAULT_OPERATORS,
) -> bool:
    """Return whether ``value`` satisfies ``operator``.

    Raises ``KeyError`` when the registry has no comparison for the operator.
    """

    comparison = operators.get(str(operator.name))
    if comparison is None:
        raise KeyError(f"no comparison registered for operator {operator.name!r}")
    return comparison(value, operator)


def classify(
    value: float,
    target: Target | None,
    operators: OperatorRegistry = DEFAULT_OPERATORS,
) -> ObjectiveOutcome:
    """Classify one objective value.

    The failure criterion wins over the warning criterion; a value meeting
    neither (or an objective without a target) passes.
    """

    if target is None:
        return ObjectiveOutcome.PASS
    if target.failure is not None and criterion_met(value, target.failure, operators):
        return ObjectiveOutcome.FAIL
    if target.warning is not None and criterion_met(value, target.warning, operators):
        return ObjectiveOutcome.WARNING
    return ObjectiveOutcome.PASS


__all__ = [
    "DEFAULT_OPERATORS",
    "Comparison",
    "ObjectiveOutcome",
    "OperatorRegistry",
    "classify",
    "criterion_met",
]
