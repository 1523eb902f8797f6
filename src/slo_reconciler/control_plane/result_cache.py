"""
Resolved/outstanding bookkeeping over an analysis' stored objective values.

A stored entry with an empty ``errMsg`` is resolved for good: it is never
re-queried and never replaced. Absent or failed entries are outstanding and
eligible for the next dispatch.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from slo_reconciler.domain.models import AnalysisState

if TYPE_CHECKING:
    from slo_reconciler.domain.models import Objective, ProviderResult


@dataclass(frozen=True, slots=True)
class Partition:
    """Objectives split by whether a successful stored value exists."""

    outstanding: tuple[Objective, ...] = ()
    resolved: dict[str, ProviderResult] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return not self.outstanding


def partition(
    objectives: Sequence[Objective],
    stored: Mapping[str, ProviderResult],
) -> Partition:
    """Split ``objectives`` into outstanding ones and resolved stored results.

    ``outstanding`` keeps definition order. Every objective lands on exactly
    one side.
    """

    outstanding: list[Objective] = []
    resolved: dict[str, ProviderResult] = {}
    for objective in objectives:
        key = objective.key
        existing = stored.get(key)
        if existing is not None and existing.succeeded:
            resolved[key] = existing
        else:
            outstanding.append(objective)
    return Partition(outstanding=tuple(outstanding), resolved=resolved)


def merge_results(
    stored: Mapping[str, ProviderResult],
    new: Mapping[str, ProviderResult],
) -> dict[str, ProviderResult]:
    """Merge ``new`` into a copy of ``stored`` without losing successes.

    A stored success always wins; a stored failure is replaced by the new
    entry; keys only present on one side are kept.
    """

    merged = dict(stored)
    for key, result in new.items():
        existing = merged.get(key)
        if existing is not None and existing.succeeded:
            continue
        merged[key] = result
    return merged


def derive_state(
    objectives: Sequence[Objective],
    stored: Mapping[str, ProviderResult],
    *,
    verdict_recorded: bool,
) -> AnalysisState:
    if verdict_recorded and partition(objectives, stored).is_complete:
        return AnalysisState.EVALUATED
    if not stored:
        return AnalysisState.FRESH
    return AnalysisState.PARTIALLY_RESOLVED


__all__ = ["Partition", "derive_state", "merge_results", "partition"]
