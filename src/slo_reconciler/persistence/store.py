"""
Resource store interface and the in-memory reference implementation.

Purpose
- Read analyses and definitions by namespaced name.
- Write analysis status with optimistic concurrency on ``resourceVersion``.

Error taxonomy
- ``NotFoundError`` is distinguished and recoverable for callers.
- ``ConflictError`` signals a stale ``resourceVersion`` on a status write.
- Every other failure surfaces as ``StoreError``.
"""

from __future__ import annotations

import itertools
from dataclasses import replace
from threading import RLock
from typing import Protocol, runtime_checkable

from slo_reconciler.constants import ANALYSIS_DEFINITION_KIND, ANALYSIS_KIND
from slo_reconciler.domain.models import Analysis, AnalysisDefinition


class StoreError(RuntimeError):
    """Base error for resource store failures."""


class NotFoundError(StoreError):
    """Requested resource does not exist."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(f"{kind} {namespace}/{name} not found")


class ConflictError(StoreError):
    """Write was based on a stale ``resourceVersion``."""

    def __init__(self, kind: str, namespace: str, name: str, *, expected: str, actual: str) -> None:
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{kind} {namespace}/{name} was modified: "
            f"resourceVersion {expected!r} is stale (current {actual!r})"
        )


@runtime_checkable
class AnalysisStore(Protocol):
    """Async store collaborator used by the reconcile controller."""

    async def get_analysis(self, namespace: str, name: str) -> Analysis: ...

    async def get_definition(self, namespace: str, name: str) -> AnalysisDefinition: ...

    async def update_status(self, analysis: Analysis) -> Analysis: ...


class InMemoryAnalysisStore(AnalysisStore):
    """Thread-safe in-memory store with resource versions and generations.

    ``put_analysis`` behaves like a spec write: the generation is bumped when
    ``spec`` changes. ``update_status`` behaves like a status-subresource
    write: only the status is taken from the argument and the stored
    ``resourceVersion`` must match.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._versions = itertools.count(1)
        self._analyses: dict[tuple[str, str], Analysis] = {}
        self._definitions: dict[tuple[str, str], AnalysisDefinition] = {}

    def _next_version(self) -> str:
        return str(next(self._versions))

    def put_analysis(self, analysis: Analysis) -> Analysis:
        key = (analysis.metadata.namespace, analysis.metadata.name)
        with self._lock:
            existing = self._analyses.get(key)
            generation = analysis.metadata.generation
            if existing is not None:
                generation = existing.metadata.generation
                if existing.spec != analysis.spec:
                    generation += 1
            stored = replace(
                analysis,
                metadata=replace(
                    analysis.metadata,
                    generation=generation,
                    resource_version=self._next_version(),
                ),
            )
            self._analyses[key] = stored
            return stored

    def put_definition(self, definition: AnalysisDefinition) -> AnalysisDefinition:
        key = (definition.metadata.namespace, definition.metadata.name)
        with self._lock:
            existing = self._definitions.get(key)
            generation = definition.metadata.generation
            if existing is not None:
                generation = existing.metadata.generation
                if (existing.objectives, existing.total_score) != (
                    definition.objectives,
                    definition.total_score,
                ):
                    generation += 1
            stored = replace(
                definition,
                metadata=replace(
                    definition.metadata,
                    generation=generation,
                    resource_version=self._next_version(),
                ),
            )
            self._definitions[key] = stored
            return stored

    def delete_analysis(self, namespace: str, name: str) -> None:
        with self._lock:
            if self._analyses.pop((namespace, name), None) is None:
                raise NotFoundError(ANALYSIS_KIND, namespace, name)

    def list_analyses(self) -> list[Analysis]:
        with self._lock:
            return [self._analyses[key] for key in sorted(self._analyses)]

    def list_definitions(self) -> list[AnalysisDefinition]:
        with self._lock:
            return [self._definitions[key] for key in sorted(self._definitions)]

    async def get_analysis(self, namespace: str, name: str) -> Analysis:
        with self._lock:
            analysis = self._analyses.get((namespace, name))
        if analysis is None:
            raise NotFoundError(ANALYSIS_KIND, namespace, name)
        return analysis

    async def get_definition(self, namespace: str, name: str) -> AnalysisDefinition:
        with self._lock:
            definition = self._definitions.get((namespace, name))
        if definition is None:
            raise NotFoundError(ANALYSIS_DEFINITION_KIND, namespace, name)
        return definition

    async def update_status(self, analysis: Analysis) -> Analysis:
        namespace, name = analysis.metadata.namespace, analysis.metadata.name
        with self._lock:
            current = self._analyses.get((namespace, name))
            if current is None:
                raise NotFoundError(ANALYSIS_KIND, namespace, name)
            expected = analysis.metadata.resource_version
            actual = current.metadata.resource_version
            if expected and expected != actual:
                raise ConflictError(ANALYSIS_KIND, namespace, name, expected=expected, actual=actual)
            stored = replace(
                current,
                metadata=replace(current.metadata, resource_version=self._next_version()),
                status=analysis.status,
            )
            self._analyses[(namespace, name)] = stored
            return stored


__all__ = [
    "AnalysisStore",
    "ConflictError",
    "InMemoryAnalysisStore",
    "NotFoundError",
    "StoreError",
]
