"""
Provider query interface and error taxonomy.

Purpose
- Define the capability the worker pool calls to resolve one objective's value.
- Normalize provider failures into errors with machine-readable fields.

Contract
- ``query(objective, timeframe, args, cancel_token=...)`` returns the metric
  value as text.
- Implementations may be ``async`` or blocking; blocking ones run in a worker
  thread. Async implementations must let task cancellation propagate.
- ``cancel_token`` fires when the dispatch stops waiting (reconcile cancelled,
  collection deadline passed, or collection finished). A blocking provider
  cannot be interrupted from outside its thread, so it should poll
  ``cancel_token.is_cancelled`` between slow steps and give up once it is set.
- How a provider computes the metric is the provider's own business.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from slo_reconciler.domain.models import ObjectReference, Timeframe
    from slo_reconciler.utils.concurrency import CancellationToken


def _validate_non_empty_str(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} cannot be empty")
    return normalized


@runtime_checkable
class ProviderQuery(Protocol):
    """Resolve the value of one objective over a timeframe."""

    def query(
        self,
        objective: ObjectReference,
        timeframe: Timeframe,
        args: Mapping[str, str],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> object: ...


class ProviderError(RuntimeError):
    """Base normalized provider error."""

    def __init__(self, *, provider: str, code: str, detail: str) -> None:
        self.provider = _validate_non_empty_str(provider, "provider")
        self.code = _validate_non_empty_str(code, "code")
        self.detail = " ".join(str(detail).split()) or "no detail"
        super().__init__(f"provider={self.provider} code={self.code} detail={self.detail}")


class ProviderValueMissingError(ProviderError):
    """The provider has no value for the requested objective."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="value_missing", detail=detail)


class ProviderUnavailableError(ProviderError):
    """The provider backend cannot be reached or loaded."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="unavailable", detail=detail)


__all__ = [
    "ProviderError",
    "ProviderQuery",
    "ProviderUnavailableError",
    "ProviderValueMissingError",
]
