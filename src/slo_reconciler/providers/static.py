"""In-process provider answering from a fixed map of objective key to value."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from slo_reconciler.domain.keys import compute_key, split_key
from slo_reconciler.providers.base import ProviderUnavailableError, ProviderValueMissingError

if TYPE_CHECKING:
    from slo_reconciler.domain.models import ObjectReference, Timeframe
    from slo_reconciler.utils.concurrency import CancellationToken

_PROVIDER_NAME = "static"


def _normalize_value(key: str, value: object) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValueError(f"values.{key}: expected number or string, got {type(value).__name__}")
    return str(value)


class StaticValueProvider:
    """Resolve objectives from a ``namespace/name -> value`` mapping."""

    def __init__(self, values: Mapping[str, object] | None = None) -> None:
        self._values: dict[str, str] = {}
        for key, value in (values or {}).items():
            split_key(key)
            self._values[key] = _normalize_value(key, value)

    @property
    def values(self) -> dict[str, str]:
        return dict(self._values)

    @classmethod
    def from_yaml_file(cls, path: str | Path) -> StaticValueProvider:
        """Load values from YAML: either a top-level mapping or a ``values:`` mapping."""

        file_path = Path(path)
        try:
            raw = yaml.safe_load(file_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ProviderUnavailableError(
                f"values file not found: {file_path}", provider=_PROVIDER_NAME
            ) from exc
        except (OSError, yaml.YAMLError) as exc:
            raise ProviderUnavailableError(
                f"unable to read values file {file_path}: {exc}", provider=_PROVIDER_NAME
            ) from exc

        if raw is None:
            return cls()
        if isinstance(raw, Mapping) and isinstance(raw.get("values"), Mapping):
            raw = raw["values"]
        if not isinstance(raw, Mapping):
            raise ProviderUnavailableError(
                f"values file {file_path} must contain a mapping", provider=_PROVIDER_NAME
            )
        try:
            return cls({str(key): value for key, value in raw.items()})
        except ValueError as exc:
            raise ProviderUnavailableError(
                f"invalid values file {file_path}: {exc}", provider=_PROVIDER_NAME
            ) from exc

    async def query(
        self,
        objective: ObjectReference,
        timeframe: Timeframe,
        args: Mapping[str, str],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> str:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        key = compute_key(objective)
        value = self._values.get(key)
        if value is None:
            raise ProviderValueMissingError(
                f"no value configured for objective {key}", provider=_PROVIDER_NAME
            )
        return value


__all__ = ["StaticValueProvider"]
