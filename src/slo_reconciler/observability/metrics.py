"""In-process gauge registry; the default ``MetricsSink`` for the CLI."""

from __future__ import annotations

import json
import math
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

LabelSet = tuple[tuple[str, str], ...]

_MAX_NAME_CHARS: Final[int] = 128
_MAX_LABEL_KEY_CHARS: Final[int] = 128
_MAX_LABEL_VALUE_CHARS: Final[int] = 256


@runtime_checkable
class MetricsSink(Protocol):
    """Receives labeled gauge samples. Implementations must be thread-safe."""

    def set_gauge(
        self,
        name: str,
        value: float,
        *,
        labels: Mapping[str, str] | None = None,
    ) -> None: ...


@dataclass(slots=True)
class _GaugeFamily:
    name: str
    samples: dict[LabelSet, float] = field(default_factory=dict)


class MetricsRegistry(MetricsSink):
    """Latest value per (gauge name, label set), shared across reconciles.

    ``snapshot``/``export_json`` give a sorted JSON view.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._families: dict[str, _GaugeFamily] = {}
        self._since = datetime.now(tz=UTC)

    def set_gauge(
        self,
        name: str,
        value: float,
        *,
        labels: Mapping[str, str] | None = None,
    ) -> None:
        full_name = self._full_name(name)
        label_set = _label_set(labels)
        sample = _finite(value)
        with self._lock:
            self._family(full_name).samples[label_set] = sample

    def get_gauge(self, name: str, *, labels: Mapping[str, str] | None = None) -> float | None:
        full_name = self._full_name(name)
        label_set = _label_set(labels)
        with self._lock:
            family = self._families.get(full_name)
            return None if family is None else family.samples.get(label_set)

    def gauges(self, name: str) -> dict[LabelSet, float]:
        """Every label set currently recorded for ``name``."""

        full_name = self._full_name(name)
        with self._lock:
            family = self._families.get(full_name)
            return {} if family is None else dict(family.samples)

    def reset(self) -> None:
        """Drop all samples."""

        with self._lock:
            for family in self._families.values():
                family.samples.clear()
            self._since = datetime.now(tz=UTC)

    def snapshot(self) -> dict[str, JSONValue]:
        with self._lock:
            since = self._since
            series = {
                _series_key(family.name, labels): value
                for family in self._families.values()
                for labels, value in family.samples.items()
            }
        return {
            "metadata": {
                "created_at": _utc_text(since),
                "snapshot_at": _utc_text(datetime.now(tz=UTC)),
            },
            "gauges": dict(sorted(series.items())),
        }

    def to_json(self, *, indent: int | None = None) -> str:
        separators = (",", ":") if indent is None else None
        return json.dumps(
            self.snapshot(), sort_keys=True, indent=indent, separators=separators, ensure_ascii=False
        )

    def export_json(self, path: str | Path, *, indent: int = 2) -> Path:
        """Write ``to_json`` output to ``path``, creating parent directories."""

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_json(indent=indent), encoding="utf-8")
        return target

    def _full_name(self, name: str) -> str:
        if not isinstance(name, str):
            raise ValueError(f"metric name must be a string, got {type(name).__name__}")
        bare = name.strip()
        if not bare:
            raise ValueError("metric name must not be empty")
        if len(bare) > _MAX_NAME_CHARS:
            raise ValueError(f"metric name must be <= {_MAX_NAME_CHARS} characters")
        return bare

    def _family(self, full_name: str) -> _GaugeFamily:
        family = self._families.get(full_name)
        if family is None:
            family = self._families[full_name] = _GaugeFamily(full_name)
        return family


def _label_set(labels: Mapping[str, str] | None) -> LabelSet:
    if not labels:
        return ()
    pairs: dict[str, str] = {}
    for raw_key, raw_value in labels.items():
        if not isinstance(raw_key, str) or not raw_key.strip():
            raise ValueError(f"label key must be a non-empty string, got {raw_key!r}")
        key = raw_key.strip()
        if not isinstance(raw_value, str):
            raise ValueError(f"label value for {key!r} must be a string")
        value = raw_value.strip()
        if not value:
            raise ValueError(f"label value for {key!r} must not be empty")
        if len(key) > _MAX_LABEL_KEY_CHARS or len(value) > _MAX_LABEL_VALUE_CHARS:
            raise ValueError(f"label {key!r} exceeds the allowed length")
        pairs[key] = value
    return tuple(sorted(pairs.items()))


def _finite(value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"gauge value must be numeric, got {type(value).__name__}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError("gauge value must be finite")
    return number


def _series_key(name: str, labels: LabelSet) -> str:
    if not labels:
        return name
    return name + "{" + ",".join(f"{key}={value}" for key, value in labels) + "}"


def _utc_text(moment: datetime) -> str:
    return moment.isoformat(timespec="seconds").replace("+00:00", "Z")


__all__ = ["JSONScalar", "JSONValue", "LabelSet", "MetricsRegistry", "MetricsSink"]
