"""Dataclass domain models with strict validation and canonical serialization.

Field names in ``to_dict``/``from_dict`` follow the persisted resource format
(camelCase), so documents round-trip through YAML manifests and status writes
unchanged. Every validation failure is a ``ValueError`` whose message starts
with the dotted path of the offending field.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Final, Self

from slo_reconciler.constants import ANALYSIS_DEFINITION_KIND, ANALYSIS_KIND, DEFAULT_NAMESPACE
from slo_reconciler.domain.keys import compute_key

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_MAX_TEXT: Final[int] = 8192
_MAX_RAW: Final[int] = 1_000_000
_MAX_NAME: Final[int] = 253
_MAX_OBJECTIVES: Final[int] = 512
_MAX_STRING_MAP: Final[int] = 128
_TRUNCATED_SUFFIX: Final[str] = " ...[truncated]"

_NAME_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$")


class OperatorName(StrEnum):
    LESS_THAN = "lessThan"
    LESS_THAN_OR_EQUAL = "lessThanOrEqual"
    GREATER_THAN = "greaterThan"
    GREATER_THAN_OR_EQUAL = "greaterThanOrEqual"
    EQUAL_TO = "equalTo"
    IN_RANGE = "inRange"
    NOT_IN_RANGE = "notInRange"


RANGE_OPERATORS: frozenset[OperatorName] = frozenset(
    {OperatorName.IN_RANGE, OperatorName.NOT_IN_RANGE}
)


class AnalysisState(StrEnum):
    FRESH = "fresh"
    PARTIALLY_RESOLVED = "partially_resolved"
    EVALUATED = "evaluated"


# --- value checks -------------------------------------------------------------


def _invalid(path: str, problem: str) -> ValueError:
    return ValueError(f"{path}: {problem}")


def _typed(value: object, path: str, kind: type | tuple[type, ...], label: str) -> Any:
    if isinstance(value, kind) and (kind is bool or not isinstance(value, bool)):
        return value
    raise _invalid(path, f"expected {label}, got {type(value).__name__}")


def _text(value: object, path: str, *, limit: int = _MAX_TEXT) -> str:
    text = _typed(value, path, str, "string").strip()
    if len(text) > limit:
        raise _invalid(path, f"longer than {limit} characters")
    return text


def _clip(text: str, *, limit: int = _MAX_TEXT) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: limit - len(_TRUNCATED_SUFFIX)].rstrip() + _TRUNCATED_SUFFIX


def _name(value: object, path: str, *, allow_empty: bool = False) -> str:
    text = _text(value, path, limit=_MAX_NAME)
    if allow_empty and not text:
        return text
    if not _NAME_RE.fullmatch(text):
        raise _invalid(path, f"invalid name {text!r}; must match {_NAME_RE.pattern}")
    return text


def _number(value: object, path: str, *, lo: float | None = None, hi: float | None = None) -> float:
    number = float(_typed(value, path, (int, float), "number"))
    if not math.isfinite(number):
        raise _invalid(path, "must be a finite number")
    if lo is not None and number < lo:
        raise _invalid(path, f"must be >= {lo}")
    if hi is not None and number > hi:
        raise _invalid(path, f"must be <= {hi}")
    return number


def _count(value: object, path: str, *, minimum: int = 1) -> int:
    number: int = _typed(value, path, int, "integer")
    if number < minimum:
        raise _invalid(path, f"must be >= {minimum}")
    return number


def _flag(value: object, path: str) -> bool:
    return bool(_typed(value, path, bool, "boolean"))


def _moment(value: object, path: str) -> datetime:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise _invalid(path, f"not an RFC 3339 timestamp: {value!r}") from exc
    moment: datetime = _typed(value, path, datetime, "RFC 3339 timestamp")
    if moment.utcoffset() is None:
        raise _invalid(path, "timestamp must be timezone-aware")
    return moment.astimezone(UTC)


def _rfc3339(moment: datetime) -> str:
    return moment.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _string_map(value: object, path: str) -> dict[str, str]:
    mapping: Mapping[object, object] = _typed(value, path, Mapping, "mapping")
    if len(mapping) > _MAX_STRING_MAP:
        raise _invalid(path, f"more than {_MAX_STRING_MAP} entries")
    out: dict[str, str] = {}
    for raw_key, item in mapping.items():
        key = _text(raw_key, f"{path}.<key>")
        if not key:
            raise _invalid(path, "keys must not be empty")
        out[key] = _typed(item, f"{path}.{key}", str, "string")
    return out


def _number_to_json(value: float) -> JSONValue:
    number = float(value)
    return int(number) if number.is_integer() else number


class _Doc:
    """One mapping of a persisted document plus the path used in errors.

    Construction rejects unknown and missing keys, so ``from_dict`` methods
    read fields without re-checking presence.
    """

    __slots__ = ("_data", "path")

    def __init__(
        self,
        data: object,
        path: str,
        *,
        required: Iterable[str] = (),
        optional: Iterable[str] = (),
    ) -> None:
        mapping: Mapping[object, object] = _typed(data, path, Mapping, "mapping")
        if any(not isinstance(key, str) for key in mapping):
            raise _invalid(path, "mapping keys must be strings")
        needed = set(required)
        known = needed | set(optional)
        unknown = sorted(str(key) for key in mapping if key not in known)
        if unknown:
            raise _invalid(path, f"unexpected fields: {unknown}")
        absent = sorted(needed - set(mapping))
        if absent:
            raise _invalid(path, f"missing required fields: {absent}")
        self._data: Mapping[str, object] = mapping
        self.path = path

    def at(self, key: str) -> str:
        return f"{self.path}.{key}"

    def get(self, key: str, default: object = None) -> Any:
        value = self._data.get(key)
        return default if value is None else value

    def keys(self) -> list[str]:
        return list(self._data)

    def doc(self, key: str, *, required: Iterable[str] = (), optional: Iterable[str] = ()) -> _Doc:
        return _Doc(self._data[key], self.at(key), required=required, optional=optional)

    def mapping(self, key: str) -> Mapping[str, object]:
        return _typed(self.get(key, {}), self.at(key), Mapping, "mapping")

    def sequence(self, key: str) -> list[object]:
        return list(_typed(self._data[key], self.at(key), (list, tuple), "array"))

    def expect_kind(self, kind: str) -> None:
        found = self._data.get("kind")
        if found is not None and found != kind:
            raise _invalid(self.at("kind"), f"expected {kind!r}, got {found!r}")


class PersistedModel:
    """Base for models stored as camelCase documents."""

    def to_dict(self) -> dict[str, JSONValue]:
        raise NotImplementedError(f"{type(self).__name__} cannot be serialized")

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Self:
        raise NotImplementedError(f"{cls.__name__} cannot be parsed")

    @classmethod
    def from_json(cls, raw: str) -> Self:
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as exc:
            raise _invalid(cls.__name__, f"invalid JSON document: {exc}") from exc
        return cls.from_dict(data)


# --- models -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ObjectReference(PersistedModel):
    """Namespaced reference to another resource (template or definition)."""

    name: str
    namespace: str = ""

    def __post_init__(self) -> None:
        _name(self.name, "ObjectReference.name")
        _name(self.namespace, "ObjectReference.namespace", allow_empty=True)

    def with_default_namespace(self, namespace: str) -> ObjectReference:
        return self if self.namespace else replace(self, namespace=namespace)

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"name": self.name}
        if self.namespace:
            out["namespace"] = self.namespace
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str = "ObjectReference") -> ObjectReference:
        doc = _Doc(data, path, required={"name"}, optional={"namespace"})
        return cls(
            name=_name(doc.get("name"), doc.at("name")),
            namespace=_name(doc.get("namespace", ""), doc.at("namespace"), allow_empty=True),
        )


@dataclass(frozen=True, slots=True)
class Operator(PersistedModel):
    """One comparison: a fixed value for scalar operators, bounds for ranges."""

    name: OperatorName
    fixed_value: float | None = None
    low_bound: float | None = None
    high_bound: float | None = None

    def __post_init__(self) -> None:
        path = f"Operator.{self.name}"
        if self.name not in RANGE_OPERATORS:
            if self.fixed_value is None:
                raise _invalid(path, "operator requires fixedValue")
            if self.low_bound is not None or self.high_bound is not None:
                raise _invalid(path, "only range operators accept lowBound/highBound")
            return
        if self.low_bound is None or self.high_bound is None:
            raise _invalid(path, "range operators require lowBound and highBound")
        if self.fixed_value is not None:
            raise _invalid(path, "range operators do not accept fixedValue")
        if self.low_bound > self.high_bound:
            raise _invalid(path, "lowBound must be <= highBound")

    def to_dict(self) -> dict[str, JSONValue]:
        if self.low_bound is not None and self.high_bound is not None:
            body: dict[str, JSONValue] = {
                "lowBound": _number_to_json(self.low_bound),
                "highBound": _number_to_json(self.high_bound),
            }
        else:
            assert self.fixed_value is not None
            body = {"fixedValue": _number_to_json(self.fixed_value)}
        return {self.name.value: body}

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str = "Operator") -> Operator:
        doc = _Doc(data, path, optional=[item.value for item in OperatorName])
        if len(doc.keys()) != 1:
            raise _invalid(path, "exactly one operator must be set")
        (raw_name,) = doc.keys()
        name = OperatorName(raw_name)
        if name in RANGE_OPERATORS:
            bounds = doc.doc(raw_name, required={"lowBound", "highBound"})
            return cls(
                name=name,
                low_bound=_number(bounds.get("lowBound"), bounds.at("lowBound")),
                high_bound=_number(bounds.get("highBound"), bounds.at("highBound")),
            )
        body = doc.doc(raw_name, required={"fixedValue"})
        return cls(name=name, fixed_value=_number(body.get("fixedValue"), body.at("fixedValue")))


@dataclass(frozen=True, slots=True)
class Target(PersistedModel):
    """Failure and warning criteria classifying a single objective value."""

    failure: Operator | None = None
    warning: Operator | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {}
        if self.failure is not None:
            out["failure"] = self.failure.to_dict()
        if self.warning is not None:
            out["warning"] = self.warning.to_dict()
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str = "Target") -> Target:
        doc = _Doc(data, path, optional={"failure", "warning"})

        def criterion(key: str) -> Operator | None:
            raw = doc.get(key)
            return None if raw is None else Operator.from_dict(raw, path=doc.at(key))

        return cls(failure=criterion("failure"), warning=criterion("warning"))


@dataclass(frozen=True, slots=True)
class Objective(PersistedModel):
    template_ref: ObjectReference
    target: Target = field(default_factory=Target)
    weight: float = 1.0
    key_objective: bool = False

    def __post_init__(self) -> None:
        _typed(self.template_ref, "Objective.analysisValueTemplateRef", ObjectReference, "ObjectReference")
        _typed(self.target, "Objective.target", Target, "Target")
        _number(self.weight, "Objective.weight", lo=0.0)
        _flag(self.key_objective, "Objective.keyObjective")

    @property
    def key(self) -> str:
        return compute_key(self.template_ref)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "analysisValueTemplateRef": self.template_ref.to_dict(),
            "target": self.target.to_dict(),
            "weight": _number_to_json(self.weight),
            "keyObjective": self.key_objective,
        }

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, object],
        *,
        path: str = "Objective",
        default_namespace: str = "",
    ) -> Objective:
        doc = _Doc(
            data,
            path,
            required={"analysisValueTemplateRef"},
            optional={"target", "weight", "keyObjective"},
        )
        ref = ObjectReference.from_dict(
            doc.get("analysisValueTemplateRef"),
            path=doc.at("analysisValueTemplateRef"),
        )
        target = doc.get("target")
        return cls(
            template_ref=ref.with_default_namespace(default_namespace),
            target=Target() if target is None else Target.from_dict(target, path=doc.at("target")),
            weight=_number(doc.get("weight", 1), doc.at("weight"), lo=0.0),
            key_objective=_flag(doc.get("keyObjective", False), doc.at("keyObjective")),
        )


@dataclass(frozen=True, slots=True)
class TotalScore(PersistedModel):
    """Aggregate thresholds, in percent of the achievable weighted score."""

    pass_percentage: float
    warning_percentage: float

    def __post_init__(self) -> None:
        _number(self.pass_percentage, "TotalScore.passPercentage", lo=0.0, hi=100.0)
        _number(self.warning_percentage, "TotalScore.warningPercentage", lo=0.0, hi=100.0)
        if self.warning_percentage > self.pass_percentage:
            raise _invalid("TotalScore.warningPercentage", "must be <= passPercentage")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "passPercentage": _number_to_json(self.pass_percentage),
            "warningPercentage": _number_to_json(self.warning_percentage),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str = "TotalScore") -> TotalScore:
        doc = _Doc(data, path, required={"passPercentage", "warningPercentage"})
        return cls(
            pass_percentage=_number(doc.get("passPercentage"), doc.at("passPercentage")),
            warning_percentage=_number(doc.get("warningPercentage"), doc.at("warningPercentage")),
        )


@dataclass(frozen=True, slots=True)
class ObjectMeta(PersistedModel):
    name: str
    namespace: str = DEFAULT_NAMESPACE
    generation: int = 1
    resource_version: str = ""
    labels: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _name(self.name, "metadata.name")
        _name(self.namespace, "metadata.namespace")
        _count(self.generation, "metadata.generation")

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "name": self.name,
            "namespace": self.namespace,
            "generation": self.generation,
        }
        if self.resource_version:
            out["resourceVersion"] = self.resource_version
        if self.labels:
            out["labels"] = dict(sorted(self.labels.items()))
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str = "metadata") -> ObjectMeta:
        doc = _Doc(
            data,
            path,
            required={"name"},
            optional={"namespace", "generation", "resourceVersion", "labels"},
        )
        version = doc.get("resourceVersion", "")
        # YAML turns an unquoted numeric resourceVersion into an int.
        if isinstance(version, int) and not isinstance(version, bool):
            version = str(version)
        return cls(
            name=_name(doc.get("name"), doc.at("name")),
            namespace=_name(doc.get("namespace", DEFAULT_NAMESPACE), doc.at("namespace")),
            generation=_count(doc.get("generation", 1), doc.at("generation")),
            resource_version=_text(version, doc.at("resourceVersion")),
            labels=_string_map(doc.get("labels", {}), doc.at("labels")),
        )


@dataclass(frozen=True, slots=True)
class AnalysisDefinition(PersistedModel):
    """Ordered objectives plus aggregate pass/warning thresholds."""

    metadata: ObjectMeta
    objectives: tuple[Objective, ...]
    total_score: TotalScore

    def __post_init__(self) -> None:
        path = "AnalysisDefinition.spec.objectives"
        if len(self.objectives) > _MAX_OBJECTIVES:
            raise _invalid(path, f"too many items (>{_MAX_OBJECTIVES})")
        seen: set[str] = set()
        for index, objective in enumerate(self.objectives):
            _typed(objective, f"{path}[{index}]", Objective, "Objective")
            if objective.key in seen:
                raise _invalid(
                    f"{path}[{index}]", f"duplicate analysisValueTemplateRef {objective.key!r}"
                )
            seen.add(objective.key)

    @property
    def ref(self) -> ObjectReference:
        return ObjectReference(name=self.metadata.name, namespace=self.metadata.namespace)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "kind": ANALYSIS_DEFINITION_KIND,
            "metadata": self.metadata.to_dict(),
            "spec": {
                "objectives": [objective.to_dict() for objective in self.objectives],
                "totalScore": self.total_score.to_dict(),
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> AnalysisDefinition:
        doc = _Doc(
            data,
            "AnalysisDefinition",
            required={"metadata", "spec"},
            optional={"apiVersion", "kind"},
        )
        doc.expect_kind(ANALYSIS_DEFINITION_KIND)
        metadata = ObjectMeta.from_dict(doc.get("metadata"), path=doc.at("metadata"))
        spec = doc.doc("spec", required={"objectives", "totalScore"})
        objectives_path = spec.at("objectives")
        return cls(
            metadata=metadata,
            objectives=tuple(
                Objective.from_dict(
                    item,
                    path=f"{objectives_path}[{index}]",
                    default_namespace=metadata.namespace,
                )
                for index, item in enumerate(spec.sequence("objectives"))
            ),
            total_score=TotalScore.from_dict(
                spec.get("totalScore"),
                path=spec.at("totalScore"),
            ),
        )


@dataclass(frozen=True, slots=True)
class ProviderResult(PersistedModel):
    """Resolved value or error message for one objective.

    Both texts are bounded by the same limit ``from_dict`` applies, so every
    result that can be built can also be stored and read back.
    """

    objective: ObjectReference
    value: str = ""
    err_msg: str = ""

    def __post_init__(self) -> None:
        _typed(self.objective, "ProviderResult.objectiveReference", ObjectReference, "ObjectReference")
        for path, text in (
            ("ProviderResult.value", self.value),
            ("ProviderResult.errMsg", self.err_msg),
        ):
            if len(_typed(text, path, str, "string")) > _MAX_TEXT:
                raise _invalid(path, f"longer than {_MAX_TEXT} characters")
        if not self.value and not self.err_msg:
            raise _invalid("ProviderResult", "one of value or errMsg must be set")

    @classmethod
    def success(cls, objective: ObjectReference, value: str) -> ProviderResult:
        return cls(objective=objective, value=value)

    @classmethod
    def failure(cls, objective: ObjectReference, message: str) -> ProviderResult:
        """Failed result; overlong messages (stack traces) are truncated."""

        return cls(objective=objective, err_msg=_clip(message) or "unknown error")

    @property
    def succeeded(self) -> bool:
        return not self.err_msg

    @property
    def key(self) -> str:
        return compute_key(self.objective)

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"objectiveReference": self.objective.to_dict()}
        if self.value:
            out["value"] = self.value
        if self.err_msg:
            out["errMsg"] = self.err_msg
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str = "ProviderResult") -> ProviderResult:
        doc = _Doc(data, path, required={"objectiveReference"}, optional={"value", "errMsg"})
        return cls(
            objective=ObjectReference.from_dict(
                doc.get("objectiveReference"),
                path=doc.at("objectiveReference"),
            ),
            value=_text(doc.get("value", ""), doc.at("value")),
            err_msg=_text(doc.get("errMsg", ""), doc.at("errMsg")),
        )


@dataclass(frozen=True, slots=True)
class Timeframe(PersistedModel):
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if _moment(self.end, "Timeframe.to") <= _moment(self.start, "Timeframe.from"):
            raise _invalid("Timeframe.to", "must be after Timeframe.from")

    def to_dict(self) -> dict[str, JSONValue]:
        return {"from": _rfc3339(self.start), "to": _rfc3339(self.end)}

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str = "Timeframe") -> Timeframe:
        doc = _Doc(data, path, required={"from", "to"})
        return cls(
            start=_moment(doc.get("from"), doc.at("from")),
            end=_moment(doc.get("to"), doc.at("to")),
        )


@dataclass(frozen=True, slots=True)
class AnalysisSpec(PersistedModel):
    timeframe: Timeframe
    definition_ref: ObjectReference
    args: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {
            "timeframe": self.timeframe.to_dict(),
            "analysisDefinition": self.definition_ref.to_dict(),
        }
        if self.args:
            out["args"] = dict(sorted(self.args.items()))
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str = "spec") -> AnalysisSpec:
        doc = _Doc(data, path, required={"timeframe", "analysisDefinition"}, optional={"args"})
        return cls(
            timeframe=Timeframe.from_dict(doc.get("timeframe"), path=doc.at("timeframe")),
            definition_ref=ObjectReference.from_dict(
                doc.get("analysisDefinition"),
                path=doc.at("analysisDefinition"),
            ),
            args=_string_map(doc.get("args", {}), doc.at("args")),
        )


@dataclass(frozen=True, slots=True)
class AnalysisStatus(PersistedModel):
    raw: str = ""
    passed: bool = False
    warning: bool = False
    stored_values: dict[str, ProviderResult] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for key, result in self.stored_values.items():
            path = f"status.storedValues.{key}"
            _typed(result, path, ProviderResult, "ProviderResult")
            if key != result.key:
                raise _invalid(path, f"key does not match objectiveReference {result.key!r}")

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {"pass": self.passed, "warning": self.warning}
        if self.raw:
            out["raw"] = self.raw
        if self.stored_values:
            out["storedValues"] = {
                key: self.stored_values[key].to_dict() for key in sorted(self.stored_values)
            }
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str = "status") -> AnalysisStatus:
        doc = _Doc(data, path, optional={"raw", "pass", "warning", "storedValues"})
        stored_path = doc.at("storedValues")
        return cls(
            raw=_text(doc.get("raw", ""), doc.at("raw"), limit=_MAX_RAW),
            passed=_flag(doc.get("pass", False), doc.at("pass")),
            warning=_flag(doc.get("warning", False), doc.at("warning")),
            stored_values={
                str(key): ProviderResult.from_dict(item, path=f"{stored_path}.{key}")
                for key, item in doc.mapping("storedValues").items()
            },
        )


@dataclass(frozen=True, slots=True)
class Analysis(PersistedModel):
    """One SLO analysis run: what to evaluate (spec) and how far it got (status)."""

    metadata: ObjectMeta
    spec: AnalysisSpec
    status: AnalysisStatus = field(default_factory=AnalysisStatus)

    @property
    def ref(self) -> ObjectReference:
        return ObjectReference(name=self.metadata.name, namespace=self.metadata.namespace)

    def with_status(self, status: AnalysisStatus) -> Analysis:
        return replace(self, status=status)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "kind": ANALYSIS_KIND,
            "metadata": self.metadata.to_dict(),
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Analysis:
        doc = _Doc(
            data,
            "Analysis",
            required={"metadata", "spec"},
            optional={"apiVersion", "kind", "status"},
        )
        doc.expect_kind(ANALYSIS_KIND)
        status = doc.get("status")
        return cls(
            metadata=ObjectMeta.from_dict(doc.get("metadata"), path=doc.at("metadata")),
            spec=AnalysisSpec.from_dict(doc.get("spec"), path=doc.at("spec")),
            status=(
                AnalysisStatus()
                if status is None
                else AnalysisStatus.from_dict(status, path=doc.at("status"))
            ),
        )


__all__ = [
    "RANGE_OPERATORS",
    "Analysis",
    "AnalysisDefinition",
    "AnalysisSpec",
    "AnalysisState",
    "AnalysisStatus",
    "JSONScalar",
    "JSONValue",
    "ObjectMeta",
    "ObjectReference",
    "Objective",
    "Operator",
    "OperatorName",
    "PersistedModel",
    "ProviderResult",
    "Target",
    "Timeframe",
    "TotalScore",
]
