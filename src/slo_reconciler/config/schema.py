"""
slo-reconciler configuration schema and validation.

Purpose
- Own the built-in defaults and the strict shape of ``slo-reconciler.toml``.

Rules
- Validation reports every problem as a (dotted path, message) issue instead
  of stopping at the first one.
- Unknown keys are errors; unknown keys that look like credentials get a
  dedicated message because secrets never belong in the config file.
- A ``meta.schema_version`` other than the supported one yields migration
  guidance.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, NotRequired, TypedDict

from slo_reconciler.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_COLLECTION_TIMEOUT_SECONDS,
    DEFAULT_MAX_WORKERS,
    DEFAULT_NAMESPACE,
    DEFAULT_RETRY_DELAY_SECONDS,
    DEFAULT_WARNING_CREDIT,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
REDACTED_VALUE: Final[str] = "<redacted>"

# Relative values are resolved against the directory of the config file.
PATH_FIELDS: Final[tuple[tuple[str, str], ...]] = (
    ("observability", "log_dir"),
    ("observability", "metrics_export_path"),
    ("provider", "values_file"),
)

_NAMESPACE_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$")
_CAMEL_HUMP: Final[re.Pattern[str]] = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_WORD_SPLIT: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9]+")
_SECRET_WORDS: Final[frozenset[str]] = frozenset(
    {"auth", "credential", "credentials", "apikey", "passwd", "password", "secret", "token"}
)
_SECRET_PHRASES: Final[tuple[str, ...]] = ("api_key", "access_token", "client_secret", "private_key")


class MetaConfig(TypedDict):
    schema_version: int


class ReconcilerConfig(TypedDict):
    max_workers: int
    retry_delay_seconds: float
    collection_timeout_seconds: float
    default_namespace: str


class EvaluationConfig(TypedDict):
    warning_credit: float


class ProviderConfig(TypedDict):
    values_file: NotRequired[str]


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stdout: bool
    redact_secrets: bool
    metrics_export_path: NotRequired[str]


class ReconcilerFileConfig(TypedDict):
    meta: MetaConfig
    reconciler: ReconcilerConfig
    evaluation: EvaluationConfig
    provider: ProviderConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[ReconcilerFileConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "reconciler": {
        "max_workers": DEFAULT_MAX_WORKERS,
        "retry_delay_seconds": DEFAULT_RETRY_DELAY_SECONDS,
        "collection_timeout_seconds": DEFAULT_COLLECTION_TIMEOUT_SECONDS,
        "default_namespace": DEFAULT_NAMESPACE,
    },
    "evaluation": {"warning_credit": DEFAULT_WARNING_CREDIT},
    "provider": {},
    "observability": {
        "log_level": "INFO",
        "log_dir": "logs/",
        "log_to_stdout": False,
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Normalized config (``None`` when invalid) plus every issue found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """The effective config failed validation; ``issues`` lists why."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


class _Issues(list[ConfigValidationIssue]):
    def report(self, path: str, message: str) -> None:
        self.append(ConfigValidationIssue(path=path, message=message))


# Returned by a field parser that already reported an issue.
_REJECTED: Final = object()

_Parser = Callable[[object, str, _Issues], object]


@dataclass(frozen=True, slots=True)
class _Field:
    key: str
    parse: _Parser
    required: bool = True


def _text(value: object, path: str, issues: _Issues) -> object:
    if not isinstance(value, str):
        issues.report(path, f"expected string, got {type(value).__name__}")
        return _REJECTED
    stripped = value.strip()
    if not stripped:
        issues.report(path, "must not be empty")
        return _REJECTED
    return stripped


def _path_text(value: object, path: str, issues: _Issues) -> object:
    text = _text(value, path, issues)
    if isinstance(text, str) and "\x00" in text:
        issues.report(path, "must not contain NUL bytes")
        return _REJECTED
    return text


def _flag(value: object, path: str, issues: _Issues) -> object:
    if isinstance(value, bool):
        return value
    issues.report(path, f"expected boolean, got {type(value).__name__}")
    return _REJECTED


def _integer(*, minimum: int) -> _Parser:
    def parse(value: object, path: str, issues: _Issues) -> object:
        if isinstance(value, bool) or not isinstance(value, int):
            issues.report(path, f"expected integer, got {type(value).__name__}")
            return _REJECTED
        if value < minimum:
            issues.report(path, f"must be >= {minimum}")
            return _REJECTED
        return value

    return parse


def _number(
    *, above: float | None = None, at_least: float | None = None, at_most: float | None = None
) -> _Parser:
    def parse(value: object, path: str, issues: _Issues) -> object:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            issues.report(path, f"expected number, got {type(value).__name__}")
            return _REJECTED
        number = float(value)
        problem = None
        if not math.isfinite(number):
            problem = "must be finite"
        elif above is not None and number <= above:
            problem = f"must be > {above}"
        elif at_least is not None and number < at_least:
            problem = f"must be >= {at_least}"
        elif at_most is not None and number > at_most:
            problem = f"must be <= {at_most}"
        if problem is not None:
            issues.report(path, problem)
            return _REJECTED
        return number

    return parse


def _namespace(value: object, path: str, issues: _Issues) -> object:
    text = _text(value, path, issues)
    if isinstance(text, str) and not _NAMESPACE_RE.fullmatch(text):
        issues.report(path, f"invalid namespace {text!r}; must match {_NAMESPACE_RE.pattern}")
        return _REJECTED
    return text


def _log_level(value: object, path: str, issues: _Issues) -> object:
    text = _text(value, path, issues)
    if not isinstance(text, str):
        return _REJECTED
    if text.upper() not in LOG_LEVELS:
        issues.report(path, f"invalid value {text!r}; expected one of: {', '.join(LOG_LEVELS)}")
        return _REJECTED
    return text.upper()


def _schema_version(value: object, path: str, issues: _Issues) -> object:
    version = _integer(minimum=1)(value, path, issues)
    if isinstance(version, int) and version != ConfigSchemaVersion:
        issues.report(path, migration_guidance(version))
    return version


_SECTIONS: Final[Mapping[str, tuple[_Field, ...]]] = {
    "meta": (_Field("schema_version", _schema_version),),
    "reconciler": (
        _Field("max_workers", _integer(minimum=1)),
        _Field("retry_delay_seconds", _number(above=0.0)),
        _Field("collection_timeout_seconds", _number(above=0.0)),
        _Field("default_namespace", _namespace),
    ),
    "evaluation": (_Field("warning_credit", _number(at_least=0.0, at_most=1.0)),),
    "provider": (_Field("values_file", _path_text, required=False),),
    "observability": (
        _Field("log_level", _log_level),
        _Field("log_dir", _path_text),
        _Field("metrics_export_path", _path_text, required=False),
        _Field("log_to_stdout", _flag),
        _Field("redact_secrets", _flag),
    ),
}
_OPTIONAL_SECTIONS: Final[frozenset[str]] = frozenset({"provider"})


def default_config() -> ReconcilerFileConfig:
    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version == ConfigSchemaVersion:
        return "schema version is current"
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade slo-reconciler.toml to the current schema"
        )
    return (
        f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
        "upgrade the slo-reconciler runtime"
    )


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; neither input is mutated."""

    merged: dict[str, Any] = {key: _detached(base[key]) for key in sorted(base)}
    for key in sorted(overlay):
        incoming = overlay[key]
        if isinstance(incoming, Mapping):
            current = merged.get(key)
            merged[key] = merge_config(current if isinstance(current, Mapping) else {}, incoming)
        else:
            merged[key] = copy.deepcopy(incoming)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Check ``config`` against the schema without raising."""

    issues = _Issues()
    root = _table(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=tuple(issues))

    _check_keys(root, "", _SECTIONS.keys(), _OPTIONAL_SECTIONS, issues)
    normalized: dict[str, Any] = {}
    for section, fields in _SECTIONS.items():
        if root.get(section) is None:
            continue
        body = _table(root[section], section, issues)
        if body is None:
            continue
        optional = {spec.key for spec in fields if not spec.required}
        _check_keys(body, section, [spec.key for spec in fields], optional, issues)
        parsed: dict[str, Any] = {}
        for spec in fields:
            if spec.key not in body:
                continue
            value = spec.parse(body[spec.key], f"{section}.{spec.key}", issues)
            if value is not _REJECTED:
                parsed[spec.key] = value
        normalized[section] = parsed
    normalized.setdefault("provider", {})

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Key-sorted copy of ``config`` with credential-looking keys masked."""

    if not isinstance(config, Mapping):
        return {}
    return _masked(config)


def _table(value: object, path: str, issues: _Issues) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.report(path, f"expected object, got {type(value).__name__}")
        return None
    table: dict[str, object] = {}
    for key, item in value.items():
        if isinstance(key, str):
            table[key] = item
        else:
            issues.report(path, f"object key must be string, got {type(key).__name__}")
    return table


def _check_keys(
    table: Mapping[str, object],
    path: str,
    known: Iterable[str],
    optional: Iterable[str],
    issues: _Issues,
) -> None:
    known_keys = set(known)
    prefix = f"{path}." if path else ""
    for key in sorted(set(table) - known_keys):
        if _is_sensitive_key(key):
            issues.report(prefix + key, "embedded secret values are forbidden in config files")
        else:
            issues.report(prefix + key, "unknown field")
    for key in sorted(known_keys - set(optional) - set(table)):
        issues.report(prefix + key, "missing required field")


def _is_sensitive_key(key: str) -> bool:
    snake = _CAMEL_HUMP.sub("_", key.strip()).lower()
    words = [word for word in _WORD_SPLIT.split(snake) if word]
    if any(word in _SECRET_WORDS for word in words):
        return True
    joined = "_".join(words)
    return any(phrase in joined for phrase in _SECRET_PHRASES)


def _detached(value: object) -> Any:
    if isinstance(value, Mapping):
        return merge_config(value, {})
    return copy.deepcopy(value)


def _masked(value: object) -> Any:
    if isinstance(value, Mapping):
        return {
            key: REDACTED_VALUE if _is_sensitive_key(str(key)) else _masked(value[key])
            for key in sorted(value)
        }
    if isinstance(value, (list, tuple)):
        return [_masked(item) for item in value]
    return value


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ReconcilerFileConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
