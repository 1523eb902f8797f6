"""
slo-reconciler runtime config loader.

Purpose
- Build the effective config by layering defaults, the TOML file, ``SLO_*``
  environment variables, and CLI flags (later layers win).
- Resolve relative path settings against the directory holding the config file.

Environment mapping
- ``SLO_<SECTION>_<KEY>`` targets ``[section].key``; for example
  ``SLO_RECONCILER_MAX_WORKERS`` overrides ``reconciler.max_workers``.
- Values are coerced to the type of the setting they override.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from slo_reconciler.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "slo-reconciler.toml"
ENV_PREFIX: Final[str] = "SLO_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})

# Settings without a default value that still accept an environment override.
_UNSET_SETTINGS: Final[Mapping[tuple[str, str], type]] = {
    ("provider", "values_file"): str,
    ("observability", "metrics_export_path"): str,
}


class ConfigLoadError(ValueError):
    """Config file is unreadable or an override has the wrong type."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config.

    Without ``config_path`` the loader looks for ``slo-reconciler.toml`` in the
    working directory and silently falls back to defaults when it is absent.
    An explicit ``config_path`` must exist. ``cli_overrides`` uses dotted keys
    (``"reconciler.max_workers"``); ``None`` values are ignored.
    """

    if config_path is None:
        source, required = Path.cwd() / DEFAULT_CONFIG_FILE, False
    else:
        source, required = Path(config_path).expanduser(), True
    source = source.resolve()

    from_file = assert_valid_config(merge_config(default_config(), _read_toml(source, required)))
    env_layer = _env_layer(from_file, os.environ if environ is None else environ)
    layered = merge_config(from_file, env_layer)
    layered = assert_valid_config(merge_config(layered, _nest_dotted(cli_overrides or {})))
    return assert_valid_config(normalize_paths(layered, base_dir=source.parent))


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Return a copy of ``config`` with every path setting made absolute."""

    resolved = merge_config({}, config)
    for section, key in PATH_FIELDS:
        body = resolved.get(section)
        if isinstance(body, dict) and isinstance(body.get(key), str):
            body[key] = _absolute(body[key], base_dir)
    return resolved


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Redacted view of ``config`` for logs and ``slo-reconciler config``."""

    return redact_config(config)


def dump_effective_config(config: Mapping[str, object], *, indent: int | None = None) -> str:
    separators = (",", ":") if indent is None else None
    return json.dumps(
        effective_config(config),
        sort_keys=True,
        indent=indent,
        separators=separators,
        ensure_ascii=False,
    )


def _read_toml(path: Path, required: bool) -> dict[str, Any]:
    try:
        raw = path.read_bytes()
    except FileNotFoundError as exc:
        if required:
            raise ConfigLoadError(f"config file not found: {path}") from exc
        return {}
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    try:
        return tomllib.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc


def _setting_types(config: Mapping[str, object]) -> dict[tuple[str, str], type]:
    types: dict[tuple[str, str], type] = dict(_UNSET_SETTINGS)
    for section, body in config.items():
        if not isinstance(body, Mapping):
            continue
        for key, value in body.items():
            if isinstance(value, (bool, int, float, str)):
                types[(section, key)] = type(value)
    return types


def _env_layer(config: Mapping[str, object], environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for (section, key), kind in sorted(_setting_types(config).items()):
        name = f"{ENV_PREFIX}{section.upper()}_{key.upper()}"
        if name in environ:
            layer.setdefault(section, {})[key] = _coerce(
                environ[name], kind, name=name, setting=f"{section}.{key}"
            )
    return layer


def _coerce(raw: str, kind: type, *, name: str, setting: str) -> object:
    text = raw.strip()
    if kind is bool:
        lowered = text.lower()
        if lowered in _TRUTHY:
            return True
        if lowered in _FALSY:
            return False
        choices = "/".join(sorted(_TRUTHY | _FALSY))
        raise ConfigLoadError(f"{name} ({setting}) must be a boolean ({choices})")
    if kind in (int, float):
        try:
            return kind(text)
        except ValueError as exc:
            expected = "an integer" if kind is int else "a number"
            raise ConfigLoadError(f"{name} ({setting}) must be {expected}, got {text!r}") from exc
    return text


def _nest_dotted(overrides: Mapping[str, object]) -> dict[str, Any]:
    nested: dict[str, Any] = {}
    for dotted, value in sorted(overrides.items()):
        if value is None:
            continue
        parts = [part for part in dotted.split(".") if part]
        if not parts:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        cursor = nested
        for part in parts[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[parts[-1]] = value
    return nested


def _absolute(raw: str, base_dir: Path) -> str:
    path = Path(os.path.expandvars(raw)).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return Path(os.path.normpath(path)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "effective_config",
    "load_config",
    "normalize_paths",
]
