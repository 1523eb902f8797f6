"""Stable cache keys for objective template references."""

from __future__ import annotations

from typing import TYPE_CHECKING

from slo_reconciler.constants import KEY_SEPARATOR

if TYPE_CHECKING:
    from slo_reconciler.domain.models import ObjectReference


def compute_key(ref: ObjectReference) -> str:
    """Return the ``namespace/name`` key identifying ``ref`` in stored values.

    Names and namespaces never contain the separator, so distinct references
    always map to distinct keys.
    """

    return f"{ref.namespace}{KEY_SEPARATOR}{ref.name}"


def split_key(key: str) -> tuple[str, str]:
    """Inverse of ``compute_key``: return ``(namespace, name)``."""

    namespace, separator, name = key.partition(KEY_SEPARATOR)
    if not separator or not name or KEY_SEPARATOR in name:
        raise ValueError(f"invalid objective key {key!r}; expected 'namespace/name'")
    return namespace, name


__all__ = ["compute_key", "split_key"]
