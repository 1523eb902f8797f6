"""Provider interface, error taxonomy, and the static in-process provider."""

from slo_reconciler.providers.base import (
    ProviderError,
    ProviderQuery,
    ProviderUnavailableError,
    ProviderValueMissingError,
)
from slo_reconciler.providers.static import StaticValueProvider

__all__ = [
    "ProviderError",
    "ProviderQuery",
    "ProviderUnavailableError",
    "ProviderValueMissingError",
    "StaticValueProvider",
]
