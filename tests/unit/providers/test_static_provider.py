"""
slo-reconciler unit tests for the static value provider

Purpose
- Validate value lookup by objective key, YAML values files, and normalized
  provider errors.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest
from factories import WINDOW_END, WINDOW_START

from slo_reconciler.domain.models import ObjectReference, Timeframe
from slo_reconciler.providers import (
    ProviderError,
    ProviderQuery,
    ProviderUnavailableError,
    ProviderValueMissingError,
    StaticValueProvider,
)
from slo_reconciler.utils import CancellationToken

if TYPE_CHECKING:
    from pathlib import Path

_WINDOW = Timeframe(start=WINDOW_START, end=WINDOW_END)


async def test_query_returns_configured_value_as_text() -> None:
    provider = StaticValueProvider({"shop/error-rate": 0.5, "shop/latency": "120"})

    value = await provider.query(ObjectReference(name="error-rate", namespace="shop"), _WINDOW, {})

    assert isinstance(provider, ProviderQuery)
    assert value == "0.5"
    assert provider.values == {"shop/error-rate": "0.5", "shop/latency": "120"}


async def test_query_for_unknown_objective_raises_value_missing() -> None:
    provider = StaticValueProvider()

    with pytest.raises(ProviderValueMissingError) as excinfo:
        await provider.query(ObjectReference(name="error-rate"), _WINDOW, {})

    assert excinfo.value.provider == "static"
    assert excinfo.value.code == "value_missing"
    assert "default/error-rate" in str(excinfo.value)


async def test_query_honours_cancelled_token() -> None:
    provider = StaticValueProvider({"shop/error-rate": 0.5})
    ref = ObjectReference(name="error-rate", namespace="shop")
    token = CancellationToken()

    assert await provider.query(ref, _WINDOW, {}, cancel_token=token) == "0.5"
    token.cancel()
    with pytest.raises(asyncio.CancelledError):
        await provider.query(ref, _WINDOW, {}, cancel_token=token)


@pytest.mark.parametrize(
    ("values", "message"),
    [
        ({"no-separator": 1}, ""),
        ({"shop/a": True}, "expected number or string"),
        ({"shop/a": [1, 2]}, "expected number or string"),
    ],
)
def test_constructor_rejects_bad_keys_and_values(values: dict[str, object], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        StaticValueProvider(values)


@pytest.mark.parametrize(
    "text",
    [
        "shop/error-rate: 0.5\nshop/latency: 120\n",
        "values:\n  shop/error-rate: 0.5\n  shop/latency: 120\n",
    ],
)
def test_from_yaml_file_accepts_flat_or_nested_values(tmp_path: Path, text: str) -> None:
    path = tmp_path / "values.yaml"
    path.write_text(text, encoding="utf-8")

    provider = StaticValueProvider.from_yaml_file(path)

    assert provider.values == {"shop/error-rate": "0.5", "shop/latency": "120"}


def test_from_yaml_file_empty_document_has_no_values(tmp_path: Path) -> None:
    path = tmp_path / "values.yaml"
    path.write_text("", encoding="utf-8")

    assert StaticValueProvider.from_yaml_file(path).values == {}


@pytest.mark.parametrize(
    ("text", "message"),
    [
        (None, "values file not found"),
        ("shop/a: [unterminated", "unable to read values file"),
        ("- 1\n- 2\n", "must contain a mapping"),
        ("shop/a: {nested: 1}\n", "invalid values file"),
    ],
)
def test_from_yaml_file_failures_are_unavailable_errors(
    tmp_path: Path, text: str | None, message: str
) -> None:
    path = tmp_path / "values.yaml"
    if text is not None:
        path.write_text(text, encoding="utf-8")

    with pytest.raises(ProviderUnavailableError, match=message) as excinfo:
        StaticValueProvider.from_yaml_file(path)

    assert isinstance(excinfo.value, ProviderError)
    assert excinfo.value.code == "unavailable"


def test_provider_error_normalizes_detail_whitespace() -> None:
    error = ProviderError(provider="prometheus", code="timeout", detail="query\n  took   too long")

    assert error.detail == "query took too long"
    assert str(error) == "provider=prometheus code=timeout detail=query took too long"
    with pytest.raises(ValueError, match="provider cannot be empty"):
        ProviderError(provider=" ", code="x", detail="y")
