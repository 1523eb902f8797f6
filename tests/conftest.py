"""Shared pytest fixtures for slo-reconciler tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from factories import RecordingLogger

from slo_reconciler.observability.logging import shutdown_logging

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture(autouse=True)
def _shutdown_structured_logging() -> Iterator[None]:
    yield
    shutdown_logging()
