"""Utility exports for concurrency helpers."""

from slo_reconciler.utils.concurrency import BoundedSemaphore, CancellationToken, WorkerPool

__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "WorkerPool",
]
