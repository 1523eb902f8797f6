"""
Persistence layer: resource store interface, in-memory store, YAML manifests.

Status writes use optimistic concurrency on ``resourceVersion``; not-found is
a distinguished error so callers can treat deleted resources as recoverable.
"""

from slo_reconciler.persistence.manifests import (
    ManifestBundle,
    ManifestError,
    dump_manifests,
    load_manifest_file,
    load_manifest_text,
    load_manifests,
)
from slo_reconciler.persistence.store import (
    AnalysisStore,
    ConflictError,
    InMemoryAnalysisStore,
    NotFoundError,
    StoreError,
)

__all__ = [
    "AnalysisStore",
    "ConflictError",
    "InMemoryAnalysisStore",
    "ManifestBundle",
    "ManifestError",
    "NotFoundError",
    "StoreError",
    "dump_manifests",
    "load_manifest_file",
    "load_manifest_text",
    "load_manifests",
]
