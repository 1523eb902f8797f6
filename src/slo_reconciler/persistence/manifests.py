"""YAML manifest loading and dumping for analyses and definitions."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from slo_reconciler.constants import ANALYSIS_DEFINITION_KIND, ANALYSIS_KIND
from slo_reconciler.domain.models import Analysis, AnalysisDefinition

if TYPE_CHECKING:
    from slo_reconciler.persistence.store import InMemoryAnalysisStore


class ManifestError(ValueError):
    """Manifest file could not be read or contains an invalid document."""

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(f"{source}: {message}")


@dataclass(slots=True)
class ManifestBundle:
    analyses: list[Analysis] = field(default_factory=list)
    definitions: list[AnalysisDefinition] = field(default_factory=list)

    def extend(self, other: ManifestBundle) -> None:
        self.analyses.extend(other.analyses)
        self.definitions.extend(other.definitions)

    def seed(self, store: InMemoryAnalysisStore) -> None:
        """Write every definition, then every analysis, into ``store``."""

        for definition in self.definitions:
            store.put_definition(definition)
        for analysis in self.analyses:
            store.put_analysis(analysis)


def parse_documents(documents: Iterable[object], *, source: str) -> ManifestBundle:
    bundle = ManifestBundle()
    for index, document in enumerate(documents):
        if document is None:
            continue
        where = f"{source}[{index}]"
        if not isinstance(document, Mapping):
            raise ManifestError(where, "document must be a mapping")
        kind = document.get("kind")
        try:
            if kind == ANALYSIS_KIND:
                bundle.analyses.append(Analysis.from_dict(document))
            elif kind == ANALYSIS_DEFINITION_KIND:
                bundle.definitions.append(AnalysisDefinition.from_dict(document))
            else:
                raise ManifestError(
                    where,
                    f"unsupported kind {kind!r}; expected {ANALYSIS_KIND!r} "
                    f"or {ANALYSIS_DEFINITION_KIND!r}",
                )
        except ManifestError:
            raise
        except ValueError as exc:
            raise ManifestError(where, str(exc)) from exc
    return bundle


def load_manifest_text(text: str, *, source: str = "<string>") -> ManifestBundle:
    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as exc:
        raise ManifestError(source, f"invalid YAML: {exc}") from exc
    return parse_documents(documents, source=source)


def load_manifest_file(path: str | Path) -> ManifestBundle:
    file_path = Path(path)
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(str(file_path), f"unable to read manifest: {exc}") from exc
    return load_manifest_text(text, source=str(file_path))


def load_manifests(paths: Iterable[str | Path]) -> ManifestBundle:
    bundle = ManifestBundle()
    for path in paths:
        bundle.extend(load_manifest_file(path))
    return bundle


def dump_manifests(resources: Iterable[Analysis | AnalysisDefinition]) -> str:
    """Render resources as a multi-document YAML stream."""

    return yaml.safe_dump_all(
        [resource.to_dict() for resource in resources],
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )


__all__ = [
    "ManifestBundle",
    "ManifestError",
    "dump_manifests",
    "load_manifest_file",
    "load_manifest_text",
    "load_manifests",
    "parse_documents",
]
