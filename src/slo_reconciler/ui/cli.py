"""Command-line interface router for slo-reconciler."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from slo_reconciler.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    effective_config,
    load_config,
)
from slo_reconciler.control_plane import (
    AnalysisReconciler,
    ReconcilerSettings,
    ReconcileRequest,
    ReconcileResult,
    derive_state,
    partition,
)
from slo_reconciler.domain.models import Analysis, AnalysisState
from slo_reconciler.evaluation import WeightedEvaluator
from slo_reconciler.observability import (
    LoggingConfig,
    MetricsRegistry,
    setup_structured_logging,
    shutdown_logging,
)
from slo_reconciler.persistence import (
    InMemoryAnalysisStore,
    ManifestBundle,
    ManifestError,
    dump_manifests,
    load_manifests,
)
from slo_reconciler.providers import StaticValueProvider

DEFAULT_MAX_PASSES: Final[int] = 3


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class AnalysisSummary:
    name: str
    namespace: str
    state: str
    passed: bool
    warning: bool
    stored_values: int
    requeue: bool = False
    detail: str = ""

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "name": self.name,
            "namespace": self.namespace,
            "state": self.state,
            "pass": self.passed,
            "warning": self.warning,
            "storedValues": self.stored_values,
            "requeue": self.requeue,
        }
        if self.detail:
            payload["detail"] = self.detail
        return payload


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="slo-reconciler",
        description=(
            "slo-reconciler: evaluate SLO analyses against their definitions.\n\n"
            "Common workflows:\n"
            "  slo-reconciler reconcile analyses.yaml --values values.yaml\n"
            "  slo-reconciler evaluate analyses.yaml\n"
            "  slo-reconciler config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./slo-reconciler.toml if present).",
    )
    common.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Override reconciler.max_workers.",
    )
    common.add_argument(
        "--log-level",
        default=None,
        help="Override observability.log_level.",
    )
    common.add_argument(
        "--log-dir",
        default=None,
        help="Override observability.log_dir.",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # reconcile -----------------------------------------------------------
    reconcile_parser = subparsers.add_parser(
        "reconcile",
        parents=[common],
        help="Reconcile analyses from YAML manifests",
        description=(
            "Seed an in-memory store from manifests and reconcile every analysis,\n"
            "re-running requeued analyses until they settle or --max-passes is hit.\n\n"
            "Examples:\n"
            "  slo-reconciler reconcile manifests.yaml --values values.yaml\n"
            "  slo-reconciler reconcile a.yaml b.yaml --max-passes 5 --output out.yaml\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    reconcile_parser.add_argument("manifests", nargs="+", help="Manifest YAML files")
    reconcile_parser.add_argument(
        "--values",
        default=None,
        help="YAML file mapping objective keys (namespace/name) to values.",
    )
    reconcile_parser.add_argument(
        "--max-passes",
        type=int,
        default=DEFAULT_MAX_PASSES,
        help=f"Maximum reconcile passes (default: {DEFAULT_MAX_PASSES}).",
    )
    reconcile_parser.add_argument(
        "--output",
        default=None,
        help="Write the reconciled resources to this YAML file.",
    )
    reconcile_parser.set_defaults(handler=_cmd_reconcile)

    # evaluate ------------------------------------------------------------
    evaluate_parser = subparsers.add_parser(
        "evaluate",
        parents=[common],
        help="Evaluate stored values without querying providers",
        description=(
            "Score the stored values already present in analysis manifests.\n"
            "Analyses with outstanding objectives are listed without a verdict.\n\n"
            "Examples:\n"
            "  slo-reconciler evaluate reconciled.yaml --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    evaluate_parser.add_argument("manifests", nargs="+", help="Manifest YAML files")
    evaluate_parser.set_defaults(handler=_cmd_evaluate)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the redacted effective config",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_reconcile(args: argparse.Namespace) -> int:
    max_passes = getattr(args, "max_passes", DEFAULT_MAX_PASSES)
    if isinstance(max_passes, bool) or not isinstance(max_passes, int) or max_passes < 1:
        raise CLIError("--max-passes must be >= 1", exit_code=2)

    config = _load_effective_config(args)
    bundle = _load_bundle(args)
    provider = _load_provider(args, config)
    settings = _settings_from_config(config)
    observability = _section(config, "observability")

    handle = setup_structured_logging(LoggingConfig.from_observability(observability))
    try:
        store = InMemoryAnalysisStore()
        bundle.seed(store)
        metrics = MetricsRegistry()
        reconciler = AnalysisReconciler.from_settings(
            store, provider, settings=settings, metrics=metrics
        )
        passes, outcomes = asyncio.run(_reconcile_all(reconciler, store, max_passes))
    finally:
        shutdown_logging(handle)

    summaries = [
        _summarize(analysis, outcomes.get(_ref_key(analysis))) for analysis in store.list_analyses()
    ]

    output_arg = getattr(args, "output", None)
    if isinstance(output_arg, str) and output_arg.strip():
        output_path = Path(output_arg).expanduser()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(
            dump_manifests([*store.list_definitions(), *store.list_analyses()]),
            encoding="utf-8",
        )

    metrics_path = observability.get("metrics_export_path")
    if isinstance(metrics_path, str):
        metrics.export_json(metrics_path)

    if _flag(args, "json"):
        snapshot = metrics.snapshot()
        _emit_json(
            {
                "command": "reconcile",
                "passes": passes,
                "analyses": [item.to_dict() for item in summaries],
                "metrics": snapshot["gauges"],
            }
        )
    else:
        print(f"Passes: {passes}")
        _render_summaries(summaries)

    return 0 if summaries and all(item.passed for item in summaries) else 1


def _cmd_evaluate(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    bundle = _load_bundle(args)
    settings = _settings_from_config(config)
    evaluator = WeightedEvaluator(warning_credit=settings.warning_credit)
    definitions = {
        (definition.metadata.namespace, definition.metadata.name): definition
        for definition in bundle.definitions
    }

    summaries: list[AnalysisSummary] = []
    verdicts: dict[str, object] = {}
    for analysis in sorted(bundle.analyses, key=_ref_key):
        ref = analysis.spec.definition_ref.with_default_namespace(settings.default_namespace)
        definition = definitions.get((ref.namespace, ref.name))
        stored = analysis.status.stored_values
        if definition is None:
            summaries.append(
                AnalysisSummary(
                    name=analysis.metadata.name,
                    namespace=analysis.metadata.namespace,
                    state=(
                        AnalysisState.PARTIALLY_RESOLVED if stored else AnalysisState.FRESH
                    ).value,
                    passed=False,
                    warning=False,
                    stored_values=len(stored),
                    detail=f"definition {ref.namespace}/{ref.name} not found",
                )
            )
            continue
        split = partition(definition.objectives, stored)
        if not split.is_complete:
            # Never score a resolved subset; the run still needs a reconcile.
            summaries.append(
                AnalysisSummary(
                    name=analysis.metadata.name,
                    namespace=analysis.metadata.namespace,
                    state=derive_state(
                        definition.objectives, stored, verdict_recorded=False
                    ).value,
                    passed=False,
                    warning=False,
                    stored_values=len(stored),
                    detail="outstanding objectives: "
                    + ", ".join(objective.key for objective in split.outstanding),
                )
            )
            continue
        verdict = evaluator.evaluate(stored, definition)
        verdicts[_ref_key(analysis)] = verdict.to_dict()
        summaries.append(
            AnalysisSummary(
                name=analysis.metadata.name,
                namespace=analysis.metadata.namespace,
                state=AnalysisState.EVALUATED.value,
                passed=verdict.passed,
                warning=verdict.warning,
                stored_values=len(stored),
                detail=f"achieved {verdict.achieved_percentage:.2f}%",
            )
        )

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "evaluate",
                "analyses": [item.to_dict() for item in summaries],
                "verdicts": verdicts,
            }
        )
    else:
        _render_summaries(summaries)

    return 0 if summaries and all(item.passed for item in summaries) else 1


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)

    if _flag(args, "json"):
        _emit_json({"command": "config", "config": effective_config(config)})
        return 0

    print(dump_effective_config(config, indent=2))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _reconcile_all(
    reconciler: AnalysisReconciler,
    store: InMemoryAnalysisStore,
    max_passes: int,
) -> tuple[int, dict[str, ReconcileResult]]:
    """Run passes back to back; the retry delay is not slept between passes."""

    pending = [(item.metadata.namespace, item.metadata.name) for item in store.list_analyses()]
    outcomes: dict[str, ReconcileResult] = {}
    passes = 0
    while pending and passes < max_passes:
        passes += 1
        requeued: list[tuple[str, str]] = []
        for namespace, name in pending:
            result = await reconciler.reconcile(ReconcileRequest(namespace=namespace, name=name))
            outcomes[f"{namespace}/{name}"] = result
            if result.requeue:
                requeued.append((namespace, name))
        pending = requeued
    await reconciler.drain_background()
    return passes, outcomes


def _summarize(analysis: Analysis, outcome: ReconcileResult | None) -> AnalysisSummary:
    status = analysis.status
    if outcome is not None and outcome.state is not None:
        state = outcome.state.value
    else:
        state = AnalysisState.FRESH.value
    failed = sorted(key for key, item in status.stored_values.items() if not item.succeeded)
    return AnalysisSummary(
        name=analysis.metadata.name,
        namespace=analysis.metadata.namespace,
        state=state,
        passed=status.passed,
        warning=status.warning,
        stored_values=len(status.stored_values),
        requeue=outcome.requeue if outcome is not None else False,
        detail=f"failed objectives: {', '.join(failed)}" if failed else "",
    )


def _render_summaries(summaries: Sequence[AnalysisSummary]) -> None:
    if not summaries:
        print("No analyses found.")
        return
    headers = ("NAMESPACE", "NAME", "STATE", "PASS", "WARNING", "STORED", "DETAIL")
    rows = [
        (
            item.namespace,
            item.name,
            item.state,
            str(item.passed).lower(),
            str(item.warning).lower(),
            str(item.stored_values),
            item.detail,
        )
        for item in summaries
    ]
    widths = [max(len(headers[i]), *(len(row[i]) for row in rows)) for i in range(len(headers))]
    print("  ".join(header.ljust(widths[i]) for i, header in enumerate(headers)).rstrip())
    for row in rows:
        print("  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip())


def _load_effective_config(args: argparse.Namespace) -> dict[str, object]:
    config_path = _optional_str(getattr(args, "config_path", None))
    overrides: dict[str, object] = {
        "reconciler.max_workers": getattr(args, "max_workers", None),
        "observability.log_level": _optional_str(getattr(args, "log_level", None)),
        "observability.log_dir": _optional_str(getattr(args, "log_dir", None)),
    }
    try:
        loaded = load_config(config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc
    return dict(loaded)


def _load_bundle(args: argparse.Namespace) -> ManifestBundle:
    paths = [Path(item).expanduser() for item in getattr(args, "manifests", ())]
    try:
        return load_manifests(paths)
    except ManifestError as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _load_provider(args: argparse.Namespace, config: Mapping[str, object]) -> StaticValueProvider:
    values_path = _optional_str(getattr(args, "values", None))
    if values_path is None:
        configured = _section(config, "provider").get("values_file")
        values_path = configured if isinstance(configured, str) else None
    if values_path is None:
        return StaticValueProvider()
    return StaticValueProvider.from_yaml_file(Path(values_path).expanduser())


def _settings_from_config(config: Mapping[str, object]) -> ReconcilerSettings:
    try:
        return ReconcilerSettings.from_config(config)
    except ValueError as exc:
        raise CLIError(f"invalid reconciler settings: {exc}", exit_code=2) from exc


def _section(config: Mapping[str, object], name: str) -> Mapping[str, object]:
    value = config.get(name)
    return value if isinstance(value, Mapping) else {}


def _ref_key(analysis: Analysis) -> str:
    return f"{analysis.metadata.namespace}/{analysis.metadata.name}"


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise CLIError("invalid optional string argument", exit_code=2)
    cleaned = value.strip()
    return cleaned or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["AnalysisSummary", "CLIError", "build_parser", "run_cli"]
