"""
slo-reconciler unit tests for stored-value bookkeeping

Purpose
- Validate the resolved/outstanding partition, the monotonic merge, and state
  derivation over stored objective values.
"""

from __future__ import annotations

from factories import failure, make_definition, make_objective, success

from slo_reconciler.control_plane import derive_state, merge_results, partition
from slo_reconciler.domain.models import AnalysisState, Objective

try:
    from hypothesis import given, settings
    from hypothesis import strategies as st
except ModuleNotFoundError:
    _HYPOTHESIS_AVAILABLE = False
else:
    _HYPOTHESIS_AVAILABLE = True


def _objectives(*names: str) -> tuple[Objective, ...]:
    return make_definition([make_objective(name) for name in names]).objectives


def test_partition_keeps_definition_order_for_outstanding() -> None:
    objectives = _objectives("a", "b", "c", "d")
    stored = {
        "default/b": success("b", "1"),
        "default/c": failure("c", "boom"),
    }

    split = partition(objectives, stored)

    assert [objective.key for objective in split.outstanding] == [
        "default/a",
        "default/c",
        "default/d",
    ]
    assert split.resolved == {"default/b": stored["default/b"]}
    assert split.is_complete is False


def test_partition_ignores_stored_keys_outside_definition() -> None:
    objectives = _objectives("a")
    stored = {"default/a": success("a", "1"), "default/stale": success("stale", "9")}

    split = partition(objectives, stored)

    assert split.is_complete is True
    assert set(split.resolved) == {"default/a"}


def test_merge_keeps_stored_success_and_replaces_stored_failure() -> None:
    stored = {
        "default/a": success("a", "1"),
        "default/b": failure("b", "timeout"),
        "default/c": success("c", "3"),
    }
    new = {
        "default/a": success("a", "100"),
        "default/b": success("b", "2"),
        "default/d": failure("d", "down"),
    }

    merged = merge_results(stored, new)

    assert merged["default/a"].value == "1"
    assert merged["default/b"].value == "2"
    assert merged["default/c"].value == "3"
    assert merged["default/d"].err_msg == "down"
    assert stored["default/b"].err_msg == "timeout"


def test_merge_replaces_failure_with_newer_failure() -> None:
    merged = merge_results(
        {"default/a": failure("a", "first")},
        {"default/a": failure("a", "second")},
    )
    assert merged["default/a"].err_msg == "second"


def test_derive_state_transitions() -> None:
    objectives = _objectives("a", "b")
    partial = {"default/a": success("a", "1")}
    complete = {**partial, "default/b": success("b", "2")}

    assert derive_state(objectives, {}, verdict_recorded=False) is AnalysisState.FRESH
    assert (
        derive_state(objectives, partial, verdict_recorded=False)
        is AnalysisState.PARTIALLY_RESOLVED
    )
    assert (
        derive_state(objectives, complete, verdict_recorded=False)
        is AnalysisState.PARTIALLY_RESOLVED
    )
    assert derive_state(objectives, complete, verdict_recorded=True) is AnalysisState.EVALUATED
    assert derive_state((), {}, verdict_recorded=True) is AnalysisState.EVALUATED


if _HYPOTHESIS_AVAILABLE:
    _NAMES = st.lists(
        st.sampled_from(["a", "b", "c", "d", "e", "f"]), min_size=0, max_size=6, unique=True
    )
    _STORED = st.dictionaries(
        st.sampled_from(["a", "b", "c", "d", "e", "f", "g"]),
        st.booleans(),
        max_size=7,
    )

    @given(names=_NAMES, stored_flags=_STORED)
    @settings(max_examples=60, derandomize=True, deadline=None)
    def test_partition_places_every_objective_on_exactly_one_side(
        names: list[str], stored_flags: dict[str, bool]
    ) -> None:
        objectives = _objectives(*names)
        stored = {
            f"default/{name}": success(name, "1") if ok else failure(name, "boom")
            for name, ok in stored_flags.items()
        }

        split = partition(objectives, stored)

        outstanding = {objective.key for objective in split.outstanding}
        resolved = set(split.resolved)
        assert outstanding.isdisjoint(resolved)
        assert outstanding | resolved == {objective.key for objective in objectives}
        assert all(stored[key].succeeded for key in resolved)

    @given(stored_flags=_STORED, new_flags=_STORED)
    @settings(max_examples=60, derandomize=True, deadline=None)
    def test_merge_never_loses_a_stored_success(
        stored_flags: dict[str, bool], new_flags: dict[str, bool]
    ) -> None:
        stored = {
            f"default/{name}": success(name, "old") if ok else failure(name, "old")
            for name, ok in stored_flags.items()
        }
        new = {
            f"default/{name}": success(name, "new") if ok else failure(name, "new")
            for name, ok in new_flags.items()
        }

        merged = merge_results(stored, new)

        assert set(merged) == set(stored) | set(new)
        for key, result in stored.items():
            if result.succeeded:
                assert merged[key] is result
