"""
tests/test_dependency_resolver.py
---------------------------------
Unit tests for core/dependency_resolver.py.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import pytest

from dbrepl.config.schema import ObjectKind
from dbrepl.core.dependency_resolver import DependencyResolver, StopReason
from dbrepl.core.import_plan import ScriptFile
from dbrepl.strategies.error_handling import DependencyChainError


class FakeTarget:
    """Applies scripts whose dependencies already exist."""

    def __init__(self, dependencies: Dict[str, List[str]]) -> None:
        self.dependencies = dependencies
        self.created: List[str] = []
        self.attempts: List[str] = []

    def apply(self, script: ScriptFile) -> None:
        name = Path(script.relative_path).stem
        self.attempts.append(name)
        missing = [d for d in self.dependencies.get(name, []) if d not in self.created]
        if missing:
            raise RuntimeError(f"Invalid object name '{missing[0]}'")
        self.created.append(name)


def scripts(*names: str) -> List[ScriptFile]:
    return [
        ScriptFile(path=Path(f"{name}.sql"), relative_path=f"{name}.sql", kind=ObjectKind.VIEW)
        for name in names
    ]


def chain(depth: int) -> Dict[str, List[str]]:
    """s1 -> s2 -> ... -> s<depth>, alphabetical order is worst case."""
    names = [f"s{n}" for n in range(1, depth + 1)]
    return {name: [names[i + 1]] for i, name in enumerate(names[:-1])}


class TestDependencyResolver:
    @pytest.mark.parametrize("depth", [1, 2, 4, 7])
    def test_acyclic_chain_resolves_within_depth_passes(self, depth: int) -> None:
        target = FakeTarget(chain(depth))
        names = [f"s{n}" for n in range(1, depth + 1)]

        report = DependencyResolver(target.apply, max_passes=10).resolve(scripts(*names))

        assert report.success
        assert report.stop_reason == StopReason.RESOLVED
        assert report.passes <= depth
        assert sorted(report.succeeded) == sorted(f"{n}.sql" for n in names)
        assert report.to_error() is None

    def test_cycle_stops_after_first_pass(self) -> None:
        target = FakeTarget({"a": ["b"], "b": ["a"]})

        report = DependencyResolver(target.apply, max_passes=10).resolve(scripts("a", "b"))

        assert report.passes == 1
        assert report.stop_reason == StopReason.NO_PROGRESS
        assert set(report.failed) == {"a.sql", "b.sql"}
        assert "Invalid object name" in report.failed["a.sql"]
        assert target.attempts == ["a", "b"]

    def test_stall_detected_one_pass_after_progress_stops(self) -> None:
        target = FakeTarget({"a": ["b"], "b": ["a"], "c": ["d"]})

        report = DependencyResolver(target.apply, max_passes=10).resolve(scripts("a", "b", "c", "d"))

        assert report.passes == 3
        assert report.stop_reason == StopReason.NO_PROGRESS
        assert sorted(report.succeeded) == ["c.sql", "d.sql"]
        assert set(report.failed) == {"a.sql", "b.sql"}

    def test_max_passes_exhausted(self) -> None:
        target = FakeTarget(chain(5))

        report = DependencyResolver(target.apply, max_passes=3).resolve(
            scripts("s1", "s2", "s3", "s4", "s5")
        )

        assert report.passes == 3
        assert report.stop_reason == StopReason.MAX_PASSES
        assert set(report.failed) == {"s1.sql", "s2.sql"}

    def test_each_script_attempted_at_most_max_passes_times(self) -> None:
        target = FakeTarget(chain(4))

        report = DependencyResolver(target.apply, max_passes=2).resolve(
            scripts("s1", "s2", "s3", "s4")
        )

        assert report.stop_reason == StopReason.MAX_PASSES
        assert target.attempts.count("s1") == 2
        assert target.attempts.count("s2") == 2
        assert target.attempts.count("s3") == 2
        assert target.attempts.count("s4") == 1

    def test_escalates_to_dependency_chain_error(self) -> None:
        target = FakeTarget({"a": ["missing"]})

        report = DependencyResolver(target.apply).resolve(scripts("a"))
        error = report.to_error()

        assert isinstance(error, DependencyChainError)
        assert error.pending_scripts == ["a.sql"]
        assert "no_progress" in str(error)

    def test_stable_order_regardless_of_input_order(self) -> None:
        target = FakeTarget({})

        DependencyResolver(target.apply).resolve(scripts("c", "a", "b"))

        assert target.attempts == ["a", "b", "c"]

    def test_empty_input(self) -> None:
        report = DependencyResolver(FakeTarget({}).apply).resolve([])
        assert report.success
        assert report.passes == 0

    def test_max_passes_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            DependencyResolver(FakeTarget({}).apply, max_passes=0)
