"""Tests for the version constraint solver."""

import itertools

import pytest

from common.errors import ResolutionAborted
from versioning.solver import VersionSolver


def _solver(constraints, versions):
    solver = VersionSolver()
    for name, range_str, who in constraints:
        solver.add_constraint(name, range_str, who)
    for name, version in versions:
        solver.add_available_version(name, version)
    return solver


class TestSolve:
    """Picking the highest version that satisfies every range."""

    def test_caret_range_picks_highest_in_major(self):
        """^1.2.0 over 1.2.0, 1.3.5, 2.0.0 resolves to 1.3.5."""
        solver = _solver(
            [("lib", "^1.2.0", "demo@1.0.0")],
            [("lib", "1.2.0"), ("lib", "1.3.5"), ("lib", "2.0.0")],
        )
        solution = solver.solve()
        assert solution.resolved == {"lib": "1.3.5"}
        assert solution.conflicts == []

    def test_second_dependent_narrows_to_intersection(self):
        """Adding ~1.2.0 from another dependent moves the choice to 1.2.0."""
        solver = _solver(
            [("lib", "^1.2.0", "demo@1.0.0"), ("lib", "~1.2.0", "other@2.0.0")],
            [("lib", "1.2.0"), ("lib", "1.3.5"), ("lib", "2.0.0")],
        )
        assert solver.solve().resolved["lib"] == "1.2.0"

    def test_unconstrained_package_resolves_to_highest(self):
        """A package with versions but no ranges gets its highest version."""
        solver = _solver([], [("tool", "0.9.0"), ("tool", "1.0.0")])
        assert solver.solve().resolved == {"tool": "1.0.0"}

    def test_names_are_normalized(self):
        """Constraints and versions meet regardless of name case."""
        solver = _solver([("Lib", "^1.0.0", "a")], [("lib", "1.4.0")])
        assert solver.solve().resolved == {"lib": "1.4.0"}

    def test_invalid_versions_are_ignored(self):
        """Non-semver strings never become candidates."""
        solver = VersionSolver()
        assert solver.add_available_version("lib", "banana") is False
        assert solver.add_available_versions("lib", ["1.0.0", "nope", "v1.1.0"]) == 2
        assert solver.available_versions("lib") == ["v1.1.0", "1.0.0"]

    def test_constrained_package_without_versions_is_a_conflict(self):
        """A range with nothing to satisfy it is reported, not dropped."""
        solver = _solver([("ghost", "^1.0.0", "a")], [])
        solution = solver.solve()
        assert "ghost" not in solution.resolved
        assert [c.package_name for c in solution.unresolved] == ["ghost"]

    def test_best_candidate_falls_back_to_highest(self):
        """best_candidate ignores ranges nothing satisfies."""
        solver = _solver([("lib", "^3.0.0", "a")], [("lib", "1.0.0"), ("lib", "2.0.0")])
        assert solver.best_candidate("lib") == "2.0.0"
        assert solver.best_candidate("missing") is None


class TestWildcards:
    """Ranges that constrain nothing."""

    @pytest.mark.parametrize("range_str", [None, "", "*", "latest", "  "])
    def test_wildcard_constraint_is_a_noop(self, range_str):
        """A wildcard range leaves the solution unchanged."""
        versions = [("lib", "1.0.0"), ("lib", "2.0.0")]
        baseline = _solver([("lib", "^1.0.0", "a")], versions).solve()

        solver = _solver([("lib", "^1.0.0", "a")], versions)
        assert solver.add_constraint("lib", range_str, "b") is False
        solution = solver.solve()

        assert solution.resolved == baseline.resolved
        assert solution.conflicts == baseline.conflicts
        assert solver.get_constraints("lib").ranges == ["^1.0.0"]


class TestDeterminism:
    """Insertion order never changes the outcome."""

    def test_any_insertion_order_gives_same_solution(self):
        """Every permutation of inputs yields the same resolved map and conflicts."""
        constraints = [
            ("lib", "^1.0.0", "a@1.0.0"),
            ("lib", "^2.0.0", "b@1.0.0"),
            ("util", ">=1.1.0", "a@1.0.0"),
        ]
        versions = [("lib", "1.5.0"), ("lib", "2.1.0"), ("util", "1.1.0"), ("util", "1.2.0")]

        outcomes = set()
        for c_order in itertools.permutations(constraints):
            for v_order in (versions, list(reversed(versions))):
                solution = _solver(c_order, v_order).solve()
                conflicts = tuple(
                    (c.package_name, tuple(c.ranges), tuple(c.requested_by), c.chosen_version)
                    for c in solution.conflicts
                )
                outcomes.add((tuple(sorted(solution.resolved.items())), conflicts))
        assert len(outcomes) == 1
        resolved, conflicts = outcomes.pop()
        assert dict(resolved) == {"util": "1.2.0"}
        assert conflicts == (("lib", ("^1.0.0", "^2.0.0"), ("a@1.0.0", "b@1.0.0"), None),)


class TestConflicts:
    """Force, callbacks and cancellation."""

    def _conflicting(self):
        return _solver(
            [("lib", "^1.0.0", "a"), ("lib", "^2.0.0", "b")],
            [("lib", "1.5.0"), ("lib", "2.1.0")],
        )

    def test_unresolved_without_force(self):
        """A conflict without force or callback stays unresolved."""
        solution = self._conflicting().solve()
        assert "lib" not in solution.resolved
        assert len(solution.unresolved) == 1

    def test_force_takes_highest(self):
        """force picks the highest available version and keeps the record."""
        solution = self._conflicting().solve(force=True)
        assert solution.resolved["lib"] == "2.1.0"
        assert solution.conflicts[0].chosen_version == "2.1.0"
        assert solution.unresolved == []

    def test_force_wins_over_callback(self):
        """The callback is not consulted when force is set."""
        calls = []
        self._conflicting().solve(force=True, on_conflict=lambda *a: calls.append(a))
        assert calls == []

    def test_callback_chooses_version(self):
        """The callback receives the conflict details and its answer is used."""
        seen = {}

        def choose(name, ranges, requested_by, available):
            seen.update(name=name, ranges=ranges, requested_by=requested_by, available=available)
            return "1.5.0"

        solution = self._conflicting().solve(on_conflict=choose)
        assert solution.resolved["lib"] == "1.5.0"
        assert seen == {
            "name": "lib",
            "ranges": ["^1.0.0", "^2.0.0"],
            "requested_by": ["a", "b"],
            "available": ["2.1.0", "1.5.0"],
        }

    def test_callback_declining_leaves_conflict(self):
        """A None answer keeps the conflict unresolved."""
        solution = self._conflicting().solve(on_conflict=lambda *a: None)
        assert len(solution.unresolved) == 1

    def test_abort_propagates(self):
        """ResolutionAborted from the callback escapes solve() unchanged."""
        def cancel(*_):
            raise ResolutionAborted("cancelled")

        with pytest.raises(ResolutionAborted):
            self._conflicting().solve(on_conflict=cancel)


class TestClear:
    def test_clear_drops_state(self):
        """clear() forgets constraints and versions."""
        solver = _solver([("lib", "^1.0.0", "a")], [("lib", "1.0.0")])
        solver.clear()
        assert solver.get_constraints("lib") is None
        assert not solver.has_versions("lib")
        assert solver.solve().resolved == {}
