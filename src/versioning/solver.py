"""Version constraint solver.

Collects semver ranges per package from every dependent seen during a
resolution wave, together with the versions each package is known to have,
and picks the highest version satisfying all ranges at once.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

import semantic_version

from common.logging_utils import extra_context, is_debug_enabled
from versioning.models import ConstraintEntry, VersionConflict, VersionSolution
from versioning.parser import (
    RangeSpec,
    is_wildcard_range,
    normalize_package_name,
    parse_range,
    parse_version,
    satisfies,
)

logger = logging.getLogger(__name__)

# (package_name, ranges, requested_by, available versions highest first) -> chosen version or None.
# May raise ResolutionAborted to cancel the whole solve.
ConflictCallback = Callable[[str, List[str], List[str], List[str]], Optional[str]]


class VersionSolver:
    """Accumulates constraints and available versions, then solves them."""

    def __init__(self, include_prerelease: bool = True):
        self.include_prerelease = include_prerelease
        self._constraints: Dict[str, ConstraintEntry] = {}
        self._available: Dict[str, Dict[str, semantic_version.Version]] = {}
        self._spec_cache: Dict[str, Optional[RangeSpec]] = {}

    def add_constraint(self, name: str, range_str: Optional[str], requested_by: str) -> bool:
        """Record a range for a package.

        Wildcard, blank and ``latest`` ranges are ignored.

        Returns:
            True when the range was stored.
        """
        if is_wildcard_range(range_str):
            return False
        key = normalize_package_name(name)
        entry = self._constraints.setdefault(key, ConstraintEntry(package_name=key))
        entry.pairs.append((str(range_str).strip(), requested_by))
        return True

    def add_available_version(self, name: str, version: str) -> bool:
        """Record that a version of a package exists; invalid semver is ignored."""
        parsed = parse_version(version)
        if parsed is None:
            if is_debug_enabled(logger):
                logger.debug(
                    "Ignoring invalid version",
                    extra=extra_context(
                        event="decision", component="solver", action="add_version",
                        outcome="invalid", package=name, version=version,
                    ),
                )
            return False
        key = normalize_package_name(name)
        self._available.setdefault(key, {})[version.strip()] = parsed
        return True

    def add_available_versions(self, name: str, versions: List[str]) -> int:
        """Add several versions; returns how many were valid."""
        return sum(1 for v in versions if self.add_available_version(name, v))

    def get_constraints(self, name: str) -> Optional[ConstraintEntry]:
        """The constraint entry for a package, if any range was recorded."""
        return self._constraints.get(normalize_package_name(name))

    def available_versions(self, name: str) -> List[str]:
        """Known versions of a package, highest first."""
        versions = self._available.get(normalize_package_name(name), {})
        return [raw for raw, _ in sorted(versions.items(), key=lambda item: (item[1], item[0]), reverse=True)]

    def has_versions(self, name: str) -> bool:
        """True once at least one valid version is known for the package."""
        return bool(self._available.get(normalize_package_name(name)))

    def best_candidate(self, name: str) -> Optional[str]:
        """Highest version satisfying the ranges known so far, else the highest version.

        Used to pick what to load before a wave is complete.
        """
        key = normalize_package_name(name)
        entry = self._constraints.get(key)
        if entry is not None:
            match = self._highest_satisfying(key, entry.ranges)
            if match is not None:
                return match
        return self._highest(key)

    def solve(self, force: bool = False, on_conflict: Optional[ConflictCallback] = None) -> VersionSolution:
        """Pick a version for every package with known versions.

        Args:
            force: Take the highest available version when nothing satisfies
                every range (the conflict is still recorded).
            on_conflict: Callback choosing a version for a conflicting package.
                Consulted only when ``force`` is False. ResolutionAborted
                raised from it propagates to the caller.

        Returns:
            VersionSolution with the resolved map and conflict records.
        """
        solution = VersionSolution()

        for key in sorted(self._constraints):
            entry = self._constraints[key]
            pairs = sorted(entry.pairs)
            ranges = [r for r, _ in pairs]
            requested_by = [who for _, who in pairs]

            chosen = self._highest_satisfying(key, ranges)
            if chosen is not None:
                solution.resolved[key] = chosen
                continue

            conflict = VersionConflict(package_name=key, ranges=ranges, requested_by=requested_by)
            if force:
                conflict.chosen_version = self._highest(key)
            elif on_conflict is not None:
                picked = on_conflict(key, list(ranges), list(requested_by), self.available_versions(key))
                conflict.chosen_version = picked or None
            if conflict.chosen_version is not None:
                solution.resolved[key] = conflict.chosen_version
            solution.conflicts.append(conflict)

            logger.warning(
                "No version of %s satisfies %s (requested by %s)%s",
                key,
                ", ".join(ranges),
                ", ".join(requested_by),
                f"; using {conflict.chosen_version}" if conflict.chosen_version else "",
            )

        for key in sorted(self._available):
            if key in self._constraints:
                continue
            highest = self._highest(key)
            if highest is not None:
                solution.resolved[key] = highest

        if is_debug_enabled(logger):
            logger.debug(
                "Solve complete",
                extra=extra_context(
                    event="decision", component="solver", action="solve",
                    resolved=len(solution.resolved), conflicts=len(solution.conflicts),
                ),
            )
        return solution

    def clear(self) -> None:
        """Drop all constraints and versions before an independent run."""
        self._constraints.clear()
        self._available.clear()

    def _spec(self, range_str: str) -> Optional[RangeSpec]:
        if range_str not in self._spec_cache:
            try:
                self._spec_cache[range_str] = parse_range(range_str)
            except ValueError:
                logger.warning("Invalid version range '%s'", range_str)
                self._spec_cache[range_str] = None
        return self._spec_cache[range_str]

    def _highest(self, key: str) -> Optional[str]:
        versions = self.available_versions(key)
        return versions[0] if versions else None

    def _highest_satisfying(self, key: str, ranges: List[str]) -> Optional[str]:
        specs = [self._spec(r) for r in ranges]
        if any(spec is None for spec in specs):
            return None
        for raw in self.available_versions(key):
            parsed = self._available[key][raw]
            if all(satisfies(parsed, spec, self.include_prerelease) for spec in specs):
                return raw
        return None
