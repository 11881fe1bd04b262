"""Data models for version constraint solving."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


@dataclass
class ConstraintEntry:
    """Ranges accumulated for one package during a solver run.

    ``pairs`` keeps each range next to the identifier that requested it.
    """
    package_name: str
    pairs: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ranges(self) -> List[str]:
        """Ranges in the order they were added."""
        return [r for r, _ in self.pairs]

    @property
    def requested_by(self) -> List[str]:
        """Requesters in the order they were added."""
        return [who for _, who in self.pairs]


@dataclass
class VersionConflict:
    """No available version satisfies every range for a package.

    ``chosen_version`` is set when the conflict was settled by force or by an
    interactive callback; it stays None for an unresolved conflict.
    """
    package_name: str
    ranges: List[str]
    requested_by: List[str]
    chosen_version: Optional[str] = None

    @property
    def resolved(self) -> bool:
        """True when a version was chosen despite the conflict."""
        return self.chosen_version is not None


@dataclass
class VersionSolution:
    """Outcome of one solve() call."""
    resolved: Dict[str, str] = field(default_factory=dict)
    conflicts: List[VersionConflict] = field(default_factory=list)

    @property
    def unresolved(self) -> List[VersionConflict]:
        """Conflicts that ended without a chosen version."""
        return [c for c in self.conflicts if not c.resolved]
