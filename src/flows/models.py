"""Flow definitions, write plans and provenance records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from constants import MergeStrategy
from common.errors import ConfigurationError
from flows.transforms import ContentTransform

PatternValue = Union[str, Dict[str, Any]]


def parse_merge_strategy(value: Any) -> MergeStrategy:
    """MergeStrategy from its string form; None means replace."""
    if value is None:
        return MergeStrategy.REPLACE
    if isinstance(value, MergeStrategy):
        return value
    try:
        return MergeStrategy(str(value).strip().lower())
    except ValueError as exc:
        raise ConfigurationError(f"Unsupported merge strategy: {value!r}") from exc


@dataclass(frozen=True)
class Flow:
    """Maps source files matching ``source`` to one or more targets."""
    source: PatternValue
    targets: Tuple[PatternValue, ...]
    merge: MergeStrategy = MergeStrategy.REPLACE
    priority: int = 0
    when: Optional[Dict[str, Any]] = None
    transform: Optional[ContentTransform] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Flow":
        if not isinstance(data, dict) or "from" not in data or "to" not in data:
            raise ConfigurationError(f"Flow needs 'from' and 'to': {data!r}")
        targets = data["to"]
        if not isinstance(targets, list):
            targets = [targets]
        if not targets:
            raise ConfigurationError(f"Flow has no targets: {data!r}")
        merge = parse_merge_strategy(data.get("merge"))
        transform = ContentTransform.from_flow(data)
        if transform is not None and merge is MergeStrategy.COMPOSITE:
            raise ConfigurationError(f"Composite flows cannot transform content: {data!r}")
        return cls(
            source=data["from"],
            targets=tuple(targets),
            merge=merge,
            priority=int(data.get("priority", 0) or 0),
            when=data.get("when"),
            transform=transform,
        )


@dataclass(frozen=True)
class PlannedWrite:
    """One file a package intends to write, computed before anything is written."""
    package_name: str
    source_path: str
    source_abs: str
    target_path: str
    merge: MergeStrategy
    priority: int
    platform: str
    order: int
    transform: Optional[ContentTransform] = None


@dataclass(frozen=True)
class FlowWriteRecord:
    """Provenance of one write: which source produced which target, and how.

    Deep and shallow merges carry ``keys``; replace and composite writes own
    the whole file or marker section and leave it None.
    """
    source_path: str
    target_path: str
    merge: MergeStrategy = MergeStrategy.REPLACE
    keys: Optional[Tuple[str, ...]] = None

    @property
    def is_whole_file(self) -> bool:
        return self.merge is MergeStrategy.REPLACE

    @property
    def is_degraded(self) -> bool:
        """A merge write without key provenance cannot be undone precisely."""
        return self.merge in (MergeStrategy.DEEP, MergeStrategy.SHALLOW) and self.keys is None


@dataclass(frozen=True)
class WriterRef:
    package_name: str
    priority: int


@dataclass(frozen=True)
class ConflictRecord:
    """Several packages wanted to replace the same target; one won."""
    target_path: str
    winner: WriterRef
    losers: Tuple[WriterRef, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "targetPath": self.target_path,
            "winner": {"packageName": self.winner.package_name, "priority": self.winner.priority},
            "losers": [{"packageName": w.package_name, "priority": w.priority} for w in self.losers],
        }
