"""Structural merge over three node kinds (scalar, list, map) with key tracking.

Key paths are dotted; a literal dot inside a key is escaped as ``\\.`` so
keys such as ``editor.fontSize`` survive a round trip.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Sequence

from constants import MergeStrategy
from common.errors import MergeError


class NodeKind(Enum):
    SCALAR = "scalar"
    LIST = "list"
    MAP = "map"


def node_kind(value: Any) -> NodeKind:
    if isinstance(value, dict):
        return NodeKind.MAP
    if isinstance(value, list):
        return NodeKind.LIST
    return NodeKind.SCALAR


def join_key_path(segments: Sequence[str]) -> str:
    return ".".join(str(s).replace("\\", "\\\\").replace(".", "\\.") for s in segments)


def split_key_path(path: str) -> List[str]:
    segments: List[str] = []
    current: List[str] = []
    i = 0
    while i < len(path):
        c = path[i]
        if c == "\\" and i + 1 < len(path):
            current.append(path[i + 1])
            i += 2
            continue
        if c == ".":
            segments.append("".join(current))
            current = []
        else:
            current.append(c)
        i += 1
    segments.append("".join(current))
    return segments


def leaf_key_paths(value: Any, prefix: Sequence[str] = ()) -> List[str]:
    """Dotted paths of every leaf; lists and empty maps count as leaves."""
    if node_kind(value) is NodeKind.MAP and value:
        paths: List[str] = []
        for key, child in value.items():
            paths.extend(leaf_key_paths(child, list(prefix) + [str(key)]))
        return paths
    return [join_key_path(prefix)] if prefix else []


def deep_merge(base: Any, incoming: Any) -> Any:
    """Recursive merge: maps merge key by key, lists and scalars are replaced."""
    if node_kind(base) is NodeKind.MAP and node_kind(incoming) is NodeKind.MAP:
        merged = dict(base)
        for key, value in incoming.items():
            merged[key] = deep_merge(base[key], value) if key in base else copy.deepcopy(value)
        return merged
    return copy.deepcopy(incoming)


def shallow_merge(base: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """Top-level merge: each incoming key replaces the existing value wholesale."""
    merged = dict(base)
    for key, value in incoming.items():
        merged[key] = copy.deepcopy(value)
    return merged


@dataclass
class MergeOutcome:
    data: Dict[str, Any]
    keys_written: List[str]


def merge_structures(existing: Any, incoming: Any, strategy: MergeStrategy, path: str = "<memory>") -> MergeOutcome:
    """Merge ``incoming`` into ``existing`` and report the keys it contributed.

    Raises:
        MergeError: when either side is not a mapping, or the strategy is not
            a structural merge.
    """
    if existing is None:
        existing = {}
    if node_kind(incoming) is not NodeKind.MAP:
        raise MergeError(path, "source content is not a mapping")
    if node_kind(existing) is not NodeKind.MAP:
        raise MergeError(path, "existing content is not a mapping")

    if strategy is MergeStrategy.DEEP:
        return MergeOutcome(data=deep_merge(existing, incoming), keys_written=leaf_key_paths(incoming))
    if strategy is MergeStrategy.SHALLOW:
        return MergeOutcome(
            data=shallow_merge(existing, incoming),
            keys_written=[join_key_path([str(k)]) for k in incoming],
        )
    raise MergeError(path, f"{strategy.value} is not a structural merge")


_MISSING = object()


def _resolve_key(mapping: Dict[Any, Any], segment: str) -> Any:
    """The actual key in ``mapping`` a path segment names.

    YAML and TOML maps may hold non-string keys (``8080``, or ``on`` loaded
    as True); key paths store them in their ``str()`` form.
    """
    if segment in mapping:
        return segment
    for key in mapping:
        if str(key) == segment:
            return key
    return _MISSING


def get_nested(data: Any, key_path: str, default: Any = None) -> Any:
    current = data
    for segment in split_key_path(key_path):
        if node_kind(current) is not NodeKind.MAP:
            return default
        key = _resolve_key(current, segment)
        if key is _MISSING:
            return default
        current = current[key]
    return current


def delete_nested_key(data: Dict[Any, Any], key_path: str) -> bool:
    """Delete a dotted key and prune parent maps it leaves empty.

    Returns:
        True when the key existed.
    """
    chain = [data]
    keys: List[Any] = []
    current: Any = data
    for segment in split_key_path(key_path):
        if node_kind(current) is not NodeKind.MAP:
            return False
        key = _resolve_key(current, segment)
        if key is _MISSING:
            return False
        keys.append(key)
        current = current[key]
        chain.append(current)
    del chain[-2][keys[-1]]

    for depth in range(len(keys) - 1, 0, -1):
        child = chain[depth]
        if node_kind(child) is NodeKind.MAP and not child:
            del chain[depth - 1][keys[depth - 1]]
        else:
            break
    return True


def is_effectively_empty(value: Any) -> bool:
    """True for None, empty lists, and maps whose values are all effectively empty.

    Scalars (including ``""``, ``0`` and ``False``) are content.
    """
    kind = node_kind(value)
    if value is None:
        return True
    if kind is NodeKind.LIST:
        return len(value) == 0
    if kind is NodeKind.MAP:
        return all(is_effectively_empty(v) for v in value.values())
    return False


def set_nested(data: Dict[Any, Any], key_path: str, value: Any) -> None:
    """Set a dotted key, creating (or overwriting non-map) parents as needed."""
    segments = split_key_path(key_path)
    current = data
    for segment in segments[:-1]:
        key = _resolve_key(current, segment)
        if key is _MISSING or node_kind(current[key]) is not NodeKind.MAP:
            key = segment if key is _MISSING else key
            current[key] = {}
        current = current[key]
    key = _resolve_key(current, segments[-1])
    current[segments[-1] if key is _MISSING else key] = value
