"""Per-flow content transforms applied to structured sources before merging.

Order: ``pick`` or ``omit``, then ``map``, then ``embed``. Key paths use the
same dotted notation as merge provenance, so ``keysWritten`` describes the
transformed structure that actually lands in the target.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from common.errors import ConfigurationError
from flows.merge import NodeKind, delete_nested_key, get_nested, join_key_path, node_kind, set_nested

TRANSFORM_FIELDS = ("pick", "omit", "map", "embed")

_ABSENT = object()


@dataclass(frozen=True)
class KeyMapping:
    """``source`` key path moved to ``target``; a trailing ``.*`` maps every child."""
    source: str
    target: str
    default: Any = _ABSENT
    values: Optional[Tuple[Tuple[Any, Any], ...]] = None

    @property
    def is_wildcard(self) -> bool:
        return self.source.endswith(".*")

    def convert(self, value: Any) -> Any:
        if self.values is not None:
            for old, new in self.values:
                if old == value:
                    return copy.deepcopy(new)
        return value


def _string_list(flow: Mapping[str, Any], name: str) -> Tuple[str, ...]:
    value = flow.get(name)
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise ConfigurationError(f"Flow '{name}' must be a list of key paths: {value!r}")
    return tuple(value)


def _parse_mapping(source: str, entry: Any) -> KeyMapping:
    if isinstance(entry, str) and entry:
        mapping = KeyMapping(source, entry)
    elif isinstance(entry, dict) and isinstance(entry.get("to"), str) and entry["to"]:
        values = entry.get("values")
        if values is not None and not isinstance(values, dict):
            raise ConfigurationError(f"Key map '{source}': 'values' must be a mapping")
        mapping = KeyMapping(
            source,
            entry["to"],
            default=entry.get("default", _ABSENT),
            values=tuple(values.items()) if values is not None else None,
        )
    else:
        raise ConfigurationError(f"Key map '{source}' needs a target key path: {entry!r}")
    if mapping.is_wildcard != mapping.target.endswith(".*"):
        raise ConfigurationError(f"Key map '{source}' -> '{mapping.target}': wildcards must appear on both sides")
    return mapping


@dataclass(frozen=True)
class ContentTransform:
    pick: Tuple[str, ...] = ()
    omit: Tuple[str, ...] = ()
    key_map: Tuple[KeyMapping, ...] = ()
    embed: Optional[str] = None

    @classmethod
    def from_flow(cls, flow: Mapping[str, Any]) -> Optional["ContentTransform"]:
        """Transform declared by a raw flow, or None when it declares none.

        Raises:
            ConfigurationError: for malformed fields, or ``pick`` with ``omit``.
        """
        if not any(name in flow for name in TRANSFORM_FIELDS):
            return None
        pick = _string_list(flow, "pick")
        omit = _string_list(flow, "omit")
        if pick and omit:
            raise ConfigurationError("Flow cannot have both 'pick' and 'omit'")
        raw_map = flow.get("map") or {}
        if not isinstance(raw_map, dict):
            raise ConfigurationError(f"Flow 'map' must be a mapping: {raw_map!r}")
        embed = flow.get("embed")
        if embed is not None and (not isinstance(embed, str) or not embed):
            raise ConfigurationError(f"Flow 'embed' must be a key path: {embed!r}")
        return cls(
            pick=pick,
            omit=omit,
            key_map=tuple(_parse_mapping(str(k), v) for k, v in raw_map.items()),
            embed=embed,
        )

    def apply(self, data: Dict[Any, Any]) -> Dict[Any, Any]:
        """Return a transformed copy of ``data``; the input is not modified."""
        result = copy.deepcopy(data)
        if self.pick:
            picked: Dict[Any, Any] = {}
            for key_path in self.pick:
                value = get_nested(result, key_path, _ABSENT)
                if value is not _ABSENT:
                    set_nested(picked, key_path, value)
            result = picked
        for key_path in self.omit:
            delete_nested_key(result, key_path)
        if self.key_map:
            result = self._apply_map(result)
        if self.embed:
            embedded: Dict[Any, Any] = {}
            set_nested(embedded, self.embed, result)
            result = embedded
        return result

    def _apply_map(self, data: Dict[Any, Any]) -> Dict[Any, Any]:
        moves = []
        for mapping in self.key_map:
            if not mapping.is_wildcard:
                moves.append((mapping.source, mapping.target, mapping))
                continue
            source_prefix, target_prefix = mapping.source[:-2], mapping.target[:-2]
            parent = get_nested(data, source_prefix, _ABSENT)
            if node_kind(parent) is not NodeKind.MAP:
                continue
            for child in list(parent):
                suffix = join_key_path([str(child)])
                moves.append((f"{source_prefix}.{suffix}", f"{target_prefix}.{suffix}", mapping))

        placed = []
        for source, target, mapping in moves:
            value = get_nested(data, source, _ABSENT)
            if value is _ABSENT:
                if mapping.default is not _ABSENT:
                    placed.append((target, mapping.convert(copy.deepcopy(mapping.default))))
                continue
            placed.append((target, mapping.convert(value)))
        # sources are all removed before any target is set, so swaps work
        for source, _, _ in moves:
            delete_nested_key(data, source)
        for target, value in placed:
            set_nested(data, target, value)
        return data
