"""``when`` conditions on flows."""

from __future__ import annotations

import os
from typing import Any, Mapping

from common.errors import ConfigurationError
from flows.merge import get_nested

_KEYS = ("exists", "platform", "key", "equals", "and", "or", "not")

_ABSENT = object()


def references_source(condition: Any) -> bool:
    """True when the condition (at any depth) inspects source file content."""
    if not isinstance(condition, Mapping):
        return False
    if "key" in condition:
        return True
    nested = list(condition.get("and") or []) + list(condition.get("or") or [])
    if "not" in condition:
        nested.append(condition["not"])
    return any(references_source(c) for c in nested)


def evaluate_condition(condition: Mapping[str, Any], platform: str, target_dir: str, source_data: Any = None) -> bool:
    """Evaluate a condition tree.

    Supported forms: ``{exists: path}`` (relative to the target directory),
    ``{platform: id}``, ``{key: path}`` and ``{key: path, equals: value}``
    (against the structured source content), ``{and: [...]}``, ``{or: [...]}``
    and ``{not: cond}``. Several keys in one mapping must all hold. A key
    condition is false for sources without structured content.

    Raises:
        ConfigurationError: for unknown keys or malformed operands.
    """
    if not isinstance(condition, Mapping) or not condition:
        raise ConfigurationError(f"Invalid flow condition: {condition!r}")
    unknown = [k for k in condition if k not in _KEYS]
    if unknown:
        raise ConfigurationError(f"Unknown flow condition key(s): {', '.join(sorted(unknown))}")
    if "equals" in condition and "key" not in condition:
        raise ConfigurationError("'equals' needs a 'key' in the same condition")

    results = []
    if "exists" in condition:
        results.append(os.path.exists(os.path.join(target_dir, str(condition["exists"]))))
    if "platform" in condition:
        wanted = condition["platform"]
        wanted = wanted if isinstance(wanted, list) else [wanted]
        results.append(platform in wanted)
    if "key" in condition:
        value = get_nested(source_data, str(condition["key"]), _ABSENT) if isinstance(source_data, dict) else _ABSENT
        if "equals" in condition:
            results.append(value is not _ABSENT and value == condition["equals"])
        else:
            results.append(value is not _ABSENT)
    for key, combine in (("and", all), ("or", any)):
        if key in condition:
            items = condition[key]
            if not isinstance(items, list):
                raise ConfigurationError(f"'{key}' expects a list of conditions")
            results.append(combine(evaluate_condition(c, platform, target_dir, source_data) for c in items))
    if "not" in condition:
        results.append(not evaluate_condition(condition["not"], platform, target_dir, source_data))
    return all(results)
