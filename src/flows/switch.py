"""Conditional ``$switch`` patterns.

A switch picks a pattern from the value of a context variable::

    {"$switch": {
        "field": "$$platform",
        "cases": [
            {"pattern": "cursor", "value": ".cursor/rules/{name}.mdc"},
            {"pattern": "*code*", "value": {"pattern": ".vscode/{name}.md"}}
        ],
        "default": "docs/{name}.md"
    }}

Cases are tried in order and the first match wins. String patterns with glob
characters are glob-matched, other strings compare as normalized paths, and
mapping/list patterns compare by structural equality.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping

from common.errors import ConfigurationError
from common.paths import has_glob, match_glob, normalize_path

SWITCH_KEY = "$switch"
VARIABLE_PREFIX = "$$"
_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def is_switch_expression(value: Any) -> bool:
    return isinstance(value, dict) and (SWITCH_KEY in value or ("field" in value and "cases" in value))


def _body(expr: Dict[str, Any]) -> Any:
    return expr[SWITCH_KEY] if SWITCH_KEY in expr else expr


def _case_value_errors(value: Any, where: str) -> List[str]:
    if isinstance(value, str):
        return [] if value.strip() else [f"{where} must not be empty"]
    if isinstance(value, dict):
        if not isinstance(value.get("pattern"), str) or not value["pattern"].strip():
            return [f"{where} must have a non-empty 'pattern' string"]
        return []
    return [f"{where} must be a string or an object with 'pattern'"]


def validate_switch_expression(expr: Any) -> List[str]:
    """Structural problems with a switch expression ([] when it is valid)."""
    if not isinstance(expr, dict):
        return ["switch expression must be an object"]
    body = _body(expr)
    if not isinstance(body, dict):
        return [f"'{SWITCH_KEY}' must be an object"]

    errors: List[str] = []
    field = body.get("field")
    if not isinstance(field, str) or not field.startswith(VARIABLE_PREFIX) or len(field) <= len(VARIABLE_PREFIX):
        errors.append(f"'field' must be a variable reference like '{VARIABLE_PREFIX}platform'")

    cases = body.get("cases")
    if not isinstance(cases, list) or not cases:
        errors.append("'cases' must be a non-empty list")
    else:
        for i, case in enumerate(cases):
            if not isinstance(case, dict):
                errors.append(f"case {i} must be an object")
                continue
            if "pattern" not in case:
                errors.append(f"case {i} is missing 'pattern'")
            if "value" not in case:
                errors.append(f"case {i} is missing 'value'")
            else:
                errors.extend(_case_value_errors(case["value"], f"case {i} value"))

    if "default" in body:
        errors.extend(_case_value_errors(body["default"], "default"))
    return errors


def _pattern_matches(pattern: Any, value: Any) -> bool:
    if isinstance(pattern, str):
        if not isinstance(value, str):
            return False
        if has_glob(pattern):
            return match_glob(value, pattern)
        return normalize_path(pattern) == normalize_path(value)
    return pattern == value


def _case_result(value: Any) -> str:
    if isinstance(value, dict):
        return value["pattern"]
    return value


def resolve_switch(expr: Dict[str, Any], variables: Mapping[str, Any]) -> str:
    """Pattern chosen by a switch expression.

    Raises:
        ConfigurationError: for a malformed switch, an unknown variable, or
            when no case matches and there is no default.
    """
    errors = validate_switch_expression(expr)
    if errors:
        raise ConfigurationError("Invalid switch expression: " + "; ".join(errors))
    body = _body(expr)
    variable = body["field"][len(VARIABLE_PREFIX):]
    if variable not in variables:
        raise ConfigurationError(f"Unknown switch variable '{variable}'")
    value = variables[variable]

    for case in body["cases"]:
        if _pattern_matches(case["pattern"], value):
            return _case_result(case["value"])
    if "default" in body:
        return _case_result(body["default"])
    raise ConfigurationError(f"No switch case matches {variable}={value!r} and no default is set")


def substitute_variables(pattern: str, variables: Mapping[str, Any]) -> str:
    """Replace ``{var}`` placeholders; unknown placeholders are left as written."""
    def _sub(match: "re.Match[str]") -> str:
        key = match.group(1)
        return str(variables[key]) if key in variables else match.group(0)

    return _PLACEHOLDER.sub(_sub, pattern)


def resolve_pattern_value(value: Any, variables: Mapping[str, Any]) -> str:
    """A flow's ``from``/``to`` entry as a concrete pattern string."""
    if is_switch_expression(value):
        value = resolve_switch(value, variables)
    if not isinstance(value, str):
        raise ConfigurationError(f"Flow pattern must be a string or switch expression: {value!r}")
    return substitute_variables(value, variables)
