"""JSON Schema validation for platform definition tables.

Wraps jsonschema Draft7 validation and adds the switch-expression checks a
schema cannot express.
"""

from __future__ import annotations

from typing import Any, Dict, List

from jsonschema import Draft7Validator

from common.errors import ConfigurationError
from flows.switch import is_switch_expression, validate_switch_expression

PLATFORM_TABLE_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": {"$ref": "#/definitions/platform"},
    "definitions": {
        "pattern": {
            "oneOf": [
                {"type": "string", "minLength": 1},
                {"type": "object", "required": ["$switch"]},
            ]
        },
        "flow": {
            "type": "object",
            "required": ["from", "to"],
            "properties": {
                "from": {"$ref": "#/definitions/pattern"},
                "to": {
                    "oneOf": [
                        {"$ref": "#/definitions/pattern"},
                        {"type": "array", "minItems": 1, "items": {"$ref": "#/definitions/pattern"}},
                    ]
                },
                "merge": {"enum": ["replace", "deep", "shallow", "composite"]},
                "priority": {"type": "integer"},
                "when": {"type": "object"},
                "pick": {"type": "array", "items": {"type": "string", "minLength": 1}},
                "omit": {"type": "array", "items": {"type": "string", "minLength": 1}},
                "map": {
                    "type": "object",
                    "additionalProperties": {
                        "oneOf": [
                            {"type": "string", "minLength": 1},
                            {
                                "type": "object",
                                "required": ["to"],
                                "properties": {
                                    "to": {"type": "string", "minLength": 1},
                                    "default": {},
                                    "values": {"type": "object"},
                                },
                                "additionalProperties": False,
                            },
                        ]
                    },
                },
                "embed": {"type": "string", "minLength": 1},
            },
            "additionalProperties": False,
        },
        "platform": {
            "type": "object",
            "required": ["rootDir", "flows"],
            "properties": {
                "name": {"type": "string"},
                "rootDir": {"type": "string", "minLength": 1},
                "rootFile": {"type": ["string", "null"]},
                "detection": {"type": "array", "items": {"type": "string"}},
                "flows": {"type": "array", "items": {"$ref": "#/definitions/flow"}},
            },
            "additionalProperties": False,
        },
    },
}


def _switch_errors(table: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    for platform_id, platform in table.items():
        for i, flow in enumerate(platform.get("flows", [])):
            targets = flow.get("to")
            patterns = [("from", flow.get("from"))]
            if isinstance(targets, list):
                patterns += [(f"to[{j}]", t) for j, t in enumerate(targets)]
            else:
                patterns.append(("to", targets))
            for label, pattern in patterns:
                if is_switch_expression(pattern):
                    for problem in validate_switch_expression(pattern):
                        errors.append(f"{platform_id}/flows/{i}/{label}: {problem}")
    return errors


def validate_platform_table(table: Dict[str, Any]) -> None:
    """Validate a raw platform table.

    Raises:
        ConfigurationError: listing every problem found.
    """
    validator = Draft7Validator(PLATFORM_TABLE_SCHEMA)
    problems = []
    for err in sorted(validator.iter_errors(table), key=lambda e: [str(p) for p in e.absolute_path]):
        path = "/".join(str(p) for p in err.absolute_path)
        problems.append(f"{path or '<root>'}: {err.message}")
    if not problems:
        problems = _switch_errors(table)
    if problems:
        raise ConfigurationError("Invalid platform table: " + "; ".join(problems))
