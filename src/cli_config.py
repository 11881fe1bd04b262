"""CLI overrides for runtime tunables.

Command-line flags take precedence over the YAML config file and the
built-in defaults held in Constants.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from constants import Constants
from common.errors import ConfigurationError
from versioning.parser import is_valid_range, tokenize_package_token

logger = logging.getLogger(__name__)


def apply_cli_overrides(args) -> None:
    """Copy registry and platform-table flags onto Constants."""
    if getattr(args, "REGISTRY_DIR", None):
        Constants.REGISTRY_DIR = args.REGISTRY_DIR  # type: ignore[attr-defined]
    if getattr(args, "REGISTRY_URL", None) is not None:
        Constants.REGISTRY_URL = args.REGISTRY_URL  # type: ignore[attr-defined]
    if getattr(args, "PLATFORMS_FILE", None):
        Constants.PLATFORMS_FILE = args.PLATFORMS_FILE  # type: ignore[attr-defined]


def parse_constraint_flags(values: List[str]) -> List[Tuple[str, str]]:
    """``name@range`` flags as ``(name, range)`` pairs.

    Raises:
        ConfigurationError: for a flag without a range or with an invalid one.
    """
    pairs: List[Tuple[str, str]] = []
    for value in values or []:
        name, range_str = tokenize_package_token(value)
        if not name or not range_str:
            raise ConfigurationError(f"--constraint expects name@range, got '{value}'")
        if not is_valid_range(range_str):
            raise ConfigurationError(f"Invalid version range in --constraint '{value}'")
        pairs.append((name, range_str))
    return pairs


def parse_priority_flags(values: List[str]) -> Dict[str, int]:
    """``name=N`` flags as a priority mapping.

    Raises:
        ConfigurationError: for a malformed flag.
    """
    priorities: Dict[str, int] = {}
    for value in values or []:
        name, sep, number = value.partition("=")
        if not sep or not name.strip():
            raise ConfigurationError(f"--priority expects name=N, got '{value}'")
        try:
            priorities[name.strip().lower()] = int(number)
        except ValueError as exc:
            raise ConfigurationError(f"--priority expects an integer, got '{value}'") from exc
    return priorities
