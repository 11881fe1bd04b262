"""Platform definitions.

Each platform is a root directory, an optional root file and an ordered list
of flows. The built-in table can be extended or overridden by a YAML file
whose top level maps platform ids to definitions (optionally nested under a
``platforms`` key).
"""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import yaml

from constants import Constants
from common.errors import ConfigurationError
from flows.models import Flow
from platforms.schema import validate_platform_table

logger = logging.getLogger(__name__)

DEFAULT_PLATFORMS = ("cursor",)

DEFAULT_PLATFORM_TABLE: Dict[str, Dict[str, Any]] = {
    "claude": {
        "name": "Claude Code",
        "rootDir": ".claude",
        "rootFile": "CLAUDE.md",
        "flows": [
            {"from": "rules/**/*.md", "to": ".claude/rules/**/*.md"},
            {"from": "commands/**/*.md", "to": ".claude/commands/**/*.md"},
            {"from": "agents/**/*.md", "to": ".claude/agents/**/*.md"},
            {"from": "skills/**", "to": ".claude/skills/**"},
            {"from": "mcp.json", "to": ".mcp.json", "merge": "deep"},
            {"from": "settings.json", "to": ".claude/settings.json", "merge": "deep"},
            {"from": "AGENTS.md", "to": "CLAUDE.md", "merge": "composite"},
        ],
    },
    "cursor": {
        "name": "Cursor",
        "rootDir": ".cursor",
        "rootFile": "AGENTS.md",
        "flows": [
            {"from": "rules/**/*.md", "to": ".cursor/rules/**/*.mdc"},
            {"from": "commands/**/*.md", "to": ".cursor/commands/**/*.md"},
            {"from": "mcp.json", "to": ".cursor/mcp.json", "merge": "deep"},
            {"from": "AGENTS.md", "to": "AGENTS.md", "merge": "composite"},
        ],
    },
    "codex": {
        "name": "Codex",
        "rootDir": ".codex",
        "rootFile": "AGENTS.md",
        "flows": [
            {"from": "commands/**/*.md", "to": ".codex/prompts/**/*.md"},
            {"from": "config.toml", "to": ".codex/config.toml", "merge": "deep"},
            {"from": "AGENTS.md", "to": "AGENTS.md", "merge": "composite"},
        ],
    },
    "opencode": {
        "name": "OpenCode",
        "rootDir": ".opencode",
        "rootFile": "AGENTS.md",
        "flows": [
            {"from": "agents/**/*.md", "to": ".opencode/agent/**/*.md"},
            {"from": "commands/**/*.md", "to": ".opencode/command/**/*.md"},
            {"from": "opencode.json", "to": "opencode.json", "merge": "deep"},
            {"from": "AGENTS.md", "to": "AGENTS.md", "merge": "composite"},
        ],
    },
}


@dataclass(frozen=True)
class PlatformDefinition:
    """One consuming convention, treated as read-only configuration."""
    id: str
    name: str
    root_dir: str
    root_file: Optional[str]
    flows: Tuple[Flow, ...]
    detection: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, platform_id: str, data: Dict[str, Any]) -> "PlatformDefinition":
        detection = tuple(data.get("detection") or ())
        if not detection:
            detection = tuple(p for p in (data["rootDir"], data.get("rootFile")) if p)
        return cls(
            id=platform_id,
            name=data.get("name") or platform_id,
            root_dir=data["rootDir"],
            root_file=data.get("rootFile"),
            flows=tuple(Flow.from_dict(f) for f in data.get("flows", [])),
            detection=detection,
        )


def _read_table_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot read platform table {path}: {exc}") from exc
    if isinstance(data, dict) and isinstance(data.get("platforms"), dict):
        data = data["platforms"]
    if not isinstance(data, dict):
        raise ConfigurationError(f"Platform table {path} must be a mapping")
    return data


def load_platform_table(
    path: Optional[str] = None,
    table: Optional[Dict[str, Any]] = None,
) -> Dict[str, PlatformDefinition]:
    """Validated platform definitions keyed by id.

    Args:
        path: YAML file whose entries override or extend the defaults.
        table: Raw table to use instead of the defaults (tests, embedding).

    Raises:
        ConfigurationError: when the resulting table is invalid.
    """
    raw = copy.deepcopy(table if table is not None else DEFAULT_PLATFORM_TABLE)
    path = path or Constants.PLATFORMS_FILE or None
    if path:
        raw.update(_read_table_file(os.path.expanduser(path)))
    validate_platform_table(raw)
    return {pid: PlatformDefinition.from_dict(pid, raw[pid]) for pid in sorted(raw)}


def detect_platforms(table: Dict[str, PlatformDefinition], target_dir: str) -> List[str]:
    """Ids of platforms whose detection paths exist in the target directory."""
    found = []
    for pid, platform in table.items():
        if any(os.path.exists(os.path.join(target_dir, p)) for p in platform.detection):
            found.append(pid)
    return sorted(found)


def select_platforms(
    table: Dict[str, PlatformDefinition],
    requested: Optional[Iterable[str]],
    target_dir: str,
) -> List[PlatformDefinition]:
    """Platforms to install into: the requested ids, else detected ones, else the defaults.

    Raises:
        ConfigurationError: for unknown platform ids.
    """
    ids = list(requested or [])
    if not ids:
        ids = detect_platforms(table, target_dir) or [p for p in DEFAULT_PLATFORMS if p in table]
    unknown = [pid for pid in ids if pid not in table]
    if unknown:
        raise ConfigurationError(f"Unknown platform(s): {', '.join(unknown)}")
    seen: Set[str] = set()
    selected = []
    for pid in ids:
        if pid not in seen:
            seen.add(pid)
            selected.append(table[pid])
    return selected
