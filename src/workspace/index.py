"""Workspace provenance index.

Records, per installed package, which target files each of its source files
produced and how. Stored as YAML at ``<target>/.packweave/packweave.index.yml``::

    packages:
      demo:
        path: registry:demo
        version: 1.3.5
        dependencies: [lib]
        files:
          AGENTS.md:
          - target: AGENTS.md
            merge: composite
          mcp.json:
          - target: .cursor/mcp.json
            merge: deep
            keys: [mcpServers.demo]
          rules/style.md:
          - .cursor/rules/style.mdc

A bare string owns the whole target file. Reads never fail: malformed
entries are dropped and an unreadable file is treated as an empty index.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import yaml

from constants import Constants, MergeStrategy
from common.logging_utils import extra_context, is_debug_enabled
from flows.models import FlowWriteRecord

logger = logging.getLogger(__name__)

IndexValue = Union[str, Dict[str, Any]]


@dataclass
class WorkspaceIndexEntry:
    """Provenance for one installed package."""
    package_name: str
    path: str
    version: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    files: Dict[str, List[FlowWriteRecord]] = field(default_factory=dict)

    def records(self) -> List[FlowWriteRecord]:
        """All records, in sorted source-key order."""
        return [r for key in sorted(self.files) for r in self.files[key]]


@dataclass
class WorkspaceIndexRecord:
    """The whole index file."""
    path: str
    packages: Dict[str, WorkspaceIndexEntry] = field(default_factory=dict)


def get_index_path(target_dir: str) -> str:
    return os.path.join(target_dir, Constants.WORKSPACE_DIR, Constants.INDEX_FILE)


def _parse_mapping(source_key: str, value: Any) -> Optional[FlowWriteRecord]:
    if isinstance(value, str):
        target = value.strip()
        return FlowWriteRecord(source_key, target) if target else None
    if not isinstance(value, dict):
        return None
    target = value.get("target")
    if not isinstance(target, str) or not target.strip():
        return None

    merge = MergeStrategy.REPLACE
    raw_merge = value.get("merge")
    if isinstance(raw_merge, str):
        try:
            merge = MergeStrategy(raw_merge)
        except ValueError:
            merge = MergeStrategy.REPLACE

    keys = None
    raw_keys = value.get("keys")
    if isinstance(raw_keys, list):
        keys = tuple(k for k in raw_keys if isinstance(k, str) and k.strip())
    return FlowWriteRecord(source_key, target.strip(), merge, keys)


def _sanitize_entry(name: Any, raw: Any) -> Optional[WorkspaceIndexEntry]:
    if not isinstance(name, str) or not name.strip() or not isinstance(raw, dict):
        return None
    path = raw.get("path")
    if not isinstance(path, str) or not path.strip():
        return None
    files_raw = raw.get("files", {})
    if files_raw is None:
        files_raw = {}
    if not isinstance(files_raw, dict):
        return None

    files: Dict[str, List[FlowWriteRecord]] = {}
    for source_key, values in files_raw.items():
        if not isinstance(source_key, str) or not isinstance(values, list):
            continue
        records = [r for r in (_parse_mapping(source_key, v) for v in values) if r is not None]
        if records:
            files[source_key] = records

    version = raw.get("version")
    deps = raw.get("dependencies")
    return WorkspaceIndexEntry(
        package_name=name.strip(),
        path=path.strip(),
        version=str(version) if version is not None else None,
        dependencies=sorted({d for d in deps if isinstance(d, str) and d.strip()}) if isinstance(deps, list) else [],
        files=files,
    )


def read_workspace_index(target_dir: str) -> WorkspaceIndexRecord:
    """Load the index; never raises."""
    index_path = get_index_path(target_dir)
    record = WorkspaceIndexRecord(path=index_path)
    if not os.path.isfile(index_path):
        return record
    try:
        with open(index_path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        logger.warning("Failed to read workspace index %s: %s", index_path, exc)
        return record

    packages = data.get("packages") if isinstance(data, dict) else None
    if not isinstance(packages, dict):
        return record
    dropped = 0
    for name, raw in packages.items():
        entry = _sanitize_entry(name, raw)
        if entry is None:
            dropped += 1
            continue
        record.packages[entry.package_name] = entry
    if dropped and is_debug_enabled(logger):
        logger.debug(
            "Dropped malformed index entries",
            extra=extra_context(event="parse", component="workspace_index", action="read", dropped=dropped),
        )
    return record


def _record_value(record: FlowWriteRecord) -> IndexValue:
    if record.merge is MergeStrategy.REPLACE and record.keys is None:
        return record.target_path
    value: Dict[str, Any] = {"target": record.target_path, "merge": record.merge.value}
    if record.keys is not None:
        value["keys"] = sorted(set(record.keys))
    return value


def _serialize_values(records: List[FlowWriteRecord]) -> List[IndexValue]:
    """Deduplicated values: sorted plain targets first, then mappings sorted by target."""
    strings = set()
    mappings: Dict[tuple, Dict[str, Any]] = {}
    for record in records:
        value = _record_value(record)
        if isinstance(value, str):
            strings.add(value)
            continue
        key = (value["target"], value["merge"])
        if key in mappings and "keys" in value:
            merged = set(mappings[key].get("keys", [])) | set(value["keys"])
            mappings[key]["keys"] = sorted(merged)
        else:
            mappings.setdefault(key, value)
    return sorted(strings) + [mappings[k] for k in sorted(mappings)]


def _serialize_entry(entry: WorkspaceIndexEntry) -> Dict[str, Any]:
    data: Dict[str, Any] = {"path": entry.path}
    if entry.version is not None:
        data["version"] = entry.version
    if entry.dependencies:
        data["dependencies"] = sorted(set(entry.dependencies))
    data["files"] = {
        key: _serialize_values(entry.files[key]) for key in sorted(entry.files) if entry.files[key]
    }
    return data


def write_workspace_index(record: WorkspaceIndexRecord) -> None:
    """Rewrite the whole index with deterministic ordering."""
    payload = {
        "packages": {name: _serialize_entry(record.packages[name]) for name in sorted(record.packages)}
    }
    body = yaml.safe_dump(payload, sort_keys=True, default_flow_style=False, allow_unicode=True)
    os.makedirs(os.path.dirname(record.path), exist_ok=True)
    tmp_path = record.path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as fh:
        fh.write(Constants.INDEX_HEADER + "\n\n" + body)
    os.replace(tmp_path, record.path)
