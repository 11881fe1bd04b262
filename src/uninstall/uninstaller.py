"""Provenance-driven removal of a package's contributions.

Every target a package wrote is undone from its index record alone:
whole-file targets are deleted, composite sections are stripped, and merged
keys are deleted from shared structured files. Records without key
provenance are never acted on.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set

from constants import Constants, MergeStrategy
from common.errors import ManifestError, MergeError
from common.events import (
    UNINSTALL_COMPLETE,
    UNINSTALL_REMOVED,
    UNINSTALL_STARTED,
    Event,
    EventSink,
    LoggingEventSink,
)
from common.logging_utils import Timer, extra_context, is_debug_enabled
from flows.composite import strip_section
from flows.formats import FileFormat, detect_format, read_document, serialize_document, write_text
from flows.merge import delete_nested_key, is_effectively_empty
from flows.models import FlowWriteRecord
from flows.paths import safe_target_path
from platforms.registry import PlatformDefinition
from resolution.dependency_tree import build_dependency_tree, find_dangling_dependencies
from sources.manifest import read_declarations
from uninstall.directories import collect_preserved_directories, prune_empty_directories
from versioning.parser import normalize_package_name
from workspace.index import WorkspaceIndexEntry, read_workspace_index, write_workspace_index

logger = logging.getLogger(__name__)


@dataclass
class RemovalResult:
    """Target paths (relative to the workspace) touched by a removal."""
    removed: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def extend(self, other: "RemovalResult") -> None:
        self.removed.extend(p for p in other.removed if p not in self.removed)
        self.updated.extend(p for p in other.updated if p not in self.updated)
        self.warnings.extend(other.warnings)


@dataclass
class UninstallResult:
    removed: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    removed_packages: List[str] = field(default_factory=list)
    removed_directories: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.removed_packages)


def remove_keys_from_merged_file(target_abs: str, rel_path: str, keys: Sequence[str]) -> RemovalResult:
    """Delete merged keys from a structured file.

    The file is deleted when nothing but empty structure remains. A Markdown
    body goes only when the keys include the body marker, i.e. this write
    supplied it; otherwise it keeps the file alive.
    """
    result = RemovalResult()
    fmt = detect_format(target_abs)
    try:
        document = read_document(target_abs, fmt)
    except MergeError as exc:
        result.warnings.append(f"Cannot remove keys from {rel_path}: {exc}")
        return result
    if not isinstance(document.data, dict):
        result.warnings.append(f"Cannot remove keys from {rel_path}: content is not a mapping")
        return result
    data = document.data
    changed = False
    missing = []
    for key in keys:
        if key == Constants.MARKDOWN_BODY_KEY and fmt is FileFormat.MARKDOWN:
            changed = changed or bool(document.body)
            document.body = ""
        elif delete_nested_key(data, key):
            changed = True
        else:
            missing.append(key)
    if missing:
        result.warnings.append(f"{rel_path}: recorded key(s) not found: {', '.join(missing)}")

    body_left = fmt is FileFormat.MARKDOWN and bool((document.body or "").strip())
    if is_effectively_empty(data) and not body_left:
        os.remove(target_abs)
        result.removed.append(rel_path)
        return result
    if not changed:
        return result
    document.data = {} if is_effectively_empty(data) else data
    write_text(target_abs, serialize_document(document, fmt, rel_path))
    result.updated.append(rel_path)
    return result


def strip_composite_section(target_abs: str, rel_path: str, package_name: str) -> RemovalResult:
    """Remove one package's marker section; the host file always stays."""
    result = RemovalResult()
    try:
        with open(target_abs, "r", encoding="utf-8") as fh:
            text = fh.read()
    except UnicodeDecodeError as exc:
        result.warnings.append(f"Cannot strip section from {rel_path}: {exc}")
        return result
    new_text, removed = strip_section(text, package_name)
    if removed:
        write_text(target_abs, new_text)
        result.updated.append(rel_path)
    return result


def remove_file_mapping(target_dir: str, record: FlowWriteRecord, package_name: str) -> RemovalResult:
    """Undo one provenance record.

    Dispatch by record shape:
      - whole-file (bare string in the index): delete the file
      - composite: strip this package's section, keep the file
      - merge with keys: delete the keys, delete the file only if it empties
      - merge without keys: warn and leave the file alone
    """
    result = RemovalResult()
    rel_path = record.target_path
    target_abs = safe_target_path(target_dir, rel_path)
    if target_abs is None:
        result.warnings.append(f"{package_name}: {rel_path} is outside the workspace; not touched")
        return result

    if record.is_degraded:
        result.warnings.append(
            f"{package_name}: {rel_path} was merged without key provenance; leaving it in place"
        )
        return result
    if not os.path.isfile(target_abs):
        return result

    if record.is_whole_file:
        os.remove(target_abs)
        result.removed.append(rel_path)
        return result
    if record.merge is MergeStrategy.COMPOSITE:
        return strip_composite_section(target_abs, rel_path, package_name)
    return remove_keys_from_merged_file(target_abs, rel_path, record.keys or ())


def remove_records(
    target_dir: str,
    records: Iterable[FlowWriteRecord],
    package_name: str,
    shared_targets: Optional[Set[str]] = None,
) -> RemovalResult:
    """Undo several records; whole-file targets in ``shared_targets`` are kept."""
    result = RemovalResult()
    for record in records:
        if record.is_whole_file and shared_targets and record.target_path in shared_targets:
            continue
        try:
            result.extend(remove_file_mapping(target_dir, record, package_name))
        except OSError as exc:
            result.warnings.append(f"{package_name}: could not update {record.target_path}: {exc}")
    return result


def clean_previous_records(
    target_dir: str,
    previous: WorkspaceIndexEntry,
    own_targets: Set[str],
    kept_targets: Optional[Set[str]] = None,
) -> RemovalResult:
    """Remove stale provenance before a package is written again.

    Merged keys always go; the new write re-adds whatever is still current.
    Composite sections go when the package no longer writes that target.
    Whole-file targets go when nothing in ``own_targets`` or ``kept_targets``
    (files other packages write or own) still claims them.
    """
    kept_targets = kept_targets or set()
    stale = []
    for record in previous.records():
        if record.keys is not None:
            stale.append(record)
        elif record.target_path in own_targets:
            continue
        elif record.merge is MergeStrategy.COMPOSITE or record.target_path not in kept_targets:
            stale.append(record)
    return remove_records(target_dir, stale, previous.package_name)


def whole_file_owners(entries: Dict[str, WorkspaceIndexEntry], exclude: Set[str]) -> Set[str]:
    """Whole-file targets recorded by packages outside ``exclude``."""
    owned: Set[str] = set()
    for name, entry in entries.items():
        if name in exclude:
            continue
        owned.update(r.target_path for r in entry.records() if r.is_whole_file)
    return owned


class Uninstaller:
    """Removes installed packages from a workspace using the provenance index."""

    def __init__(
        self,
        target_dir: str,
        platforms: Sequence[PlatformDefinition],
        events: Optional[EventSink] = None,
    ):
        self.target_dir = os.path.abspath(target_dir)
        self.platforms = list(platforms)
        self.events = events or LoggingEventSink()

    def _protected_names(self) -> List[str]:
        workspace_dir = os.path.join(self.target_dir, Constants.WORKSPACE_DIR)
        try:
            declarations = read_declarations(workspace_dir, requested_by="workspace", base_dir=self.target_dir)
        except ManifestError as exc:
            logger.warning("Ignoring workspace manifest while uninstalling: %s", exc)
            return []
        return [d.normalized_name for d in declarations]

    def packages_to_remove(self, name: str, recursive: bool, entries: Dict[str, WorkspaceIndexEntry]) -> List[str]:
        """The package itself, then its dangling dependencies when ``recursive``."""
        target = normalize_package_name(name)
        if not recursive:
            return [target]
        tree = build_dependency_tree(
            {n: e.dependencies for n, e in entries.items()},
            protected=[p for p in self._protected_names() if p != target],
        )
        dangling = find_dangling_dependencies(target, tree)
        return [target] + sorted(d for d in dangling if d in entries)

    def uninstall(self, name: str, recursive: bool = False) -> UninstallResult:
        result = UninstallResult()
        index = read_workspace_index(self.target_dir)
        target = normalize_package_name(name)
        if target not in index.packages:
            result.warnings.append(f"Package {target} is not installed")
            logger.warning("Package %s is not installed", target)
            return result

        packages = self.packages_to_remove(target, recursive, index.packages)
        self.events.emit(Event(UNINSTALL_STARTED, {"package": target, "packages": list(packages)}))
        shared = whole_file_owners(index.packages, exclude=set(packages))

        with Timer() as t:
            try:
                for package in packages:
                    entry = index.packages[package]
                    removal = remove_records(self.target_dir, entry.records(), package, shared)
                    del index.packages[package]
                    result.removed_packages.append(package)
                    result.removed.extend(removal.removed)
                    result.updated.extend(p for p in removal.updated if p not in result.updated)
                    result.warnings.extend(removal.warnings)
                    self.events.emit(
                        Event(
                            UNINSTALL_REMOVED,
                            {"package": package, "removed": list(removal.removed), "updated": list(removal.updated)},
                        )
                    )
            finally:
                write_workspace_index(index)

            preserved = collect_preserved_directories(self.target_dir, self.platforms)
            result.removed_directories = prune_empty_directories(result.removed, self.target_dir, preserved)

        for warning in result.warnings:
            logger.warning(warning)
        if is_debug_enabled(logger):
            logger.debug(
                "Uninstall finished",
                extra=extra_context(
                    event="function_exit", component="uninstaller", action="uninstall",
                    package=target, removed=len(result.removed), updated=len(result.updated),
                    duration_ms=t.duration_ms(),
                ),
            )
        self.events.emit(
            Event(
                UNINSTALL_COMPLETE,
                {
                    "packages": list(result.removed_packages),
                    "removed": len(result.removed),
                    "updated": len(result.updated),
                    "warnings": list(result.warnings),
                },
            )
        )
        return result
