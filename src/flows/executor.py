"""Flow Match & Merge Engine.

Execution is split in two phases so that every read happens before any
write: ``plan_writes`` matches a package's files against each platform's
flows and returns PlannedWrite objects; ``apply_writes`` performs them and
returns the provenance records.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set, Tuple

from constants import Constants, MergeStrategy
from common.errors import MergeError
from common.logging_utils import Timer, extra_context, is_debug_enabled
from common.paths import match_glob
from flows.composite import upsert_section
from flows.conditions import evaluate_condition, references_source
from flows.formats import (
    Document,
    FileFormat,
    detect_format,
    is_structured,
    read_document,
    serialize_document,
    write_text,
)
from flows.merge import merge_structures
from flows.models import FlowWriteRecord, PlannedWrite
from flows.paths import list_package_files, resolve_target_path, safe_target_path
from flows.switch import resolve_pattern_value
from platforms.registry import PlatformDefinition
from resolution.planner import InstallationContext

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Records and counters for one package's writes."""
    package_name: str
    records: Dict[str, List[FlowWriteRecord]] = field(default_factory=dict)
    files_written: int = 0
    files_updated: int = 0
    warnings: List[str] = field(default_factory=list)

    def add(self, record: FlowWriteRecord) -> None:
        self.records.setdefault(record.source_path, []).append(record)

    @property
    def targets(self) -> List[str]:
        return sorted({r.target_path for records in self.records.values() for r in records})


class FlowExecutor:
    """Runs platform flows for installation contexts against one target directory."""

    def __init__(self, target_dir: str, platforms: Sequence[PlatformDefinition]):
        self.target_dir = os.path.abspath(target_dir)
        self.platforms = list(platforms)

    def _variables(self, context: InstallationContext, platform: PlatformDefinition) -> Dict[str, str]:
        return {
            "name": context.package_name,
            "platform": platform.id,
            "rootDir": platform.root_dir,
            "targetRoot": self.target_dir,
            "packageRoot": context.content_root,
        }

    def plan_writes(self, context: InstallationContext, order: int) -> Tuple[List[PlannedWrite], List[str]]:
        """Match a package's files against every platform's flows.

        Within one platform the first flow matching a file claims it. The
        same target reached through several platforms is written once.

        Returns:
            (planned writes, warnings)
        """
        warnings: List[str] = []
        files = list_package_files(context.content_root)
        if context.matched_pattern:
            files = [f for f in files if match_glob(f, context.matched_pattern)]

        writes: List[PlannedWrite] = []
        seen_targets: Set[str] = set()
        for platform in self.platforms:
            variables = self._variables(context, platform)
            claimed: Set[str] = set()
            for flow in platform.flows:
                per_file = bool(flow.when) and references_source(flow.when)
                if flow.when and not per_file and not evaluate_condition(flow.when, platform.id, self.target_dir):
                    continue
                source_pattern = resolve_pattern_value(flow.source, variables)
                target_patterns = [resolve_pattern_value(t, variables) for t in flow.targets]
                for source_path in files:
                    if source_path in claimed or not match_glob(source_path, source_pattern):
                        continue
                    source_abs = os.path.join(context.content_root, *source_path.split("/"))
                    if per_file:
                        data = self._source_data(source_abs, warnings)
                        if not evaluate_condition(flow.when, platform.id, self.target_dir, data):
                            continue
                    claimed.add(source_path)
                    for target_pattern in target_patterns:
                        target_path = resolve_target_path(source_path, source_pattern, target_pattern)
                        if safe_target_path(self.target_dir, target_path) is None:
                            warnings.append(
                                f"{context.package_name}: target {target_path} is outside the workspace; skipped"
                            )
                            continue
                        if target_path in seen_targets:
                            continue
                        seen_targets.add(target_path)
                        writes.append(
                            PlannedWrite(
                                package_name=context.package_name,
                                source_path=source_path,
                                source_abs=source_abs,
                                target_path=target_path,
                                merge=flow.merge,
                                priority=context.priority + flow.priority,
                                platform=platform.id,
                                order=order,
                                transform=flow.transform,
                            )
                        )

        if is_debug_enabled(logger):
            logger.debug(
                "Planned writes",
                extra=extra_context(
                    event="decision", component="flow_executor", action="plan",
                    package=context.package_name, files=len(files), writes=len(writes),
                ),
            )
        return writes, warnings

    def apply_writes(self, package_name: str, writes: Sequence[PlannedWrite]) -> ExecutionResult:
        """Perform planned writes in order.

        A target that cannot be parsed or written is skipped with a warning;
        the remaining writes still run.
        """
        result = ExecutionResult(package_name=package_name)
        with Timer() as t:
            for write in writes:
                target_abs = safe_target_path(self.target_dir, write.target_path)
                if target_abs is None:
                    continue
                existed = os.path.exists(target_abs)
                try:
                    record = self._apply_one(write, target_abs)
                except MergeError as exc:
                    result.warnings.append(f"{package_name}: skipped {write.target_path}: {exc}")
                    continue
                except OSError as exc:
                    result.warnings.append(f"{package_name}: could not write {write.target_path}: {exc}")
                    continue
                result.add(record)
                if existed:
                    result.files_updated += 1
                else:
                    result.files_written += 1

        for warning in result.warnings:
            logger.warning(warning)
        if is_debug_enabled(logger):
            logger.debug(
                "Applied writes",
                extra=extra_context(
                    event="function_exit", component="flow_executor", action="apply",
                    package=package_name, written=result.files_written,
                    updated=result.files_updated, duration_ms=t.duration_ms(),
                ),
            )
        return result

    def _apply_one(self, write: PlannedWrite, target_abs: str) -> FlowWriteRecord:
        if write.merge is MergeStrategy.REPLACE:
            if write.transform is not None:
                incoming = self._read_incoming(write)
                target_format = detect_format(target_abs)
                if not is_structured(target_format):
                    raise MergeError(write.target_path, "transformed content needs a structured target")
                body = incoming.body if target_format is FileFormat.MARKDOWN else None
                write_text(
                    target_abs,
                    serialize_document(Document(data=incoming.data, body=body), target_format, write.target_path),
                )
            else:
                os.makedirs(os.path.dirname(target_abs), exist_ok=True)
                shutil.copyfile(write.source_abs, target_abs)
            return FlowWriteRecord(write.source_path, write.target_path, MergeStrategy.REPLACE)

        if write.merge is MergeStrategy.COMPOSITE:
            content = self._read_text(write.source_abs)
            existing = self._read_text(target_abs) if os.path.exists(target_abs) else ""
            write_text(target_abs, upsert_section(existing, write.package_name, content))
            return FlowWriteRecord(write.source_path, write.target_path, MergeStrategy.COMPOSITE)

        if write.merge in (MergeStrategy.DEEP, MergeStrategy.SHALLOW):
            return self._merge_structured(write, target_abs)

        raise MergeError(write.target_path, f"unsupported merge strategy {write.merge}")

    def _merge_structured(self, write: PlannedWrite, target_abs: str) -> FlowWriteRecord:
        target_format = detect_format(target_abs)
        if not is_structured(target_format):
            raise MergeError(write.target_path, "structured merge needs JSON, YAML, TOML or Markdown files")

        incoming = self._read_incoming(write)
        if os.path.exists(target_abs):
            existing = read_document(target_abs, target_format)
        else:
            existing = Document(data={}, body=None)

        outcome = merge_structures(existing.data, incoming.data, write.merge, write.target_path)
        keys = list(outcome.keys_written)
        body = None
        if target_format is FileFormat.MARKDOWN:
            if (existing.body or "").strip():
                body = existing.body
            else:
                body = incoming.body
                if (body or "").strip():
                    keys.append(Constants.MARKDOWN_BODY_KEY)
        write_text(target_abs, serialize_document(Document(data=outcome.data, body=body), target_format, write.target_path))
        return FlowWriteRecord(write.source_path, write.target_path, write.merge, keys=tuple(keys))

    @staticmethod
    def _read_incoming(write: PlannedWrite) -> Document:
        """Parse a structured source and apply the flow's transform to it."""
        source_format = detect_format(write.source_abs)
        if not is_structured(source_format):
            raise MergeError(write.source_path, "structured merge needs JSON, YAML, TOML or Markdown files")
        incoming = read_document(write.source_abs, source_format)
        if write.transform is not None:
            if not isinstance(incoming.data, dict):
                raise MergeError(write.source_path, "source content is not a mapping")
            incoming.data = write.transform.apply(incoming.data)
        return incoming

    @staticmethod
    def _source_data(source_abs: str, warnings: List[str]):
        """Structured content of a source file for key conditions; None for text."""
        fmt = detect_format(source_abs)
        if not is_structured(fmt):
            return None
        try:
            return read_document(source_abs, fmt).data
        except MergeError as exc:
            warnings.append(f"cannot evaluate flow condition: {exc}")
            return None

    @staticmethod
    def _read_text(path: str) -> str:
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return fh.read()
        except UnicodeDecodeError as exc:
            raise MergeError(path, f"not a text file: {exc}") from exc
