"""Install orchestration: graph, solve, plan, flows, index.

Phases run strictly in sequence. Every flow's reads (file matching and
write planning for all contexts) finish before the first target is
written, and contexts are written in installation order.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from constants import MergeStrategy
from common.cache import TTLCache
from common.events import (
    INSTALL_COMPLETE,
    INSTALL_CONFLICT,
    INSTALL_RESOLVED,
    INSTALL_STARTED,
    Event,
    EventSink,
    LoggingEventSink,
)
from common.logging_utils import Timer, extra_context, is_debug_enabled
from flows.conflicts import ConflictResolver
from flows.executor import FlowExecutor
from flows.models import ConflictRecord, PlannedWrite
from platforms.registry import PlatformDefinition, load_platform_table, select_platforms
from resolution.graph_builder import DependencyGraphBuilder, GraphBuildOptions
from resolution.models import DependencyDeclaration, DependencyGraph
from resolution.planner import InstallationPlanner, PlannerOptions, SkippedPackage, installed_versions_from_index
from sources import create_default_loaders
from sources.base import SourceLoaderRegistry
from sources.manifest import declaration_from_entry
from uninstall.uninstaller import clean_previous_records, whole_file_owners
from versioning.models import VersionConflict
from versioning.solver import ConflictCallback
from workspace.index import WorkspaceIndexEntry, read_workspace_index, write_workspace_index

logger = logging.getLogger(__name__)


@dataclass
class InstallOptions:
    """Per-invocation install settings."""
    target_dir: str
    force: bool = False
    platforms: Tuple[str, ...] = ()
    include_dev: bool = False
    on_conflict: Optional[ConflictCallback] = None
    constraints: Dict[str, List[str]] = field(default_factory=dict)
    priorities: Dict[str, int] = field(default_factory=dict)
    platforms_file: Optional[str] = None


@dataclass
class InstallResult:
    success: bool = True
    installed: List[str] = field(default_factory=list)
    skipped: List[SkippedPackage] = field(default_factory=list)
    file_conflicts: List[ConflictRecord] = field(default_factory=list)
    version_conflicts: List[VersionConflict] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    files_written: int = 0
    files_updated: int = 0


def request_declaration(token: str, base_dir: str) -> DependencyDeclaration:
    """Declaration for a command-line request.

    An existing directory is installed as a path source; anything else is
    ``name[@range]`` from the registry.
    """
    expanded = os.path.expanduser(token)
    candidate = expanded if os.path.isabs(expanded) else os.path.join(base_dir, expanded)
    if os.path.isdir(candidate):
        entry = {"path": candidate}
    else:
        entry = token
    return declaration_from_entry(entry, base_dir, requested_by="cli", manifest_file="<command line>")


class InstallPipeline:
    """Installs packages into one workspace."""

    def __init__(
        self,
        options: InstallOptions,
        loaders: Optional[SourceLoaderRegistry] = None,
        platform_table: Optional[Dict[str, PlatformDefinition]] = None,
        events: Optional[EventSink] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.options = options
        self.target_dir = os.path.abspath(options.target_dir)
        self.loaders = loaders or create_default_loaders(self.target_dir, cache)
        self.platform_table = platform_table or load_platform_table(options.platforms_file)
        self.events = events or LoggingEventSink()

    def _build_graph(self, requests: Optional[Sequence[str]]) -> DependencyGraph:
        builder = DependencyGraphBuilder(
            self.loaders,
            GraphBuildOptions(
                target_dir=self.target_dir,
                include_dev=self.options.include_dev,
                force=self.options.force,
                on_conflict=self.options.on_conflict,
                global_constraints=dict(self.options.constraints),
            ),
        )
        if not requests:
            return builder.build_for_workspace()
        declarations = [request_declaration(token, os.getcwd()) for token in requests]
        return builder.build(declarations, root_label="cli", fail_on_root_error=True)

    def install(self, requests: Optional[Sequence[str]] = None) -> InstallResult:
        """Resolve and install ``requests``, or the workspace manifest when empty.

        Raises:
            ResolutionAborted: when the conflict callback cancels.
            SourceLoadError: when a requested package cannot be loaded.
            ConfigurationError: for invalid manifests or platform tables.
        """
        result = InstallResult()
        platforms = select_platforms(self.platform_table, self.options.platforms, self.target_dir)
        self.events.emit(
            Event(
                INSTALL_STARTED,
                {
                    "target": self.target_dir,
                    "requests": list(requests or []),
                    "platforms": [p.id for p in platforms],
                },
            )
        )

        with Timer() as t:
            graph = self._build_graph(requests)
            result.warnings.extend(graph.warnings)
            solution = graph.solution
            result.version_conflicts = list(solution.conflicts) if solution else []
            self.events.emit(
                Event(
                    INSTALL_RESOLVED,
                    {
                        "order": [str(identity) for identity in graph.installation_order],
                        "cycles": [list(c) for c in graph.cycles],
                    },
                )
            )
            for conflict in result.version_conflicts:
                self.events.emit(
                    Event(
                        INSTALL_CONFLICT,
                        {
                            "kind": "version",
                            "package": conflict.package_name,
                            "ranges": list(conflict.ranges),
                            "requestedBy": list(conflict.requested_by),
                            "chosenVersion": conflict.chosen_version,
                        },
                    )
                )

            index = read_workspace_index(self.target_dir)
            planner = InstallationPlanner(
                PlannerOptions(
                    target_dir=self.target_dir,
                    force=self.options.force,
                    platforms=tuple(p.id for p in platforms),
                    priorities=dict(self.options.priorities),
                ),
                installed_versions=installed_versions_from_index(index.packages),
            )
            plan = planner.create_plan(graph)
            result.skipped = list(plan.skipped)
            for context in plan.contexts:
                result.warnings.extend(context.warnings)

            # read phase: every context's writes are planned before anything is written
            executor = FlowExecutor(self.target_dir, platforms)
            planned: List[PlannedWrite] = []
            for order, context in enumerate(plan.contexts):
                writes, warnings = executor.plan_writes(context, order)
                planned.extend(writes)
                for warning in warnings:
                    logger.warning(warning)
                result.warnings.extend(warnings)

            kept, conflicts = ConflictResolver().resolve(planned)
            result.file_conflicts = conflicts
            for record in conflicts:
                self.events.emit(Event(INSTALL_CONFLICT, dict(record.to_dict(), kind="file")))

            installing = {c.package_name for c in plan.contexts}
            claimed: Set[str] = {w.target_path for w in kept if w.merge is MergeStrategy.REPLACE}
            claimed |= whole_file_owners(index.packages, exclude=installing)

            # write phase, in installation order
            try:
                for order, context in enumerate(plan.contexts):
                    writes = [w for w in kept if w.order == order]
                    own_targets = {w.target_path for w in writes}
                    previous = index.packages.get(context.package_name)
                    if previous is not None:
                        cleanup = clean_previous_records(self.target_dir, previous, own_targets, claimed)
                        for warning in cleanup.warnings:
                            logger.warning(warning)
                        result.warnings.extend(cleanup.warnings)

                    applied = executor.apply_writes(context.package_name, writes)
                    result.files_written += applied.files_written
                    result.files_updated += applied.files_updated
                    result.warnings.extend(applied.warnings)
                    index.packages[context.package_name] = WorkspaceIndexEntry(
                        package_name=context.package_name,
                        path=context.source.describe(),
                        version=context.version,
                        dependencies=sorted(set(graph.dependency_names(context.node_key))),
                        files=applied.records,
                    )
                    result.installed.append(context.package_name)
            finally:
                write_workspace_index(index)

        result.success = not (solution.unresolved if solution else [])
        if is_debug_enabled(logger):
            logger.debug(
                "Install finished",
                extra=extra_context(
                    event="function_exit", component="pipeline", action="install",
                    outcome="success" if result.success else "conflicts",
                    installed=len(result.installed), duration_ms=t.duration_ms(),
                ),
            )
        self.events.emit(
            Event(
                INSTALL_COMPLETE,
                {
                    "success": result.success,
                    "installed": list(result.installed),
                    "skipped": [s.identity.name for s in result.skipped],
                    "filesWritten": result.files_written,
                    "filesUpdated": result.files_updated,
                    "conflicts": [c.to_dict() for c in result.file_conflicts],
                    "warnings": list(result.warnings),
                },
            )
        )
        return result
