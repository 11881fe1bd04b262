"""Installation planner.

Turns the resolved graph into one InstallationContext per package, in
installation order. Contexts are immutable; each planning phase returns a
new context with its own fields filled in.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Tuple

from constants import Constants, InstallMode, NodeState, SkipReason
from common.logging_utils import extra_context, is_debug_enabled
from common.paths import to_posix
from resolution.models import DependencyGraph, PackageIdentity, ResolutionNode, ResolvedSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannerOptions:
    """Options that travel with every context."""
    target_dir: str
    force: bool = False
    platforms: Tuple[str, ...] = ()
    priorities: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ResolvedPackage:
    """A package already loaded by the resolution phase."""
    name: str
    version: Optional[str]
    content_root: str
    is_root: bool = False


@dataclass(frozen=True)
class InstallationContext:
    """Everything needed to install or re-apply one package."""
    node_key: str
    package_name: str
    version: Optional[str]
    source: ResolvedSource
    target_dir: str
    mode: InstallMode
    options: PlannerOptions
    platforms: Tuple[str, ...]
    content_root: str
    priority: int
    resolved_packages: Tuple[ResolvedPackage, ...] = ()
    detected_base: Optional[str] = None
    matched_pattern: Optional[str] = None
    warnings: Tuple[str, ...] = ()
    errors: Tuple[str, ...] = ()

    def with_warning(self, message: str) -> "InstallationContext":
        return replace(self, warnings=self.warnings + (message,))


@dataclass(frozen=True)
class SkippedPackage:
    """A node left out of the plan and why."""
    identity: PackageIdentity
    node_key: str
    reason: SkipReason


@dataclass
class InstallationPlan:
    """Ordered contexts plus everything that was skipped."""
    contexts: List[InstallationContext]
    skipped: List[SkippedPackage]
    graph: DependencyGraph
    estimated_operations: int = 0


def compute_scoped_pattern(
    repo_root: str,
    base: str,
    resource_path: str,
    existing_pattern: Optional[str] = None,
) -> Optional[str]:
    """Install pattern narrowed to one resource inside the package.

    A directory resource becomes ``<dir>/**``; a file resource is its own
    relative path. Returns None to keep the existing pattern: when the
    resource is outside ``base`` or missing, or when the existing pattern is
    already at least as specific.
    """
    absolute = os.path.normpath(os.path.join(repo_root, resource_path))
    relative = to_posix(os.path.relpath(absolute, base))
    if not relative or relative == "." or relative.startswith(".."):
        return None
    if not os.path.exists(absolute):
        return None
    pattern = f"{relative}/**" if os.path.isdir(absolute) else relative
    if existing_pattern is None:
        return pattern
    if "**" in existing_pattern and len(pattern) > len(existing_pattern.replace("/**", "")):
        return pattern
    return None


class InstallationPlanner:
    """Builds an InstallationPlan from a DependencyGraph."""

    def __init__(self, options: PlannerOptions, installed_versions: Optional[Mapping[str, Optional[str]]] = None):
        """Initialize the planner.

        Args:
            options: Options shared by every context.
            installed_versions: ``{package name: version}`` from the
                provenance index; drives the already-installed check.
        """
        self.options = options
        self.installed_versions = dict(installed_versions or {})

    def create_plan(self, graph: DependencyGraph) -> InstallationPlan:
        contexts: List[InstallationContext] = []
        skipped: List[SkippedPackage] = []
        direct_keys = self._direct_keys(graph)

        for node in graph.ordered_nodes():
            reason = self._skip_reason(node)
            if reason is not None:
                skipped.append(SkippedPackage(identity=node.identity, node_key=node.key, reason=reason))
                if is_debug_enabled(logger):
                    logger.debug(
                        "Skipping package",
                        extra=extra_context(
                            event="decision", component="planner", action="skip",
                            package=node.identity.name, outcome=reason.value,
                        ),
                    )
                continue
            context = self._create_context(node, node.key in direct_keys)
            context = self._detect_base(context)
            context = self._scope_to_resource(context, node)
            contexts.append(context)

        return InstallationPlan(
            contexts=contexts,
            skipped=skipped,
            graph=graph,
            estimated_operations=len(contexts),
        )

    @staticmethod
    def _direct_keys(graph: DependencyGraph) -> set:
        direct = set()
        for key in graph.roots:
            node = graph.nodes[key]
            if node.is_root:
                direct.update(node.dependencies)
            direct.add(key)
        return direct

    def _skip_reason(self, node: ResolutionNode) -> Optional[SkipReason]:
        if node.state is NodeState.FAILED:
            return SkipReason.FAILED
        if node.loaded is None:
            return SkipReason.NOT_LOADED
        name = node.identity.normalized_name
        if not self.options.force and name in self.installed_versions:
            if self.installed_versions[name] == node.identity.version:
                return SkipReason.ALREADY_INSTALLED
        return None

    def _priority(self, node: ResolutionNode, direct: bool) -> int:
        name = node.identity.normalized_name
        if name in self.options.priorities:
            return int(self.options.priorities[name])
        return Constants.PRIORITY_DIRECT if direct else Constants.PRIORITY_TRANSITIVE

    def _create_context(self, node: ResolutionNode, direct: bool) -> InstallationContext:
        loaded = node.loaded
        assert loaded is not None
        name = node.identity.normalized_name
        synthetic_root = ResolvedPackage(
            name=name,
            version=node.identity.version,
            content_root=loaded.content_root,
            is_root=True,
        )
        mode = InstallMode.APPLY if name in self.installed_versions else InstallMode.INSTALL
        return InstallationContext(
            node_key=node.key,
            package_name=name,
            version=node.identity.version,
            source=node.source,
            target_dir=self.options.target_dir,
            mode=mode,
            options=self.options,
            platforms=self.options.platforms,
            content_root=loaded.content_root,
            priority=self._priority(node, direct),
            resolved_packages=(synthetic_root,),
        )

    @staticmethod
    def _detect_base(context: InstallationContext) -> InstallationContext:
        return replace(context, detected_base=context.content_root)

    @staticmethod
    def _scope_to_resource(context: InstallationContext, node: ResolutionNode) -> InstallationContext:
        """Narrow the install pattern to a declared sub-resource; best effort only."""
        resource_path = node.resource_path
        if not resource_path or context.detected_base is None:
            return context
        loaded = node.loaded
        repo_root = (loaded.source_metadata.get("repo_root") if loaded else None) or context.content_root
        try:
            pattern = compute_scoped_pattern(repo_root, context.detected_base, resource_path, context.matched_pattern)
            if pattern is None and not os.path.isabs(resource_path) and repo_root != context.detected_base:
                pattern = compute_scoped_pattern(
                    context.detected_base, context.detected_base, resource_path, context.matched_pattern
                )
        except (OSError, ValueError) as exc:
            if is_debug_enabled(logger):
                logger.debug(
                    "Resource scoping skipped",
                    extra=extra_context(
                        event="decision", component="planner", action="scope",
                        package=context.package_name, outcome="error", error=str(exc),
                    ),
                )
            return context
        if pattern is None:
            return context
        return replace(context, matched_pattern=pattern)


def installed_versions_from_index(packages: Mapping[str, object]) -> Dict[str, Optional[str]]:
    """``{name: version}`` view over index entries (anything with a ``version`` attribute)."""
    return {name: getattr(entry, "version", None) for name, entry in packages.items()}
