"""Dependency graph builder.

Walks manifests from a set of root declarations, loading each package
through the source loaders and feeding registry ranges into a
VersionSolver. Resolution runs in waves: the first wave loads each registry
package at the best version known at the time; when the solved versions
differ from what was loaded, the walk is repeated with those versions
pinned until the two agree.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from constants import Constants, NodeState, SourceKind
from common.errors import SourceLoadError
from common.logging_utils import Timer, extra_context, is_debug_enabled
from resolution.models import (
    DependencyDeclaration,
    DependencyGraph,
    LoadedPackage,
    PackageIdentity,
    ResolutionNode,
    ResolvedSource,
)
from sources.base import SourceLoaderRegistry
from sources.manifest import read_declarations, read_manifest
from versioning.models import VersionSolution
from versioning.parser import is_wildcard_range, normalize_package_name
from versioning.solver import ConflictCallback, VersionSolver

logger = logging.getLogger(__name__)

ManifestReader = Callable[..., List[DependencyDeclaration]]


@dataclass
class GraphBuildOptions:
    """Knobs for one graph build."""
    target_dir: str
    max_depth: int = Constants.MAX_DEPENDENCY_DEPTH
    max_waves: int = Constants.MAX_RESOLUTION_WAVES
    max_concurrency: int = Constants.MAX_CONCURRENCY
    include_root: bool = False
    include_dev: bool = False
    force: bool = False
    on_conflict: Optional[ConflictCallback] = None
    global_constraints: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class _WaveState:
    solver: VersionSolver
    nodes: Dict[str, ResolutionNode] = field(default_factory=dict)
    cycles: List[List[str]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    global_added: Set[str] = field(default_factory=set)


class DependencyGraphBuilder:
    """Builds a DependencyGraph from root declarations."""

    def __init__(
        self,
        loaders: SourceLoaderRegistry,
        options: GraphBuildOptions,
        manifest_reader: ManifestReader = read_declarations,
    ):
        self.loaders = loaders
        self.options = options
        self.manifest_reader = manifest_reader
        self._version_lists: Dict[str, List[str]] = {}
        self._conflict_choices: Dict[Tuple[str, Tuple[str, ...]], Optional[str]] = {}

    # -- entry points -----------------------------------------------------

    def build_for_workspace(self) -> DependencyGraph:
        """Graph for every dependency declared by the workspace manifest."""
        workspace_dir = os.path.join(self.options.target_dir, Constants.WORKSPACE_DIR)
        manifest = read_manifest(workspace_dir)
        root_label = (manifest.name if manifest and manifest.name else None) or os.path.basename(
            os.path.abspath(self.options.target_dir)
        )
        declarations = self.manifest_reader(
            workspace_dir,
            requested_by=root_label,
            depth=0,
            include_dev=self.options.include_dev,
            base_dir=self.options.target_dir,
        )
        return self.build(declarations, root_label=root_label, fail_on_root_error=False)

    def build_for_package(
        self,
        name: str,
        version: Optional[str] = None,
        source: Optional[ResolvedSource] = None,
    ) -> DependencyGraph:
        """Graph rooted at a single package; a root load failure raises."""
        source = source or ResolvedSource(kind=SourceKind.REGISTRY, name=name, version_range=version)
        declaration = DependencyDeclaration(
            name=name, version_range=version, source=source, requested_by="root", depth=0
        )
        return self.build([declaration], root_label=name, fail_on_root_error=True)

    def build(
        self,
        root_declarations: List[DependencyDeclaration],
        root_label: str = "root",
        fail_on_root_error: bool = False,
    ) -> DependencyGraph:
        """Run resolution waves until loaded versions match solved versions.

        Raises:
            SourceLoadError: when ``fail_on_root_error`` and a root fails to load.
            ResolutionAborted: when the conflict callback cancels.
        """
        root_overrides = {
            d.normalized_name: d.version_range
            for d in root_declarations
            if not is_wildcard_range(d.version_range)
        }
        pins: Dict[str, str] = {}
        state: Optional[_WaveState] = None
        solution = VersionSolution()

        with Timer() as t:
            for wave in range(1, max(1, self.options.max_waves) + 1):
                state = _WaveState(solver=VersionSolver())
                self._prefetch_versions(root_declarations)
                for declaration in root_declarations:
                    self._discover(declaration, state, [], None, pins, root_overrides, fail_on_root_error)

                solution = state.solver.solve(force=self.options.force, on_conflict=self._on_conflict)
                mismatched = self._mismatched(state, solution)
                if is_debug_enabled(logger):
                    logger.debug(
                        "Resolution wave finished",
                        extra=extra_context(
                            event="decision", component="graph_builder", action="wave",
                            wave=wave, nodes=len(state.nodes), mismatched=len(mismatched),
                        ),
                    )
                if not mismatched:
                    break
                if wave == self.options.max_waves:
                    state.warnings.append(
                        f"Resolution did not settle after {wave} waves: {', '.join(sorted(mismatched))}"
                    )
                    break
                pins = dict(solution.resolved)

        assert state is not None
        graph = self._assemble(state, solution, root_declarations, root_label)
        for warning in graph.warnings:
            logger.warning(warning)
        if is_debug_enabled(logger):
            logger.debug(
                "Graph built",
                extra=extra_context(
                    event="function_exit", component="graph_builder", action="build",
                    outcome="success", nodes=len(graph.nodes), duration_ms=t.duration_ms(),
                ),
            )
        return graph

    # -- discovery --------------------------------------------------------

    def _effective_source(self, declaration: DependencyDeclaration) -> ResolvedSource:
        """Registry declarations resolve to a workspace copy when one exists."""
        source = declaration.source
        if source.kind is SourceKind.REGISTRY:
            workspace_dir = os.path.join(
                self.options.target_dir,
                Constants.WORKSPACE_DIR,
                Constants.WORKSPACE_PACKAGES_DIR,
                declaration.name,
            )
            if os.path.isdir(workspace_dir):
                return ResolvedSource(
                    kind=SourceKind.WORKSPACE,
                    name=declaration.name,
                    path=workspace_dir,
                    resource_path=source.resource_path,
                )
        return source

    def _add_constraints(
        self,
        declaration: DependencyDeclaration,
        state: _WaveState,
        root_overrides: Dict[str, Optional[str]],
    ) -> None:
        name = declaration.normalized_name
        if name in root_overrides:
            if declaration.depth == 0:
                state.solver.add_constraint(name, declaration.version_range, declaration.requested_by)
            return
        global_ranges = self.options.global_constraints.get(name)
        if global_ranges:
            if name not in state.global_added:
                state.global_added.add(name)
                for range_str in global_ranges:
                    state.solver.add_constraint(name, range_str, "global")
            return
        state.solver.add_constraint(name, declaration.version_range, declaration.requested_by)

    def _discover(
        self,
        declaration: DependencyDeclaration,
        state: _WaveState,
        stack: List[str],
        parent: Optional[ResolutionNode],
        pins: Dict[str, str],
        root_overrides: Dict[str, Optional[str]],
        fail_on_root_error: bool,
    ) -> Optional[ResolutionNode]:
        name = declaration.normalized_name
        depth = len(stack)

        if depth > self.options.max_depth:
            state.warnings.append(
                f"Skipping {name}: dependency depth {depth} exceeds {self.options.max_depth}"
            )
            return None
        if name in stack:
            cycle = stack[stack.index(name):] + [name]
            state.cycles.append(cycle)
            state.warnings.append(f"Dependency cycle skipped: {' -> '.join(cycle)}")
            return None

        source = self._effective_source(declaration)
        if source.kind is SourceKind.REGISTRY:
            self._add_constraints(declaration, state, root_overrides)

        key = source.key()
        node = state.nodes.get(key)
        if node is not None:
            node.declarations.append(declaration)
            self._link(parent, node)
            return node

        node = ResolutionNode(
            key=key,
            identity=PackageIdentity(name=declaration.name, version=None, source_kind=source.kind),
            source=source,
            declarations=[declaration],
            depth=depth,
        )
        state.nodes[key] = node
        self._link(parent, node)

        version: Optional[str] = None
        if source.kind is SourceKind.REGISTRY:
            state.solver.add_available_versions(name, self._version_lists.get(name, []))
            version = pins.get(name) or state.solver.best_candidate(name)
            if version is None:
                self._fail(node, "no versions available", state)
                if depth == 0 and fail_on_root_error:
                    raise SourceLoadError(declaration.name, "no versions available")
                return node

        node.state = NodeState.LOADING
        try:
            loaded = self.loaders.load(source, version)
        except SourceLoadError as exc:
            self._fail(node, str(exc), state)
            if depth == 0 and fail_on_root_error:
                raise
            return node

        self._mark_loaded(node, loaded, version)
        children = self.manifest_reader(
            loaded.content_root,
            requested_by=str(node.identity),
            depth=depth + 1,
            include_dev=False,
        )
        self._prefetch_versions(children)
        for child in children:
            self._discover(child, state, stack + [name], node, pins, root_overrides, fail_on_root_error)
        return node

    @staticmethod
    def _link(parent: Optional[ResolutionNode], child: ResolutionNode) -> None:
        if parent is None:
            return
        parent.add_dependency(child.key)
        child.add_dependent(parent.key)

    @staticmethod
    def _fail(node: ResolutionNode, message: str, state: _WaveState) -> None:
        node.state = NodeState.FAILED
        node.error = message
        state.warnings.append(f"Failed to load {node.identity.name}: {message}")

    @staticmethod
    def _mark_loaded(node: ResolutionNode, loaded: LoadedPackage, version: Optional[str]) -> None:
        node.loaded = loaded
        # local sources are named by their own manifest, registry ones by the request
        name = node.identity.name
        if node.source.kind is not SourceKind.REGISTRY and loaded.package_name:
            name = loaded.package_name
        node.identity = PackageIdentity(
            name=name,
            version=version or loaded.version,
            source_kind=node.source.kind,
        )
        node.state = NodeState.RESOLVED

    # -- versions ---------------------------------------------------------

    def _fetch_versions(self, name: str) -> List[str]:
        try:
            return self.loaders.list_versions(name)
        except SourceLoadError as exc:
            logger.warning("Could not list versions of %s: %s", name, exc)
            return []

    def _prefetch_versions(self, declarations: List[DependencyDeclaration]) -> None:
        """Fetch version listings for registry declarations concurrently.

        Results are stored per name, so the order in which fetches finish
        never reaches the solver.
        """
        names = sorted({
            d.normalized_name for d in declarations
            if self._effective_source(d).kind is SourceKind.REGISTRY
            and d.normalized_name not in self._version_lists
        })
        if not names:
            return
        workers = max(1, min(self.options.max_concurrency, len(names)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(self._fetch_versions, names))
        for name, versions in zip(names, results):
            self._version_lists[name] = sorted(versions)

    def _on_conflict(
        self,
        name: str,
        ranges: List[str],
        requested_by: List[str],
        available: List[str],
    ) -> Optional[str]:
        """Ask the caller once per distinct conflict, even across waves."""
        callback = self.options.on_conflict
        if callback is None:
            return None
        key = (name, tuple(ranges))
        if key not in self._conflict_choices:
            self._conflict_choices[key] = callback(name, ranges, requested_by, available)
        return self._conflict_choices[key]

    @staticmethod
    def _mismatched(state: _WaveState, solution: VersionSolution) -> Dict[str, str]:
        mismatched: Dict[str, str] = {}
        for node in state.nodes.values():
            if node.source.kind is not SourceKind.REGISTRY or node.state is not NodeState.RESOLVED:
                continue
            resolved = solution.resolved.get(node.name)
            if resolved is not None and resolved != node.identity.version:
                mismatched[node.name] = resolved
        return mismatched

    # -- assembly ---------------------------------------------------------

    def _assemble(
        self,
        state: _WaveState,
        solution: VersionSolution,
        root_declarations: List[DependencyDeclaration],
        root_label: str,
    ) -> DependencyGraph:
        graph = DependencyGraph(
            nodes=state.nodes,
            cycles=state.cycles,
            warnings=list(state.warnings),
            solution=solution,
            protected=sorted({d.normalized_name for d in root_declarations}),
        )

        unresolved = {c.package_name for c in solution.unresolved}
        for node in state.nodes.values():
            if node.source.kind is SourceKind.REGISTRY and node.name in unresolved and node.state is NodeState.RESOLVED:
                node.state = NodeState.FAILED
                node.error = "unresolved version conflict"

        root_keys: List[str] = []
        for declaration in root_declarations:
            key = self._effective_source(declaration).key()
            if key in state.nodes and key not in root_keys:
                root_keys.append(key)

        if self.options.include_root:
            root_key = f"root:{os.path.abspath(self.options.target_dir)}"
            workspace_dir = os.path.join(self.options.target_dir, Constants.WORKSPACE_DIR)
            root_node = ResolutionNode(
                key=root_key,
                identity=PackageIdentity(name=root_label, version=None, source_kind=SourceKind.WORKSPACE),
                source=ResolvedSource(kind=SourceKind.WORKSPACE, name=root_label, path=workspace_dir),
                state=NodeState.RESOLVED,
                is_root=True,
                loaded=LoadedPackage(
                    package_name=root_label,
                    version=None,
                    content_root=os.path.abspath(workspace_dir),
                    source_metadata={"workspace": True},
                ),
            )
            for key in root_keys:
                self._link(root_node, state.nodes[key])
            graph.nodes[root_key] = root_node
            root_keys = [root_key]

        graph.roots = root_keys
        graph.order_keys = self._installation_order(graph)
        return graph

    @staticmethod
    def _installation_order(graph: DependencyGraph) -> List[str]:
        """Post-order walk from the roots: dependencies before dependents."""
        order: List[str] = []
        visited: Set[str] = set()

        def _visit(key: str) -> None:
            if key in visited or key not in graph.nodes:
                return
            visited.add(key)
            for dep in graph.nodes[key].dependencies:
                _visit(dep)
            order.append(key)

        for key in graph.roots:
            _visit(key)
        for key in sorted(graph.nodes):
            _visit(key)
        return order


def normalize_constraints(pairs: List[Tuple[str, str]]) -> Dict[str, List[str]]:
    """Group ``(name, range)`` pairs into the global-constraints mapping."""
    grouped: Dict[str, List[str]] = {}
    for name, range_str in pairs:
        if is_wildcard_range(range_str):
            continue
        grouped.setdefault(normalize_package_name(name), []).append(range_str.strip())
    return grouped
