"""Data models for dependency resolution and installation planning."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from constants import NodeState, SourceKind
from versioning.models import VersionSolution
from versioning.parser import normalize_package_name


@dataclass(frozen=True)
class PackageIdentity:
    """Name, version and source kind of a resolved package."""
    name: str
    version: Optional[str]
    source_kind: SourceKind

    @property
    def normalized_name(self) -> str:
        """Name used to decide whether two identities are the same package."""
        return normalize_package_name(self.name)

    def same_package(self, other: "PackageIdentity") -> bool:
        """Equal normalized names mean the same package, whatever the source kind."""
        return self.normalized_name == other.normalized_name

    def __str__(self) -> str:
        return f"{self.name}@{self.version}" if self.version else self.name


@dataclass(frozen=True)
class ResolvedSource:
    """Where a declared dependency is fetched from.

    Only the fields that belong to ``kind`` are set: ``path`` for path and
    workspace sources, ``url``/``ref``/``subpath`` for git, ``version_range``
    for the registry. ``resource_path`` narrows the install to one file or
    directory inside the package.
    """
    kind: SourceKind
    name: str
    version_range: Optional[str] = None
    path: Optional[str] = None
    url: Optional[str] = None
    ref: Optional[str] = None
    subpath: Optional[str] = None
    resource_path: Optional[str] = None

    def key(self) -> str:
        """Stable node key; declarations with the same key share one node."""
        if self.kind is SourceKind.REGISTRY:
            return f"registry:{normalize_package_name(self.name)}"
        if self.kind is SourceKind.WORKSPACE:
            return f"workspace:{normalize_package_name(self.name)}"
        if self.kind is SourceKind.PATH:
            return f"path:{os.path.abspath(self.path or '')}"
        if self.kind is SourceKind.GIT:
            return f"git:{self.url}#{self.ref or ''}:{self.subpath or ''}"
        raise ValueError(f"Unsupported source kind: {self.kind}")

    def describe(self) -> str:
        """Short human-independent locator stored in the provenance index."""
        if self.kind is SourceKind.REGISTRY:
            return f"registry:{self.name}"
        if self.kind in (SourceKind.PATH, SourceKind.WORKSPACE):
            return self.path or self.name
        if self.kind is SourceKind.GIT:
            locator = f"{self.url}#{self.ref}" if self.ref else str(self.url)
            return f"{locator}:{self.subpath}" if self.subpath else locator
        raise ValueError(f"Unsupported source kind: {self.kind}")


@dataclass(frozen=True)
class DependencyDeclaration:
    """One dependency as written in a manifest."""
    name: str
    version_range: Optional[str]
    source: ResolvedSource
    requested_by: str
    depth: int = 0
    is_dev: bool = False

    @property
    def normalized_name(self) -> str:
        return normalize_package_name(self.name)


@dataclass
class LoadedPackage:
    """What a source loader hands back for one package."""
    package_name: str
    version: Optional[str]
    content_root: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    plugin_metadata: Optional[Dict[str, Any]] = None
    source_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ResolutionNode:
    """A package in the dependency graph and every declaration pointing at it."""
    key: str
    identity: PackageIdentity
    source: ResolvedSource
    declarations: List[DependencyDeclaration] = field(default_factory=list)
    loaded: Optional[LoadedPackage] = None
    state: NodeState = NodeState.PENDING
    error: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    dependents: List[str] = field(default_factory=list)
    depth: int = 0
    is_root: bool = False

    @property
    def name(self) -> str:
        return self.identity.normalized_name

    @property
    def resource_path(self) -> Optional[str]:
        """Sub-resource to scope the install to.

        None as soon as any declaration asks for the whole package.
        """
        paths = [d.source.resource_path for d in self.declarations]
        if not paths or any(p is None for p in paths):
            return None
        return paths[0]

    def add_dependency(self, key: str) -> None:
        if key not in self.dependencies:
            self.dependencies.append(key)

    def add_dependent(self, key: str) -> None:
        if key not in self.dependents:
            self.dependents.append(key)


@dataclass
class DependencyGraph:
    """Resolved graph plus its topological installation order.

    ``order_keys`` lists node keys with dependencies before dependents; every
    key in it has a node in ``nodes``.
    """
    nodes: Dict[str, ResolutionNode] = field(default_factory=dict)
    roots: List[str] = field(default_factory=list)
    order_keys: List[str] = field(default_factory=list)
    cycles: List[List[str]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    solution: Optional[VersionSolution] = None
    protected: List[str] = field(default_factory=list)

    @property
    def installation_order(self) -> List[PackageIdentity]:
        return [self.nodes[key].identity for key in self.order_keys]

    def ordered_nodes(self) -> List[ResolutionNode]:
        return [self.nodes[key] for key in self.order_keys]

    def find(self, name: str) -> Optional[ResolutionNode]:
        """First node (in installation order) whose package name matches."""
        wanted = normalize_package_name(name)
        for node in self.ordered_nodes():
            if node.name == wanted:
                return node
        return None

    def dependency_names(self, key: str) -> List[str]:
        """Package names of a node's direct dependencies."""
        node = self.nodes[key]
        return [self.nodes[k].name for k in node.dependencies if k in self.nodes]
