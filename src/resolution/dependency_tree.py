"""Dependents tree and the dangling-dependency query used by uninstall."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Set

from resolution.models import DependencyGraph
from versioning.parser import normalize_package_name


@dataclass
class DependencyTreeNode:
    """Dependencies and dependents of one installed package."""
    name: str
    dependencies: Set[str] = field(default_factory=set)
    dependents: Set[str] = field(default_factory=set)
    is_protected: bool = False


def build_dependency_tree(
    dependencies: Mapping[str, Iterable[str]],
    protected: Iterable[str] = (),
) -> Dict[str, DependencyTreeNode]:
    """Build a tree from ``{package: [dependency names]}``.

    Dependents are derived so the two edge sets stay symmetric. Names in
    ``protected`` (declared by the workspace manifest) are never reported as
    dangling.
    """
    protected_names = {normalize_package_name(p) for p in protected}
    tree: Dict[str, DependencyTreeNode] = {}

    def _node(name: str) -> DependencyTreeNode:
        key = normalize_package_name(name)
        if key not in tree:
            tree[key] = DependencyTreeNode(name=key, is_protected=key in protected_names)
        return tree[key]

    for package, deps in dependencies.items():
        parent = _node(package)
        for dep in deps or ():
            child = _node(dep)
            if child.name == parent.name:
                continue
            parent.dependencies.add(child.name)
            child.dependents.add(parent.name)
    return tree


def tree_from_graph(graph: DependencyGraph, protected: Iterable[str] = ()) -> Dict[str, DependencyTreeNode]:
    """Dependency tree for the packages of a resolved graph."""
    edges: Dict[str, Set[str]] = {}
    for key, node in graph.nodes.items():
        if node.is_root:
            continue
        edges.setdefault(node.name, set()).update(
            graph.nodes[k].name for k in node.dependencies if k in graph.nodes and not graph.nodes[k].is_root
        )
    return build_dependency_tree(edges, protected)


def get_all_dependencies(
    name: str,
    tree: Mapping[str, DependencyTreeNode],
    visited: Optional[Set[str]] = None,
) -> Set[str]:
    """Every transitive dependency of ``name`` (not including itself)."""
    visited = visited if visited is not None else set()
    root = normalize_package_name(name)
    node = tree.get(root)
    if node is None:
        return set()
    found: Set[str] = set()
    for dep in sorted(node.dependencies):
        if dep in visited or dep == root:
            continue
        visited.add(dep)
        found.add(dep)
        found.update(get_all_dependencies(dep, tree, visited))
    found.discard(root)
    return found


def find_dangling_dependencies(target: str, tree: Mapping[str, DependencyTreeNode]) -> Set[str]:
    """Dependencies that become orphaned when ``target`` is removed.

    A dependency qualifies when it is not protected and every one of its
    dependents is either the target or itself being removed. Evaluated to a
    fixpoint so whole orphaned chains are found.
    """
    root = normalize_package_name(target)
    candidates = get_all_dependencies(root, tree)
    removed: Set[str] = {root}
    dangling: Set[str] = set()

    changed = True
    while changed:
        changed = False
        for dep in sorted(candidates - dangling):
            node = tree.get(dep)
            if node is None or node.is_protected:
                continue
            if all(parent in removed for parent in node.dependents):
                dangling.add(dep)
                removed.add(dep)
                changed = True
    return dangling
