"""Tests for the dependents tree and dangling-dependency detection."""

from resolution.dependency_tree import (
    build_dependency_tree,
    find_dangling_dependencies,
    get_all_dependencies,
)


class TestDependencyTree:
    def test_edges_are_symmetric(self):
        """Every dependency edge has a matching dependent edge."""
        tree = build_dependency_tree({"app": ["lib", "Util"], "lib": ["util"]})
        assert tree["app"].dependencies == {"lib", "util"}
        assert tree["util"].dependents == {"app", "lib"}
        for name, node in tree.items():
            for dep in node.dependencies:
                assert name in tree[dep].dependents

    def test_self_edge_ignored(self):
        tree = build_dependency_tree({"a": ["a"]})
        assert tree["a"].dependencies == set()

    def test_all_dependencies_survive_cycles(self):
        """Transitive walk terminates on cycles and excludes the start."""
        tree = build_dependency_tree({"a": ["b"], "b": ["c"], "c": ["a"]})
        assert get_all_dependencies("a", tree) == {"b", "c"}

    def test_unknown_package(self):
        assert get_all_dependencies("ghost", build_dependency_tree({})) == set()


class TestDangling:
    def test_chain_found_to_fixpoint(self):
        """A chain only the target reaches is dangling all the way down."""
        tree = build_dependency_tree({"app": ["a"], "a": ["b"], "b": ["c"]})
        assert find_dangling_dependencies("app", tree) == {"a", "b", "c"}

    def test_shared_dependency_kept(self):
        """A dependency with another live dependent is not dangling."""
        tree = build_dependency_tree({"app": ["lib", "shared"], "tool": ["shared"]})
        assert find_dangling_dependencies("app", tree) == {"lib"}

    def test_shared_only_with_removed_package(self):
        """Dependents that are being removed do not keep a package alive."""
        tree = build_dependency_tree({"app": ["lib", "shared"], "lib": ["shared"]})
        assert find_dangling_dependencies("app", tree) == {"lib", "shared"}

    def test_protected_never_dangling(self):
        """Packages declared by the workspace manifest stay, and so do their dependencies."""
        tree = build_dependency_tree({"app": ["pinned"], "pinned": ["inner"]}, protected=["pinned"])
        assert find_dangling_dependencies("app", tree) == set()

    def test_result_excludes_target(self):
        tree = build_dependency_tree({"a": ["b"], "b": ["a"]})
        assert find_dangling_dependencies("a", tree) == {"b"}
