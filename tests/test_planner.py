"""Tests for the installation planner."""

import os

from constants import Constants, InstallMode, NodeState, SkipReason, SourceKind
from resolution.models import (
    DependencyDeclaration,
    DependencyGraph,
    LoadedPackage,
    PackageIdentity,
    ResolutionNode,
    ResolvedSource,
)
from resolution.planner import (
    InstallationPlanner,
    PlannerOptions,
    compute_scoped_pattern,
    installed_versions_from_index,
)
from workspace.index import WorkspaceIndexEntry


def _node(name, version="1.0.0", content_root="/pkgs", state=NodeState.RESOLVED, loaded=True, resource=None):
    source = ResolvedSource(kind=SourceKind.REGISTRY, name=name, version_range=None, resource_path=resource)
    return ResolutionNode(
        key=source.key(),
        identity=PackageIdentity(name=name, version=version, source_kind=SourceKind.REGISTRY),
        source=source,
        declarations=[DependencyDeclaration(name=name, version_range=None, source=source, requested_by="root")],
        loaded=LoadedPackage(package_name=name, version=version, content_root=content_root) if loaded else None,
        state=state,
    )


def _graph(nodes, roots):
    graph = DependencyGraph()
    for node in nodes:
        graph.nodes[node.key] = node
    graph.order_keys = [n.key for n in nodes]
    graph.roots = [n.key for n in roots]
    return graph


class TestCreatePlan:
    def test_contexts_in_installation_order(self, tmp_path):
        """One context per installable node, in order, with priorities by directness."""
        lib, app = _node("lib"), _node("app")
        app.add_dependency(lib.key)
        plan = InstallationPlanner(PlannerOptions(target_dir=str(tmp_path), platforms=("cursor",))).create_plan(
            _graph([lib, app], roots=[app])
        )
        assert [c.package_name for c in plan.contexts] == ["lib", "app"]
        assert [c.priority for c in plan.contexts] == [Constants.PRIORITY_TRANSITIVE, Constants.PRIORITY_DIRECT]
        assert all(c.mode is InstallMode.INSTALL for c in plan.contexts)
        assert plan.contexts[0].platforms == ("cursor",)
        assert plan.contexts[0].detected_base == "/pkgs"
        assert plan.estimated_operations == 2

    def test_skip_reasons(self, tmp_path):
        """Failed, unloaded and already-installed nodes are skipped with a reason."""
        nodes = [
            _node("broken", state=NodeState.FAILED),
            _node("unloaded", loaded=False),
            _node("same", version="1.0.0"),
            _node("newer", version="2.0.0"),
        ]
        planner = InstallationPlanner(
            PlannerOptions(target_dir=str(tmp_path)),
            installed_versions={"same": "1.0.0", "newer": "1.0.0"},
        )
        plan = planner.create_plan(_graph(nodes, roots=nodes))
        reasons = {s.identity.name: s.reason for s in plan.skipped}
        assert reasons == {
            "broken": SkipReason.FAILED,
            "unloaded": SkipReason.NOT_LOADED,
            "same": SkipReason.ALREADY_INSTALLED,
        }
        assert [(c.package_name, c.mode) for c in plan.contexts] == [("newer", InstallMode.APPLY)]

    def test_force_reinstalls(self, tmp_path):
        node = _node("same")
        planner = InstallationPlanner(PlannerOptions(target_dir=str(tmp_path), force=True), {"same": "1.0.0"})
        plan = planner.create_plan(_graph([node], roots=[node]))
        assert plan.skipped == []
        assert plan.contexts[0].mode is InstallMode.APPLY

    def test_priority_override(self, tmp_path):
        node = _node("lib")
        options = PlannerOptions(target_dir=str(tmp_path), priorities={"lib": 7})
        plan = InstallationPlanner(options).create_plan(_graph([node], roots=[node]))
        assert plan.contexts[0].priority == 7

    def test_children_of_synthetic_root_are_direct(self, tmp_path):
        lib = _node("lib")
        root = _node("ws")
        root.is_root = True
        root.add_dependency(lib.key)
        plan = InstallationPlanner(PlannerOptions(target_dir=str(tmp_path))).create_plan(
            _graph([lib, root], roots=[root])
        )
        assert plan.contexts[0].priority == Constants.PRIORITY_DIRECT

    def test_resource_scoping(self, tmp_path):
        """A declared sub-resource narrows the context's pattern."""
        (tmp_path / "pkg" / "rules").mkdir(parents=True)
        node = _node("lib", content_root=str(tmp_path / "pkg"), resource="rules")
        plan = InstallationPlanner(PlannerOptions(target_dir=str(tmp_path))).create_plan(_graph([node], roots=[node]))
        assert plan.contexts[0].matched_pattern == "rules/**"

    def test_missing_resource_leaves_pattern(self, tmp_path):
        (tmp_path / "pkg").mkdir()
        node = _node("lib", content_root=str(tmp_path / "pkg"), resource="nope.md")
        plan = InstallationPlanner(PlannerOptions(target_dir=str(tmp_path))).create_plan(_graph([node], roots=[node]))
        assert plan.contexts[0].matched_pattern is None


class TestScopedPattern:
    def test_file_and_directory(self, tmp_path):
        (tmp_path / "rules").mkdir()
        (tmp_path / "rules" / "a.md").write_text("a")
        root = str(tmp_path)
        assert compute_scoped_pattern(root, root, "rules") == "rules/**"
        assert compute_scoped_pattern(root, root, "rules/a.md") == "rules/a.md"

    def test_outside_base(self, tmp_path):
        (tmp_path / "other").mkdir()
        base = tmp_path / "base"
        base.mkdir()
        assert compute_scoped_pattern(str(tmp_path), str(base), "other") is None

    def test_more_specific_replaces_glob(self, tmp_path):
        (tmp_path / "rules" / "deep").mkdir(parents=True)
        root = str(tmp_path)
        assert compute_scoped_pattern(root, root, os.path.join("rules", "deep"), "rules/**") == "rules/deep/**"
        assert compute_scoped_pattern(root, root, "rules", "rules/deep/**") is None


def test_installed_versions_from_index():
    entries = {"a": WorkspaceIndexEntry("a", "registry:a", version="1.0.0"), "b": WorkspaceIndexEntry("b", "/b")}
    assert installed_versions_from_index(entries) == {"a": "1.0.0", "b": None}
