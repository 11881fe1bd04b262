"""Tests for the package manifest reader."""

import os

import pytest

from constants import SourceKind
from common.errors import ManifestError
from sources.manifest import declaration_from_entry, read_declarations, read_manifest


class TestReadManifest:
    def test_missing(self, tmp_path):
        assert read_manifest(str(tmp_path)) is None
        assert read_declarations(str(tmp_path), requested_by="x") == []

    def test_fields(self, tmp_path):
        (tmp_path / "packweave.yml").write_text("name: demo\nversion: 1.2.0\ndependencies:\n  - lib@^1.0.0\n")
        manifest = read_manifest(str(tmp_path))
        assert manifest.name == "demo"
        assert manifest.version == "1.2.0"
        assert manifest.dependencies == ["lib@^1.0.0"]

    @pytest.mark.parametrize(
        "content",
        ["- a\n- b\n", "dependencies: lib\n", "name: [unclosed\n"],
    )
    def test_invalid(self, tmp_path, content):
        (tmp_path / "packweave.yml").write_text(content)
        with pytest.raises(ManifestError):
            read_manifest(str(tmp_path))

    def test_dev_dependencies_opt_in(self, tmp_path):
        (tmp_path / "packweave.yml").write_text("dependencies:\n  - a\ndev-dependencies:\n  - b\n")
        assert [d.name for d in read_declarations(str(tmp_path), "x")] == ["a"]
        declarations = read_declarations(str(tmp_path), "x", include_dev=True)
        assert [(d.name, d.is_dev) for d in declarations] == [("a", False), ("b", True)]


class TestDeclarationFromEntry:
    def test_registry_token(self, tmp_path):
        decl = declaration_from_entry("@scope/pkg@^2.0.0", str(tmp_path), requested_by="root", depth=1)
        assert decl.name == "@scope/pkg"
        assert decl.version_range == "^2.0.0"
        assert decl.source.kind is SourceKind.REGISTRY
        assert decl.depth == 1

    def test_relative_path(self, tmp_path):
        decl = declaration_from_entry({"path": "../rules"}, str(tmp_path / "app"), requested_by="root")
        assert decl.name == "rules"
        assert decl.source.kind is SourceKind.PATH
        assert decl.source.path == os.path.normpath(str(tmp_path / "rules"))

    def test_git_url_with_ref(self, tmp_path):
        decl = declaration_from_entry(
            {"url": "https://example.com/org/shared.git#v2", "subpath": "pkg", "resource": "rules/a.md"},
            str(tmp_path),
            requested_by="root",
        )
        assert decl.name == "shared"
        assert decl.source.kind is SourceKind.GIT
        assert decl.source.url == "https://example.com/org/shared.git"
        assert decl.source.ref == "v2"
        assert decl.source.subpath == "pkg"
        assert decl.source.resource_path == "rules/a.md"

    def test_no_name_or_source(self, tmp_path):
        with pytest.raises(ManifestError):
            declaration_from_entry({"version": "1.0.0"}, str(tmp_path), requested_by="root")

    def test_bad_range(self, tmp_path):
        with pytest.raises(ManifestError):
            declaration_from_entry("lib@not-a-range!!", str(tmp_path), requested_by="root")

    def test_wildcards_accepted(self, tmp_path):
        for token in ("lib", "lib@*", "lib@latest"):
            assert declaration_from_entry(token, str(tmp_path), requested_by="root").name == "lib"
