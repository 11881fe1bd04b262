"""Package manifest reader.

A manifest is a YAML file (``packweave.yml``) at the package root::

    name: demo
    version: 1.0.0
    dependencies:
      - lib@^1.2.0
      - name: local-rules
        path: ../rules
      - name: shared
        url: https://example.com/shared.git#v2
        subpath: packages/shared
        resource: rules/security.md
    dev-dependencies: []
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from constants import Constants, SourceKind
from common.errors import ManifestError
from resolution.models import DependencyDeclaration, ResolvedSource
from versioning.parser import is_valid_range, is_wildcard_range, tokenize_package_token

logger = logging.getLogger(__name__)


@dataclass
class PackageManifest:
    """Parsed manifest contents."""
    path: str
    name: Optional[str] = None
    version: Optional[str] = None
    dependencies: List[Any] = field(default_factory=list)
    dev_dependencies: List[Any] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)


def manifest_path(directory: str) -> str:
    return os.path.join(directory, Constants.MANIFEST_FILE)


def read_manifest(directory: str) -> Optional[PackageManifest]:
    """Read the manifest in ``directory``.

    Returns:
        The manifest, or None when the directory has none.

    Raises:
        ManifestError: when the file exists but is not a valid manifest.
    """
    path = manifest_path(directory)
    if not os.path.isfile(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ManifestError(path, f"invalid YAML: {exc}") from exc
    except OSError as exc:
        raise ManifestError(path, f"cannot read manifest: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError(path, "manifest must be a mapping")

    deps = data.get("dependencies") or []
    dev_deps = data.get("dev-dependencies") or []
    if not isinstance(deps, list) or not isinstance(dev_deps, list):
        raise ManifestError(path, "dependencies must be lists")

    version = data.get("version")
    return PackageManifest(
        path=path,
        name=str(data["name"]).strip() if data.get("name") else None,
        version=str(version).strip() if version is not None else None,
        dependencies=deps,
        dev_dependencies=dev_deps,
        raw=data,
    )


def _split_git_url(url: str) -> tuple:
    if "#" in url:
        base, ref = url.split("#", 1)
        return base, (ref or None)
    return url, None


def _name_from_locator(locator: str) -> str:
    tail = locator.rstrip("/").rsplit("/", 1)[-1]
    return tail[:-4] if tail.endswith(".git") else tail


def declaration_from_entry(
    entry: Any,
    base_dir: str,
    requested_by: str,
    depth: int = 0,
    is_dev: bool = False,
    manifest_file: str = "<manifest>",
) -> DependencyDeclaration:
    """Turn one manifest dependency entry into a declaration.

    ``url`` means git, ``path`` means a local directory (relative to
    ``base_dir``), anything else is a registry package.

    Raises:
        ManifestError: for entries with no name and no source, or an
            unparseable version range.
    """
    if isinstance(entry, str):
        name, version_range = tokenize_package_token(entry)
        entry = {"name": name, "version": version_range}
    if not isinstance(entry, dict):
        raise ManifestError(manifest_file, f"dependency entry must be a string or mapping: {entry!r}")

    name = str(entry.get("name") or "").strip()
    version_range = entry.get("version")
    version_range = str(version_range).strip() if version_range is not None else None
    url = entry.get("url") or entry.get("git")
    path = entry.get("path")
    resource = entry.get("resource")

    if not name:
        if url:
            name = _name_from_locator(_split_git_url(str(url))[0])
        elif path:
            name = _name_from_locator(str(path))
        else:
            raise ManifestError(manifest_file, "dependency has neither a name nor a path/url")

    if not is_wildcard_range(version_range) and not is_valid_range(version_range):
        raise ManifestError(manifest_file, f"invalid version range '{version_range}' for {name}")

    if url:
        git_url, ref = _split_git_url(str(url))
        source = ResolvedSource(
            kind=SourceKind.GIT,
            name=name,
            url=git_url,
            ref=entry.get("ref") or ref,
            subpath=entry.get("subpath"),
            resource_path=resource,
        )
    elif path:
        expanded = os.path.expanduser(str(path))
        if not os.path.isabs(expanded):
            expanded = os.path.join(base_dir, expanded)
        source = ResolvedSource(
            kind=SourceKind.PATH,
            name=name,
            path=os.path.normpath(expanded),
            resource_path=resource,
        )
    else:
        source = ResolvedSource(
            kind=SourceKind.REGISTRY,
            name=name,
            version_range=version_range,
            resource_path=resource,
        )

    return DependencyDeclaration(
        name=name,
        version_range=version_range,
        source=source,
        requested_by=requested_by,
        depth=depth,
        is_dev=is_dev,
    )


def read_declarations(
    directory: str,
    requested_by: str,
    depth: int = 0,
    include_dev: bool = False,
    base_dir: Optional[str] = None,
) -> List[DependencyDeclaration]:
    """Declarations from the manifest in ``directory`` ([] when there is none)."""
    manifest = read_manifest(directory)
    if manifest is None:
        return []
    base = base_dir or directory
    declarations = [
        declaration_from_entry(e, base, requested_by, depth, False, manifest.path)
        for e in manifest.dependencies
    ]
    if include_dev:
        declarations.extend(
            declaration_from_entry(e, base, requested_by, depth, True, manifest.path)
            for e in manifest.dev_dependencies
        )
    return declarations
