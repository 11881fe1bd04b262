"""Loaders for packages that already sit on the local filesystem."""

from __future__ import annotations

import logging
import os
from typing import Optional

from constants import Constants, SourceKind
from common.errors import SourceLoadError
from resolution.models import LoadedPackage, ResolvedSource
from sources.base import SourceLoader
from sources.manifest import read_manifest

logger = logging.getLogger(__name__)


def load_directory(directory: str, fallback_name: str, source_metadata: Optional[dict] = None) -> LoadedPackage:
    """Build a LoadedPackage from a package directory and its manifest.

    Raises:
        SourceLoadError: when the directory does not exist.
    """
    if not os.path.isdir(directory):
        raise SourceLoadError(fallback_name, f"package directory not found: {directory}")
    manifest = read_manifest(directory)
    name = (manifest.name if manifest and manifest.name else fallback_name)
    return LoadedPackage(
        package_name=name,
        version=manifest.version if manifest else None,
        content_root=os.path.abspath(directory),
        metadata=manifest.raw if manifest else {},
        source_metadata=dict(source_metadata or {}),
    )


class PathSourceLoader(SourceLoader):
    """Local directory dependencies (``path:`` entries)."""

    @property
    def kind(self) -> SourceKind:
        return SourceKind.PATH

    def load(self, source: ResolvedSource, version: Optional[str] = None) -> LoadedPackage:
        if not source.path:
            raise SourceLoadError(source.name, "path source without a path")
        return load_directory(source.path, source.name, {"path": source.path})


class WorkspaceSourceLoader(SourceLoader):
    """Packages developed inside the workspace under ``.packweave/packages/<name>``."""

    def __init__(self, target_dir: str):
        self.packages_dir = os.path.join(target_dir, Constants.WORKSPACE_DIR, Constants.WORKSPACE_PACKAGES_DIR)

    @property
    def kind(self) -> SourceKind:
        return SourceKind.WORKSPACE

    def package_dir(self, name: str) -> str:
        return os.path.join(self.packages_dir, name)

    def has_package(self, name: str) -> bool:
        return os.path.isdir(self.package_dir(name))

    def load(self, source: ResolvedSource, version: Optional[str] = None) -> LoadedPackage:
        directory = source.path or self.package_dir(source.name)
        return load_directory(directory, source.name, {"workspace": True})
