"""Source loader interface and the dispatch over source kinds."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from constants import SourceKind
from resolution.models import LoadedPackage, ResolvedSource

logger = logging.getLogger(__name__)


class SourceLoader(ABC):
    """Fetches a package's content and returns where it lives on disk."""

    @property
    @abstractmethod
    def kind(self) -> SourceKind:
        """Source kind handled by this loader."""

    @abstractmethod
    def load(self, source: ResolvedSource, version: Optional[str] = None) -> LoadedPackage:
        """Load a package.

        Args:
            source: Resolved source pointer.
            version: Concrete version to load (registry sources only).

        Raises:
            SourceLoadError: when the package cannot be fetched or read.
        """

    def list_versions(self, name: str) -> List[str]:
        """Versions published for a package; only registries have more than one."""
        return []


class SourceLoaderRegistry:
    """One loader per source kind, selected with an exhaustive match."""

    def __init__(
        self,
        registry: SourceLoader,
        git: SourceLoader,
        path: SourceLoader,
        workspace: SourceLoader,
    ):
        self.registry = registry
        self.git = git
        self.path = path
        self.workspace = workspace

    def loader_for(self, kind: SourceKind) -> SourceLoader:
        if kind is SourceKind.REGISTRY:
            return self.registry
        if kind is SourceKind.GIT:
            return self.git
        if kind is SourceKind.PATH:
            return self.path
        if kind is SourceKind.WORKSPACE:
            return self.workspace
        raise ValueError(f"Unsupported source kind: {kind}")

    def load(self, source: ResolvedSource, version: Optional[str] = None) -> LoadedPackage:
        return self.loader_for(source.kind).load(source, version)

    def list_versions(self, name: str) -> List[str]:
        return self.registry.list_versions(name)
