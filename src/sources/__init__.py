"""Package source loaders (registry, git, path, workspace) and the manifest reader."""

from typing import Optional

from constants import Constants
from common.cache import TTLCache
from .base import SourceLoader, SourceLoaderRegistry
from .git import GitSourceLoader
from .path import PathSourceLoader, WorkspaceSourceLoader
from .registry import RegistrySourceLoader


def create_default_loaders(target_dir: str, cache: Optional[TTLCache] = None) -> SourceLoaderRegistry:
    """Loaders wired from Constants, sharing one cache instance."""
    cache = cache if cache is not None else TTLCache(default_ttl=Constants.VERSION_LIST_TTL_SEC)
    return SourceLoaderRegistry(
        registry=RegistrySourceLoader(
            Constants.REGISTRY_DIR,
            cache,
            registry_url=Constants.REGISTRY_URL,
            cache_dir=Constants.CACHE_DIR,
        ),
        git=GitSourceLoader(Constants.CACHE_DIR),
        path=PathSourceLoader(),
        workspace=WorkspaceSourceLoader(target_dir),
    )


__all__ = [
    "GitSourceLoader",
    "PathSourceLoader",
    "RegistrySourceLoader",
    "SourceLoader",
    "SourceLoaderRegistry",
    "WorkspaceSourceLoader",
    "create_default_loaders",
]
