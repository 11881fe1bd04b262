"""Registry source loader.

Packages are looked up in a local directory registry laid out as
``<registry>/<name>/<version>/`` and, when a remote URL is configured, in a
JSON index served at ``<url>/<name>``::

    {"versions": {"1.2.0": {"tarball": "https://.../demo-1.2.0.tgz"}}}

Remote tarballs are unpacked into the cache directory.
"""

from __future__ import annotations

import logging
import os
import tarfile
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from constants import Constants, SourceKind
from common.cache import TTLCache
from common.errors import SourceLoadError
from common.http_client import download_file, get_json
from common.paths import is_within
from resolution.models import LoadedPackage, ResolvedSource
from sources.base import SourceLoader
from sources.path import load_directory
from versioning.parser import parse_version

logger = logging.getLogger(__name__)


class RegistrySourceLoader(SourceLoader):
    """Local directory registry with an optional remote index."""

    def __init__(
        self,
        registry_dir: str,
        cache: TTLCache,
        registry_url: str = "",
        cache_dir: Optional[str] = None,
    ):
        self.registry_dir = os.path.expanduser(registry_dir)
        self.registry_url = registry_url.rstrip("/")
        self.cache_dir = os.path.join(os.path.expanduser(cache_dir or Constants.CACHE_DIR), "registry")
        self.cache = cache

    @property
    def kind(self) -> SourceKind:
        return SourceKind.REGISTRY

    def _local_versions(self, name: str) -> List[str]:
        package_dir = os.path.join(self.registry_dir, name)
        if not os.path.isdir(package_dir):
            return []
        return sorted(
            entry for entry in os.listdir(package_dir)
            if os.path.isdir(os.path.join(package_dir, entry)) and parse_version(entry) is not None
        )

    def _remote_index(self, name: str) -> Dict[str, Any]:
        if not self.registry_url:
            return {}
        status, _, data = get_json(f"{self.registry_url}/{quote(name, safe='@')}", cache=self.cache)
        if status == 404:
            return {}
        if status != 200 or not isinstance(data, dict):
            logger.warning("Registry index for %s unavailable (status %s)", name, status)
            return {}
        versions = data.get("versions")
        return versions if isinstance(versions, dict) else {}

    def list_versions(self, name: str) -> List[str]:
        """Union of local and remote versions, cached per package."""
        cache_key = f"versions:{name}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return list(cached)
        versions = set(self._local_versions(name))
        versions.update(v for v in self._remote_index(name) if parse_version(v) is not None)
        result = sorted(versions)
        self.cache.set(cache_key, result, Constants.VERSION_LIST_TTL_SEC)
        return result

    def _extract(self, name: str, archive: str, dest: str) -> None:
        try:
            with tarfile.open(archive, "r:*") as tar:
                members = tar.getmembers()
                for member in members:
                    member_path = os.path.join(dest, member.name)
                    if not is_within(member_path, dest) or member.issym() or member.islnk():
                        raise SourceLoadError(name, f"unsafe path in archive: {member.name}")
                tar.extractall(dest, members=members)
        except tarfile.TarError as exc:
            raise SourceLoadError(name, f"cannot unpack archive: {exc}") from exc

    @staticmethod
    def _package_root(extracted: str) -> str:
        """Archives may wrap content in a single top-level directory."""
        if os.path.isfile(os.path.join(extracted, Constants.MANIFEST_FILE)):
            return extracted
        entries = [e for e in os.listdir(extracted) if not e.startswith(".")]
        if len(entries) == 1 and os.path.isdir(os.path.join(extracted, entries[0])):
            return os.path.join(extracted, entries[0])
        return extracted

    def _fetch_remote(self, name: str, version: str) -> str:
        dest = os.path.join(self.cache_dir, name, version)
        if os.path.isdir(dest):
            return self._package_root(dest)
        meta = self._remote_index(name).get(version)
        tarball = meta.get("tarball") if isinstance(meta, dict) else None
        if not tarball:
            raise SourceLoadError(name, f"version {version} not found in registry")
        os.makedirs(os.path.dirname(dest), exist_ok=True)
        archive = dest + ".tgz"
        if not download_file(tarball, archive):
            raise SourceLoadError(name, f"download of {name}@{version} failed")
        try:
            os.makedirs(dest, exist_ok=True)
            self._extract(name, archive, dest)
        finally:
            os.remove(archive)
        return self._package_root(dest)

    def load(self, source: ResolvedSource, version: Optional[str] = None) -> LoadedPackage:
        if version is None:
            versions = sorted(self.list_versions(source.name), key=parse_version, reverse=True)
            if not versions:
                raise SourceLoadError(source.name, "no versions available")
            version = versions[0]

        local_dir = os.path.join(self.registry_dir, source.name, version)
        if os.path.isdir(local_dir):
            root = local_dir
            origin = "local"
        elif self.registry_url:
            root = self._fetch_remote(source.name, version)
            origin = "remote"
        else:
            raise SourceLoadError(source.name, f"version {version} not found in {self.registry_dir}")

        loaded = load_directory(root, source.name, {"registry": origin, "version": version})
        loaded.version = version
        return loaded
