"""Git source loader: shallow clones into a content-root cache."""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import subprocess
from typing import Dict, List, Optional

from constants import SourceKind
from common.errors import SourceLoadError
from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from resolution.models import LoadedPackage, ResolvedSource
from sources.base import SourceLoader
from sources.path import load_directory

logger = logging.getLogger(__name__)


class GitSourceLoader(SourceLoader):
    """Clones ``url#ref`` once per process and reuses the checkout."""

    def __init__(self, cache_dir: str, git_executable: str = "git"):
        self.cache_dir = os.path.join(os.path.expanduser(cache_dir), "git")
        self.git_executable = git_executable
        self._checkouts: Dict[str, str] = {}

    @property
    def kind(self) -> SourceKind:
        return SourceKind.GIT

    def _checkout_dir(self, url: str, ref: Optional[str]) -> str:
        digest = hashlib.sha256(f"{url}#{ref or ''}".encode("utf-8")).hexdigest()[:16]
        return os.path.join(self.cache_dir, digest)

    def _clone_command(self, url: str, ref: Optional[str], dest: str) -> List[str]:
        cmd = [self.git_executable, "clone", "--depth", "1"]
        if ref:
            cmd += ["--branch", ref]
        return cmd + [url, dest]

    def _clone(self, name: str, url: str, ref: Optional[str]) -> str:
        cache_key = f"{url}#{ref or ''}"
        if cache_key in self._checkouts:
            return self._checkouts[cache_key]

        dest = self._checkout_dir(url, ref)
        if os.path.isdir(os.path.join(dest, ".git")):
            self._checkouts[cache_key] = dest
            return dest
        if os.path.exists(dest):
            shutil.rmtree(dest)
        os.makedirs(self.cache_dir, exist_ok=True)

        with Timer() as t:
            try:
                proc = subprocess.run(
                    self._clone_command(url, ref, dest),
                    capture_output=True,
                    text=True,
                    check=False,
                )
            except OSError as exc:
                raise SourceLoadError(name, f"git is not available: {exc}") from exc
        if is_debug_enabled(logger):
            logger.debug(
                "git clone",
                extra=extra_context(
                    event="git_clone", component="git_loader", action="clone",
                    outcome="success" if proc.returncode == 0 else "failure",
                    target=safe_url(url), duration_ms=t.duration_ms(),
                ),
            )
        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip().splitlines()
            raise SourceLoadError(name, f"git clone of {safe_url(url)} failed: {detail[-1] if detail else proc.returncode}")
        self._checkouts[cache_key] = dest
        return dest

    def load(self, source: ResolvedSource, version: Optional[str] = None) -> LoadedPackage:
        if not source.url:
            raise SourceLoadError(source.name, "git source without a url")
        repo_root = self._clone(source.name, source.url, source.ref)
        root = os.path.join(repo_root, source.subpath) if source.subpath else repo_root
        if not os.path.isdir(root):
            raise SourceLoadError(source.name, f"subpath '{source.subpath}' not found in {safe_url(source.url)}")
        return load_directory(
            root,
            source.name,
            {"url": source.url, "ref": source.ref, "repo_root": repo_root},
        )
