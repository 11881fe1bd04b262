"""Source enumeration and target-path resolution for flows."""

from __future__ import annotations

import os
import posixpath
from typing import Iterable, List, Optional

from constants import Constants
from common.paths import extension_of_pattern, has_glob, literal_prefix, normalize_path, to_posix

_SKIP_DIRS = {".git", ".hg", ".svn", "node_modules", "__pycache__"}
_SKIP_FILES = {Constants.MANIFEST_FILE, Constants.INDEX_FILE}


def list_package_files(content_root: str, exclude_dirs: Iterable[str] = ()) -> List[str]:
    """Relative forward-slash paths of every file in a package, sorted.

    VCS metadata, the manifest and the provenance index are never content.
    """
    excluded = set(_SKIP_DIRS) | set(exclude_dirs)
    files: List[str] = []
    for dirpath, dirnames, filenames in os.walk(content_root):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        rel_dir = to_posix(os.path.relpath(dirpath, content_root))
        for filename in filenames:
            if filename in _SKIP_FILES:
                continue
            rel = filename if rel_dir == "." else f"{rel_dir}/{filename}"
            files.append(rel)
    return sorted(files)


def resolve_target_path(source_path: str, source_pattern: str, target_pattern: str) -> str:
    """Target location for one matched source file.

    A literal target is used as is. For a glob target, the part of the source
    path below the source pattern's literal prefix is placed under the
    target's literal prefix, and a ``*.ext`` target rewrites the extension::

        rules/a/b.md, rules/**/*.md, .cursor/rules/**/*.mdc -> .cursor/rules/a/b.mdc
    """
    target_pattern = normalize_path(target_pattern)
    if not has_glob(target_pattern):
        return target_pattern

    source_path = normalize_path(source_path)
    if has_glob(source_pattern):
        prefix = literal_prefix(source_pattern)
        remainder = source_path[len(prefix) + 1:] if prefix and source_path.startswith(prefix + "/") else source_path
    else:
        remainder = posixpath.basename(source_path)

    target_ext = extension_of_pattern(target_pattern)
    if target_ext:
        stem, _ = posixpath.splitext(remainder)
        remainder = stem + target_ext

    target_prefix = literal_prefix(target_pattern)
    return posixpath.join(target_prefix, remainder) if target_prefix else remainder


def safe_target_path(target_dir: str, target_path: str) -> Optional[str]:
    """Absolute path for a target, or None when it escapes the target directory."""
    if not target_path or os.path.isabs(target_path):
        return None
    normalized = normalize_path(target_path)
    if normalized.startswith("../") or normalized == "..":
        return None
    return os.path.join(target_dir, *normalized.split("/"))
