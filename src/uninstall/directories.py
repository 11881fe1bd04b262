"""Empty-directory cleanup after file removals."""

from __future__ import annotations

import logging
import os
from typing import Iterable, List, Set

from constants import Constants
from common.paths import is_within, to_posix
from platforms.registry import PlatformDefinition

logger = logging.getLogger(__name__)


def collect_preserved_directories(target_dir: str, platforms: Iterable[PlatformDefinition]) -> Set[str]:
    """Absolute directories that are never pruned, even when empty.

    Covers each platform's root directory, any directory used to detect a
    platform, and the workspace metadata directory.
    """
    base = os.path.abspath(target_dir)
    preserved = {base, os.path.join(base, Constants.WORKSPACE_DIR)}
    for platform in platforms:
        candidates = [platform.root_dir] + list(platform.detection)
        for rel in candidates:
            if not rel:
                continue
            path = os.path.normpath(os.path.join(base, rel))
            if rel == platform.root_dir or os.path.isdir(path):
                preserved.add(path)
    return preserved


def prune_empty_directories(removed_paths: Iterable[str], target_dir: str, preserved: Set[str]) -> List[str]:
    """Walk up from each removed file and delete parents left empty.

    Stops at the target directory, at a preserved directory, or at the first
    directory that still has entries.

    Returns:
        Removed directories relative to ``target_dir``, sorted.
    """
    base = os.path.abspath(target_dir)
    removed: Set[str] = set()
    for rel in removed_paths:
        current = os.path.dirname(os.path.normpath(os.path.join(base, rel)))
        while current != base and is_within(current, base) and current not in preserved:
            if not os.path.isdir(current):
                current = os.path.dirname(current)
                continue
            try:
                if os.listdir(current):
                    break
                os.rmdir(current)
            except OSError as exc:
                logger.warning("Could not remove directory %s: %s", current, exc)
                break
            removed.add(to_posix(os.path.relpath(current, base)))
            current = os.path.dirname(current)
    return sorted(removed)
