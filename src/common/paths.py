"""Path normalization and glob matching for flow patterns.

Globs follow the usual shell conventions on forward-slash paths: ``*`` and
``?`` stay inside one segment, ``**`` spans any number of segments (including
none), and ``[...]`` is a character class.
"""

from __future__ import annotations

import os
import posixpath
import re
from functools import lru_cache
from typing import List, Optional

GLOB_CHARS = ("*", "?", "[")


def has_glob(pattern: str) -> bool:
    """True when the pattern contains any glob metacharacter."""
    return any(ch in pattern for ch in GLOB_CHARS)


def to_posix(path: str) -> str:
    """Convert OS separators to forward slashes."""
    return path.replace(os.sep, "/") if os.sep != "/" else path


def expand_home(path: str) -> str:
    """Expand a leading ``~/`` (or bare ``~``) to the user's home directory."""
    if path == "~" or path.startswith("~/"):
        return to_posix(os.path.expanduser(path))
    return path


def normalize_path(path: str) -> str:
    """Normalize a relative or absolute path to a canonical forward-slash form.

    ``./a//b/`` becomes ``a/b``; ``~/`` is expanded; an empty path stays empty.
    """
    if not path:
        return ""
    value = posixpath.normpath(expand_home(to_posix(path)))
    return "" if value == "." else value


@lru_cache(maxsize=512)
def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Translate a glob pattern into an anchored regular expression."""
    out: List[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern[i:i + 2] == "**":
                if pattern[i + 2:i + 3] == "/":
                    out.append("(?:.*/)?")
                    i += 3
                else:
                    out.append(".*")
                    i += 2
            else:
                out.append("[^/]*")
                i += 1
        elif c == "?":
            out.append("[^/]")
            i += 1
        elif c == "[":
            j = pattern.find("]", i + 1)
            if j == -1:
                out.append(re.escape(c))
                i += 1
            else:
                body = pattern[i + 1:j]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append("[" + body.replace("\\", "\\\\") + "]")
                i = j + 1
        else:
            out.append(re.escape(c))
            i += 1
    return re.compile("^" + "".join(out) + "$")


def match_glob(path: str, pattern: str) -> bool:
    """Match a relative path against a glob (or literal) pattern."""
    path = normalize_path(path)
    pattern = normalize_path(pattern)
    if not has_glob(pattern):
        return path == pattern
    return glob_to_regex(pattern).match(path) is not None


def literal_prefix(pattern: str) -> str:
    """Leading path segments of a pattern that contain no glob characters.

    ``rules/**/*.md`` gives ``rules``; ``*.md`` gives an empty string.
    """
    segments = to_posix(pattern).split("/")
    prefix: List[str] = []
    for segment in segments:
        if has_glob(segment):
            break
        prefix.append(segment)
    else:
        # no glob at all: the prefix is everything but the file name
        prefix = segments[:-1]
    return "/".join(s for s in prefix if s)


def extension_of_pattern(pattern: str) -> Optional[str]:
    """Extension of a ``*.ext`` final segment, or None when it is not of that form."""
    last = to_posix(pattern).rsplit("/", 1)[-1]
    match = re.match(r"^\*(\.[A-Za-z0-9_.-]+)$", last)
    return match.group(1) if match else None


def is_within(child: str, parent: str) -> bool:
    """True when ``child`` is ``parent`` or lives below it (absolute paths)."""
    child_abs = os.path.abspath(child)
    parent_abs = os.path.abspath(parent)
    try:
        return os.path.commonpath([child_abs, parent_abs]) == parent_abs
    except ValueError:
        return False
