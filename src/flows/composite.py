"""Marker-delimited package sections inside a shared text file."""

from __future__ import annotations

import re
from typing import List, Tuple

from constants import Constants

_OPEN_RE = re.compile(r"<!-- package: (.+?) -->")


def open_marker(package_name: str) -> str:
    return Constants.COMPOSITE_OPEN_MARKER.format(name=package_name)


def close_marker() -> str:
    return Constants.COMPOSITE_CLOSE_MARKER


def _section_re(package_name: str) -> "re.Pattern[str]":
    return re.compile(re.escape(open_marker(package_name)) + r".*?" + re.escape(close_marker()), re.DOTALL)


def render_section(package_name: str, content: str) -> str:
    return f"{open_marker(package_name)}\n{content.strip(chr(10))}\n{close_marker()}"


def list_sections(text: str) -> List[str]:
    """Package names with a section in the text, in file order."""
    return _OPEN_RE.findall(text)


def upsert_section(text: str, package_name: str, content: str) -> str:
    """Replace this package's section in place, or append one."""
    block = render_section(package_name, content)
    pattern = _section_re(package_name)
    if pattern.search(text):
        return pattern.sub(lambda _: block, text, count=1)
    if text and not text.endswith("\n"):
        text += "\n"
    if text.strip():
        text += "\n"
    return text + block + "\n"


def strip_section(text: str, package_name: str) -> Tuple[str, bool]:
    """Remove this package's section; other sections are left byte-for-byte.

    Returns:
        (new text, whether a section was removed)
    """
    match = _section_re(package_name).search(text)
    if match is None:
        return text, False
    before = text[:match.start()]
    after = text[match.end():]
    if after.startswith("\n"):
        after = after[1:]
    if not before.strip():
        before = ""
        after = after.lstrip("\n")
    elif before.endswith("\n\n") and (not after or after.startswith("\n")):
        before = before[:-1]
    return before + after, True
