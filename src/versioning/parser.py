"""Version and range parsing utilities built on semantic_version."""

import re
from typing import Optional, Tuple, Union

import semantic_version

from constants import Constants

RangeSpec = Union[semantic_version.NpmSpec, semantic_version.SimpleSpec]


def normalize_package_name(name: str) -> str:
    """Canonical form used for identity comparisons and map keys."""
    return name.strip().lower()


def tokenize_package_token(token: str) -> Tuple[str, Optional[str]]:
    """Split ``name@range`` on the rightmost ``@`` that is not a scope prefix.

    ``@scope/pkg@^1.0.0`` gives ``("@scope/pkg", "^1.0.0")``; a bare name gives
    ``(name, None)``.
    """
    s = token.strip()
    idx = s.rfind("@")
    if idx <= 0:
        return s, None
    name = s[:idx].strip()
    spec = s[idx + 1:].strip()
    return name, (spec or None)


def is_wildcard_range(range_str: Optional[str]) -> bool:
    """True for ranges that constrain nothing: None, blank, ``*`` and ``latest``."""
    if range_str is None:
        return True
    s = str(range_str).strip().lower()
    return s == "" or s in Constants.WILDCARD_RANGES


def parse_version(value: str) -> Optional[semantic_version.Version]:
    """Parse a strict semver string, tolerating a leading ``v`` or ``=``.

    Returns None for anything that is not valid semver.
    """
    if not isinstance(value, str):
        return None
    s = value.strip()
    if s[:1] in ("v", "V", "="):
        s = s[1:]
    try:
        return semantic_version.Version(s)
    except ValueError:
        return None


def _normalize_spec(spec_str: str) -> str:
    """Normalize npm range syntax (hyphen, x-ranges) into SimpleSpec-compatible form."""
    s = spec_str.strip()

    m = re.match(r'^\s*([0-9A-Za-z\.\-\+]+)\s+-\s+([0-9A-Za-z\.\-\+]+)\s*$', s)
    if m:
        return f">={m.group(1)},<={m.group(2)}"

    s2 = s.replace('*', 'x').lower()
    m = re.match(r'^\s*(\d+)\.(\d+)\.x\s*$', s2)
    if m:
        major, minor = int(m.group(1)), int(m.group(2))
        return f">={major}.{minor}.0,<{major}.{minor + 1}.0"

    m = re.match(r'^\s*(\d+)(?:\.x)?\s*$', s2)
    if m:
        major = int(m.group(1))
        return f">={major}.0.0,<{major + 1}.0.0"

    return spec_str


def parse_range(range_str: str) -> RangeSpec:
    """Parse an npm-style range.

    Prefers NpmSpec, which understands ``^``, ``~``, hyphen ranges, x-ranges
    and ``||``; falls back to a normalized SimpleSpec.

    Raises:
        ValueError: when neither grammar accepts the range.
    """
    try:
        return semantic_version.NpmSpec(range_str.strip())
    except ValueError:
        return semantic_version.SimpleSpec(_normalize_spec(range_str))


def is_valid_range(range_str: str) -> bool:
    """True when the range parses (wildcards count as valid)."""
    if is_wildcard_range(range_str):
        return True
    try:
        parse_range(range_str)
    except ValueError:
        return False
    return True


def satisfies(version: semantic_version.Version, spec: RangeSpec, include_prerelease: bool = True) -> bool:
    """Check a version against a parsed range.

    npm ranges only admit a pre-release when a comparator names the same
    release tuple. With ``include_prerelease`` a pre-release also satisfies the
    range when its release counterpart does.
    """
    if spec.match(version):
        return True
    if include_prerelease and version.prerelease:
        return spec.match(version.truncate())
    return False
