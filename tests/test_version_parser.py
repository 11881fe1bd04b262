"""Tests for version and range parsing helpers."""

import pytest
import semantic_version

from versioning.parser import (
    is_valid_range,
    is_wildcard_range,
    normalize_package_name,
    parse_range,
    parse_version,
    satisfies,
    tokenize_package_token,
)


class TestTokenize:
    @pytest.mark.parametrize(
        "token,expected",
        [
            ("lib", ("lib", None)),
            ("lib@^1.2.0", ("lib", "^1.2.0")),
            ("@scope/pkg", ("@scope/pkg", None)),
            ("@scope/pkg@~2.0.0", ("@scope/pkg", "~2.0.0")),
            ("lib@", ("lib", None)),
        ],
    )
    def test_split(self, token, expected):
        """The rightmost non-leading @ separates name and range."""
        assert tokenize_package_token(token) == expected

    def test_normalize_name(self):
        """Names are trimmed and lower-cased."""
        assert normalize_package_name("  My-Pkg ") == "my-pkg"


class TestRanges:
    def test_wildcards(self):
        """None, blank, * and latest are wildcards."""
        assert all(is_wildcard_range(r) for r in (None, "", "*", "LATEST"))
        assert not is_wildcard_range("^1.0.0")

    @pytest.mark.parametrize("range_str", ["^1.2.0", "~1.2.0", ">=1.0.0 <2.0.0", "1.2.x", "1.0.0 - 1.5.0", "1 || 2"])
    def test_valid_ranges(self, range_str):
        """Common npm range forms parse."""
        assert is_valid_range(range_str)
        parse_range(range_str)

    def test_invalid_range(self):
        """Garbage raises ValueError and is reported invalid."""
        assert not is_valid_range("not a range!!")
        with pytest.raises(ValueError):
            parse_range("not a range!!")

    def test_parse_version_tolerates_prefix(self):
        """A leading v is accepted, invalid input gives None."""
        assert parse_version("v1.2.3") == semantic_version.Version("1.2.3")
        assert parse_version("1.2") is None
        assert parse_version(None) is None


class TestSatisfies:
    def test_plain_match(self):
        """Release versions match as npm would."""
        spec = parse_range("^1.2.0")
        assert satisfies(semantic_version.Version("1.9.0"), spec)
        assert not satisfies(semantic_version.Version("2.0.0"), spec)

    def test_prerelease_follows_release(self):
        """A pre-release counts when its release satisfies the range."""
        spec = parse_range("^1.2.0")
        version = semantic_version.Version("1.4.0-beta.1")
        assert satisfies(version, spec)
        assert not satisfies(version, spec, include_prerelease=False)
