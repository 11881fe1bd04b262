"""Tests for marker-delimited composite sections."""

from flows.composite import list_sections, render_section, strip_section, upsert_section


class TestUpsert:
    def test_append_to_empty(self):
        """A new section in an empty file is the section plus a newline."""
        text = upsert_section("", "demo", "Hello\n")
        assert text == "<!-- package: demo -->\nHello\n<!-- -->\n"

    def test_append_after_user_content(self):
        """Sections are appended after existing text with a blank line."""
        text = upsert_section("# Project\n", "demo", "Hello")
        assert text == "# Project\n\n<!-- package: demo -->\nHello\n<!-- -->\n"

    def test_replace_in_place(self):
        """Only this package's section changes; everything else stays."""
        text = upsert_section("", "a", "one")
        text = upsert_section(text, "b", "two")
        updated = upsert_section(text, "a", "uno")
        assert updated == text.replace("one", "uno")
        assert list_sections(updated) == ["a", "b"]


class TestStrip:
    def test_isolation(self):
        """Stripping one section leaves the other byte-identical."""
        text = upsert_section("# Intro\n", "p", "P rules")
        text = upsert_section(text, "q", "Q rules\nmore")
        q_block = render_section("q", "Q rules\nmore")

        stripped, removed = strip_section(text, "p")
        assert removed
        assert "package: p" not in stripped
        assert q_block in stripped
        assert stripped.startswith("# Intro\n")

    def test_last_section_leaves_host_text(self):
        """Removing the only section leaves an empty string, not a deleted file."""
        text = upsert_section("", "p", "P")
        stripped, removed = strip_section(text, "p")
        assert removed
        assert stripped == ""

    def test_missing_section(self):
        """Nothing to strip returns the text unchanged."""
        assert strip_section("plain\n", "p") == ("plain\n", False)

    def test_similar_names_do_not_collide(self):
        """A package name that prefixes another only matches its own markers."""
        text = upsert_section("", "lib", "L")
        text = upsert_section(text, "lib-extra", "E")
        stripped, _ = strip_section(text, "lib")
        assert list_sections(stripped) == ["lib-extra"]
