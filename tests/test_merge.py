"""Tests for structural merge and key bookkeeping."""

import pytest

from constants import MergeStrategy
from common.errors import MergeError
from flows.merge import (
    delete_nested_key,
    get_nested,
    is_effectively_empty,
    join_key_path,
    leaf_key_paths,
    merge_structures,
    set_nested,
    split_key_path,
)


class TestKeyPaths:
    def test_escaped_dots_round_trip(self):
        """Dots inside keys survive join/split."""
        segments = ["settings", "editor.fontSize"]
        path = join_key_path(segments)
        assert path == "settings.editor\\.fontSize"
        assert split_key_path(path) == segments

    def test_leaf_paths(self):
        """Lists and empty maps are leaves."""
        data = {"a": {"b": 1, "c": [1, 2]}, "d": {}}
        assert sorted(leaf_key_paths(data)) == ["a.b", "a.c", "d"]


class TestMerge:
    def test_deep_merges_nested_maps_and_replaces_lists(self):
        """Deep merge recurses into maps, lists are replaced wholesale."""
        existing = {"servers": {"a": {"cmd": "x"}}, "tags": [1, 2]}
        incoming = {"servers": {"b": {"cmd": "y"}}, "tags": [3]}
        outcome = merge_structures(existing, incoming, MergeStrategy.DEEP)
        assert outcome.data == {"servers": {"a": {"cmd": "x"}, "b": {"cmd": "y"}}, "tags": [3]}
        assert sorted(outcome.keys_written) == ["servers.b.cmd", "tags"]

    def test_shallow_replaces_top_level_values(self):
        """Shallow merge records only top-level keys."""
        existing = {"servers": {"a": 1}, "keep": True}
        outcome = merge_structures(existing, {"servers": {"b": 2}}, MergeStrategy.SHALLOW)
        assert outcome.data == {"servers": {"b": 2}, "keep": True}
        assert outcome.keys_written == ["servers"]

    def test_inputs_are_not_mutated(self):
        """Merging returns new structures."""
        existing = {"a": {"b": 1}}
        incoming = {"a": {"c": 2}}
        merge_structures(existing, incoming, MergeStrategy.DEEP)
        assert existing == {"a": {"b": 1}}

    def test_non_mapping_rejected(self):
        """Both sides must be mappings."""
        with pytest.raises(MergeError):
            merge_structures({}, [1], MergeStrategy.DEEP)
        with pytest.raises(MergeError):
            merge_structures([1], {}, MergeStrategy.DEEP)

    def test_replace_is_not_structural(self):
        """Only deep and shallow are structural merges."""
        with pytest.raises(MergeError):
            merge_structures({}, {}, MergeStrategy.REPLACE)


class TestDelete:
    def test_delete_prunes_empty_parents(self):
        """Deleting the last child removes the emptied parents."""
        data = {"servers": {"demo": {"cmd": "x"}}, "other": 1}
        assert delete_nested_key(data, "servers.demo.cmd")
        assert data == {"other": 1}

    def test_delete_keeps_non_empty_parents(self):
        """Siblings keep their parent alive."""
        data = {"servers": {"demo": 1, "lib": 2}}
        assert delete_nested_key(data, "servers.demo")
        assert data == {"servers": {"lib": 2}}

    def test_missing_key(self):
        """Missing paths report False and change nothing."""
        data = {"a": 1}
        assert not delete_nested_key(data, "a.b")
        assert not delete_nested_key(data, "x")
        assert data == {"a": 1}

    def test_get_nested(self):
        """Escaped keys resolve."""
        assert get_nested({"a": {"b.c": 3}}, "a.b\\.c") == 3
        assert get_nested({"a": 1}, "a.b", "default") == "default"

    def test_non_string_keys_match_by_text(self):
        """YAML keys such as 8080 or `on` (loaded as True) are found by their recorded text."""
        data = {True: "push", 8080: {"name": "web"}, "keep": 1}
        assert get_nested(data, "8080.name") == "web"
        assert delete_nested_key(data, "True")
        assert delete_nested_key(data, "8080.name")
        assert data == {"keep": 1}

    def test_set_nested(self):
        """Missing parents are created and scalar parents replaced."""
        data = {"a": 1, 8080: {"x": 1}}
        set_nested(data, "a.b", 2)
        set_nested(data, "8080.y", 3)
        set_nested(data, "new.key\\.dotted", 4)
        assert data == {"a": {"b": 2}, 8080: {"x": 1, "y": 3}, "new": {"key.dotted": 4}}


class TestEmptiness:
    @pytest.mark.parametrize("value", [None, {}, [], {"a": {}}, {"a": {"b": []}}])
    def test_empty(self, value):
        """Nothing but empty containers counts as empty."""
        assert is_effectively_empty(value)

    @pytest.mark.parametrize("value", [{"a": 0}, {"a": ""}, {"a": False}, {"a": [None]}])
    def test_not_empty(self, value):
        """Falsy scalars and non-empty lists are content."""
        assert not is_effectively_empty(value)
