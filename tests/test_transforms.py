"""Tests for flow content transforms."""

import pytest

from common.errors import ConfigurationError
from flows.transforms import ContentTransform


def test_no_transform_fields():
    assert ContentTransform.from_flow({"from": "a", "to": "b"}) is None


def test_map_swaps_keys():
    transform = ContentTransform.from_flow({"map": {"a": "b", "b": "a"}})
    assert transform.apply({"a": 1, "b": 2}) == {"a": 2, "b": 1}


def test_input_is_not_modified():
    data = {"keep": {"x": 1}, "drop": 2}
    transform = ContentTransform.from_flow({"omit": ["drop"], "embed": "wrapped"})
    assert transform.apply(data) == {"wrapped": {"keep": {"x": 1}}}
    assert data == {"keep": {"x": 1}, "drop": 2}


def test_nested_pick_prunes_siblings():
    transform = ContentTransform.from_flow({"pick": ["a.b"]})
    assert transform.apply({"a": {"b": 1, "c": 2}, "d": 3}) == {"a": {"b": 1}}


def test_wildcard_map_escapes_dotted_children():
    transform = ContentTransform.from_flow({"map": {"servers.*": "mcp.*"}})
    result = transform.apply({"servers": {"a.b": {"cmd": "x"}, "c": {}}})
    assert result == {"mcp": {"a.b": {"cmd": "x"}, "c": {}}}


def test_value_conversion_and_default():
    transform = ContentTransform.from_flow(
        {"map": {"mode": {"to": "settings.mode", "default": "on", "values": {"on": True, "off": False}}}}
    )
    assert transform.apply({}) == {"settings": {"mode": True}}
    assert transform.apply({"mode": "off"}) == {"settings": {"mode": False}}
    assert transform.apply({"mode": "other"}) == {"settings": {"mode": "other"}}


def test_missing_key_without_default_is_skipped():
    transform = ContentTransform.from_flow({"map": {"absent": "elsewhere"}})
    assert transform.apply({"x": 1}) == {"x": 1}


@pytest.mark.parametrize(
    "flow",
    [
        {"pick": "a"},
        {"pick": ["a"], "omit": ["b"]},
        {"map": {"a": {"default": 1}}},
        {"map": {"a": "b.*"}},
        {"map": {"a": {"to": "b", "values": ["x"]}}},
        {"embed": ""},
    ],
)
def test_malformed_transforms(flow):
    with pytest.raises(ConfigurationError):
        ContentTransform.from_flow(flow)
