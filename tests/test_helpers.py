"""Tests for utility helpers."""

import pytest

from yinfo.utils.helpers import (
    float_or_none,
    format_date,
    int_or_none,
    parse_count,
    parse_duration,
    str_or_none,
    text_of,
    traverse_obj,
    url_or_none,
)


class TestTraverseObj:
    def test_simple_key(self):
        assert traverse_obj({"a": 1}, "a") == 1

    def test_nested_tuple_path(self):
        data = {"a": {"b": {"c": 42}}}
        assert traverse_obj(data, ("a", "b", "c")) == 42

    def test_missing_key_returns_default(self):
        assert traverse_obj({"a": 1}, "b", default="nope") == "nope"

    def test_list_index(self):
        data = {"items": [10, 20, 30]}
        assert traverse_obj(data, ("items", 1)) == 20

    def test_none_input(self):
        assert traverse_obj(None, "a", default="d") == "d"

    def test_multiple_paths_first_wins(self):
        data = {"x": None, "y": 99}
        assert traverse_obj(data, ("x",), ("y",)) == 99

    def test_innertube_text_path(self):
        renderer = {"ownerText": {"runs": [{"navigationEndpoint": {"browseEndpoint": {"browseId": "UC1"}}}]}}
        path = ("ownerText", "runs", 0, "navigationEndpoint", "browseEndpoint", "browseId")
        assert traverse_obj(renderer, path) == "UC1"


class TestIntOrNone:
    @pytest.mark.parametrize(
        ("val", "expected"),
        [
            (42, 42),
            ("100", 100),
            ("3.9", None),  # int() cannot parse decimal strings
            (None, None),
            ("abc", None),
            ("", None),
        ],
    )
    def test_values(self, val, expected):
        assert int_or_none(val) == expected


class TestFloatOrNone:
    @pytest.mark.parametrize(
        ("val", "expected"),
        [
            (3.14, 3.14),
            ("2.5", 2.5),
            (None, None),
            ("nope", None),
        ],
    )
    def test_values(self, val, expected):
        assert float_or_none(val) == expected


class TestStrOrNone:
    def test_string(self):
        assert str_or_none("hello") == "hello"

    def test_empty_string(self):
        assert str_or_none("") is None

    def test_whitespace(self):
        assert str_or_none("   ") is None

    def test_none(self):
        assert str_or_none(None) is None

    def test_int(self):
        assert str_or_none(42) == "42"


class TestUrlOrNone:
    def test_valid_http(self):
        assert url_or_none("https://example.com") == "https://example.com"

    def test_protocol_relative(self):
        assert url_or_none("//i.ytimg.com/vi/x/hq.jpg") == "https://i.ytimg.com/vi/x/hq.jpg"

    def test_none(self):
        assert url_or_none(None) is None

    def test_empty(self):
        assert url_or_none("") is None

    def test_no_scheme(self):
        assert url_or_none("example.com/video") is None


class TestFormatDate:
    def test_iso(self):
        assert format_date("2024-01-15T12:00:00Z") == "2024-01-15"

    def test_calendar_date_kept(self):
        assert format_date("2009-10-24") == "2009-10-24"

    def test_none(self):
        assert format_date(None) is None

    def test_garbage(self):
        assert format_date("yesterday-ish") is None


class TestTextOf:
    def test_simple_text(self):
        assert text_of({"simpleText": "Hello"}) == "Hello"

    def test_runs_joined(self):
        assert text_of({"runs": [{"text": "Hello, "}, {"text": "world"}]}) == "Hello, world"

    def test_plain_string(self):
        assert text_of("abc") == "abc"

    @pytest.mark.parametrize("node", [None, {}, {"runs": []}, 42])
    def test_empty(self, node):
        assert text_of(node) is None


class TestParseDuration:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("3:32", 212),
            ("1:02:03", 3723),
            ("45", 45),
            ("", None),
            (None, None),
            ("LIVE", None),
            ("1:2:3:4", None),
        ],
    )
    def test_values(self, text, expected):
        assert parse_duration(text) == expected


class TestParseCount:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("1,234,567 views", 1234567),
            ("1.2M views", 1200000),
            ("3K views", 3000),
            ("No views", 0),
            ("", None),
            ("views", None),
        ],
    )
    def test_values(self, text, expected):
        assert parse_count(text) == expected
