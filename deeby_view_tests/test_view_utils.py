import math
from datetime import datetime, timezone

import pytest

from deeby_view.utils import (
    calculate_optimal_column_width,
    get_enum_color,
    is_color_value,
    is_date_value,
    is_number,
    is_url_value,
    locale_key,
    normalize_url,
    number_to_str,
    parse_color_to_hex,
    parse_date,
    to_number,
    value_to_str,
)


class TestNumbers:
    def test_bool_is_not_a_number(self):
        assert is_number(1)
        assert is_number(1.5)
        assert not is_number(True)
        assert not is_number("1")

    @pytest.mark.parametrize(
        "value, expected",
        [
            (42, 42),
            ("12.5kg", 12.5),
            ("  -3e2 ", -300.0),
            (".5", 0.5),
            ("-Infinity", -math.inf),
        ],
    )
    def test_to_number(self, value, expected):
        assert to_number(value) == expected

    @pytest.mark.parametrize("value", ["abc", "", None, True])
    def test_to_number_fails_to_nan(self, value):
        assert math.isnan(to_number(value))

    def test_number_to_str_drops_trailing_zero(self):
        assert number_to_str(1.0) == "1"
        assert number_to_str(2.5) == "2.5"
        assert number_to_str(7) == "7"
        assert number_to_str(math.nan) == "NaN"


class TestValueToStr:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, "null"),
            (True, "true"),
            (False, "false"),
            (42.0, "42"),
            ("abc", "abc"),
            ([1, None, "x"], "1,,x"),
            ({"a": 1}, '{"a": 1}'),
        ],
    )
    def test_canonical_forms(self, value, expected):
        assert value_to_str(value) == expected

    def test_locale_key_folds_accents_and_case(self):
        assert locale_key("Éclair")[0] == locale_key("eclair")[0]
        assert locale_key("b") > locale_key("A")


class TestDates:
    def test_seconds_and_millis(self):
        from_s = parse_date(1_700_000_000)
        from_ms = parse_date(1_700_000_000_000)
        assert from_s == from_ms
        assert from_s.tzinfo == timezone.utc

    def test_iso_string(self):
        result = parse_date("2024-03-01T10:30:00Z")
        assert result == datetime(2024, 3, 1, 10, 30, tzinfo=timezone.utc)

    def test_not_a_date(self):
        assert parse_date("yesterday") is None
        assert parse_date(math.nan) is None
        assert not is_date_value("hello")
        assert is_date_value("2024-01-01")


class TestValueKinds:
    def test_colors(self):
        assert is_color_value("#fff")
        assert is_color_value("rgb(255, 0, 10)")
        assert is_color_value("Red")
        assert not is_color_value("reddish")
        assert parse_color_to_hex("#abc") == "#aabbcc"
        assert parse_color_to_hex("rgba(255, 0, 10, 0.5)") == "#ff000a"
        assert parse_color_to_hex("grey") == "#808080"

    def test_urls(self):
        assert is_url_value("https://example.com/a?b=1")
        assert is_url_value("www.example.org")
        assert not is_url_value("not a url")
        assert normalize_url("example.com") == "https://example.com"
        assert normalize_url("ftp://x.org") == "ftp://x.org"

    def test_enum_color_is_stable(self):
        first = get_enum_color("active")
        assert first == get_enum_color("active")
        assert first.startswith("hsl(")
        assert first.endswith(", 70%, 50%)")


class TestColumnWidth:
    def test_narrow_content_shrinks_to_half(self):
        assert calculate_optimal_column_width("id", [1, 2, 3]) == 90

    def test_wide_content_is_capped(self):
        assert calculate_optimal_column_width("note", ["x" * 50]) == 270
