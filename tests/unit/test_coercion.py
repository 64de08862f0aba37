from __future__ import annotations

import math
import re
from decimal import Decimal

import pytest

from esg_analytics.services.coercion import coerce_numeric, coerce_text, is_blank, parse_numeric

CURRENCY_PATTERN = re.compile(r"^[,₹$€£¥%\s]*-?\d+(\.\d+)?[,₹$€£¥%\s]*$")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("₹1,234.50", 1234.5),
        ("$ 1,000", 1000),
        ("€12", 12),
        ("£-3.25", -3.25),
        ("¥ 7 ", 7),
        ("45%", 45),
        ("  -0.5  ", -0.5),
        ("1e3", 1000),
        ("12abc", 12),
        ("12 kg", 12),
        ("5.5MT", 5.5),
        ("₹ 250.75 /unit", 250.75),
    ],
)
def test_currency_formatted_strings(raw, expected):
    assert coerce_numeric(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "₹", "abc", "kg 12", "--5", "-", ".", object(), [1]])
def test_blank_and_garbage_coerce_to_zero(raw):
    assert coerce_numeric(raw) == 0


def test_strings_matching_currency_pattern_yield_embedded_value():
    samples = [",,12,", "$%3", " -42 ", "€£¥0.75%"]
    for s in samples:
        assert CURRENCY_PATTERN.match(s)
        embedded = float(re.sub(r"[,₹$€£¥%\s]", "", s))
        assert coerce_numeric(s) == embedded


def test_numbers_pass_through_unchanged():
    assert coerce_numeric(5) == 5
    assert isinstance(coerce_numeric(5), int)
    assert coerce_numeric(2.5) == 2.5
    assert math.isnan(coerce_numeric(float("nan")))
    assert coerce_numeric(float("inf")) == float("inf")


def test_decimal_from_database_is_numeric():
    assert parse_numeric(Decimal("12.50")) == (12.5, False)


def test_fallback_flag_only_for_unparseable_values():
    assert parse_numeric(None) == (0, False)
    assert parse_numeric("") == (0, False)
    assert parse_numeric("n/a") == (0, True)
    assert parse_numeric(True) == (0, True)
    assert parse_numeric("1,5") == (15.0, False)


def test_custom_strip_chars_keep_percent():
    # % を除去しないモジュール
    assert parse_numeric("%45", ",₹$") == (0, True)
    assert parse_numeric("%45") == (45.0, False)
    assert parse_numeric("45%", ",₹$") == (45.0, False)
    assert parse_numeric("45", ",₹$") == (45.0, False)


def test_coerce_text_trims_and_defaults():
    assert coerce_text(None) == ""
    assert coerce_text(float("nan")) == ""
    assert coerce_text("  Plant A ") == "Plant A"
    assert coerce_text(2024.0) == "2024"
    assert coerce_text(12.5) == "12.5"
    assert coerce_text(7) == "7"


def test_is_blank():
    assert is_blank(None)
    assert is_blank("")
    assert is_blank(float("nan"))
    assert not is_blank(" ")
    assert not is_blank(0)


def test_thousands_separators_inside_number_are_stripped():
    assert coerce_numeric("₹1,234.50") == 1234.5
    assert coerce_numeric("$12,345,678") == 12345678


def test_unit_suffix_is_not_a_fallback():
    assert parse_numeric("12 kg") == (12.0, False)
    assert parse_numeric("kg 12") == (0, True)
