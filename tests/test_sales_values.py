from datetime import date, datetime

import pandas as pd
import pytest

from sales_values import (
    clean_date,
    clean_string,
    dimension_label,
    is_numeric_label,
    parse_num,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1 234,50", 1234.5),
        ("—", 0.0),
        ("", 0.0),
        (None, 0.0),
        ("12кг", 12.0),
        ("1 500,00 ₽", 1500.0),
        ("12\n345", 12345.0),
        ("-7,5", -7.5),
        ("1 000", 1000.0),
        ("12.5.3", 12.5),
        ("abc", 0.0),
        ("-", 0.0),
    ],
)
def test_parse_num_lenient_strings(raw, expected):
    assert parse_num(raw) == pytest.approx(expected)


def test_parse_num_passes_numbers_through():
    assert parse_num(42) == 42.0
    assert parse_num(-3.25) == -3.25
    assert parse_num(0) == 0.0


def test_parse_num_treats_nan_and_bool_as_zero():
    assert parse_num(float("nan")) == 0.0
    assert parse_num(True) == 0.0
    assert parse_num(False) == 0.0


def test_parse_num_only_first_comma_becomes_decimal_point():
    # "1,234,567" -> "1.234,567" -> digits and dots only -> "1.234567"
    assert parse_num("1,234,567") == pytest.approx(1.234567)


def test_clean_string():
    assert clean_string(None) == ""
    assert clean_string("  Центральный\r\n") == "Центральный"
    assert clean_string("Ово\nщи") == "Овощи"
    assert clean_string(7) == "7"
    assert clean_string(7.0) == "7"
    assert clean_string(2.5) == "2.5"


def test_dimension_label():
    assert dimension_label(2025.0) == "2025"
    assert dimension_label("kg") == "kg"
    assert dimension_label(3.5) == "3.5"


def test_is_numeric_label():
    assert is_numeric_label("12")
    assert is_numeric_label("-1.5")
    assert not is_numeric_label("")
    assert not is_numeric_label("kg")
    assert not is_numeric_label("nan")


def test_is_numeric_label_rejects_python_only_literals():
    assert not is_numeric_label("1_000")
    assert not is_numeric_label(" 7 ")
    assert not is_numeric_label("7\n")


def test_clean_date_renders_calendar_values_as_iso_dates():
    assert clean_date(datetime(2025, 7, 31)) == "2025-07-31"
    assert clean_date(datetime(2025, 7, 31, 18, 45)) == "2025-07-31"
    assert clean_date(date(2025, 1, 5)) == "2025-01-05"
    assert clean_date(pd.Timestamp("2025-07-31 00:00:00")) == "2025-07-31"
    assert clean_date(pd.NaT) == ""


def test_clean_date_leaves_text_alone():
    assert clean_date(" 2025-07-31\n") == "2025-07-31"
    assert clean_date(None) == ""
