"""Unit tests for date and number format detection."""
import math
from datetime import date, datetime

import pytest

from cmed_ingestion.models.column_types import CoercionStatus
from cmed_ingestion.parsers.formats import (
    _normalize_us_date,
    coerce_date,
    coerce_numeric,
    detect_date_format,
    excel_serial_to_iso,
    format_db_date,
    is_date_like,
    is_numeric_like,
    normalize_date,
    parse_float_prefix,
    to_iso_with_noon,
)


class TestIsDateLike:
    """Test is_date_like() and detect_date_format()."""

    @pytest.mark.parametrize("value,expected_format", [
        ("2025-03-10", "iso"),
        ("2025-03-10T08:00:00", "iso"),
        ("2025-03-10T08:00:00.123Z", "iso"),
        ("10/03/2025", "br"),
        ("3/10/2025", "us"),
        ("10.03.2025", "dotted"),
    ])
    def test_supported_patterns_detected(self, value, expected_format):
        """Verify each of the four patterns is recognised and named."""
        assert is_date_like(value) is True
        assert detect_date_format(value) == expected_format

    @pytest.mark.parametrize("value", [None, "", "abc", "2025/03/10", "10-03-2025", "12,5", 45726])
    def test_non_dates_rejected(self, value):
        """Verify empty input and other shapes are not date-like."""
        assert is_date_like(value) is False
        assert detect_date_format(value) is None

    def test_datetime_objects_are_date_like(self):
        """Verify workbook datetime cells match through their ISO rendering."""
        assert is_date_like(datetime(2025, 3, 10, 0, 0)) is True
        assert is_date_like(date(2025, 3, 10)) is True

    def test_surrounding_whitespace_ignored(self):
        """Verify values are stripped before matching."""
        assert is_date_like("  10/03/2025 ") is True


class TestNormalizeDate:
    """Test normalize_date() conversions and soft failure."""

    def test_iso_time_component_stripped(self):
        assert normalize_date("2025-03-10T08:00:00") == "2025-03-10"

    def test_brazilian_date_reversed(self):
        """Verify DD/MM/YYYY becomes YYYY-MM-DD (day 10 cannot be a month)."""
        assert normalize_date("10/03/2025") == "2025-03-10"

    def test_us_branch_reads_first_group_as_month(self):
        """Verify the documented ambiguous mapping: 03/10/2025 -> 2025-03-10."""
        assert _normalize_us_date("03/10/2025") == "2025-03-10"
        assert normalize_date("3/10/2025") == "2025-03-10"

    def test_us_branch_pads_single_digits(self):
        assert normalize_date("1/5/2025") == "2025-01-05"

    def test_us_branch_invalid_month_left_unconverted(self):
        """Verify a first group above 12 leaves the value as it was."""
        assert _normalize_us_date("13/5/2025") is None
        assert normalize_date("13/5/2025") == "13/5/2025"

    def test_dotted_date_converted(self):
        assert normalize_date("10.03.2025") == "2025-03-10"

    def test_generic_parse_fallback(self):
        """Verify free-form dates fall back to a generic parse."""
        assert normalize_date("March 10, 2025") == "2025-03-10"

    def test_unparseable_value_returned_unchanged(self):
        """Verify total failure is soft: the original value comes back."""
        assert normalize_date("xyz") == "xyz"

    def test_datetime_cell_normalized(self):
        assert normalize_date(datetime(2025, 3, 10, 15, 30)) == "2025-03-10"

    def test_iso_date_is_fixed_point(self):
        """Verify normalizing an ISO date twice gives the same ISO date."""
        once = normalize_date("2025-03-10")
        assert once == "2025-03-10"
        assert normalize_date(once) == once

    def test_normalized_outputs_are_fixed_points(self):
        for value in ["10/03/2025", "2025-03-10T08:00:00", "10.03.2025", "3/10/2025"]:
            once = normalize_date(value)
            assert normalize_date(once) == once


class TestCoerceDate:
    """Test coerce_date() outcome reporting."""

    def test_converted_value_reported_ok(self):
        outcome = coerce_date("10/03/2025")
        assert outcome.status == CoercionStatus.OK
        assert outcome.is_ok
        assert outcome.value == "2025-03-10"
        assert outcome.original == "10/03/2025"

    def test_unreadable_value_reported_unchanged(self):
        outcome = coerce_date("xyz")
        assert outcome.status == CoercionStatus.UNCHANGED
        assert outcome.value == "xyz"

    def test_empty_value_reported_unchanged(self):
        assert coerce_date("").status == CoercionStatus.UNCHANGED


class TestIsNumericLike:
    """Test is_numeric_like() on raw values."""

    @pytest.mark.parametrize("value", [3, 2.5, "7", " 7.5 ", "-1e3", "12,5", "10/03/2025"])
    def test_values_with_numeric_prefix(self, value):
        """Verify raw values qualify through their leading number, comma decimals included."""
        assert is_numeric_like(value) is True

    @pytest.mark.parametrize("value", [None, "", "abc", "R$ 10", True, False, float("nan"), float("inf")])
    def test_non_numeric_values(self, value):
        assert is_numeric_like(value) is False


class TestNumericParsing:
    """Test parse_float_prefix() and coerce_numeric()."""

    def test_float_prefix(self):
        assert parse_float_prefix("12.5abc") == 12.5
        assert parse_float_prefix("12,5") == 12.0
        assert math.isnan(parse_float_prefix("abc"))

    def test_comma_decimal_converted(self):
        """Verify "12,5" -> "12.5" -> 12.5."""
        outcome = coerce_numeric("12,5")
        assert outcome.is_ok
        assert outcome.value == 12.5

    def test_only_first_comma_replaced(self):
        """Verify "1.234,56" keeps its thousands dot: "1.234.56" parses as 1.234."""
        assert coerce_numeric("1.234,56").value == pytest.approx(1.234)

    def test_native_numbers_become_floats(self):
        outcome = coerce_numeric(7)
        assert outcome.value == 7.0
        assert isinstance(outcome.value, float)

    def test_unparseable_value_is_invalid_nan(self):
        """Verify unparseable input is flagged and yields NaN."""
        outcome = coerce_numeric("abc")
        assert outcome.status == CoercionStatus.INVALID
        assert math.isnan(outcome.value)
        assert outcome.original == "abc"


class TestDateHelpers:
    """Test Excel serial and display helpers."""

    def test_excel_serial_to_iso(self):
        assert excel_serial_to_iso(45726) == "2025-03-10"
        assert excel_serial_to_iso(1) == "1899-12-31"
        assert excel_serial_to_iso("45726") == "2025-03-10"

    def test_excel_serial_rejects_garbage(self):
        assert excel_serial_to_iso("abc") is None
        assert excel_serial_to_iso(None) is None
        assert excel_serial_to_iso(float("nan")) is None

    def test_to_iso_with_noon(self):
        assert to_iso_with_noon("10/03/2025") == "2025-03-10T12:00:00"
        assert to_iso_with_noon("2025-03-10T23:59:00") == "2025-03-10T12:00:00"
        assert to_iso_with_noon("xyz") is None

    def test_format_db_date(self):
        assert format_db_date("2025-03-10") == "10/03/2025"
        assert format_db_date("2025-03-10T12:00:00") == "10/03/2025"
        assert format_db_date("") == ""
        assert format_db_date(None) == ""
        assert format_db_date("sem data") == "sem data"
