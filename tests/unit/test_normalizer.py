"""Unit tests for row normalization against a frozen type map."""
import math

from cmed_ingestion.models.column_types import CoercionStatus, ColumnType
from cmed_ingestion.parsers.normalizer import (
    coerce_row,
    normalize_numeric,
    normalize_row,
    normalize_rows,
)

TYPES = {
    "data": ColumnType.DATE,
    "preco": ColumnType.NUMERIC,
    "nome": ColumnType.STRING,
}


class TestNormalizeRow:
    """Test normalize_row() and normalize_rows()."""

    def test_typed_columns_rewritten(self):
        row = {"data": "10/03/2025", "preco": "12,5", "nome": "Dipirona"}
        assert normalize_row(row, TYPES) == {
            "data": "2025-03-10",
            "preco": 12.5,
            "nome": "Dipirona",
        }

    def test_input_row_not_mutated(self):
        row = {"data": "10/03/2025", "preco": "12,5", "nome": "Dipirona"}
        normalize_row(row, TYPES)
        assert row == {"data": "10/03/2025", "preco": "12,5", "nome": "Dipirona"}

    def test_falsy_values_pass_through(self):
        row = {"data": "", "preco": 0, "nome": None}
        assert normalize_row(row, TYPES) == {"data": "", "preco": 0, "nome": None}

    def test_columns_outside_map_pass_through(self):
        row = {"data": "10/03/2025", "extra": "10/03/2025"}
        normalized = normalize_row(row, TYPES)
        assert normalized["extra"] == "10/03/2025"
        assert "preco" not in normalized

    def test_values_not_matching_frozen_type_degrade_softly(self):
        """Verify unreadable dates stay as-is and unreadable numbers become NaN."""
        normalized = normalize_row({"data": "sem data", "preco": "n/d"}, TYPES)
        assert normalized["data"] == "sem data"
        assert math.isnan(normalized["preco"])

    def test_normalize_rows_keeps_order(self):
        rows = [{"preco": "1,5"}, {"preco": "2,5"}, {"preco": "3"}]
        assert [row["preco"] for row in normalize_rows(rows, TYPES)] == [1.5, 2.5, 3.0]

    def test_normalize_numeric(self):
        assert normalize_numeric("12,5") == 12.5
        assert math.isnan(normalize_numeric("abc"))


class TestCoerceRow:
    """Test coerce_row() outcome reporting."""

    def test_outcomes_per_typed_column(self):
        outcomes = coerce_row({"data": "xyz", "preco": "abc", "nome": "Dipirona"}, TYPES)
        assert set(outcomes) == {"data", "preco"}
        assert outcomes["data"].status == CoercionStatus.UNCHANGED
        assert outcomes["preco"].status == CoercionStatus.INVALID

    def test_clean_row_all_ok(self):
        outcomes = coerce_row({"data": "10/03/2025", "preco": "12,5"}, TYPES)
        assert all(outcome.is_ok for outcome in outcomes.values())
        assert outcomes["preco"].value == 12.5

    def test_empty_values_unchanged(self):
        outcomes = coerce_row({"data": None, "preco": ""}, TYPES)
        assert outcomes["data"].status == CoercionStatus.UNCHANGED
        assert outcomes["preco"].status == CoercionStatus.UNCHANGED
