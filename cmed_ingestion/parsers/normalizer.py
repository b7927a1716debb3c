"""Apply a frozen column type map to parsed rows."""
from typing import Any, Dict, List, Mapping, Sequence

from cmed_ingestion.models.column_types import CoercionOutcome, ColumnType
from cmed_ingestion.parsers.formats import coerce_date, coerce_numeric, normalize_date


def normalize_numeric(value: Any) -> float:
    """Parse a number after swapping the first decimal comma for a dot.

    Unparseable input yields NaN; callers that need to reject it should use
    ``coerce_numeric`` instead.
    """
    return coerce_numeric(value).value


def normalize_row(row: Mapping[str, Any], data_types: Mapping[str, ColumnType]) -> Dict[str, Any]:
    """Return a new row with date and numeric columns rewritten.

    Columns missing from ``data_types`` and falsy values pass through.
    """
    normalized = dict(row)
    for column, column_type in data_types.items():
        value = normalized.get(column)
        if not value:
            continue
        if column_type == ColumnType.DATE:
            normalized[column] = normalize_date(value)
        elif column_type == ColumnType.NUMERIC:
            normalized[column] = normalize_numeric(value)
    return normalized


def normalize_rows(
    rows: Sequence[Mapping[str, Any]],
    data_types: Mapping[str, ColumnType],
) -> List[Dict[str, Any]]:
    """Normalize a batch of rows; the input rows are left untouched."""
    return [normalize_row(row, data_types) for row in rows]


def coerce_row(
    row: Mapping[str, Any],
    data_types: Mapping[str, ColumnType],
) -> Dict[str, CoercionOutcome]:
    """Report how each typed column of a row would be coerced.

    Lets callers find values that the lenient pipeline left unconverted or
    turned into NaN.
    """
    outcomes: Dict[str, CoercionOutcome] = {}
    for column, column_type in data_types.items():
        value = row.get(column)
        if column_type == ColumnType.DATE:
            outcomes[column] = coerce_date(value) if value else CoercionOutcome.unchanged(value)
        elif column_type == ColumnType.NUMERIC:
            outcomes[column] = coerce_numeric(value) if value else CoercionOutcome.unchanged(value)
    return outcomes
