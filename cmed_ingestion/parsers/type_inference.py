"""Column type inference by majority vote over a row sample."""
from typing import Any, Dict, Iterable, List, Mapping, Sequence

import structlog

from cmed_ingestion.models.column_types import ColumnType, ColumnTypeMap
from cmed_ingestion.parsers.formats import is_date_like, is_numeric_like

logger = structlog.get_logger(__name__)

DEFAULT_TYPE_THRESHOLD = 0.7


def _is_non_empty(value: Any) -> bool:
    return value is not None and value != ""


def infer_column_type(values: Iterable[Any], threshold: float = DEFAULT_TYPE_THRESHOLD) -> ColumnType:
    """Classify one column from its sampled values.

    Date is checked before numeric, so a column whose values are both
    date-like and numeric-like (``10/03/2025`` starts with ``10``) is a date.
    """
    non_empty = 0
    date_count = 0
    numeric_count = 0
    for value in values:
        if not _is_non_empty(value):
            continue
        non_empty += 1
        if is_date_like(value):
            date_count += 1
        if is_numeric_like(value):
            numeric_count += 1

    if non_empty == 0:
        return ColumnType.UNKNOWN
    if date_count / non_empty > threshold:
        return ColumnType.DATE
    if numeric_count / non_empty > threshold:
        return ColumnType.NUMERIC
    return ColumnType.STRING


def infer_column_types(
    sample_rows: Sequence[Mapping[str, Any]],
    headers: Sequence[str],
    threshold: float = DEFAULT_TYPE_THRESHOLD,
) -> ColumnTypeMap:
    """Estimate a type for every header from a sample of rows.

    Args:
        sample_rows: Prefix of the data (first CSV chunk, or first Excel rows)
        headers: Column names in file order
        threshold: Fraction of non-empty values that must match a type

    Returns:
        Mapping of header to ColumnType, in header order
    """
    data_types: Dict[str, ColumnType] = {}
    for header in headers:
        data_types[header] = infer_column_type(
            (row.get(header) for row in sample_rows), threshold
        )

    logger.debug(
        "column_types_inferred",
        sample_size=len(sample_rows),
        data_types={k: v.value for k, v in data_types.items()},
    )
    return data_types


def date_columns(data_types: Mapping[str, ColumnType]) -> List[str]:
    """Names of the columns typed as dates, in map order."""
    return [name for name, column_type in data_types.items() if column_type == ColumnType.DATE]
