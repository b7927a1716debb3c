"""Date and number format detection for raw spreadsheet values.

Values arrive untyped (str, int, float, bool, None, or datetime objects from
workbooks). Detection stringifies first, then tests fixed patterns:

- ISO:    ``YYYY-MM-DD`` optionally followed by ``THH:MM:SS``
- BR:     ``DD/MM/YYYY``
- US:     ``M/D/YYYY`` with 1-2 digit month and day
- Dotted: ``DD.MM.YYYY``

Conversion failures are soft: ``normalize_date`` hands back the original
value, and numeric parsing yields NaN. ``coerce_date`` and ``coerce_numeric``
report the same results as a ``CoercionOutcome`` for stricter callers.
"""
import math
import re
import warnings
from datetime import date, datetime, timedelta
from typing import Any, Optional

import pandas as pd
import structlog

from cmed_ingestion.models.column_types import CoercionOutcome

logger = structlog.get_logger(__name__)

ISO_DATE_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})(?:T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?)?$"
)
BR_DATE_RE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")
US_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
DOTTED_DATE_RE = re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})$")
CANONICAL_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Leading float literal, same prefix rule as a lenient float parse:
# "12,5" -> 12.0, "1.234.56" -> 1.234, "abc" -> NaN
_FLOAT_PREFIX_RE = re.compile(r"^[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

EXCEL_EPOCH = datetime(1899, 12, 30)


def _stringify(value: Any) -> str:
    """Render a raw cell value as the text the detectors look at."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


# =============================================================================
# Dates
# =============================================================================


def detect_date_format(value: Any) -> Optional[str]:
    """Return the name of the first date pattern the value matches.

    Returns:
        One of ``"iso"``, ``"br"``, ``"us"``, ``"dotted"``, or None
    """
    if _is_empty(value):
        return None
    text = _stringify(value)
    if ISO_DATE_RE.match(text):
        return "iso"
    if BR_DATE_RE.match(text):
        return "br"
    if US_DATE_RE.match(text):
        return "us"
    if DOTTED_DATE_RE.match(text):
        return "dotted"
    return None


def is_date_like(value: Any) -> bool:
    """True when the value matches one of the four supported date patterns."""
    return detect_date_format(value) is not None


def _normalize_us_date(text: str) -> Optional[str]:
    """Convert ``M/D/YYYY`` to ISO when the first group is a valid month.

    ``03/04/2025`` cannot be told apart from 3 April; the first group is
    always read as the month.
    """
    match = US_DATE_RE.match(text)
    if not match:
        return None
    month, day, year = int(match.group(1)), int(match.group(2)), match.group(3)
    if month < 1 or month > 12:
        return None
    return f"{year}-{month:02d}-{day:02d}"


def _parse_generic_date(text: str) -> Optional[str]:
    """Last resort: let pandas parse free-form dates like ``March 10, 2025``."""
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.strftime("%Y-%m-%d")


def _convert_date(value: Any) -> Optional[str]:
    """Return the canonical ISO date for a value, or None if it cannot be read."""
    text = _stringify(value)
    if not text:
        return None

    match = ISO_DATE_RE.match(text)
    if match:
        return text.split("T")[0]

    match = BR_DATE_RE.match(text)
    if match:
        day, month, year = match.groups()
        return f"{year}-{month}-{day}"

    if US_DATE_RE.match(text):
        return _normalize_us_date(text)

    match = DOTTED_DATE_RE.match(text)
    if match:
        day, month, year = match.groups()
        return f"{year}-{month}-{day}"

    return _parse_generic_date(text)


def normalize_date(value: Any) -> Any:
    """Rewrite a date value as ``YYYY-MM-DD``.

    Never raises: values that cannot be read as a date are returned unchanged.

    Examples:
        >>> normalize_date("2025-03-10T08:00:00")
        '2025-03-10'
        >>> normalize_date("10/03/2025")
        '2025-03-10'
        >>> normalize_date("n/d")
        'n/d'
    """
    converted = _convert_date(value)
    if converted is None:
        logger.debug("date_normalization_skipped", value=str(value))
        return value
    return converted


def coerce_date(value: Any) -> CoercionOutcome:
    """Normalize a date value and report whether the conversion happened."""
    if _is_empty(value):
        return CoercionOutcome.unchanged(value)
    converted = _convert_date(value)
    if converted is None:
        return CoercionOutcome.unchanged(value)
    return CoercionOutcome.ok(converted, value)


def excel_serial_to_iso(serial: Any) -> Optional[str]:
    """Convert an Excel day serial (1900 date system) to ``YYYY-MM-DD``."""
    try:
        days = float(serial)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(days):
        return None
    try:
        return (EXCEL_EPOCH + timedelta(days=days)).strftime("%Y-%m-%d")
    except OverflowError:
        return None


def to_iso_with_noon(value: Any) -> Optional[str]:
    """ISO date with a fixed 12:00:00 time, so timezone shifts keep the same day."""
    converted = _convert_date(value)
    if converted is None:
        return None
    return f"{converted}T12:00:00"


def format_db_date(value: Optional[str]) -> str:
    """Render a stored ISO date as ``DD/MM/YYYY``; anything else passes through."""
    if not value:
        return ""
    cleaned = value.split("T")[0]
    if CANONICAL_DATE_RE.match(cleaned):
        year, month, day = cleaned.split("-")
        return f"{day}/{month}/{year}"
    return value


# =============================================================================
# Numbers
# =============================================================================


def parse_float_prefix(text: str) -> float:
    """Parse the leading float literal of a string, NaN when there is none."""
    match = _FLOAT_PREFIX_RE.match(text.lstrip())
    if not match:
        return math.nan
    return float(match.group(0))


def is_numeric_like(value: Any) -> bool:
    """True when the raw value starts with a finite number.

    No decimal-comma handling happens here; ``"12,5"`` qualifies through its
    ``12`` prefix.
    """
    if _is_empty(value) or isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    return math.isfinite(parse_float_prefix(_stringify(value)))


def coerce_numeric(value: Any) -> CoercionOutcome:
    """Convert a numeric value, replacing the first decimal comma with a dot."""
    if _is_empty(value):
        return CoercionOutcome.unchanged(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        number = parse_float_prefix(_stringify(value).replace(",", ".", 1))
    if math.isnan(number):
        return CoercionOutcome.invalid(number, value)
    return CoercionOutcome.ok(number, value)
