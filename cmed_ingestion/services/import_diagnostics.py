"""Pre-import checks for ingested CMED data."""
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence

import structlog

from cmed_ingestion.parsers.formats import CANONICAL_DATE_RE, parse_float_prefix

logger = structlog.get_logger(__name__)

DiagnosticStatus = Literal["success", "warning", "error"]

DIAGNOSTIC_REQUIRED_FIELDS: List[str] = [
    "substancia", "laboratorio", "produto", "apresentacao",
    "codigo_ggrem", "registro", "ean_1", "classe_terapeutica",
    "tipo_de_produto", "regime_de_preco", "pf_sem_impostos",
]

SAMPLE_CHECK_ROWS = 10
SAMPLE_PREVIEW_ROWS = 5


@dataclass
class DiagnosticReport:
    """Outcome of ``diagnose_file``."""
    status: DiagnosticStatus
    message: str
    details: str
    problems: Optional[Dict[str, Dict[str, int]]] = None
    sample: Optional[Dict[str, List[Any]]] = None


@dataclass
class DateValidation:
    """Outcome of ``validate_publication_date``."""
    valid: bool
    message: str
    warning: Optional[str] = None
    formatted: Optional[str] = None


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def diagnose_file(
    rows: Sequence[Mapping[str, Any]],
    mapping: Mapping[str, Optional[str]],
) -> DiagnosticReport:
    """Check ingested rows and a column mapping for common import problems.

    Checks, in order: data present, required fields mapped, mapped columns
    present in the first row, then the first rows for mostly-empty fields and
    unparseable prices.
    """
    if not rows:
        return DiagnosticReport(
            status="error",
            message="Empty or invalid file",
            details="No data was found to analyse",
        )

    unmapped = [field for field in DIAGNOSTIC_REQUIRED_FIELDS if not mapping.get(field)]
    if unmapped:
        return DiagnosticReport(
            status="error",
            message="Required fields are not mapped",
            details=f"The following fields were not mapped: {', '.join(unmapped)}",
        )

    first_row = rows[0]
    absent = [
        f"{field} (column '{column}')"
        for field, column in mapping.items()
        if column and column not in first_row
    ]
    if absent:
        return DiagnosticReport(
            status="error",
            message="Mapped columns do not exist in the data",
            details=f"The following columns were not found: {', '.join(absent)}",
        )

    checked = rows[:SAMPLE_CHECK_ROWS]
    empty_values: Dict[str, int] = {}
    invalid_values: Dict[str, int] = {}
    for row in checked:
        for field, column in mapping.items():
            if not column:
                continue
            value = row.get(column)
            if _is_blank(value):
                empty_values[field] = empty_values.get(field, 0) + 1
            if field == "pf_sem_impostos":
                text = str(value if value or value == 0 else "0").replace(",", ".", 1)
                if math.isnan(parse_float_prefix(text)):
                    invalid_values[field] = invalid_values.get(field, 0) + 1

    flagged: List[str] = []
    for field, count in empty_values.items():
        if count > len(checked) / 2:
            flagged.append(f"{field} ({count}/{len(checked)} empty values)")
    for field, count in invalid_values.items():
        flagged.append(f"{field} ({count}/{len(checked)} invalid values)")

    problems = {"empty_values": empty_values, "invalid_values": invalid_values}
    if flagged:
        logger.info("import_diagnostics_warning", flagged=flagged)
        return DiagnosticReport(
            status="warning",
            message="Possible problems detected in the data",
            details=f"The following fields have problematic values: {', '.join(flagged)}",
            problems=problems,
        )

    preview = rows[:SAMPLE_PREVIEW_ROWS]
    sample = {
        field: [row.get(mapping[field]) for row in preview]
        for field in DIAGNOSTIC_REQUIRED_FIELDS
    }
    return DiagnosticReport(
        status="success",
        message="File is valid for import",
        details="All fields were mapped correctly and the data looks valid",
        sample=sample,
    )


def validate_publication_date(value: Optional[str], today: Optional[date] = None) -> DateValidation:
    """Validate a publication date given as ``YYYY-MM-DD``.

    Future dates are accepted with a warning. Valid dates come back with a
    fixed noon time so that timezone conversion keeps the same day.
    """
    if not value:
        return DateValidation(valid=False, message="Date not provided")

    if not CANONICAL_DATE_RE.match(value):
        return DateValidation(valid=False, message="Date must be in ISO format (YYYY-MM-DD)")

    year, month, day = (int(part) for part in value.split("-"))
    try:
        parsed = date(year, month, day)
    except ValueError:
        return DateValidation(valid=False, message="Invalid date")

    if parsed > (today or date.today()):
        return DateValidation(
            valid=True,
            warning="The date is in the future",
            message="The given date is later than the current date",
        )

    return DateValidation(valid=True, message="Valid date", formatted=f"{value}T12:00:00")
