"""Session orchestration and CMED import helpers."""
from cmed_ingestion.services.ingestion_session import (
    IngestionSessionController,
    IngestionSession,
    IngestionSink,
    SelectedFile,
    SessionState,
    TypeInfo,
)
from cmed_ingestion.services.column_mapper import (
    CMED_FIELDS,
    suggest_column_mapping,
    apply_column_mapping,
    missing_required_fields,
)
from cmed_ingestion.services.import_diagnostics import (
    DiagnosticReport,
    DateValidation,
    diagnose_file,
    validate_publication_date,
)

__all__ = [
    "IngestionSessionController",
    "IngestionSession",
    "IngestionSink",
    "SelectedFile",
    "SessionState",
    "TypeInfo",
    "CMED_FIELDS",
    "suggest_column_mapping",
    "apply_column_mapping",
    "missing_required_fields",
    "DiagnosticReport",
    "DateValidation",
    "diagnose_file",
    "validate_publication_date",
]
