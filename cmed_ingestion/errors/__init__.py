"""Error handling module."""
from cmed_ingestion.errors.exceptions import (
    DataIngestionError,
    ParserError,
    ValidationError,
    UnsupportedFormatError,
    FileSizeError,
    BootstrapError,
    WorkerTransportError,
)

__all__ = [
    "DataIngestionError",
    "ParserError",
    "ValidationError",
    "UnsupportedFormatError",
    "FileSizeError",
    "BootstrapError",
    "WorkerTransportError",
]
