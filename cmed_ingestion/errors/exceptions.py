"""Custom exception hierarchy for data ingestion errors."""
from typing import Any, Dict, Optional


class DataIngestionError(Exception):
    """Base exception for all data ingestion errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize error with message and optional context."""
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ParserError(DataIngestionError):
    """Raised when a file cannot be parsed (malformed CSV, unreadable workbook, empty sheet)."""
    pass


class ValidationError(DataIngestionError):
    """Raised when a request or configuration fails validation."""
    pass


class UnsupportedFormatError(DataIngestionError):
    """Raised when a selected file has an extension no parser handles."""
    pass


class FileSizeError(DataIngestionError):
    """Raised when a selected file exceeds the maximum allowed size."""
    pass


class BootstrapError(DataIngestionError):
    """Raised when a worker dependency cannot be obtained from any configured source."""
    pass


class WorkerTransportError(DataIngestionError):
    """Raised when the worker host fails outside of the parser itself."""
    pass
