"""Pydantic and dataclass models shared across the pipeline."""
from cmed_ingestion.models.column_types import (
    ColumnType,
    ColumnTypeMap,
    CoercionStatus,
    CoercionOutcome,
)
from cmed_ingestion.models.worker_messages import (
    Row,
    ProcessCsvRequest,
    ProcessExcelRequest,
    WorkerRequest,
    ChunkEvent,
    CompleteEvent,
    ErrorEvent,
    ReadyEvent,
    WorkerEvent,
    parse_worker_request,
    parse_worker_event,
)

__all__ = [
    "ColumnType",
    "ColumnTypeMap",
    "CoercionStatus",
    "CoercionOutcome",
    "Row",
    "ProcessCsvRequest",
    "ProcessExcelRequest",
    "WorkerRequest",
    "ChunkEvent",
    "CompleteEvent",
    "ErrorEvent",
    "ReadyEvent",
    "WorkerEvent",
    "parse_worker_request",
    "parse_worker_event",
]
