"""Pydantic models for the worker host message protocol.

Requests flow from the session controller to the worker host, events flow
back. Both directions are tagged unions discriminated on ``type``; the tag
values are the stable wire names of the protocol.
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from cmed_ingestion.models.column_types import ColumnType

Row = Dict[str, Any]


class _Message(BaseModel):
    model_config = ConfigDict(frozen=True)


# =============================================================================
# Requests (controller -> worker)
# =============================================================================


class ProcessCsvRequest(_Message):
    """Parse a CSV payload in size-bounded streamed chunks."""
    type: Literal["processCSV"] = "processCSV"
    payload: bytes = Field(..., repr=False, description="Raw file bytes")
    file_name: Optional[str] = Field(default=None, description="Original file name")
    chunk_size: int = Field(
        default=500_000,
        ge=1,
        description="Target chunk size in bytes"
    )


class ProcessExcelRequest(_Message):
    """Parse the first sheet of a workbook in fixed-size row batches."""
    type: Literal["processExcel"] = "processExcel"
    payload: bytes = Field(..., repr=False, description="Raw workbook bytes")
    file_name: Optional[str] = Field(default=None, description="Original file name")


WorkerRequest = Annotated[
    Union[ProcessCsvRequest, ProcessExcelRequest],
    Field(discriminator="type"),
]


# =============================================================================
# Events (worker -> controller)
# =============================================================================


class ChunkEvent(_Message):
    """A batch of normalized rows plus running totals."""
    type: Literal["chunk"] = "chunk"
    data: List[Row] = Field(default_factory=list)
    total_rows: int = Field(..., ge=0, description="Rows emitted so far, this chunk included")
    progress: float = Field(..., ge=0.0, le=1.0, description="Processed chunks / estimated total chunks")


class CompleteEvent(_Message):
    """Terminal event of a successful parse."""
    type: Literal["complete"] = "complete"
    headers: List[str]
    sample_data: List[Row] = Field(default_factory=list, description="Bounded preview rows")
    total_rows: int = Field(..., ge=0)
    data_types: Dict[str, ColumnType] = Field(default_factory=dict)


class ErrorEvent(_Message):
    """Terminal event of a failed parse or a failed bootstrap."""
    type: Literal["error"] = "error"
    error: str
    fatal: bool = Field(
        default=False,
        description="True when the host itself is unusable (bootstrap failure)"
    )


class ReadyEvent(_Message):
    """Unsolicited event sent once the dependency bootstrap succeeded."""
    type: Literal["ready"] = "ready"


WorkerEvent = Annotated[
    Union[ChunkEvent, CompleteEvent, ErrorEvent, ReadyEvent],
    Field(discriminator="type"),
]

_request_adapter: TypeAdapter = TypeAdapter(WorkerRequest)
_event_adapter: TypeAdapter = TypeAdapter(WorkerEvent)


def parse_worker_request(data: Any) -> Union[ProcessCsvRequest, ProcessExcelRequest]:
    """Decode a request from a mapping or pass a request model through.

    Raises:
        pydantic.ValidationError: If the tag is unknown or the payload shape is wrong
    """
    return _request_adapter.validate_python(data)


def parse_worker_event(data: Any) -> Union[ChunkEvent, CompleteEvent, ErrorEvent, ReadyEvent]:
    """Decode an event from a mapping or pass an event model through.

    Raises:
        pydantic.ValidationError: If the tag is unknown or the payload shape is wrong
    """
    return _event_adapter.validate_python(data)
