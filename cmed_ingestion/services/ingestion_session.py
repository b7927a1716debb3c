"""Ingestion session controller.

Owns the per-file session state, drives the worker host and hands the
accumulated rows to the sink when parsing completes.

State machine::

    IDLE -> AWAITING_WORKER_READY -> IDLE (ready) -> PROCESSING
    PROCESSING -> COMPLETED | FAILED | CANCELLED
    any non-processing state -> IDLE on file selection

Cancelling stops the controller from reacting to further events and then
terminates the host, which stops the parser at its next chunk boundary.
"""
import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Union

import structlog

from cmed_ingestion.config import IngestionSettings, get_settings
from cmed_ingestion.errors.exceptions import (
    FileSizeError,
    UnsupportedFormatError,
    ValidationError,
    WorkerTransportError,
)
from cmed_ingestion.models.column_types import ColumnType
from cmed_ingestion.models.worker_messages import (
    ChunkEvent,
    CompleteEvent,
    ErrorEvent,
    ProcessCsvRequest,
    ProcessExcelRequest,
    ReadyEvent,
    Row,
    WorkerEvent,
)
from cmed_ingestion.parsers.parser_registry import parser_type_for_file
from cmed_ingestion.parsers.type_inference import date_columns
from cmed_ingestion.worker import IngestionWorkerHost

logger = structlog.get_logger(__name__)

CANCELLED_MESSAGE = "File processing was cancelled"
TRANSPORT_ERROR_MESSAGE = "Error while processing the file in the background worker"


class SessionState(str, Enum):
    """Controller states."""
    IDLE = "idle"
    AWAITING_WORKER_READY = "awaiting_worker_ready"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SelectedFile:
    """A file picked by the user, held in memory."""
    name: str
    content: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "SelectedFile":
        path = Path(path)
        return cls(name=path.name, content=path.read_bytes())


@dataclass(frozen=True)
class TypeInfo:
    """Column type information passed to the sink."""
    data_types: Dict[str, ColumnType]
    date_columns: List[str]


class IngestionSink(Protocol):
    """Receives the ingested data once a file completes."""

    def __call__(
        self,
        preview_rows: List[Row],
        headers: List[str],
        file_name: str,
        total_rows: int,
        full_rows: List[Row],
        type_info: TypeInfo,
    ) -> Any:
        ...


@dataclass
class IngestionSession:
    """Everything accumulated while processing one file.

    Created fresh for every submitted file and owned by the controller; the
    worker only ever sends immutable row batches to it.
    """
    file: SelectedFile
    preview_cap: int = 200
    rows: List[Row] = field(default_factory=list)
    preview: List[Row] = field(default_factory=list)
    progress: int = 0
    total_rows: int = 0
    headers: List[str] = field(default_factory=list)
    data_types: Dict[str, ColumnType] = field(default_factory=dict)

    def append_chunk(self, event: ChunkEvent) -> None:
        self.rows.extend(event.data)
        remaining = self.preview_cap - len(self.preview)
        if remaining > 0:
            self.preview.extend(event.data[:remaining])
        self.total_rows = event.total_rows
        self.progress = min(99, round(event.progress * 100))


class IngestionSessionController:
    """UI-facing orchestrator for file ingestion.

    Args:
        sink: Called with the results of every completed file
        settings: Pipeline settings (defaults to the global instance)
        host_factory: Builds worker hosts; receives ``settings=``
        on_progress: Called with the displayed percentage (0-100)
        on_error: Called with a user-facing error message
        on_state_change: Called with each new SessionState
    """

    def __init__(
        self,
        sink: IngestionSink,
        settings: Optional[IngestionSettings] = None,
        host_factory: Callable[..., IngestionWorkerHost] = IngestionWorkerHost,
        on_progress: Optional[Callable[[int], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        on_state_change: Optional[Callable[[SessionState], None]] = None,
    ):
        self._sink = sink
        self._settings = settings or get_settings()
        self._host_factory = host_factory
        self._on_progress = on_progress
        self._on_error = on_error
        self._on_state_change = on_state_change

        self.state = SessionState.IDLE
        self.error: Optional[str] = None
        self.session: Optional[IngestionSession] = None
        self.selected_file: Optional[SelectedFile] = None

        self._host: Optional[IngestionWorkerHost] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._ready_signal: Optional[asyncio.Event] = None
        self._done_signal: Optional[asyncio.Event] = None
        self._worker_failed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def progress(self) -> int:
        return self.session.progress if self.session else 0

    @property
    def worker_ready(self) -> bool:
        return self._host is not None and self._host.is_ready

    @property
    def can_submit(self) -> bool:
        """Submission is enabled once a file is selected and the worker is neither bootstrapping nor busy."""
        return (
            self.selected_file is not None
            and self.state not in (SessionState.AWAITING_WORKER_READY, SessionState.PROCESSING)
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """Create a worker host if none is live and wait for its bootstrap.

        Returns:
            True if the worker is ready, False if its bootstrap failed
        """
        if self._host is not None:
            return self._host.is_ready

        host = self._host_factory(settings=self._settings)
        self._host = host
        self._worker_failed = False
        self._ready_signal = asyncio.Event()
        self._set_state(SessionState.AWAITING_WORKER_READY)
        self._pump_task = asyncio.create_task(self._pump(host))

        await host.start()
        await self._ready_signal.wait()
        return host.is_ready

    def select_file(self, file: SelectedFile) -> bool:
        """Select a new file, discarding any previous session.

        Files are checked here, before anything reaches the worker.

        Returns:
            True if the file was accepted
        """
        if self.session is not None:
            self._teardown_host()
            self._signal_done()
        self.session = None
        self.error = None
        self.selected_file = None
        if self.state != SessionState.AWAITING_WORKER_READY:
            self._set_state(SessionState.IDLE)

        try:
            parser_type_for_file(file.name)
            if file.size > self._settings.max_file_size_bytes:
                raise FileSizeError(
                    f"File exceeds the maximum size of {self._settings.max_file_size_mb} MB",
                    details={"file_name": file.name, "size": file.size},
                )
        except (UnsupportedFormatError, FileSizeError) as e:
            logger.warning("file_rejected", file_name=file.name, error=e.message)
            self._report_error(e.message)
            return False

        self.selected_file = file
        logger.info("file_selected", file_name=file.name, size=file.size)
        return True

    async def start(self) -> IngestionSession:
        """Start processing the selected file.

        Raises:
            ValidationError: If no file is selected or the worker cannot start
        """
        if self.selected_file is None:
            raise ValidationError("No file selected")
        if self.state == SessionState.PROCESSING:
            raise ValidationError("A file is already being processed")

        if self._host is None or self._host.is_terminated or self._worker_failed:
            self._teardown_host()
            if not await self.initialize():
                raise ValidationError(self.error or "Background worker is not available")

        file = self.selected_file
        session = IngestionSession(file=file, preview_cap=self._settings.preview_cap)
        self.session = session
        self.error = None
        self._done_signal = asyncio.Event()
        self._set_state(SessionState.PROCESSING)
        self._emit_progress(0)

        try:
            self._host.post_message(self._build_request(file))
        except WorkerTransportError as e:
            self._fail(e.message)
            raise ValidationError(e.message) from e

        logger.info("session_started", file_name=file.name, size=file.size)
        return session

    async def wait(self) -> SessionState:
        """Wait until the current session reaches a terminal state."""
        if self._done_signal is not None:
            await self._done_signal.wait()
        return self.state

    async def ingest(self, file: SelectedFile) -> SessionState:
        """Select, start and wait for one file."""
        if not self.select_file(file):
            return self.state
        await self.start()
        return await self.wait()

    def cancel(self) -> None:
        """Abandon the running session and stop the worker."""
        if self.state != SessionState.PROCESSING:
            return
        logger.info("session_cancelled", file_name=self.session.file.name if self.session else None)
        self.error = CANCELLED_MESSAGE
        self._set_state(SessionState.CANCELLED)
        self._teardown_host()
        self._signal_done()

    def dismiss_error(self) -> None:
        self.error = None

    async def close(self) -> None:
        """Release the worker; call when the owning screen goes away."""
        if self.state == SessionState.PROCESSING:
            self.cancel()
        pump = self._pump_task
        self._teardown_host()
        if pump is not None:
            await asyncio.gather(pump, return_exceptions=True)

    # ------------------------------------------------------------------
    # Worker events
    # ------------------------------------------------------------------

    async def _pump(self, host: IngestionWorkerHost) -> None:
        try:
            async for event in host.events():
                if host is not self._host:
                    return
                await self._handle_event(event)
        except WorkerTransportError as e:
            if host is self._host:
                logger.error("worker_transport_error", error=e.message)
                self._worker_failed = True
                self._teardown_host()
                self._fail(e.message or TRANSPORT_ERROR_MESSAGE)
        except Exception:
            if host is self._host:
                logger.exception("worker_event_handling_failed")
                self._teardown_host()
                self._fail(TRANSPORT_ERROR_MESSAGE)

    async def _handle_event(self, event: WorkerEvent) -> None:
        if isinstance(event, ReadyEvent):
            self._on_ready()
        elif isinstance(event, ChunkEvent):
            self._on_chunk(event)
        elif isinstance(event, CompleteEvent):
            await self._on_complete(event)
        elif isinstance(event, ErrorEvent):
            self._on_worker_error(event)
        else:
            raise WorkerTransportError(f"Unknown worker event: {event!r}")

    def _on_ready(self) -> None:
        if self.state == SessionState.AWAITING_WORKER_READY:
            self._set_state(SessionState.IDLE)
        if self._ready_signal is not None:
            self._ready_signal.set()

    def _on_chunk(self, event: ChunkEvent) -> None:
        if self.state != SessionState.PROCESSING or self.session is None:
            return
        self.session.append_chunk(event)
        self._emit_progress(self.session.progress)

    async def _on_complete(self, event: CompleteEvent) -> None:
        if self.state != SessionState.PROCESSING or self.session is None:
            return
        session = self.session
        session.progress = 100
        session.headers = list(event.headers)
        session.total_rows = event.total_rows
        session.data_types = dict(event.data_types)
        self._emit_progress(100)

        preview_rows = session.preview or list(event.sample_data)
        full_rows = session.rows if session.rows else preview_rows
        type_info = TypeInfo(
            data_types=session.data_types,
            date_columns=date_columns(session.data_types),
        )

        try:
            result = self._sink(
                preview_rows,
                session.headers,
                session.file.name,
                session.total_rows,
                full_rows,
                type_info,
            )
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.exception("sink_failed", file_name=session.file.name)
            self._fail(f"Error while handling imported data: {e}")
            return

        logger.info(
            "session_completed",
            file_name=session.file.name,
            total_rows=session.total_rows,
            buffered_rows=len(session.rows),
            date_columns=type_info.date_columns,
        )
        self._set_state(SessionState.COMPLETED)
        self._signal_done()

    def _on_worker_error(self, event: ErrorEvent) -> None:
        if event.fatal:
            self._worker_failed = True
            self._fail(event.error)
            if self._ready_signal is not None:
                self._ready_signal.set()
            return
        if self.state == SessionState.PROCESSING:
            self._fail(event.error)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_request(self, file: SelectedFile) -> Union[ProcessCsvRequest, ProcessExcelRequest]:
        if parser_type_for_file(file.name) == "csv":
            return ProcessCsvRequest(
                payload=file.content,
                file_name=file.name,
                chunk_size=self._settings.csv_chunk_size,
            )
        return ProcessExcelRequest(payload=file.content, file_name=file.name)

    def _fail(self, message: str) -> None:
        logger.warning(
            "session_failed",
            file_name=self.session.file.name if self.session else None,
            error=message,
        )
        try:
            self._set_state(SessionState.FAILED)
            self._report_error(message)
        finally:
            self._signal_done()

    def _report_error(self, message: str) -> None:
        self.error = message
        if self._on_error is not None:
            self._on_error(message)

    def _emit_progress(self, percent: int) -> None:
        if self._on_progress is not None:
            self._on_progress(percent)

    def _set_state(self, state: SessionState) -> None:
        if state == self.state:
            return
        logger.debug("session_state_changed", previous=self.state.value, current=state.value)
        self.state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def _signal_done(self) -> None:
        if self._done_signal is not None:
            self._done_signal.set()

    def _teardown_host(self) -> None:
        host = self._host
        self._host = None
        self._pump_task = None
        if host is not None:
            host.terminate()
        if self._ready_signal is not None:
            self._ready_signal.set()
