"""Abstract chunked parser interface shared by the CSV and Excel parsers."""
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import structlog

from cmed_ingestion.config import IngestionSettings, get_settings
from cmed_ingestion.errors.exceptions import DataIngestionError
from cmed_ingestion.models.worker_messages import ErrorEvent, WorkerEvent

logger = structlog.get_logger(__name__)


class PreviewAccumulator:
    """Keeps the first ``cap`` rows seen and ignores the rest."""

    def __init__(self, cap: int):
        self.cap = cap
        self.rows: List[Dict[str, Any]] = []

    @property
    def is_full(self) -> bool:
        return len(self.rows) >= self.cap

    def add(self, rows: Sequence[Dict[str, Any]]) -> None:
        remaining = self.cap - len(self.rows)
        if remaining > 0:
            self.rows.extend(rows[:remaining])


class ChunkedParserInterface(ABC):
    """Abstract base class for parsers that emit rows in chunks.

    A parse produces zero or more ``ChunkEvent`` objects followed by exactly
    one terminal event: ``CompleteEvent`` on success or ``ErrorEvent`` on
    failure. Nothing is emitted after the terminal event.

    Implementations must provide:
    - _iter_chunks(): Yield chunk events and the complete event, raising on failure
    - validate_request(): Verify the request is one this parser understands
    - get_parser_name(): Return unique parser identifier
    """

    def __init__(
        self,
        settings: Optional[IngestionSettings] = None,
        cancel_event: Optional[threading.Event] = None,
        dependencies: Optional[Mapping[str, Any]] = None,
    ):
        self._settings = settings or get_settings()
        self._cancel_event = cancel_event or threading.Event()
        self._dependencies: Dict[str, Any] = dict(dependencies or {})

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def iter_events(self, request: Any) -> Iterator[WorkerEvent]:
        """Run the parse and yield its events.

        Every failure is converted into a single ``ErrorEvent``; exceptions
        never escape this generator. A cancelled parse stops between chunks
        without a terminal event.
        """
        log = logger.bind(parser=self.get_parser_name(), file_name=getattr(request, "file_name", None))
        try:
            self.validate_request(request)
            for event in self._iter_chunks(request):
                if self.cancelled:
                    log.info("parse_cancelled")
                    return
                yield event
        except DataIngestionError as e:
            log.warning("parse_failed", error=e.message)
            yield ErrorEvent(error=e.message)
        except Exception as e:
            log.exception("parse_failed_unexpectedly")
            yield ErrorEvent(error=f"Unexpected error while parsing file: {e}")

    @abstractmethod
    def _iter_chunks(self, request: Any) -> Iterator[WorkerEvent]:
        """Yield chunk events then the complete event.

        Raises:
            ParserError: If the payload cannot be parsed
        """
        pass

    @abstractmethod
    def validate_request(self, request: Any) -> bool:
        """Validate the request before parsing.

        Raises:
            ValidationError: If the request is of the wrong kind
        """
        pass

    @abstractmethod
    def get_parser_name(self) -> str:
        """Return parser identifier (e.g., "csv", "excel")."""
        pass
