"""Background worker host for file parsing.

The host keeps parsing off the event loop that drives the caller. It owns a
single-thread executor; requests are posted to it, and every event the
parser produces is handed back to the loop with ``call_soon_threadsafe`` and
queued in emission order. The caller only ever awaits events.

Lifecycle:
    1. ``start()`` runs the dependency bootstrap. Each required library is
       looked up through an ordered list of sources; every source gets a
       bounded number of attempts with a fixed delay before the next source
       is tried. Success posts ``ReadyEvent``; exhausting every source posts a
       fatal ``ErrorEvent`` and the host never becomes ready.
    2. ``post_message()`` accepts ``processCSV`` / ``processExcel`` requests.
       Each parser receives the bootstrapped dependencies; the Excel parser
       reads workbooks with the engine resolved for their format.
    3. ``terminate()`` stops delivering events, asks the running parse to
       stop at its next chunk boundary and releases the executor.
"""
import asyncio
import importlib
import inspect
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Sequence, Union

import structlog
from pydantic import ValidationError as PydanticValidationError
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_fixed

from cmed_ingestion.config import IngestionSettings, get_settings
from cmed_ingestion.errors.exceptions import BootstrapError, WorkerTransportError
from cmed_ingestion.models.worker_messages import (
    ErrorEvent,
    ReadyEvent,
    WorkerEvent,
    parse_worker_request,
)
from cmed_ingestion.parsers.parser_registry import REQUEST_PARSER_TYPES, create_parser_instance

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DependencySource:
    """One place a required library can be obtained from.

    ``loader`` may be a plain callable or a coroutine function; it returns
    the loaded library or raises.
    """
    name: str
    loader: Callable[[], Any]


def _load_excel_engine(module_name: str, engine: str) -> str:
    """Import an Excel reader backend and return the pandas engine name for it."""
    importlib.import_module(module_name)
    return engine


def _excel_engine_source(module_name: str, engine: str) -> DependencySource:
    return DependencySource(module_name, partial(_load_excel_engine, module_name, engine))


# Library -> ordered sources. The "xlsx" and "xls" entries resolve to the
# pandas engine the Excel parser reads that format with.
DEFAULT_DEPENDENCY_SOURCES: Dict[str, List[DependencySource]] = {
    "pandas": [DependencySource("pandas", partial(importlib.import_module, "pandas"))],
    "xlsx": [
        _excel_engine_source("openpyxl", "openpyxl"),
        _excel_engine_source("python_calamine", "calamine"),
    ],
    "xls": [
        _excel_engine_source("xlrd", "xlrd"),
        _excel_engine_source("python_calamine", "calamine"),
    ],
}

_TERMINATED = object()


def _log_retry(requirement: str, source: DependencySource) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "dependency_source_retry",
            requirement=requirement,
            source=source.name,
            attempt=retry_state.attempt_number,
            error=str(error),
        )
    return before_sleep


async def _load_from_source(
    requirement: str,
    source: DependencySource,
    attempts: int,
    delay: float,
) -> Any:
    loaded = None
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        before_sleep=_log_retry(requirement, source),
        reraise=True,
    ):
        with attempt:
            loaded = source.loader()
            if inspect.isawaitable(loaded):
                loaded = await loaded
    return loaded


async def bootstrap_dependencies(
    requirements: Mapping[str, Sequence[DependencySource]],
    attempts: int = 3,
    delay: float = 1.0,
) -> Dict[str, Any]:
    """Load every required library, trying its sources one after another.

    Args:
        requirements: Library name -> ordered sources
        attempts: Attempts per source
        delay: Seconds to wait between attempts on the same source

    Returns:
        Library name -> loaded object

    Raises:
        BootstrapError: If every source of some library failed
    """
    loaded: Dict[str, Any] = {}
    for requirement, sources in requirements.items():
        errors: List[str] = []
        for source in sources:
            try:
                loaded[requirement] = await _load_from_source(requirement, source, attempts, delay)
            except Exception as e:
                errors.append(f"{source.name}: {e}")
                logger.warning(
                    "dependency_source_exhausted",
                    requirement=requirement,
                    source=source.name,
                    attempts=attempts,
                    error=str(e),
                )
                continue
            logger.info("dependency_loaded", requirement=requirement, source=source.name)
            break
        else:
            raise BootstrapError(
                f"Unable to load required library '{requirement}' from any source",
                details={"requirement": requirement, "errors": errors},
            )
    return loaded


class IngestionWorkerHost:
    """Runs chunked parsers off the caller's event loop and relays their events."""

    def __init__(
        self,
        settings: Optional[IngestionSettings] = None,
        dependency_sources: Optional[Mapping[str, Sequence[DependencySource]]] = None,
    ):
        self._settings = settings or get_settings()
        self._sources = DEFAULT_DEPENDENCY_SOURCES if dependency_sources is None else dependency_sources
        self._events: asyncio.Queue = asyncio.Queue()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingestion-worker")
        self._cancel_event = threading.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ready = False
        self._terminated = False
        self.dependencies: Dict[str, Any] = {}

    @property
    def is_ready(self) -> bool:
        return self._ready and not self._terminated

    @property
    def is_terminated(self) -> bool:
        return self._terminated

    async def start(self) -> None:
        """Bootstrap dependencies and announce readiness (or fatal failure)."""
        self._loop = asyncio.get_running_loop()
        try:
            self.dependencies = await bootstrap_dependencies(
                self._sources,
                attempts=self._settings.bootstrap_attempts,
                delay=self._settings.bootstrap_retry_delay,
            )
        except BootstrapError as e:
            logger.error("worker_bootstrap_failed", error=e.message, details=e.details)
            self._post(ErrorEvent(error=e.message, fatal=True))
            return

        self._ready = True
        logger.info("worker_ready", dependencies=list(self.dependencies))
        self._post(ReadyEvent())

    def post_message(self, request: Any) -> None:
        """Dispatch a parse request to the worker thread.

        Raises:
            WorkerTransportError: If the host is not ready, was terminated, or
                the request is not a valid processCSV/processExcel message
        """
        if self._terminated:
            raise WorkerTransportError("Worker host has been terminated")
        if not self._ready or self._loop is None:
            raise WorkerTransportError("Worker host is not ready")
        try:
            request = parse_worker_request(request)
        except PydanticValidationError as e:
            raise WorkerTransportError(f"Invalid worker request: {e}") from e

        logger.info("worker_request_received", request_type=request.type, file_name=request.file_name)
        future = self._loop.run_in_executor(self._executor, self._run, request)
        future.add_done_callback(self._on_run_done)

    def _run(self, request: Any) -> None:
        """Worker thread body: parse and post every event back to the loop."""
        parser = create_parser_instance(
            REQUEST_PARSER_TYPES[request.type],
            settings=self._settings,
            cancel_event=self._cancel_event,
            dependencies=self.dependencies,
        )
        for event in parser.iter_events(request):
            if self._cancel_event.is_set():
                return
            self._post_threadsafe(event)

    def _on_run_done(self, future: "asyncio.Future[None]") -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("worker_run_failed", error=str(error))
            self._post(WorkerTransportError(f"Worker failed: {error}"))

    def _post_threadsafe(self, event: WorkerEvent) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        try:
            self._loop.call_soon_threadsafe(self._post, event)
        except RuntimeError:
            # loop closed between the check and the call
            pass

    def _post(self, item: Union[WorkerEvent, WorkerTransportError]) -> None:
        if self._terminated:
            return
        self._events.put_nowait(item)

    async def events(self) -> AsyncIterator[WorkerEvent]:
        """Yield events in emission order until the host is terminated.

        Raises:
            WorkerTransportError: When the worker failed outside the parser
        """
        while True:
            item = await self._events.get()
            if item is _TERMINATED:
                return
            if isinstance(item, WorkerTransportError):
                raise item
            yield item

    def terminate(self) -> None:
        """Stop the worker; safe to call more than once."""
        if self._terminated:
            return
        self._terminated = True
        self._ready = False
        self._cancel_event.set()
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._events.put_nowait(_TERMINATED)
        logger.info("worker_terminated")
