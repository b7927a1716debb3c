"""Streaming CSV parser.

The payload is read through pandas in row chunks sized so each chunk holds
roughly ``chunk_size`` bytes. The row count per chunk and the total chunk
count are both estimated once, from the first ``chunk_size`` bytes, and never
corrected; progress is therefore approximate and clamped to 1.0.
"""
import io
import math
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

import pandas as pd
import structlog

from cmed_ingestion.errors.exceptions import ParserError, ValidationError
from cmed_ingestion.models.column_types import ColumnTypeMap
from cmed_ingestion.models.worker_messages import (
    ChunkEvent,
    CompleteEvent,
    ProcessCsvRequest,
    WorkerEvent,
)
from cmed_ingestion.parsers.base_parser import ChunkedParserInterface, PreviewAccumulator
from cmed_ingestion.parsers.normalizer import normalize_rows
from cmed_ingestion.parsers.type_inference import infer_column_types

logger = structlog.get_logger(__name__)

CANDIDATE_DELIMITERS = (",", ";", "\t", "|")
QUOTED_FIELD = re.compile(r'"[^"]*"')


def _decode_payload(payload: bytes, log: Any) -> Tuple[str, str]:
    """Decode as UTF-8 (BOM tolerated), falling back to latin-1."""
    try:
        return payload.decode("utf-8-sig"), "utf-8"
    except UnicodeDecodeError as e:
        log.warning("utf8_decode_failed_trying_latin1", error=str(e))
        return payload.decode("latin-1"), "latin-1"


def _detect_delimiter(text: str) -> str:
    """Pick the candidate delimiter that occurs most often in the header line.

    Characters inside double-quoted field names are not counted.
    """
    header_line = QUOTED_FIELD.sub("", text.lstrip("\r\n").split("\n", 1)[0])
    counts = {candidate: header_line.count(candidate) for candidate in CANDIDATE_DELIMITERS}
    best = max(CANDIDATE_DELIMITERS, key=lambda candidate: counts[candidate])
    return best if counts[best] > 0 else ","


def _rows_per_chunk(first_raw_chunk: bytes, chunk_size: int) -> int:
    """Rows that fit in ``chunk_size`` bytes, judged by the first chunk's average line size."""
    line_count = max(1, first_raw_chunk.count(b"\n"))
    average_line_size = max(1.0, len(first_raw_chunk) / line_count)
    return max(1, int(chunk_size // average_line_size))


def _frame_to_records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """Convert a chunk to row dicts with native Python scalars and None for blanks."""
    return frame.astype(object).where(frame.notna(), None).to_dict("records")


class CsvChunkParser(ChunkedParserInterface):
    """Parser that streams CSV payloads in size-bounded chunks.

    Features:
    - Header row detection (pandas field names, duplicates mangled unique)
    - Automatic scalar typing of raw fields (ints, floats, booleans)
    - Empty-line skipping
    - Column types inferred once, from the first chunk
    - Bounded preview of the first normalized rows
    """

    def get_parser_name(self) -> str:
        """Return parser identifier."""
        return "csv"

    def validate_request(self, request: Any) -> bool:
        if not isinstance(request, ProcessCsvRequest):
            raise ValidationError(
                f"CSV parser cannot handle request of type {type(request).__name__}"
            )
        return True

    def _read_headers(self, text: str, delimiter: str) -> List[str]:
        try:
            header_frame = pd.read_csv(io.StringIO(text), sep=delimiter, nrows=0, index_col=False)
        except pd.errors.EmptyDataError:
            raise ParserError("CSV file is empty or has no headers")
        except pd.errors.ParserError as e:
            raise ParserError(f"CSV parsing error: {e}") from e
        headers = [str(column) for column in header_frame.columns]
        if not headers:
            raise ParserError("CSV file is empty or has no headers")
        return headers

    def _iter_chunks(self, request: ProcessCsvRequest) -> Iterator[WorkerEvent]:
        payload = request.payload
        chunk_size = request.chunk_size
        log = logger.bind(file_name=request.file_name, file_size=len(payload), chunk_size=chunk_size)

        text, encoding = _decode_payload(payload, log)
        if not text.strip():
            raise ParserError("CSV file is empty or has no headers")

        delimiter = self._settings.csv_delimiter or _detect_delimiter(text)
        headers = self._read_headers(text, delimiter)

        rows_per_chunk = _rows_per_chunk(payload[:chunk_size], chunk_size)
        estimated_chunks = max(1, math.ceil(len(payload) / chunk_size))
        log.info(
            "csv_parse_started",
            encoding=encoding,
            delimiter=delimiter,
            headers=headers,
            rows_per_chunk=rows_per_chunk,
            estimated_chunks=estimated_chunks,
        )

        preview = PreviewAccumulator(self._settings.preview_cap)
        data_types: Optional[ColumnTypeMap] = None
        processed_chunks = 0
        emitted_rows = 0
        cursor = 0

        try:
            reader = pd.read_csv(
                io.StringIO(text),
                sep=delimiter,
                chunksize=rows_per_chunk,
                index_col=False,
                skip_blank_lines=True,
                keep_default_na=False,
                na_values=[""],
            )
            with reader:
                for frame in reader:
                    if self.cancelled:
                        return
                    if frame.empty:
                        continue

                    rows = _frame_to_records(frame)
                    if data_types is None:
                        data_types = infer_column_types(rows, headers, self._settings.type_threshold)

                    normalized = normalize_rows(rows, data_types)
                    preview.add(normalized)

                    processed_chunks += 1
                    emitted_rows += len(normalized)
                    cursor += len(frame)
                    progress = min(1.0, processed_chunks / estimated_chunks)

                    log.debug(
                        "csv_chunk_emitted",
                        chunk=processed_chunks,
                        rows=len(normalized),
                        total_rows=emitted_rows,
                        progress=progress,
                    )
                    yield ChunkEvent(data=normalized, total_rows=emitted_rows, progress=progress)
        except pd.errors.EmptyDataError:
            raise ParserError("CSV file is empty or has no headers")
        except pd.errors.ParserError as e:
            raise ParserError(f"CSV parsing error: {e}") from e

        if data_types is None:
            data_types = infer_column_types([], headers, self._settings.type_threshold)

        log.info(
            "csv_parse_completed",
            total_rows=cursor,
            chunks=processed_chunks,
            estimated_chunks=estimated_chunks,
        )
        yield CompleteEvent(
            headers=headers,
            sample_data=preview.rows,
            total_rows=cursor,
            data_types=data_types,
        )
