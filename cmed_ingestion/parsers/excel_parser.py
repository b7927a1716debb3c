"""Excel workbook parser.

The whole workbook is read into memory with pandas, using the engine the
worker bootstrapped for the format (openpyxl or python-calamine for .xlsx,
xlrd or python-calamine for legacy .xls). The first sheet is taken and its
first non-blank row becomes the header row. Blank rows after the last data
row are dropped; blank rows between data rows are kept as empty records.
Rows are emitted in fixed-size batches.
"""
import io
import math
from typing import Any, Dict, Iterator, List, Optional, Sequence

import pandas as pd
import structlog

from cmed_ingestion.errors.exceptions import ParserError, ValidationError
from cmed_ingestion.models.worker_messages import (
    ChunkEvent,
    CompleteEvent,
    ProcessExcelRequest,
    WorkerEvent,
)
from cmed_ingestion.parsers.base_parser import ChunkedParserInterface, PreviewAccumulator
from cmed_ingestion.parsers.normalizer import normalize_rows
from cmed_ingestion.parsers.type_inference import infer_column_types

logger = structlog.get_logger(__name__)

XLSX_SIGNATURE = b"PK\x03\x04"
XLS_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

# Workbook format -> pandas engine used when no bootstrapped engine is given
DEFAULT_EXCEL_ENGINES: Dict[str, str] = {
    "xlsx": "openpyxl",
    "xls": "xlrd",
}


def _detect_workbook_format(payload: bytes, file_name: Optional[str]) -> str:
    """Tell .xlsx from legacy .xls by file signature, then by extension."""
    if payload.startswith(XLSX_SIGNATURE):
        return "xlsx"
    if payload.startswith(XLS_SIGNATURE):
        return "xls"
    if file_name and file_name.lower().endswith(".xls"):
        return "xls"
    return "xlsx"


def _trim_blank_rows(frame: pd.DataFrame) -> pd.DataFrame:
    """Drop leading and trailing all-blank rows; blank rows in between stay."""
    filled = frame.notna().any(axis=1).to_numpy()
    if not filled.any():
        return frame.iloc[0:0]
    first = int(filled.argmax())
    last = len(filled) - int(filled[::-1].argmax())
    return frame.iloc[first:last]


def _header_name(value: Any, index: int) -> str:
    if value is None:
        return f"Unnamed: {index}"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value).strip()
    return text or f"Unnamed: {index}"


def _unique_headers(raw_headers: Sequence[Any]) -> List[str]:
    """Stringify header cells, suffixing duplicates with .1, .2, ..."""
    headers: List[str] = []
    seen: Dict[str, int] = {}
    for index, value in enumerate(raw_headers):
        name = _header_name(value, index)
        if name in seen:
            seen[name] += 1
            name = f"{name}.{seen[name]}"
        seen.setdefault(name, 0)
        headers.append(name)
    return headers


def _to_record(headers: Sequence[str], row: Sequence[Any]) -> Dict[str, Any]:
    return {header: (row[i] if i < len(row) else None) for i, header in enumerate(headers)}


class ExcelChunkParser(ChunkedParserInterface):
    """Parser that reads the first worksheet and emits it in row batches.

    Column types are inferred from the first ``excel_sample_size`` rows
    before any batch is emitted. The terminal row count is exact.
    """

    def get_parser_name(self) -> str:
        """Return parser identifier."""
        return "excel"

    def validate_request(self, request: Any) -> bool:
        if not isinstance(request, ProcessExcelRequest):
            raise ValidationError(
                f"Excel parser cannot handle request of type {type(request).__name__}"
            )
        return True

    def _read_first_sheet(self, request: ProcessExcelRequest, log: Any) -> List[List[Any]]:
        workbook_format = _detect_workbook_format(request.payload, request.file_name)
        engine = self._dependencies.get(workbook_format, DEFAULT_EXCEL_ENGINES[workbook_format])
        log.debug("excel_engine_selected", workbook_format=workbook_format, engine=engine)
        try:
            frame = pd.read_excel(
                io.BytesIO(request.payload),
                sheet_name=0,
                header=None,
                dtype=object,
                engine=engine,
            )
        except Exception as e:
            raise ParserError(f"Unable to read Excel workbook: {e}") from e

        frame = _trim_blank_rows(frame)
        if frame.empty:
            raise ParserError("Excel file is empty or has no valid headers")
        return frame.astype(object).where(frame.notna(), None).values.tolist()

    def _iter_chunks(self, request: ProcessExcelRequest) -> Iterator[WorkerEvent]:
        log = logger.bind(file_name=request.file_name, file_size=len(request.payload))
        values = self._read_first_sheet(request, log)

        raw_headers = values[0]
        if all(value is None for value in raw_headers):
            raise ParserError("Excel file is empty or has no valid headers")
        headers = _unique_headers(raw_headers)
        rows = values[1:]

        batch_size = self._settings.excel_batch_size
        total_rows = len(rows)
        total_chunks = max(1, math.ceil(total_rows / batch_size))

        sample = [_to_record(headers, row) for row in rows[: self._settings.excel_sample_size]]
        data_types = infer_column_types(sample, headers, self._settings.type_threshold)

        log.info(
            "excel_parse_started",
            headers=headers,
            total_rows=total_rows,
            total_chunks=total_chunks,
        )

        preview = PreviewAccumulator(self._settings.preview_cap)
        processed_chunks = 0
        for start in range(0, total_rows, batch_size):
            if self.cancelled:
                return
            batch = [_to_record(headers, row) for row in rows[start:start + batch_size]]
            normalized = normalize_rows(batch, data_types)
            preview.add(normalized)

            processed_chunks += 1
            emitted_rows = start + len(normalized)
            progress = min(1.0, processed_chunks / total_chunks)
            log.debug(
                "excel_chunk_emitted",
                chunk=processed_chunks,
                rows=len(normalized),
                total_rows=emitted_rows,
                progress=progress,
            )
            yield ChunkEvent(data=normalized, total_rows=emitted_rows, progress=progress)

        log.info("excel_parse_completed", total_rows=total_rows, chunks=processed_chunks)
        yield CompleteEvent(
            headers=headers,
            sample_data=preview.rows,
            total_rows=total_rows,
            data_types=data_types,
        )
