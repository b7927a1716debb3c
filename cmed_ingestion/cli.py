"""Command line entry point: ingest one local file and print a summary.

Usage:
    cmed-ingest precos_cmed.csv
    cmed-ingest precos_cmed.xlsx --json
    cmed-ingest big_export.csv --chunk-size 1000000
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from cmed_ingestion.config import IngestionSettings, configure_logging, get_settings
from cmed_ingestion.errors.exceptions import DataIngestionError
from cmed_ingestion.models.worker_messages import Row
from cmed_ingestion.services.ingestion_session import (
    IngestionSessionController,
    SelectedFile,
    SessionState,
    TypeInfo,
)


class SummarySink:
    """Sink that keeps only what the summary needs."""

    def __init__(self) -> None:
        self.summary: Optional[Dict[str, Any]] = None

    def __call__(
        self,
        preview_rows: List[Row],
        headers: List[str],
        file_name: str,
        total_rows: int,
        full_rows: List[Row],
        type_info: TypeInfo,
    ) -> None:
        self.summary = {
            "file": file_name,
            "total_rows": total_rows,
            "buffered_rows": len(full_rows),
            "preview_rows": len(preview_rows),
            "headers": list(headers),
            "column_types": {name: column_type.value for name, column_type in type_info.data_types.items()},
            "date_columns": list(type_info.date_columns),
        }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cmed-ingest",
        description="Parse a CSV, XLS or XLSX price table and report its rows and column types",
    )
    parser.add_argument("path", help="Path to the file to ingest")
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="CSV chunk size in bytes (default: INGEST_CSV_CHUNK_SIZE or 500000)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary as JSON",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level for messages written to stderr (default: INGEST_LOG_LEVEL)",
    )
    return parser


def _format_summary(summary: Dict[str, Any]) -> str:
    lines = [
        f"File:         {summary['file']}",
        f"Total rows:   {summary['total_rows']}",
        f"Headers:      {', '.join(summary['headers'])}",
        "Column types:",
    ]
    for name, column_type in summary["column_types"].items():
        lines.append(f"  {name}: {column_type}")
    date_cols = summary["date_columns"]
    lines.append(f"Date columns: {', '.join(date_cols) if date_cols else '-'}")
    return "\n".join(lines)


async def run_ingestion(file: SelectedFile, settings: IngestionSettings) -> Dict[str, Any]:
    """Run one ingestion session and return its summary.

    Raises:
        DataIngestionError: If the file is rejected or parsing fails
    """
    sink = SummarySink()
    controller = IngestionSessionController(sink, settings=settings)
    try:
        state = await controller.ingest(file)
    finally:
        await controller.close()

    if state != SessionState.COMPLETED or sink.summary is None:
        raise DataIngestionError(controller.error or "File processing did not complete")
    return sink.summary


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    if args.chunk_size is not None:
        try:
            settings = IngestionSettings(csv_chunk_size=args.chunk_size)
        except PydanticValidationError as e:
            print(f"Invalid --chunk-size: {e.errors()[0]['msg']}", file=sys.stderr)
            return 2

    configure_logging(args.log_level or settings.log_level, stream=sys.stderr)

    path = Path(args.path)
    if not path.is_file():
        print(f"File not found: {path}", file=sys.stderr)
        return 1

    try:
        summary = asyncio.run(run_ingestion(SelectedFile.from_path(path), settings))
    except DataIngestionError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(summary, ensure_ascii=False, indent=2))
    else:
        print(_format_summary(summary))
    return 0


if __name__ == "__main__":
    sys.exit(main())
