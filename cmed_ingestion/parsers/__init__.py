"""Parser modules for chunked file ingestion."""
from cmed_ingestion.parsers.base_parser import ChunkedParserInterface, PreviewAccumulator
from cmed_ingestion.parsers.parser_registry import (
    register_parser,
    get_parser,
    create_parser_instance,
    list_registered_parsers,
    parser_type_for_file,
)
from cmed_ingestion.parsers.csv_parser import CsvChunkParser
from cmed_ingestion.parsers.excel_parser import ExcelChunkParser

# Register parsers
register_parser("csv", CsvChunkParser)
register_parser("excel", ExcelChunkParser)

__all__ = [
    "ChunkedParserInterface",
    "PreviewAccumulator",
    "register_parser",
    "get_parser",
    "create_parser_instance",
    "list_registered_parsers",
    "parser_type_for_file",
    "CsvChunkParser",
    "ExcelChunkParser",
]
