"""Parser registry for dynamic parser registration and retrieval."""
from pathlib import PurePath
from typing import Dict, Optional, Type

from cmed_ingestion.errors.exceptions import ParserError, UnsupportedFormatError
from cmed_ingestion.parsers.base_parser import ChunkedParserInterface


# Global registry mapping parser type strings to parser classes
_parser_registry: Dict[str, Type[ChunkedParserInterface]] = {}

# File extension -> parser type
EXTENSION_PARSER_TYPES: Dict[str, str] = {
    "csv": "csv",
    "xls": "excel",
    "xlsx": "excel",
}

# Worker request tag -> parser type
REQUEST_PARSER_TYPES: Dict[str, str] = {
    "processCSV": "csv",
    "processExcel": "excel",
}

UNSUPPORTED_FORMAT_MESSAGE = "Unsupported file format. Please upload CSV, XLS or XLSX files."


def register_parser(parser_type: str, parser_class: Type[ChunkedParserInterface]) -> None:
    """Register a parser class for a given parser type.

    Args:
        parser_type: Unique identifier for the parser (e.g., "csv")
        parser_class: Parser class that inherits from ChunkedParserInterface

    Raises:
        ValueError: If parser_type is already registered
        TypeError: If parser_class does not inherit from ChunkedParserInterface
    """
    if not issubclass(parser_class, ChunkedParserInterface):
        raise TypeError(
            f"Parser class {parser_class.__name__} must inherit from ChunkedParserInterface"
        )

    if parser_type in _parser_registry:
        raise ValueError(
            f"Parser type '{parser_type}' is already registered. "
            f"Existing: {_parser_registry[parser_type].__name__}"
        )

    _parser_registry[parser_type] = parser_class


def get_parser(parser_type: str) -> Optional[Type[ChunkedParserInterface]]:
    """Get parser class for a given parser type, or None."""
    return _parser_registry.get(parser_type)


def create_parser_instance(parser_type: str, **kwargs) -> ChunkedParserInterface:
    """Create an instance of a parser for a given parser type.

    Args:
        parser_type: Parser type identifier
        **kwargs: Arguments to pass to parser constructor

    Returns:
        Parser instance

    Raises:
        ParserError: If parser type is not registered
    """
    parser_class = get_parser(parser_type)
    if parser_class is None:
        available = ", ".join(_parser_registry.keys()) if _parser_registry else "none"
        raise ParserError(
            f"Parser type '{parser_type}' is not registered. "
            f"Available parsers: {available}"
        )

    try:
        return parser_class(**kwargs)
    except Exception as e:
        raise ParserError(
            f"Failed to create parser instance for '{parser_type}': {e}"
        ) from e


def list_registered_parsers() -> list[str]:
    """List all registered parser types."""
    return list(_parser_registry.keys())


def file_extension(file_name: str) -> str:
    """Lower-cased extension without the dot ("" when there is none)."""
    return PurePath(file_name).suffix.lower().lstrip(".")


def parser_type_for_file(file_name: str) -> str:
    """Resolve the parser type for a file name from its extension.

    Raises:
        UnsupportedFormatError: If the extension is not csv, xls or xlsx
    """
    extension = file_extension(file_name)
    parser_type = EXTENSION_PARSER_TYPES.get(extension)
    if parser_type is None:
        raise UnsupportedFormatError(
            UNSUPPORTED_FORMAT_MESSAGE,
            details={"file_name": file_name, "extension": extension},
        )
    return parser_type
