"""Pytest configuration and fixtures for test suite.

This is the root-level conftest.py that provides:
- Python path setup (so the package imports without installation)
- Basic environment variable defaults
- Shared fixtures: settings, CSV/Excel payload builders, worker host factories
"""
import io
import os
import sys
from functools import partial
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

# Set environment variables BEFORE importing modules that use settings
os.environ.setdefault("INGEST_ENVIRONMENT", "test")
os.environ.setdefault("INGEST_BOOTSTRAP_RETRY_DELAY", "0")
os.environ.setdefault("INGEST_LOG_LEVEL", "INFO")

# Project root is the parent of tests/
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import pytest
from openpyxl import Workbook
from unittest.mock import Mock

from cmed_ingestion.config import IngestionSettings
from cmed_ingestion.worker import IngestionWorkerHost


@pytest.fixture
def settings() -> IngestionSettings:
    """Settings with no bootstrap delay; everything else at defaults."""
    return IngestionSettings(bootstrap_retry_delay=0.0)


@pytest.fixture
def make_csv() -> Callable[..., bytes]:
    """Build CSV bytes from a header list and row lists.

    Cells are written as-is; quote them yourself when they contain the delimiter.
    """
    def _make_csv(
        headers: Sequence[str],
        rows: Sequence[Sequence[Any]],
        delimiter: str = ",",
        encoding: str = "utf-8",
    ) -> bytes:
        lines = [delimiter.join(headers)]
        lines.extend(delimiter.join(str(cell) for cell in row) for row in rows)
        return ("\n".join(lines) + "\n").encode(encoding)
    return _make_csv


@pytest.fixture
def make_xlsx() -> Callable[..., bytes]:
    """Build an .xlsx workbook in memory; the first sheet holds the given rows."""
    def _make_xlsx(rows: Sequence[Sequence[Any]], extra_sheet: Optional[List[List[Any]]] = None) -> bytes:
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "Precos"
        for row in rows:
            sheet.append(list(row))
        if extra_sheet is not None:
            other = workbook.create_sheet("Outra")
            for row in extra_sheet:
                other.append(row)
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()
    return _make_xlsx


@pytest.fixture
def host_factory() -> Mock:
    """Worker host factory with no dependency sources, so bootstrap succeeds at once."""
    return Mock(side_effect=partial(IngestionWorkerHost, dependency_sources={}))


@pytest.fixture
def sink() -> Mock:
    """Synchronous sink that records its calls."""
    return Mock(return_value=None)
