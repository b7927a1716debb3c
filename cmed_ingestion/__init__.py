"""Chunked CSV/Excel ingestion for CMED price tables and supplier quotes."""

__version__ = "0.1.0"
