"""Configuration management using pydantic-settings."""
import logging
import sys
from typing import Any, List, Optional, TextIO

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class IngestionSettings(BaseSettings):
    """Ingestion pipeline settings loaded from environment variables.

    All settings prefixed with INGEST_ (e.g., INGEST_CSV_CHUNK_SIZE=1000000)
    """

    # CSV streaming
    csv_chunk_size: int = Field(
        default=500_000,
        ge=1024,
        description="Target size of each streamed CSV chunk in bytes"
    )
    csv_delimiter: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=1,
        description="Field delimiter; auto-detected from the header line when unset"
    )

    # Excel batching
    excel_batch_size: int = Field(
        default=1000,
        ge=1,
        description="Number of worksheet rows emitted per chunk"
    )
    excel_sample_size: int = Field(
        default=100,
        ge=1,
        description="Rows sampled from the sheet for column type inference"
    )

    # Preview and type inference
    preview_cap: int = Field(
        default=200,
        ge=1,
        description="Maximum rows kept in the on-screen preview"
    )
    type_threshold: float = Field(
        default=0.7,
        gt=0.0,
        lt=1.0,
        description="Fraction of non-empty values that must match for a column to be typed"
    )

    # Worker bootstrap
    bootstrap_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per dependency source before falling through to the next one"
    )
    bootstrap_retry_delay: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Fixed delay between bootstrap attempts (seconds)"
    )

    # Upload limits
    max_file_size_mb: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum file size accepted for ingestion (MB)"
    )

    log_level: str = "INFO"
    environment: str = "development"

    model_config = SettingsConfigDict(
        env_prefix="INGEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


# Global settings instance
settings = IngestionSettings()


def get_settings() -> IngestionSettings:
    """Return the process-wide settings instance."""
    return settings


def configure_logging(
    log_level: str = "INFO",
    json_output: Optional[bool] = None,
    stream: TextIO = sys.stdout,
) -> None:
    """Configure structlog.

    JSON output in production, plain console output otherwise.

    Args:
        log_level: Standard library level name (DEBUG, INFO, ...)
        json_output: Force JSON rendering on or off; defaults to the environment setting
        stream: Where log lines are written
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=stream, level=level)

    if json_output is None:
        json_output = settings.is_production

    shared_processors: List[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=False),
        ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
