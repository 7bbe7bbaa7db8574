"""Logging setup shared by structlog events and plain stdlib loggers.

Both kinds of records go through the same console + rotating file handlers.
The file gets one JSON object per line so reconciliation events can be
filtered by tenant or external id; the console stays human readable.
"""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any, Dict, List

import structlog

from .config import LoggingSettings

_configured = False


def _shared_processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def _file_renderer(settings: LoggingSettings) -> List[Any]:
    if settings.json_file:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=False)]


def configure_logging(
    settings: LoggingSettings,
    *,
    service_name: str = "media-analysis-service",
    environment: str = "dev",
    force: bool = False,
) -> Path:
    """Configure handlers once per process and return the log file path."""

    global _configured
    log_dir = Path(settings.log_dir)
    log_file = log_dir / settings.file_name
    if _configured and not force:
        return log_file

    log_dir.mkdir(parents=True, exist_ok=True)
    shared = _shared_processors()

    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "()": structlog.stdlib.ProcessorFormatter,
                "foreign_pre_chain": shared,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.dev.ConsoleRenderer(),
                ],
            },
            "file": {
                "()": structlog.stdlib.ProcessorFormatter,
                "foreign_pre_chain": shared,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    *_file_renderer(settings),
                ],
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
                "level": settings.level,
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": str(log_file),
                "formatter": "file",
                "maxBytes": settings.max_log_file_size_mb * 1024 * 1024,
                "backupCount": settings.backup_count,
                "encoding": "utf-8",
                "level": settings.level,
            },
        },
        "root": {
            "handlers": ["console", "file"],
            "level": settings.level,
        },
    }
    logging.config.dictConfig(logging_config)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name, environment=environment)

    _configured = True
    return log_file
