"""
Logging setup for the roomgate command line.

Everything goes to stderr so command results on stdout stay parseable.
``text`` output is coloured when stderr is a terminal; ``json`` output is
one object per line, carrying the room id when a caller logs with
``extra={"room_id": ...}``. A log file, when given, is always JSON.
"""

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from pythonjsonlogger import jsonlogger

from .. import __version__

JSON_FIELDS = '%(asctime)s %(name)s %(levelname)s %(message)s'
TEXT_FIELDS = '%(asctime)s %(levelname)-8s %(name)s: %(message)s'

# nio logs every sync response at INFO
QUIET_LOGGERS = ('nio', 'aiohttp', 'peewee')


class StructuredFormatter(jsonlogger.JsonFormatter):
    """JSON lines tagged with the roomgate service and version."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]):
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault('timestamp', datetime.now(timezone.utc).isoformat())
        log_record['service'] = 'roomgate'
        log_record['version'] = __version__
        if getattr(record, 'room_id', None):
            log_record['room_id'] = record.room_id


class ColoredFormatter(logging.Formatter):
    """Level names wrapped in ANSI colours; the original record is left untouched."""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)
        painted = logging.makeLogRecord(record.__dict__)
        painted.levelname = f"{color}{record.levelname}\033[0m"
        return super().format(painted)


def _console_formatter(log_format: str, stream) -> logging.Formatter:
    if log_format == "json":
        return StructuredFormatter(JSON_FIELDS)
    if getattr(stream, "isatty", lambda: False)():
        return ColoredFormatter(TEXT_FIELDS)
    return logging.Formatter(TEXT_FIELDS)


def _configure_structlog(json_output: bool) -> None:
    """Route structlog through stdlib logging so both share the handlers above."""
    processors: List[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False),
    ]
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "text",
    log_file: Optional[str] = None,
    stream=None,
) -> None:
    """
    Configure the root logger and structlog.

    Args:
        log_level: level name; unknown names fall back to INFO
        log_format: 'text' or 'json' for the console handler
        log_file: optional path for an additional JSON log file
        stream: console stream, stderr by default
    """
    stream = stream if stream is not None else sys.stderr
    _configure_structlog(log_format == "json")

    console = logging.StreamHandler(stream)
    console.setFormatter(_console_formatter(log_format, stream))
    handlers: List[logging.Handler] = [console]

    if log_file:
        parent = os.path.dirname(log_file)
        if parent:
            os.makedirs(parent, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter(JSON_FIELDS))
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
