"""
Logging configuration for the YieldSync asset service.

Uses structlog for structured logging with:
- Console output, human-readable (log_format="console") or JSON
- Optional JSON file output with weekly rotation and gzip compression
- Context variables merged into every event, so a reconciliation run can
  bind its stable_id once (see reconciliation_context) and every nested
  store/provider log line carries it

Log rotation: Weekly with 52 weeks (1 year) retention, gzip compression.
"""
import gzip
import logging
import logging.handlers
import shutil
import sys
from pathlib import Path
from typing import Any, Optional

import structlog
from structlog.types import EventDict

LOG_FILE_NAME = "yieldsync.log"


def get_log_directory(log_dir: Optional[str] = None) -> Path:
    """Get or create the log directory (default: <project root>/logs)."""
    path = Path(log_dir) if log_dir else Path(__file__).parent.parent.parent / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def add_log_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add log level to the event dict.
    """
    if method_name == "warn":
        method_name = "warning"
    event_dict["level"] = method_name.upper()
    return event_dict


def _get_rotated_filename(default_name: str) -> str:
    """Custom namer for rotated log files: yieldsync.log.2026-01-05 -> yieldsync.log.2026-01-05.gz"""
    return default_name + ".gz"


def _compress_rotated_file(source: str, dest: str) -> None:
    with open(source, 'rb') as f_in:
        with gzip.open(dest, 'wb') as f_out:
            shutil.copyfileobj(f_in, f_out)
    Path(source).unlink()


def _formatter(renderer) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
            ],
        )


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    enable_file_logging: bool = False,
    log_dir: Optional[str] = None,
    ) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Console format, "console" (human-readable) or "json"
        enable_file_logging: Also write JSON lines to <log_dir>/yieldsync.log
        log_dir: Log directory (default: <project root>/logs)
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == "json":
        console_renderer = structlog.processors.JSONRenderer()
    else:
        console_renderer = structlog.dev.ConsoleRenderer()

    handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(_formatter(console_renderer))
    handlers.append(console_handler)

    if enable_file_logging:
        log_file = get_log_directory(log_dir) / LOG_FILE_NAME

        # Rotate every Monday at midnight (UTC), keep 52 weeks
        file_handler = logging.handlers.TimedRotatingFileHandler(
            filename=str(log_file),
            when="W0",
            interval=1,
            backupCount=52,
            encoding="utf-8",
            utc=True
            )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        file_handler.rotator = _compress_rotated_file
        file_handler.namer = _get_rotated_filename
        handlers.append(file_handler)

    logging.basicConfig(
        handlers=handlers,
        level=numeric_level,
        force=True
        )

    # Rendering happens per handler (ProcessorFormatter), so console and file can differ
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
        )


def reconciliation_context(**context):
    """
    Bind context (e.g. stable_id, operation) to every log event emitted in the block.

    Usage:
        with reconciliation_context(stable_id=stable_id, operation="refresh"):
            ...
    """
    return structlog.contextvars.bound_contextvars(**context)


def get_logger(name: str, **initial_context) -> structlog.stdlib.BoundLogger:
    """
    Get a logger instance (structured logger).

    Args:
        name: Logger name (typically __name__)
        initial_context: Key/values bound to every event of this logger

    Usage:
        logger = get_logger(__name__, provider="fmp")
        logger.info("message", key="value")
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
