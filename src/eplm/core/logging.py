"""
EPLM Logging Configuration

Lifecycle operations log through ``log_structured``, which attaches the
operation, the extension identifier and version, and any extra key/value data
to the record. ``StructuredFormatter`` renders them after the message::

    Extension installed [install blog-ext@1.2.0] | origin=market
"""

import logging
import logging.config
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import EPLMConfig, get_config

LIFECYCLE_FIELDS = ("operation", "identifier", "version")

CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers kept quiet unless something goes wrong
QUIET_LOGGERS = ("aiohttp", "asyncio")


def format_context(record: logging.LogRecord) -> str:
    """Render the lifecycle fields of a record, e.g. ``upgrade blog-ext@1.2.0``."""
    operation, identifier, version = (
        getattr(record, name, None) for name in LIFECYCLE_FIELDS
    )

    parts: List[str] = []
    if operation:
        parts.append(str(operation))
    if identifier:
        parts.append(f"{identifier}@{version}" if version else str(identifier))
    return " ".join(parts)


class StructuredFormatter(logging.Formatter):
    """Appends lifecycle context and structured data to the message."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()

        context = format_context(record)
        if context:
            message = f"{message} [{context}]"

        data = getattr(record, "structured_data", None)
        if data:
            pairs = " ".join(f"{key}={value}" for key, value in sorted(data.items()))
            message = f"{message} | {pairs}"

        # Other handlers must still see the original record
        rendered = logging.makeLogRecord(record.__dict__)
        rendered.msg = message
        rendered.args = ()
        return super().format(rendered)


def _formatter(fmt: str, structured: bool) -> Dict[str, Any]:
    formatter: Dict[str, Any] = {"format": fmt, "datefmt": DATE_FORMAT}
    if structured:
        formatter["()"] = StructuredFormatter
    return formatter


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
    enable_structured: bool = True,
    config: Optional[EPLMConfig] = None,
) -> None:
    """
    Configure logging for the lifecycle manager.

    The ``eplm`` logger writes to stdout and, when a log file is given or
    configured, to a size-rotated file.

    Args:
        log_level: Logging level (defaults to the configured level)
        log_file: Path to log file (defaults to the configured file, if any)
        enable_structured: Render lifecycle context and structured data
        config: Configuration to read defaults from (global if None)
    """
    config = config or get_config()
    level = log_level or config.logging.level

    if log_file is None and config.logging.file_path:
        log_file = Path(config.logging.file_path)

    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": "console",
            "stream": sys.stdout,
        }
    }

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "file",
            "filename": str(log_file),
            "maxBytes": config.logging.max_file_size,
            "backupCount": config.logging.backup_count,
            "encoding": "utf-8",
        }

    handler_names = list(handlers)
    loggers: Dict[str, Dict[str, Any]] = {
        "eplm": {"level": level, "handlers": handler_names, "propagate": False},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING", "handlers": handler_names, "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": _formatter(CONSOLE_FORMAT, enable_structured),
                "file": _formatter(FILE_FORMAT, enable_structured),
            },
            "handlers": handlers,
            "loggers": loggers,
            "root": {"level": "WARNING", "handlers": handler_names},
        }
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def log_structured(
    logger: logging.Logger,
    level: int,
    message: str,
    *,
    operation: Optional[str] = None,
    identifier: Optional[str] = None,
    version: Optional[str] = None,
    **structured_data: Any,
) -> None:
    """
    Log a lifecycle event with its context and structured data.

    Args:
        logger: Logger instance
        level: Logging level
        message: Log message
        operation: Lifecycle operation (install, upgrade, ...)
        identifier: Extension identifier
        version: Extension version
        **structured_data: Additional key/value data to include
    """
    logger.log(
        level,
        message,
        extra={
            "operation": operation,
            "identifier": identifier,
            "version": version,
            "structured_data": structured_data,
        },
        stacklevel=2,
    )
