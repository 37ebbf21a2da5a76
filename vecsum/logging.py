"""Central logging helpers and the event sink used by the protocol engine"""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, Protocol, Union

import structlog
import structlog.stdlib

from vecsum.config import settings

_DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

SINK_LEVELS = ("debug", "info", "warning", "error")


def _build_file_handler(log_file: Path, max_bytes: Optional[int] = None) -> RotatingFileHandler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    max_bytes = settings.log_max_bytes if max_bytes is None else max_bytes
    handler = RotatingFileHandler(log_file, mode="a", maxBytes=max_bytes, backupCount=settings.log_backup_count)
    handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT))
    return handler


def setup_logging(
    component: str = "server",
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
) -> None:
    """Configure structlog + stdlib logging for a component.

    Raises OSError when the log file cannot be opened for appending.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    handlers = [logging.StreamHandler(), _build_file_handler(Path(log_file or settings.log_file))]

    logging.basicConfig(level=level, handlers=handlers, format=_DEFAULT_FORMAT, force=True)

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.getLogger(__name__).info("logging_initialized", extra={"component": component})


class EventSink(Protocol):
    """Append-only diagnostic sink consumed by the protocol engine."""

    def record(self, level: str, event: str, **fields: Any) -> None:
        ...


class StructlogEventSink:
    """EventSink backed by a structlog logger.

    Appends go through the stdlib handlers configured in setup_logging,
    which serialize concurrent writers with their own lock.
    """

    def __init__(self, logger: Any = None, **context: Any):
        self._logger = logger if logger is not None else structlog.get_logger()
        if context:
            self._logger = self._logger.bind(**context)

    def bind(self, **context: Any) -> "StructlogEventSink":
        return StructlogEventSink(self._logger.bind(**context))

    def record(self, level: str, event: str, **fields: Any) -> None:
        if level not in SINK_LEVELS:
            raise ValueError(f"Unknown sink level: {level}")
        getattr(self._logger, level)(event, **fields)
