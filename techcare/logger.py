"""
Structured JSON Logging.

Every record is rendered as one JSON object per line.  Session lifecycle
calls tag themselves with ``extra={"event": ...}`` (``LOGIN``,
``LOGOUT``, ``PROFILE_FETCH_TIMEOUT`` ...); the formatter lifts that tag
to a top-level ``event`` key so log shippers can filter on it without
parsing messages.

Usage::

    log = StructuredLogger(name="techcare.session")
    log.info("Profile loaded for %s.", user_id, extra={"event": "PROFILE_LOADED"})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, TextIO

from techcare.config import AppConfig, get_config

# Attributes every LogRecord carries; anything else came from ``extra``.
_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.makeLogRecord({})).keys()
) | {"message", "asctime", "taskName"}


def _jsonable(value: Any) -> Any:
    """Keep JSON scalars as-is and stringify everything else."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


class JSONFormatter(logging.Formatter):
    """Render a ``LogRecord`` as a single-line JSON object.

    Keys: ``timestamp`` (UTC ISO-8601), ``level``, ``logger_name``,
    ``message``, then ``event`` when tagged, ``extra`` for the remaining
    caller fields and ``exception`` for tracebacks.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        extra = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS
        }
        event = extra.pop("event", None)
        if event is not None:
            entry["event"] = event
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False)


class StructuredLogger:
    """Injectable wrapper around a named ``logging.Logger``.

    Handlers (stdout plus a rotating file) are attached once per logger
    name, so constructing several ``StructuredLogger`` objects with the
    same name does not duplicate output.  Records still propagate to the
    root logger.

    Args:
        name: Dotted logger name, e.g. ``"techcare.session"``.
        level: Minimum level for the logger and its handlers.
        stream: Console stream; defaults to ``sys.stdout``.
        log_file: Rotating log file path; defaults to ``AppConfig.LOG_FILE``.
        max_bytes: Rotation size; defaults to ``AppConfig.LOG_MAX_BYTES``.
        backup_count: Rotated files kept; defaults to ``AppConfig.LOG_BACKUP_COUNT``.
        config: Configuration to read defaults from; ``get_config()`` when omitted.
    """

    def __init__(
        self,
        name: str = "techcare",
        level: int = logging.INFO,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
        config: Optional[AppConfig] = None,
    ) -> None:
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(level)
        if self._logger.handlers:
            return

        config = config or get_config()

        formatter = JSONFormatter()
        console = logging.StreamHandler(stream or sys.stdout)
        console.setFormatter(formatter)
        console.setLevel(level)
        self._logger.addHandler(console)

        self._attach_file_handler(
            Path(log_file or config.LOG_FILE),
            max_bytes if max_bytes is not None else config.LOG_MAX_BYTES,
            backup_count if backup_count is not None else config.LOG_BACKUP_COUNT,
            formatter,
            level,
        )

    def _attach_file_handler(
        self,
        path: Path,
        max_bytes: int,
        backup_count: int,
        formatter: logging.Formatter,
        level: int,
    ) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                filename=str(path),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        except OSError as exc:
            self._logger.warning(
                "Log file %s unavailable (%s); logging to console only.", path, exc,
            )
            return
        handler.setFormatter(formatter)
        handler.setLevel(level)
        self._logger.addHandler(handler)

    @property
    def logger(self) -> logging.Logger:
        """The underlying ``logging.Logger``."""
        return self._logger

    @property
    def name(self) -> str:
        return self._logger.name

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "techcare") -> StructuredLogger:
    """Shorthand for ``StructuredLogger(name=name)``."""
    return StructuredLogger(name=name)
