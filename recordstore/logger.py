"""
Structured JSON Logging.

Every collaborator of the record store receives a :class:`StructuredLogger`
through its constructor.  Output is one JSON object per line on stdout
and, unless ``LOG_FILE`` is empty, in a rotating log file.

Background contexts log from their own worker threads; entries emitted
off the main thread carry the thread name so store activity can be
attributed to ``primary`` or ``background-N`` work.
"""

import enum
import json
import logging
import sys
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path, PurePath
from typing import Optional, TextIO

from recordstore.config import StoreConfig, get_config

_JSON_SCALARS = (str, int, float, bool, type(None))


def _jsonable(value: object) -> object:
    """Keep JSON scalars as they are; render everything else as text."""
    if isinstance(value, enum.Enum):
        return value.value if isinstance(value.value, _JSON_SCALARS) else str(value.value)
    if isinstance(value, _JSON_SCALARS):
        return value
    if isinstance(value, PurePath):
        return value.as_posix()
    return str(value)


class JSONFormatter(logging.Formatter):
    """Formats log records as structured JSON objects.

    Each log entry contains:
        - timestamp    (ISO-8601, UTC)
        - level        (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        - logger_name
        - message
        - thread       (only for records emitted off the main thread)
        - extra        (fields passed via the ``extra`` kwarg)
        - exception    (formatted traceback when ``exc_info`` is set)
    """

    _RESERVED: frozenset[str] = frozenset(
        logging.LogRecord(
            name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
        ).__dict__
    ) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }
        if record.thread != threading.main_thread().ident:
            entry["thread"] = record.threadName

        extra = {
            key: _jsonable(value)
            for key, value in record.__dict__.items()
            if key not in self._RESERVED
        }
        if extra:
            entry["extra"] = extra

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False)


class StructuredLogger:
    """Injectable JSON logger.

    Loggers are named after the component they serve
    (``recordstore.database``, ``recordstore.repository``...).  Creating a
    second ``StructuredLogger`` under an existing name reuses its console
    handler; the level and log file of the newest instance apply.

    Usage::

        log = StructuredLogger(name="recordstore.database")
        log.info("Store opened", extra={"path": store_path})

    Parameters
    ----------
    name:
        ``logging`` logger name.
    level:
        Overrides ``StoreConfig.LOG_LEVEL``.
    stream:
        Console stream; stdout by default.
    log_file:
        Overrides ``StoreConfig.LOG_FILE``.  ``""`` disables file output.
    max_bytes, backup_count:
        Override the rotation settings of ``StoreConfig``.
    config:
        Settings to read defaults from.  Defaults to :func:`get_config`.
    """

    def __init__(
        self,
        name: str = "recordstore",
        level: Optional[int] = None,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
        config: Optional[StoreConfig] = None,
    ) -> None:
        cfg = config if config is not None else get_config()

        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(cfg.log_level if level is None else level)

        formatter = JSONFormatter()
        if not any(type(h) is logging.StreamHandler for h in self._logger.handlers):
            console = logging.StreamHandler(stream or sys.stdout)
            console.setFormatter(formatter)
            self._logger.addHandler(console)

        path = cfg.LOG_FILE if log_file is None else log_file
        self._use_log_file(
            Path(path).resolve() if path else None,
            formatter,
            cfg.LOG_MAX_BYTES if max_bytes is None else max_bytes,
            cfg.LOG_BACKUP_COUNT if backup_count is None else backup_count,
        )

    def _use_log_file(
        self,
        path: Optional[Path],
        formatter: logging.Formatter,
        max_bytes: int,
        backup_count: int,
    ) -> None:
        """Route output to *path* only; ``None`` detaches file output."""
        for handler in list(self._logger.handlers):
            if not isinstance(handler, RotatingFileHandler):
                continue
            if path is not None and handler.baseFilename == str(path):
                return
            self._logger.removeHandler(handler)
            handler.close()
        if path is None:
            return

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
                "Log file %s unavailable (%s); logging to the console only.", path, exc,
            )
            return
        handler.setFormatter(formatter)
        self._logger.addHandler(handler)

    @property
    def logger(self) -> logging.Logger:
        """The underlying ``logging.Logger``."""
        return self._logger

    @property
    def name(self) -> str:
        return self._logger.name

    def debug(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.critical(msg, *args, **kwargs)
