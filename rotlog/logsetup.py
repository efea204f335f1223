"""Logging facade: wires stdlib logging handlers to a FileWriter and controls the level."""

import json
import logging
import sys
import threading
from datetime import datetime, timedelta, timezone

from rotlog.config import LoggingConfig
from rotlog.writer import FileWriter

CONSOLE_FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(message)s"

DEFAULT_LEVEL = logging.INFO
DEFAULT_TEMPORARY_DURATION = timedelta(minutes=5)
MAX_TEMPORARY_DURATION = timedelta(minutes=60)

# Loggers of this package describe the writer itself, so they must never feed it.
INTERNAL_LOGGER = "rotlog"


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "caller": f"{record.module}:{record.lineno}",
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class FileWriterHandler(logging.Handler):
    """Handler that encodes formatted records and hands them to a FileWriter.

    The handler does not own the writer; closing the handler leaves it open.
    """

    terminator = "\n"

    def __init__(self, writer: FileWriter, level=logging.NOTSET):
        super().__init__(level)
        self.writer = writer

    def emit(self, record: logging.LogRecord):
        try:
            msg = self.format(record) + self.terminator
            self.writer.write(msg.encode("utf-8"))
        except Exception:
            self.handleError(record)


def _resolve_level(level) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


class LogLevelControl:
    """Runtime level adjustment for one logger, with self-reverting changes."""

    def __init__(self, logger: logging.Logger, default_level=DEFAULT_LEVEL):
        self._logger = logger
        self._default_level = _resolve_level(default_level)
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    @property
    def default_level(self) -> int:
        return self._default_level

    def get_level(self) -> int:
        return self._logger.level

    def set_level(self, level):
        with self._lock:
            self._cancel_timer()
            self._logger.setLevel(_resolve_level(level))

    def set_level_temporarily(self, level, duration: timedelta | None = None) -> timedelta:
        """Switch to *level* for *duration*, then revert to the default level.

        Returns the effective duration. Setting the default level is permanent
        and returns ``timedelta.max``.
        """
        level = _resolve_level(level)
        with self._lock:
            self._cancel_timer()
            self._logger.setLevel(level)
            if level == self._default_level:
                return timedelta.max

            if not duration:
                duration = DEFAULT_TEMPORARY_DURATION
            duration = min(duration, MAX_TEMPORARY_DURATION)

            self._timer = threading.Timer(duration.total_seconds(), self._revert)
            self._timer.daemon = True
            self._timer.start()
            return duration

    def cancel(self):
        with self._lock:
            self._cancel_timer()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _revert(self):
        with self._lock:
            self._timer = None
            if self._logger.level == self._default_level:
                return
            logging.getLogger(__name__).info(
                "Resetting log level from %s to %s",
                logging.getLevelName(self._logger.level),
                logging.getLevelName(self._default_level),
            )
            self._logger.setLevel(self._default_level)


class LoggingSetup:
    """Handles returned by configure_logging; owns the FileWriter if one was opened."""

    def __init__(self, logger: logging.Logger, handlers: list[logging.Handler],
                 writer: FileWriter | None, levels: LogLevelControl, internal_state=None):
        self.logger = logger
        self.handlers = handlers
        self.writer = writer
        self.levels = levels
        self._internal_state = internal_state

    def close(self):
        self.levels.cancel()
        for handler in self.handlers:
            self.logger.removeHandler(handler)
            handler.close()
        if self.writer is not None:
            self.writer.close()
        if self._internal_state is not None:
            _restore_internal(*self._internal_state)
            self._internal_state = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def _restore_internal(handlers: list[logging.Handler], propagate: bool):
    """Put the internal logger back the way configure_logging found it."""
    internal = logging.getLogger(INTERNAL_LOGGER)
    for handler in list(internal.handlers):
        if handler not in handlers:
            internal.removeHandler(handler)
            handler.close()
    internal.propagate = propagate


def _console_handler(formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    return handler


def configure_logging(config: LoggingConfig, logger: logging.Logger | None = None) -> LoggingSetup:
    """Attach handlers for ``config.mode`` to *logger* (default: the root logger)."""
    logger = logger if logger is not None else logging.getLogger()
    level = _resolve_level(config.level)

    writer = None
    handlers: list[logging.Handler] = []

    internal_state = None
    if config.uses_file:
        internal = logging.getLogger(INTERNAL_LOGGER)
        internal_state = (list(internal.handlers), internal.propagate)
        if not internal.handlers:
            internal.addHandler(_console_handler(logging.Formatter(CONSOLE_FORMAT)))
        internal.propagate = False

        try:
            writer = FileWriter(config.file_writer)
        except Exception:
            _restore_internal(*internal_state)
            raise
        file_handler = FileWriterHandler(writer)
        file_handler.setFormatter(JsonFormatter())
        handlers.append(file_handler)

    if config.mode in ("console", "both"):
        handlers.append(_console_handler(logging.Formatter(CONSOLE_FORMAT)))
    elif config.mode == "container":
        handlers.append(_console_handler(JsonFormatter()))

    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)

    return LoggingSetup(logger, handlers, writer, LogLevelControl(logger, level), internal_state)
