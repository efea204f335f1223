"""Tests for the logging facade."""

import json
import logging
import sys
import time
import uuid
from datetime import timedelta
from unittest import mock

import pytest

from rotlog.config import FileWriterConfig, LoggingConfig
from rotlog.logsetup import (
    CONSOLE_FORMAT,
    MAX_TEMPORARY_DURATION,
    FileWriterHandler,
    JsonFormatter,
    LogLevelControl,
    configure_logging,
)
from rotlog.writer import FileWriter


@pytest.fixture
def logger():
    log = logging.getLogger(f"test-{uuid.uuid4().hex[:8]}")
    log.propagate = False
    yield log
    for handler in list(log.handlers):
        log.removeHandler(handler)


@pytest.fixture(autouse=True)
def restore_internal_logger():
    internal = logging.getLogger("rotlog")
    handlers, propagate = list(internal.handlers), internal.propagate
    yield
    internal.handlers = handlers
    internal.propagate = propagate


def _file_config(tmp_path, mode="file", level="INFO"):
    return LoggingConfig(
        mode=mode,
        level=level,
        file_writer=FileWriterConfig(
            log_dir=str(tmp_path), log_filename="app.log", compression_enabled=False,
        ),
    )


def _record(msg="hello %s", args=("world",), exc_info=None):
    return logging.LogRecord("svc", logging.WARNING, "/src/svc.py", 42, msg, args, exc_info)


class TestJsonFormatter:
    def test_fields(self):
        entry = json.loads(JsonFormatter().format(_record()))
        assert entry["level"] == "warning"
        assert entry["logger"] == "svc"
        assert entry["msg"] == "hello world"
        assert entry["caller"] == "svc:42"
        assert entry["ts"].endswith("+00:00")
        assert "exc" not in entry

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record(exc_info=sys.exc_info())
        entry = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in entry["exc"]


class TestFileWriterHandler:
    def test_emits_one_line_per_record(self, tmp_path):
        writer = FileWriter(FileWriterConfig(log_dir=str(tmp_path), log_filename="app.log"))
        handler = FileWriterHandler(writer)
        handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        try:
            handler.handle(_record())
            handler.handle(_record(msg="second", args=()))
        finally:
            handler.close()
            writer.close()
        assert (tmp_path / "app.log").read_text() == "WARNING hello world\nWARNING second\n"

    def test_closed_writer_goes_to_handle_error(self, tmp_path):
        writer = FileWriter(FileWriterConfig(log_dir=str(tmp_path), log_filename="app.log"))
        writer.close()
        handler = FileWriterHandler(writer)
        with mock.patch.object(handler, "handleError") as handle_error:
            handler.handle(_record())
        handle_error.assert_called_once()


class TestConfigureLogging:
    def test_file_mode_writes_json(self, tmp_path, logger):
        setup = configure_logging(_file_config(tmp_path), logger)
        try:
            logger.info("service started on port %d", 8080)
            logger.debug("filtered out")
            assert len(setup.handlers) == 1
            assert isinstance(setup.handlers[0], FileWriterHandler)
        finally:
            setup.close()

        lines = (tmp_path / "app.log").read_text().splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["msg"] == "service started on port 8080"
        assert entry["level"] == "info"
        assert setup.writer.closed
        assert not any(h in logger.handlers for h in setup.handlers)

    def test_file_mode_detaches_internal_logger_while_open(self, tmp_path, logger):
        internal = logging.getLogger("rotlog")
        internal.handlers = []
        internal.propagate = True
        setup = configure_logging(_file_config(tmp_path), logger)
        try:
            assert internal.propagate is False
            assert len(internal.handlers) == 1
        finally:
            setup.close()
        assert internal.propagate is True
        assert internal.handlers == []

    def test_close_keeps_existing_internal_handlers(self, tmp_path, logger):
        internal = logging.getLogger("rotlog")
        existing = logging.NullHandler()
        internal.handlers = [existing]
        internal.propagate = True
        with configure_logging(_file_config(tmp_path), logger):
            assert internal.handlers == [existing]
            assert internal.propagate is False
        assert internal.handlers == [existing]
        assert internal.propagate is True

    def test_failed_writer_leaves_internal_logger_untouched(self, tmp_path, logger):
        internal = logging.getLogger("rotlog")
        internal.handlers = []
        internal.propagate = True
        with mock.patch("rotlog.logsetup.FileWriter", side_effect=PermissionError("denied")):
            with pytest.raises(PermissionError):
                configure_logging(_file_config(tmp_path), logger)
        assert internal.propagate is True
        assert internal.handlers == []

    def test_both_mode(self, tmp_path, logger):
        setup = configure_logging(_file_config(tmp_path, mode="both"), logger)
        try:
            kinds = [type(h) for h in setup.handlers]
            assert FileWriterHandler in kinds
            assert logging.StreamHandler in kinds
            console = next(h for h in setup.handlers if type(h) is logging.StreamHandler)
            assert console.formatter._fmt == CONSOLE_FORMAT
        finally:
            setup.close()

    def test_console_mode_has_no_writer(self, tmp_path, logger):
        setup = configure_logging(_file_config(tmp_path, mode="console"), logger)
        try:
            assert setup.writer is None
            assert len(setup.handlers) == 1
            assert not (tmp_path / "app.log").exists()
        finally:
            setup.close()

    def test_container_mode_uses_json(self, tmp_path, logger):
        setup = configure_logging(_file_config(tmp_path, mode="container"), logger)
        try:
            assert setup.writer is None
            assert isinstance(setup.handlers[0].formatter, JsonFormatter)
        finally:
            setup.close()

    def test_level_applied(self, tmp_path, logger):
        with configure_logging(_file_config(tmp_path, mode="console", level="ERROR"), logger) as setup:
            assert logger.level == logging.ERROR
            assert setup.levels.default_level == logging.ERROR

    def test_unknown_level_rejected(self, tmp_path, logger):
        with pytest.raises(ValueError):
            configure_logging(_file_config(tmp_path, mode="console", level="LOUD"), logger)


class TestLogLevelControl:
    def test_set_and_get_level(self, logger):
        levels = LogLevelControl(logger)
        levels.set_level("debug")
        assert levels.get_level() == logging.DEBUG
        levels.set_level(logging.ERROR)
        assert levels.get_level() == logging.ERROR

    def test_temporary_defaults_to_five_minutes(self, logger):
        levels = LogLevelControl(logger)
        try:
            assert levels.set_level_temporarily("DEBUG") == timedelta(minutes=5)
            assert levels.get_level() == logging.DEBUG
        finally:
            levels.cancel()

    def test_temporary_is_capped(self, logger):
        levels = LogLevelControl(logger)
        try:
            assert levels.set_level_temporarily("DEBUG", timedelta(hours=5)) == MAX_TEMPORARY_DURATION
        finally:
            levels.cancel()

    def test_default_level_is_permanent(self, logger):
        levels = LogLevelControl(logger, default_level=logging.INFO)
        levels.set_level_temporarily("DEBUG", timedelta(minutes=1))
        assert levels.set_level_temporarily("INFO") == timedelta.max
        assert levels.get_level() == logging.INFO
        assert levels._timer is None

    def test_temporary_level_reverts(self, logger):
        levels = LogLevelControl(logger, default_level=logging.INFO)
        levels.set_level_temporarily(logging.DEBUG, timedelta(milliseconds=50))
        assert levels.get_level() == logging.DEBUG

        deadline = time.monotonic() + 5
        while levels.get_level() != logging.INFO and time.monotonic() < deadline:
            time.sleep(0.01)
        assert levels.get_level() == logging.INFO

    def test_set_level_cancels_pending_revert(self, logger):
        levels = LogLevelControl(logger, default_level=logging.INFO)
        levels.set_level_temporarily(logging.DEBUG, timedelta(milliseconds=50))
        levels.set_level(logging.WARNING)
        time.sleep(0.2)
        assert levels.get_level() == logging.WARNING
