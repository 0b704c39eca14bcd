"""
Tests for logger setup and the Loki handler.
"""

import logging

import loggers
from loggers import LokiHandler, get_logger


LOKI = "http://loki:3100/loki/api/v1/push"


class TestGetLogger:
    """Tests for get_logger()."""

    def test_loki_handler_attached(self, tmp_path):
        log = get_logger(name="test-loggers-loki", log_file=str(tmp_path / "a.log"), loki_url=LOKI)

        loki = [h for h in log.handlers if isinstance(h, LokiHandler)]
        assert len(loki) == 1
        assert loki[0].url == LOKI
        assert loki[0].app == "cash_reader"

    def test_no_loki_url(self, tmp_path):
        log = get_logger(name="test-loggers-local", log_file=str(tmp_path / "b.log"), loki_url=None)

        assert not any(isinstance(h, LokiHandler) for h in log.handlers)
        assert len(log.handlers) == 2

    def test_repeated_call_keeps_handlers(self, tmp_path):
        first = get_logger(name="test-loggers-twice", log_file=str(tmp_path / "c.log"), loki_url=None)
        second = get_logger(name="test-loggers-twice", log_file=str(tmp_path / "c.log"), loki_url=LOKI)

        assert first is second
        assert len(second.handlers) == 2

    def test_writes_file(self, tmp_path):
        path = tmp_path / "logs" / "d.log"
        log = get_logger(name="test-loggers-file", log_file=str(path), loki_url=None)

        log.info("note accepted")
        for handler in log.handlers:
            handler.flush()

        assert "note accepted" in path.read_text(encoding="utf-8")


class TestLokiHandler:
    """Tests for LokiHandler.emit()."""

    def test_emit_pushes_line(self, monkeypatch):
        pushed = []
        monkeypatch.setattr(loggers, "push_to_loki", lambda *args: pushed.append(args))
        handler = LokiHandler(LOKI, "cash_reader")
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "jam", None, None)

        handler.emit(record)

        assert pushed == [(LOKI, "cash_reader", "ERROR", "jam")]

    def test_push_failure_does_not_raise(self, monkeypatch):
        def fail(*args):
            raise OSError("connection refused")

        monkeypatch.setattr(loggers, "push_to_loki", fail)
        monkeypatch.setattr(logging, "raiseExceptions", False)
        handler = LokiHandler(LOKI, "cash_reader")
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "jam", None, None)

        handler.emit(record)

