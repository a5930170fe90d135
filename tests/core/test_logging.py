"""Tests for the JSON log formatter and root logger setup."""
import json
import logging
import sys

import pytest

from app.core.logging import JsonFormatter, configure_logging


def _record(**extra):
    record = logging.LogRecord("app.test", logging.INFO, __file__, 1, "payment_completed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


class TestJsonFormatter:
    def test_known_extra_fields(self):
        line = JsonFormatter().format(_record(order_uuid="abc-123", user_id=42, tokens=100, secret="x"))

        entry = json.loads(line)
        assert entry["message"] == "payment_completed"
        assert entry["level"] == "INFO"
        assert (entry["order_uuid"], entry["user_id"], entry["tokens"]) == ("abc-123", 42, 100)
        assert "secret" not in entry

    def test_none_values_are_omitted(self):
        entry = json.loads(JsonFormatter().format(_record(error=None, status="paid")))
        assert "error" not in entry
        assert entry["status"] == "paid"

    def test_non_json_values_are_stringified(self):
        entry = json.loads(JsonFormatter().format(_record(reason=object())))
        assert entry["reason"].startswith("<object object")

    def test_exception_is_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("app.test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        entry = json.loads(JsonFormatter().format(record))
        assert "ValueError: boom" in entry["exception"]


class TestConfigureLogging:
    def test_stream_only(self, settings, restore_root):
        settings.log_level = "warning"

        configure_logging(settings)

        assert restore_root.level == logging.WARNING
        assert len(restore_root.handlers) == 1
        assert isinstance(restore_root.handlers[0].formatter, JsonFormatter)
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_rotating_file(self, settings, restore_root, tmp_path):
        settings.log_file = str(tmp_path / "api.log")

        configure_logging(settings)
        logging.getLogger("app.test").warning("webhook_invalid_signature", extra={"reason": "missing"})
        for handler in restore_root.handlers:
            handler.flush()

        line = (tmp_path / "api.log").read_text().strip().splitlines()[-1]
        assert json.loads(line)["reason"] == "missing"
