"""Tests for courier.logging.setup."""

from __future__ import annotations

import json
import logging
import sys
from types import SimpleNamespace
from uuid import UUID

import pytest
from flask import Flask, g

from courier.core.types import Channel, FinalStatus
from courier.logging.setup import (
    RequestContextFilter,
    StructuredFormatter,
    TextFormatter,
    configure_logging,
    delivery_fields,
)


@pytest.fixture(autouse=True)
def restore_courier_loggers():
    """Undo configure_logging so caplog keeps working in later tests."""
    yield
    for name in ("courier", "courier.audit"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)


JOB_ID = UUID("00000000-0000-4000-8000-00000000000a")


def _make_record(msg: str = "Test message", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="courier.test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_produces_valid_json(self):
        data = json.loads(StructuredFormatter().format(_make_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "courier.test"
        assert data["message"] == "Test message"
        assert "timestamp" in data

    def test_includes_extra_fields(self):
        record = _make_record(user_id="u-1", channel="push")
        data = json.loads(StructuredFormatter().format(record))
        assert data["user_id"] == "u-1"
        assert data["channel"] == "push"

    def test_context_placeholders_omitted(self):
        record = _make_record(request_id="-", client_ip="-", method=None, path=None)
        data = json.loads(StructuredFormatter().format(record))
        assert "request_id" not in data
        assert "client_ip" not in data
        assert "method" not in data

    def test_request_context_included(self):
        record = _make_record(request_id="req-1", client_ip="10.0.0.1")
        data = json.loads(StructuredFormatter().format(record))
        assert data["request_id"] == "req-1"
        assert data["client_ip"] == "10.0.0.1"

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _make_record(exc_info=sys.exc_info())
        data = json.loads(StructuredFormatter().format(record))
        assert "ValueError: boom" in data["exception"]

    def test_non_serializable_extra(self):
        record = _make_record(payload=object())
        data = json.loads(StructuredFormatter().format(record))
        assert "object" in data["payload"]

    def test_delivery_fields_ordered_before_other_extras(self):
        record = _make_record(
            phone="919800000000",
            channel=Channel.WHATSAPP,
            user_id="u-1",
            job_id=JOB_ID,
            request_id="req-1",
        )
        data = json.loads(StructuredFormatter().format(record))
        keys = list(data)
        assert keys[keys.index("request_id") + 1 :] == ["job_id", "user_id", "channel", "phone"]
        assert data["job_id"] == str(JOB_ID)
        assert data["channel"] == "whatsapp"


class TestDeliveryFields:
    def test_plain_values(self):
        record = _make_record(
            job_id=JOB_ID,
            channel=Channel.SMS,
            final_status=FinalStatus.DELIVERED,
            attempt=2,
        )
        assert delivery_fields(record) == {
            "job_id": str(JOB_ID),
            "channel": "sms",
            "attempt": 2,
            "final_status": "delivered",
        }

    def test_absent_and_none_skipped(self):
        assert delivery_fields(_make_record(message_id=None)) == {}


class TestTextFormatter:
    def test_format_string(self):
        record = _make_record("Something happened", request_id="req-abc")
        record.levelname = "WARNING"
        output = TextFormatter().format(record)
        assert "WARNING" in output
        assert "[req-abc]" in output
        assert "courier.test" in output
        assert output.endswith("Something happened")

    def test_delivery_fields_appended(self):
        record = _make_record(
            "Attempting push",
            request_id="-",
            user_id="u-1",
            attempt=1,
            job_id=JOB_ID,
        )
        output = TextFormatter().format(record)
        assert output.endswith(f"Attempting push job_id={JOB_ID} user_id=u-1 attempt=1")


class TestRequestContextFilter:
    def test_defaults_outside_request(self):
        record = _make_record()
        assert RequestContextFilter().filter(record) is True
        assert record.request_id == "-"
        assert record.client_ip == "-"
        assert record.method is None
        assert record.path is None

    def test_keeps_explicit_request_id(self):
        record = _make_record(request_id="job-42")
        RequestContextFilter().filter(record)
        assert record.request_id == "job-42"

    def test_injects_flask_context(self):
        app = Flask(__name__)
        record = _make_record()
        with app.test_request_context(
            "/api/notifications",
            method="POST",
            environ_base={"REMOTE_ADDR": "192.0.2.7"},
        ):
            g.request_id = "req-xyz"
            RequestContextFilter().filter(record)
        assert record.request_id == "req-xyz"
        assert record.client_ip == "192.0.2.7"
        assert record.method == "POST"
        assert record.path == "/api/notifications"


class TestConfigureLogging:
    def _make_settings(
        self,
        *,
        log_format: str = "json",
        level: str = "INFO",
        audit_enabled: bool = False,
        audit_file: str | None = None,
    ) -> SimpleNamespace:
        audit = SimpleNamespace(
            enabled=audit_enabled,
            file=audit_file,
            max_file_size_bytes=10485760,
            backup_count=5,
        )
        return SimpleNamespace(format=log_format, level=level, audit=audit)

    def test_json_format(self):
        root = configure_logging(self._make_settings())
        assert root.name == "courier"
        assert root.propagate is False
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)

    def test_text_format(self):
        root = configure_logging(self._make_settings(log_format="text"))
        assert isinstance(root.handlers[0].formatter, TextFormatter)

    def test_level(self):
        root = configure_logging(self._make_settings(level="DEBUG"))
        assert root.level == logging.DEBUG

    def test_repeated_calls_replace_handlers(self):
        configure_logging(self._make_settings())
        root = configure_logging(self._make_settings())
        assert len(root.handlers) == 1

    def test_audit_file_handler(self, tmp_path):
        audit_path = tmp_path / "audit.log"
        configure_logging(
            self._make_settings(audit_enabled=True, audit_file=str(audit_path)),
        )
        audit = logging.getLogger("courier.audit")
        assert len(audit.handlers) == 1
        assert isinstance(audit.handlers[0].formatter, StructuredFormatter)

        audit.info("Failed notification retried", extra={"job_id": "j-1"})
        audit.handlers[0].flush()
        line = audit_path.read_text(encoding="utf-8").strip()
        assert json.loads(line)["job_id"] == "j-1"

    def test_audit_file_unwritable(self, tmp_path):
        bad_path = tmp_path / "missing-dir" / "audit.log"
        configure_logging(
            self._make_settings(audit_enabled=True, audit_file=str(bad_path)),
        )
        assert logging.getLogger("courier.audit").handlers == []
