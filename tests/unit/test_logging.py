"""Unit tests for structured logging"""

import io
import json
import logging
import pytest
from installment_gateway.infrastructure.observability.logging import log_suspicion_flag, setup_logging


@pytest.fixture
def log_stream():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    stream = io.StringIO()
    setup_logging("info", stream=stream)
    yield stream
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


def test_records_are_json(log_stream):
    log_suspicion_flag(account_id="cust_1", payment_id="p1", installment_number=2, days_overdue=3)

    record = json.loads(log_stream.getvalue().splitlines()[-1])
    assert record["message"] == "Account flagged as suspicious"
    assert record["level"] == "WARNING"
    assert record["service"] == "installment-gateway"
    assert record["account_id"] == "cust_1"
    assert record["days_overdue"] == 3
    assert "timestamp" in record


def test_library_loggers_quieted(log_stream):
    logging.getLogger("httpx").info("HTTP Request: POST http://example.test")
    assert log_stream.getvalue() == ""
