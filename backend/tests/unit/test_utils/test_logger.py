"""Tests for structured JSON logging"""
import json
import logging

from app.utils.logger import JsonFormatter, correlation_id_var, set_correlation_id


def make_record(**extra):
    record = logging.LogRecord("app.test", logging.INFO, __file__, 1, "Workflow transition processed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formats_known_extra_fields():
    output = json.loads(JsonFormatter().format(make_record(request_id="SRQ-1", to_status="APPROVED", secret="x")))

    assert output["message"] == "Workflow transition processed"
    assert output["level"] == "INFO"
    assert output["request_id"] == "SRQ-1"
    assert output["to_status"] == "APPROVED"
    assert "secret" not in output


def test_includes_context_correlation_id():
    token = correlation_id_var.set(None)
    try:
        set_correlation_id("COR-123")
        output = json.loads(JsonFormatter().format(make_record()))
    finally:
        correlation_id_var.reset(token)

    assert output["correlation_id"] == "COR-123"
