"""Unit tests for logging configuration and structured log helpers."""

import json
import logging

import pytest
from flask import Flask

from upgrade_responder.logging_config import (
    STRUCTURED_FIELDS_ATTR,
    JSONFormatter,
    TextFormatter,
    configure_logging,
)
from upgrade_responder.models import Country, Location
from upgrade_responder.structured_logging import get_correlation_id, log_error, log_event


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    werkzeug_logger = logging.getLogger("werkzeug")
    handlers, level = list(root.handlers), root.level
    werkzeug_level = werkzeug_logger.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    werkzeug_logger.setLevel(werkzeug_level)


def _record(message="boom %s", args=("x",), fields=None):
    record = logging.LogRecord("upgrade_responder", logging.ERROR, __file__, 1, message, args, None)
    if fields is not None:
        setattr(record, STRUCTURED_FIELDS_ATTR, fields)
    return record


def _structured(caplog):
    return [getattr(record, STRUCTURED_FIELDS_ATTR) for record in caplog.records]


@pytest.mark.unit
def test_configure_logging_json(restore_root_logger):
    configure_logging("WARNING", "json")

    assert restore_root_logger.level == logging.WARNING
    assert isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)
    assert logging.getLogger("werkzeug").level == logging.WARNING


@pytest.mark.unit
def test_configure_logging_debug_overrides_level(restore_root_logger):
    configure_logging("ERROR", "text", debug=True)

    assert restore_root_logger.level == logging.DEBUG
    assert isinstance(restore_root_logger.handlers[0].formatter, TextFormatter)
    assert logging.getLogger("werkzeug").level == logging.DEBUG


@pytest.mark.unit
def test_json_formatter_lifts_structured_fields():
    fields = {
        "event_type": "check_upgrade_request",
        "correlation_id": "req-1",
        "location": Location(city="London", country=Country(name="United Kingdom", iso_code="GB")),
    }

    payload = json.loads(JSONFormatter(include_identifiers=True).format(_record(fields=fields)))

    assert payload["severity"] == "ERROR"
    assert payload["message"] == "boom x"
    assert payload["service"] == "upgrade-responder"
    assert payload["event_type"] == "check_upgrade_request"
    assert payload["correlation_id"] == "req-1"
    assert "London" in payload["location"]
    assert "thread" in payload
    assert payload["timestamp"].endswith("Z")


@pytest.mark.unit
def test_json_formatter_keeps_envelope_keys():
    payload = json.loads(JSONFormatter().format(_record(fields={"message": "shadow", "operation": "x"})))

    assert payload["message"] == "boom x"
    assert payload["fields"] == {"message": "shadow"}
    assert payload["operation"] == "x"


@pytest.mark.unit
def test_text_formatter_appends_fields():
    line = TextFormatter().format(_record(fields={"correlation_id": "req-2", "error_type": "timeout"}))

    assert line.endswith('boom x {"correlation_id": "req-2", "error_type": "timeout"}')
    assert " ERROR upgrade_responder: " in line


@pytest.mark.unit
def test_text_formatter_plain_records_unchanged():
    line = TextFormatter().format(_record())

    assert line.endswith("ERROR upgrade_responder: boom x")


@pytest.mark.unit
def test_log_event_outside_request_context(caplog):
    with caplog.at_level(logging.INFO, logger="upgrade_responder.structured_logging"):
        log_event("check_upgrade_request", request={"longhornVersion": "v1.4.0"})

    assert caplog.messages == ["event=check_upgrade_request"]
    assert _structured(caplog) == [
        {
            "event_type": "check_upgrade_request",
            "correlation_id": "none",
            "request": {"longhornVersion": "v1.4.0"},
        }
    ]


@pytest.mark.unit
def test_log_event_skips_disabled_levels(caplog):
    with caplog.at_level(logging.INFO, logger="upgrade_responder.structured_logging"):
        log_event("noisy", severity="DEBUG")

    assert caplog.records == []


@pytest.mark.unit
def test_log_error_uses_request_id_header(caplog):
    app = Flask(__name__)

    with app.test_request_context("/v1/checkupgrade", headers={"X-Request-ID": "req-9"}):
        assert get_correlation_id() == "req-9"
        with caplog.at_level(logging.ERROR, logger="upgrade_responder.structured_logging"):
            log_error("record_request", "timeout", "sink timed out", resource_id="influxdb")

    assert caplog.messages == ["error operation=record_request type=timeout: sink timed out"]
    (fields,) = _structured(caplog)
    assert fields["correlation_id"] == "req-9"
    assert fields["resource_id"] == "influxdb"
    assert fields["operation"] == "record_request"
