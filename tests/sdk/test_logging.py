from __future__ import annotations

import json
import logging

import pytest

from devicelink.sdk.core.logging import JsonFormatter, setup_logging
from devicelink.services.telemetry import SendTelemetry, log_sink


@pytest.fixture
def devicelink_logger():
    logger = logging.getLogger("devicelink")
    saved = (list(logger.handlers), logger.propagate, logger.level)
    yield logger
    for handler in logger.handlers:
        if handler not in saved[0]:
            handler.close()
    logger.handlers[:] = saved[0]
    logger.propagate = saved[1]
    logger.setLevel(saved[2])


def test_json_formatter_merges_extra_fields():
    record = logging.LogRecord("devicelink.events", logging.INFO, __file__, 1, "delivery", (), None)
    record.transport = "mqtt"
    record.ok = False
    payload = json.loads(JsonFormatter().format(record))
    assert payload["msg"] == "delivery"
    assert payload["logger"] == "devicelink.events"
    assert payload["transport"] == "mqtt"
    assert payload["ok"] is False


def test_setup_logging_writes_json_lines(tmp_path, devicelink_logger):
    log_file = tmp_path / "logs" / "devicelink.log"
    setup_logging("debug", log_file=log_file)

    telemetry = SendTelemetry(log_sink)
    telemetry.record_delivery("http", True, device_id="dev-1", status="ok")
    for handler in devicelink_logger.handlers:
        handler.flush()

    lines = log_file.read_text(encoding="utf-8").strip().splitlines()
    event = json.loads(lines[-1])
    assert event["event"] == "delivery"
    assert event["device_id"] == "dev-1"
    assert event["transport"] == "http"


def test_setup_logging_replaces_handlers(devicelink_logger):
    setup_logging("info")
    setup_logging("warning")
    assert len(devicelink_logger.handlers) == 1
    assert devicelink_logger.level == logging.WARNING
