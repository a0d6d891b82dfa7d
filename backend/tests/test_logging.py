"""
Tests for logging helpers.
"""

import json
import logging

import pytest

from civicpulse.core.logging_config import JSONFormatter, LoggingContext, get_logger


def test_json_formatter_carries_context_fields():
    record = logging.LogRecord("civicpulse.test", logging.INFO, __file__, 10, "Created %s", ("inc_1",), None)
    record.incident_id = "inc_1"

    data = json.loads(JSONFormatter().format(record))

    assert data["message"] == "Created inc_1"
    assert data["level"] == "INFO"
    assert data["incident_id"] == "inc_1"
    assert "user_id" not in data


def test_get_logger_adds_context(caplog):
    logger = get_logger("civicpulse.tests.context", {"store": "incidents"})
    with caplog.at_level(logging.INFO, logger="civicpulse.tests.context"):
        logger.info("loaded")
    assert caplog.records[-1].store == "incidents"


def test_logging_context_reports_outcome(caplog):
    logger = logging.getLogger("civicpulse.tests.section")
    with caplog.at_level(logging.INFO, logger="civicpulse.tests.section"):
        with LoggingContext(logger, "Loading incidents"):
            pass
        with pytest.raises(RuntimeError):
            with LoggingContext(logger, "Flushing polls"):
                raise RuntimeError("disk gone")

    messages = [r.getMessage() for r in caplog.records]
    assert messages[0] == "Starting: Loading incidents"
    assert messages[1].startswith("Loading incidents completed in")
    assert messages[3].startswith("Flushing polls failed in")
