"""
Tests for logging setup
"""
import json
import logging

from logging_config import JSONFormatter, setup_logging


class TestLogging:
    """Formatter and handler installation"""

    def test_json_formatter_emits_one_object(self):
        record = logging.LogRecord("events", logging.INFO, __file__, 10, "Event created: %s", ("Hack",), None)

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "events"
        assert data["message"] == "Event created: Hack"

    def test_setup_installs_single_handler(self):
        setup_logging(level="debug", fmt="json")
        setup_logging(level="debug", fmt="json")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.DEBUG
        assert logging.getLogger("pymongo").level == logging.WARNING

        setup_logging(level="info", fmt="text")
