"""
Tests for endpoint-tagged logging.
"""
import io
import logging
import sys
import unittest
from unittest import mock

from biolink.config import settings
from biolink.utils.logging import EndpointFilter, get_logger, setup_logging

class LoggingTests(unittest.TestCase):

    def setUp(self):
        self._saved = settings.as_dict()
        self._handlers = logging.getLogger().handlers[:]
        self._level = logging.getLogger().level
        self._excepthook = sys.excepthook

    def tearDown(self):
        settings._settings = self._saved
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in self._handlers:
            root.addHandler(handler)
        root.setLevel(self._level)
        sys.excepthook = self._excepthook

    def test_records_carry_the_endpoint(self):
        logger = get_logger("biolink.tests.link", endpoint="ws://device:81")
        with self.assertLogs("biolink.tests.link", level="INFO") as captured:
            logger.info("connected")
            logger.info("override", extra={"endpoint": "serial://COM3"})

        self.assertEqual([r.endpoint for r in captured.records],
                         ["ws://device:81", "serial://COM3"])

    def test_plain_records_get_a_placeholder(self):
        record = logging.LogRecord("websockets.client", logging.INFO, __file__, 1,
                                   "handshake", None, None)
        self.assertTrue(EndpointFilter().filter(record))
        self.assertEqual(record.endpoint, "-")

    def test_console_output_shows_endpoint(self):
        settings.update({"LOG_TO_CONSOLE": True, "LOG_TO_FILE": False, "LOG_LEVEL": "INFO"})
        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            setup_logging()
            get_logger("biolink.tests.console", endpoint="ws://device:81").info("link up")
            logging.getLogger("biolink.tests.plain").info("no context")

        output = stdout.getvalue()
        self.assertIn("[ws://device:81] - biolink.tests.console", output)
        self.assertIn("[-] - biolink.tests.plain", output)

if __name__ == '__main__':
    unittest.main()
