import logging
import unittest
from logging.handlers import RotatingFileHandler

from agent_proxy.config.logging_config import (
    LOG_FORMAT,
    AttributeFormatter,
    ProxyLogger,
    configure_logging,
    resolve_level_name,
)


class RecordingHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestResolveLevelName(unittest.TestCase):
    def test_explicit_level_wins(self):
        self.assertEqual(resolve_level_name("ERROR", debug=True, environ={"LOG_LEVEL": "debug"}), "error")

    def test_environment_level(self):
        self.assertEqual(resolve_level_name(environ={"LOG_LEVEL": "debug"}), "debug")

    def test_warning_alias(self):
        self.assertEqual(resolve_level_name("warning", environ={}), "warn")

    def test_legacy_debug_flag(self):
        self.assertEqual(resolve_level_name(environ={"OPENAI_PROXY_DEBUG": "1"}), "debug")
        self.assertEqual(resolve_level_name(debug=True, environ={}), "debug")

    def test_level_takes_precedence_over_debug_flag(self):
        self.assertEqual(resolve_level_name(environ={"LOG_LEVEL": "error", "OPENAI_PROXY_DEBUG": "true"}), "error")

    def test_unknown_level_falls_back_to_info(self):
        self.assertEqual(resolve_level_name("verbose", environ={}), "info")
        self.assertEqual(resolve_level_name(environ={}), "info")


class TestProxyLogger(unittest.TestCase):
    def setUp(self):
        self.logger = logging.getLogger("agent_proxy.test")
        self.logger.setLevel(logging.DEBUG)
        self.handler = RecordingHandler()
        self.logger.addHandler(self.handler)

    def tearDown(self):
        self.logger.removeHandler(self.handler)

    def test_records_below_threshold_are_dropped(self):
        proxy_logger = ProxyLogger("warn", name="agent_proxy.test")
        proxy_logger.emit("info", "dropped")
        proxy_logger.emit("error", "kept", {"error.code": "x"})
        self.assertEqual([r.getMessage() for r in self.handler.records], ["kept"])
        self.assertEqual(self.handler.records[0].attributes, {"error.code": "x"})

    def test_bound_attributes_on_every_record(self):
        log = ProxyLogger("debug", name="agent_proxy.test").bind(connection_id="c7", trace_id="abc")
        log.debug("one", direction="client→upstream")
        log.bind(message_type="Settings").warn("two", optional=None)
        attributes = [r.attributes for r in self.handler.records]
        self.assertEqual(attributes[0], {"connection_id": "c7", "trace_id": "abc", "direction": "client→upstream"})
        self.assertEqual(attributes[1], {"connection_id": "c7", "trace_id": "abc", "message_type": "Settings"})
        self.assertEqual(self.handler.records[1].levelno, logging.WARNING)

    def test_bound_attributes_merged_without_touching_the_binding(self):
        log = ProxyLogger("debug", name="agent_proxy.test").bind(connection_id="c7", trace_id="abc")
        log.info("override", trace_id=None, state="ready")
        self.handler.records[0].attributes["extra"] = 1
        log.info("again")
        self.assertEqual(self.handler.records[0].attributes, {"connection_id": "c7", "state": "ready", "extra": 1})
        self.assertEqual(self.handler.records[1].attributes, {"connection_id": "c7", "trace_id": "abc"})
        self.assertEqual(log.attributes, {"connection_id": "c7", "trace_id": "abc"})

    def test_unknown_level_raises(self):
        with self.assertRaises(ValueError):
            ProxyLogger("debug", name="agent_proxy.test").emit("trace", "nope")


class TestAttributeFormatter(unittest.TestCase):
    def test_appends_attributes(self):
        formatter = AttributeFormatter("%(message)s")
        record = logging.LogRecord("agent_proxy", logging.INFO, __file__, 1, "hello", None, None)
        record.attributes = {"trace_id": "t1", "connection_id": "c1"}
        self.assertEqual(formatter.format(record), "hello [trace_id=t1 connection_id=c1]")

    def test_plain_record_unchanged(self):
        formatter = AttributeFormatter("%(message)s")
        record = logging.LogRecord("agent_proxy", logging.INFO, __file__, 1, "hello", None, None)
        self.assertEqual(formatter.format(record), "hello")


class TestLoggingConfig(unittest.TestCase):
    def test_configure_logging(self):
        proxy_logger = configure_logging("debug")
        self.assertIsInstance(proxy_logger, ProxyLogger)
        self.assertEqual(proxy_logger.level_name, "debug")

        logger = logging.getLogger("agent_proxy")
        self.assertEqual(logger.level, logging.DEBUG)
        self.assertFalse(logger.propagate)

        # Console handler first, then the rotating file handler
        self.assertGreaterEqual(len(logger.handlers), 1)
        handler = logger.handlers[0]
        self.assertIsInstance(handler, logging.StreamHandler)
        self.assertIsInstance(handler.formatter, AttributeFormatter)
        self.assertEqual(handler.formatter._fmt, LOG_FORMAT)
        if len(logger.handlers) > 1:
            self.assertIsInstance(logger.handlers[1], RotatingFileHandler)

    def test_reconfigure_replaces_handlers(self):
        configure_logging("info")
        count = len(logging.getLogger("agent_proxy").handlers)
        configure_logging("info")
        self.assertEqual(len(logging.getLogger("agent_proxy").handlers), count)


if __name__ == "__main__":
    unittest.main()
