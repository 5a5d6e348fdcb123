import logging

import pytest

from agent_proxy.config.constants import LOGGER_NAME
from agent_proxy.config.logging_config import ProxyLogger
from agent_proxy.models.connection import ProxyConnection
from agent_proxy.proxy.state_machine import SessionStateMachine


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


class RecordingHandler(logging.Handler):
    """Keeps every record so tests can inspect attributes."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)

    def attributes(self):
        return [getattr(record, "attributes", {}) for record in self.records]

    def messages(self):
        return [record.getMessage() for record in self.records]


@pytest.fixture
def log_records():
    """Capture records of the proxy logger at debug level."""
    logger = logging.getLogger(LOGGER_NAME)
    handler = RecordingHandler()
    previous_level = logger.level
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    yield handler
    logger.removeHandler(handler)
    logger.setLevel(previous_level)


@pytest.fixture
def connection():
    return ProxyConnection(connection_id="c1", trace_id="trace-1")


@pytest.fixture
def machine(connection):
    log = ProxyLogger("debug").bind(connection_id=connection.connection_id, trace_id=connection.trace_id)
    return SessionStateMachine(connection, log)
