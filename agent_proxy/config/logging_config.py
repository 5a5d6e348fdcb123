"""
Configure logging for the application.

This module sets up the ``agent_proxy`` logger with console and rotating file
output and wraps it in a ProxyLogger, the leveled, attribute-tagged emitter
the proxy components log through. Every record emitted for a connection
carries that connection's ``connection_id`` and ``trace_id`` attributes so a
whole session can be joined on ``trace_id`` across services.

The level threshold is resolved once, when configure_logging() runs, from (in
order) the explicit argument, ``LOG_LEVEL``, the legacy ``OPENAI_PROXY_DEBUG``
flag, and finally ``info``.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from agent_proxy.config.constants import LOGGER_NAME

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Log file configuration
LOG_DIR = Path("logs")
LOG_FILE = LOG_DIR / "agent_proxy.log"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}
DEFAULT_LEVEL = "info"

# Attribute keys shared with collaborating services
ATTR_CONNECTION_ID = "connection_id"
ATTR_TRACE_ID = "trace_id"
ATTR_DIRECTION = "direction"
ATTR_MESSAGE_TYPE = "message_type"
ATTR_ERROR_CODE = "error.code"
ATTR_ERROR_MESSAGE = "error.message"
ATTR_UPSTREAM_CLOSE_CODE = "upstream.close_code"
ATTR_UPSTREAM_CLOSE_REASON = "upstream.close_reason"


def resolve_level_name(
    level: Optional[str] = None,
    debug: Optional[bool] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Return the normalized threshold name for the given inputs.

    Unknown level names fall back to ``info`` rather than failing startup.
    """
    env = os.environ if environ is None else environ
    if level is None:
        level = env.get("LOG_LEVEL") or None
    if level is not None:
        name = level.strip().lower()
        if name == "warning":
            name = "warn"
        return name if name in LEVELS else DEFAULT_LEVEL
    if debug is None:
        debug = (env.get("OPENAI_PROXY_DEBUG") or "").strip().lower() in ("1", "true")
    return "debug" if debug else DEFAULT_LEVEL


class AttributeFormatter(logging.Formatter):
    """Formatter that appends a record's attributes as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        attributes = getattr(record, "attributes", None)
        if attributes:
            pairs = " ".join(f"{key}={value}" for key, value in attributes.items())
            formatted = f"{formatted} [{pairs}]"
        return formatted


class ProxyLogger:
    """
    Leveled, attribute-tagged log emitter.

    The threshold is fixed when the instance is built. Records below it are
    dropped before attributes are touched or a message is formatted.
    """

    def __init__(self, level: str = DEFAULT_LEVEL, name: str = LOGGER_NAME):
        self.level_name = resolve_level_name(level)
        self.threshold = LEVELS[self.level_name]
        self.logger = logging.getLogger(name)

    def is_enabled_for(self, level: str) -> bool:
        return _level_number(level) >= self.threshold

    def emit(self, level: str, message: str, attributes: Optional[Mapping[str, Any]] = None) -> None:
        """
        Emit one record.

        Args:
            level: One of debug, info, warn, error
            message: Human-readable message
            attributes: Extra key/value pairs; ``None`` values are dropped
        """
        levelno = _level_number(level)
        if levelno < self.threshold:
            return
        self.write(levelno, message, _present(attributes or {}))

    def write(self, levelno: int, message: str, attrs: Dict[str, Any]) -> None:
        """Log a record whose threshold check and attribute filtering are already done."""
        self.logger.log(levelno, message, extra={"attributes": attrs})

    def bind(self, **attributes: Any) -> "BoundProxyLogger":
        """Return a logger that adds ``attributes`` to every record."""
        return BoundProxyLogger(self, attributes)


class BoundProxyLogger:
    """ProxyLogger view carrying fixed attributes, usually connection_id and trace_id."""

    def __init__(self, parent: ProxyLogger, attributes: Mapping[str, Any]):
        self.parent = parent
        self.attributes = dict(attributes)

    def bind(self, **attributes: Any) -> "BoundProxyLogger":
        merged = dict(self.attributes)
        merged.update(attributes)
        return BoundProxyLogger(self.parent, merged)

    def emit(self, level: str, message: str, attributes: Optional[Mapping[str, Any]] = None) -> None:
        levelno = _level_number(level)
        if levelno < self.parent.threshold:
            return
        attrs = _present(self.attributes, attributes or {})
        self.parent.write(levelno, message, attrs)

    def debug(self, message: str, **attributes: Any) -> None:
        self.emit("debug", message, attributes)

    def info(self, message: str, **attributes: Any) -> None:
        self.emit("info", message, attributes)

    def warn(self, message: str, **attributes: Any) -> None:
        self.emit("warn", message, attributes)

    def error(self, message: str, **attributes: Any) -> None:
        self.emit("error", message, attributes)


def _present(*sources: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge attribute mappings left to right, dropping ``None`` values."""
    attrs: Dict[str, Any] = {}
    for source in sources:
        for key, value in source.items():
            if value is None:
                attrs.pop(key, None)
            else:
                attrs[key] = value
    return attrs


def _level_number(level: str) -> int:
    try:
        return LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level}") from None


def configure_logging(level: Optional[str] = None, debug: Optional[bool] = None) -> ProxyLogger:
    """
    Configure the application logger with console and file handlers.

    Args:
        level: Threshold name; defaults to the LOG_LEVEL environment variable
        debug: Legacy debug flag; defaults to OPENAI_PROXY_DEBUG

    Returns:
        ProxyLogger: The process-wide emitter wrapping the configured logger
    """
    level_name = resolve_level_name(level, debug)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(LEVELS[level_name])

    # Remove existing handlers if any
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = AttributeFormatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    try:
        LOG_DIR.mkdir(exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=MAX_LOG_SIZE,
            backupCount=BACKUP_COUNT
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        logger.warning(f"Could not set up file logging: {e}")

    # Prevent log propagation to root logger
    logger.propagate = False

    proxy_logger = ProxyLogger(level_name, LOGGER_NAME)
    proxy_logger.emit("info", "Logging configured", {"log_level": level_name})
    return proxy_logger
