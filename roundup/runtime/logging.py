"""Logging for the roundup client.

Every module logs through ``get_logger(__name__)``; all loggers hang off the
``roundup`` namespace, which owns a single stderr handler and does not
propagate to the root logger.

Environment variables:
    ROUNDUP_LOG_LEVEL: DEBUG, INFO, WARNING (or WARN) or ERROR. Default: INFO
"""

import logging
import os
import sys

LOGGER_NAMESPACE = "roundup"
DEFAULT_LOG_LEVEL = logging.INFO

LOG_FORMAT = "%(levelname)s [%(name)s] %(message)s"
# Line numbers only when debugging
LOG_FORMAT_DEBUG = "%(levelname)s [%(name)s:%(lineno)d] %(message)s"

_ENV_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}

_configured = False


def _formatter_for(level: int) -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT_DEBUG if level == logging.DEBUG else LOG_FORMAT)


def level_from_env() -> int:
    """Level named by ROUNDUP_LOG_LEVEL; unknown or missing values give the default."""
    return _ENV_LEVELS.get(os.environ.get("ROUNDUP_LOG_LEVEL", "").strip().upper(), DEFAULT_LOG_LEVEL)


def configure_logging(level: int | None = None) -> None:
    """Attach the stderr handler to the namespace logger, once per process."""
    global _configured
    if _configured:
        return

    resolved = level_from_env() if level is None else level
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_formatter_for(resolved))

    namespace_logger = logging.getLogger(LOGGER_NAMESPACE)
    namespace_logger.setLevel(resolved)
    namespace_logger.addHandler(handler)
    namespace_logger.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` under the roundup namespace (``__name__`` already is)."""
    configure_logging()
    if name == LOGGER_NAMESPACE or name.startswith(f"{LOGGER_NAMESPACE}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def set_log_level(level: int) -> None:
    """Switch level at runtime, e.g. for ``--verbose``; the format follows."""
    namespace_logger = logging.getLogger(LOGGER_NAMESPACE)
    namespace_logger.setLevel(level)
    for handler in namespace_logger.handlers:
        handler.setFormatter(_formatter_for(level))
