"""
Structured logging configuration for ReconSuite.

Every log record carries the fields ``action`` and ``target`` so that scan
lifecycle lines (accepted, running, killed, failed ...) stay greppable per
scan while remaining human-readable.

Usage::

    from reconsuite.core.logging import configure_logging, get_logger

    configure_logging()                # call once at startup
    logger = get_logger(__name__)
    logger.info("scan accepted", extra={"action": "scan_start", "target": "scan:42"})
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from reconsuite.config import get_settings

# ── Constants ────────────────────────────────────────────────────────────────

_LOG_FORMAT: str = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "action=%(action)s | target=%(target)s | %(message)s"
)
_DATE_FORMAT: str = "%Y-%m-%dT%H:%M:%S%z"
_ROOT_LOGGER_NAME: str = "reconsuite"
_NOISY_LOGGERS: tuple[str, ...] = ("uvicorn.access", "sqlalchemy.engine", "httpx")


# ── Custom Formatter ─────────────────────────────────────────────────────────

class StructuredFormatter(logging.Formatter):
    """Formatter that injects default values for structured fields.

    Records logged without ``extra={"action": ..., "target": ...}`` get a
    dash (``-``) so that the format string never raises a ``KeyError``.
    """

    _DEFAULTS: dict[str, str] = {
        "action": "-",
        "target": "-",
    }

    def format(self, record: logging.LogRecord) -> str:
        for key, default in self._DEFAULTS.items():
            if not hasattr(record, key):
                setattr(record, key, default)
        return super().format(record)


# ── Public API ───────────────────────────────────────────────────────────────

def configure_logging(level: Optional[str] = None) -> None:
    """Initialise the application-wide logging configuration.

    Called from the FastAPI lifespan handler and from ``python -m
    reconsuite``.  Repeated calls only adjust the level.

    Args:
        level: Override the log level.  When ``None``, ``DEBUG`` is used if
            ``settings.DEBUG`` is truthy, otherwise ``INFO``.
    """
    settings = get_settings()

    if level is None:
        level = "DEBUG" if settings.DEBUG else "INFO"

    root_logger: logging.Logger = logging.getLogger(_ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(StructuredFormatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
        root_logger.addHandler(handler)

    for noisy_logger in _NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured at %s level",
        level,
        extra={"action": "logging_init", "target": settings.APP_NAME},
    )


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``reconsuite`` namespace.

    Module names that already live in the package (``reconsuite.engine...``)
    are returned as-is; anything else is nested below ``reconsuite.``.

    Args:
        name: Typically ``__name__`` of the calling module.

    Returns:
        A :class:`logging.Logger` instance.
    """
    if name == _ROOT_LOGGER_NAME or name.startswith(f"{_ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")
