"""Logging helpers for the marketplace domain.

Protean configures structlog from the ``[logging]`` section of domain.toml
during ``Domain.init()``; modules only ask for a logger and bind context.
"""

import logging
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

# Suppress noisy library loggers
logging.getLogger("protean").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


def bind_context(**kwargs: Any) -> None:
    """Attach key-values to every log line emitted in the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
