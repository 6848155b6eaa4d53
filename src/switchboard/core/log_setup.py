"""
switchboard.core.log_setup - Structured Logging Setup
======================================================

Every Switchboard module logs through a module-level
``structlog.get_logger()`` and binds its own ``component=...`` context.
This module installs the processor chain those loggers render through.

Call ``configure_logging()`` once at startup. Libraries embedding
Switchboard that configure structlog themselves can skip it.

Usage:
    >>> from switchboard.core.config import load_config
    >>> from switchboard.core.log_setup import configure_logging
    >>> configure_logging(load_config())
"""

from __future__ import annotations

import logging
from typing import Optional

import structlog

from switchboard.core.config import SwitchboardConfig
from switchboard.core.exceptions import ConfigurationError


def configure_logging(config: Optional[SwitchboardConfig] = None) -> None:
    """Configure structlog from a SwitchboardConfig.

    Args:
        config: Source of ``log_level`` and ``log_format``. Defaults to a
            fresh SwitchboardConfig (defaults + environment variables).

    Raises:
        ConfigurationError: If ``log_level`` is not a known level name.
    """
    config = config or SwitchboardConfig()

    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        raise ConfigurationError(
            message=f"Unknown log level: {config.log_level!r}",
            error_code="INVALID_LOG_LEVEL",
            details={"log_level": config.log_level},
        )

    if config.log_format == "json":
        renderer: structlog.typing.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
