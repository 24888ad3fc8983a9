"""Logging setup utilities for vaultbridge.

The dispatcher runs uvicorn with ``log_config=None`` so uvicorn never
reconfigures logging on its own; its loggers are wired to the same
handlers as the application here.
"""

from __future__ import annotations

import logging
import sys

from vaultbridge.config.settings import LoggingConfig

# uvicorn's access log stays off; its error logger reports bind/shutdown issues
LOGGER_NAMES = ("vaultbridge", "uvicorn.error")


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure the vaultbridge and uvicorn loggers.

    Args:
        config: Logging configuration. If None, uses defaults
                (INFO level, stderr output).
    """
    if config is None:
        config = LoggingConfig()

    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter = logging.Formatter(config.format)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(logging.FileHandler(config.file))

    for handler in handlers:
        handler.setFormatter(formatter)

    for name in LOGGER_NAMES:
        target = logging.getLogger(name)
        target.setLevel(level)
        target.propagate = False
        for handler in handlers:
            target.addHandler(handler)

    logging.getLogger("vaultbridge").info("Logging initialized at %s level", config.level)
