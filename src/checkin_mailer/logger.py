"""Logging setup shared by the CLI and the HTTP server.

Modules only call :func:`get_logger`. :func:`configure_logging` is called once
by each entry point; it reads ``CKM_LOG_LEVEL`` and replaces any handlers
installed earlier (uvicorn, a previous CLI invocation).
"""

import logging
import os

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str = "CheckinMailer") -> logging.Logger:
    return logging.getLogger(name)


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger from ``level`` or ``CKM_LOG_LEVEL``.

    Unknown level names fall back to INFO.
    """
    level_name = (level or os.getenv("CKM_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        force=True,
    )
