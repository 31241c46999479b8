# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""ASGI application entry point for uvicorn.

Loads ``.env`` files, SMTP configuration and service settings, then builds
the FastAPI app. Missing SMTP credentials do not stop the server; mail
endpoints answer 503 until the configuration is fixed.

Usage:
    uvicorn checkin_mailer.server:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from fastapi import FastAPI

from .api import create_app
from .config import load_env_files, load_settings
from .errors import ConfigError
from .logger import configure_logging, get_logger
from .mailer import Mailer

logger = get_logger("CheckinMailerServer")


def build_app() -> FastAPI:
    """Build the application from the environment."""
    load_env_files()
    configure_logging()
    settings = load_settings()
    try:
        mailer = Mailer.from_env()
    except ConfigError as exc:
        logger.error("Mailer disabled: %s", exc)
        mailer = None
    else:
        logger.info("Mailer configured for %s:%s", mailer.config.host, mailer.config.port)
    return create_app(mailer, settings)


app = build_app()
