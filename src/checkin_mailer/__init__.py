# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Notification mailer for a visitor check-in front desk.

This package provides a small SMTP submission client and the service
around it:

- Mailer: validate a request, open one SMTP session, send, close
- checkin_mailer.smtp: transport, reply tokenizer, session state machine
  and message composition (EHLO / STARTTLS / AUTH LOGIN / DATA)
- checkin_mailer.notifications: check-in notification templates
- checkin_mailer.api: FastAPI endpoints with per-client rate limiting
- checkin_mailer.cli: operator commands (send, test-connection, serve)

Example:
    Sending one email::

        from checkin_mailer import Mailer, SendRequest

        mailer = Mailer.from_env()
        result = await mailer.send(SendRequest(to="host@example.com", subject="Hi", body="Hello"))
"""

from .config import ServiceSettings, SmtpConfig
from .errors import ConfigError, MailerError
from .mailer import ConnectionCheck, Mailer, SendRequest, SendResult

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "ConnectionCheck",
    "Mailer",
    "MailerError",
    "SendRequest",
    "SendResult",
    "ServiceSettings",
    "SmtpConfig",
]
