# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception taxonomy for the check-in mailer.

Every failure raised inside the SMTP layers derives from :class:`MailerError`.
The :class:`~checkin_mailer.mailer.Mailer` facade catches them at its public
boundary and turns them into result objects, so callers never see these
exceptions unless they drive :mod:`checkin_mailer.smtp` directly.

Each class carries a short ``code`` attribute usable in logs and metrics.
"""

from __future__ import annotations


class MailerError(RuntimeError):
    """Base class for all mailer failures."""

    code = "mailer_error"


class ConfigError(MailerError):
    """Raised when the SMTP configuration is incomplete or invalid."""

    code = "config_error"

    def __init__(self, message: str = "SMTP credentials not configured"):
        super().__init__(message)


class MessageValidationError(MailerError):
    """Raised when a send request fails validation before any network I/O."""

    code = "validation_error"


class SmtpConnectionError(MailerError):
    """Raised on socket or DNS failures while talking to the SMTP host."""

    code = "connection_error"


class SmtpTimeoutError(SmtpConnectionError):
    """Raised when a socket operation exceeds the configured timeout."""

    code = "timeout"


class GreetingError(MailerError):
    """Raised when the server does not greet with a 220 banner."""

    code = "greeting_error"


class TLSError(MailerError):
    """Raised when STARTTLS is refused or the TLS handshake fails."""

    code = "tls_error"


class AuthError(MailerError):
    """Raised when AUTH LOGIN is rejected.

    Attributes:
        response: Raw server line that caused the rejection.
    """

    code = "auth_error"

    def __init__(self, message: str, response: str = ""):
        super().__init__(message)
        self.response = response


class ProtocolError(MailerError):
    """Raised on malformed replies, unexpected EOF or out-of-phase commands."""

    code = "protocol_error"


class SmtpError(MailerError):
    """Raised when the server answers a command with a 4xx or 5xx reply.

    Attributes:
        smtp_code: Three-digit reply code.
        text: Full reply line as sent by the server.
    """

    code = "smtp_error"

    def __init__(self, smtp_code: int, text: str):
        super().__init__(f"Error ({smtp_code}): {text}")
        self.smtp_code = smtp_code
        self.text = text

    @property
    def is_temporary(self) -> bool:
        """True for 4xx replies."""
        return 400 <= self.smtp_code < 500


__all__ = [
    "AuthError",
    "ConfigError",
    "GreetingError",
    "MailerError",
    "MessageValidationError",
    "ProtocolError",
    "SmtpConnectionError",
    "SmtpError",
    "SmtpTimeoutError",
    "TLSError",
]
