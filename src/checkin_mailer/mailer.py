# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Mailer facade.

:class:`Mailer` is the only entry point the HTTP layer and the CLI use. It
validates a :class:`SendRequest`, opens a fresh SMTP session, runs one
transaction and closes the connection. Every failure is converted into a
result object at this boundary; nothing is retried.

Example:
    Sending a visitor notification::

        mailer = Mailer(SmtpConfig.from_env())
        result = await mailer.send(SendRequest(
            to="host@example.com",
            subject="Visitor Arrival: Ada",
            body="Ada from Acme has arrived.",
        ))
        if not result.success:
            logger.warning("Notification failed: %s", result.error)
"""

from __future__ import annotations

import ssl
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .config import SmtpConfig
from .errors import MailerError, MessageValidationError
from .logger import get_logger
from .smtp.message import OutgoingMessage, compose_message, generate_message_id
from .smtp.session import open_session
from .smtp.transport import TransportFactory, open_transport

logger = get_logger("Mailer")


@dataclass
class SendRequest:
    """Fields of one outgoing email.

    ``from_email`` and ``from_name`` fall back to the mailer configuration
    when left as None.
    """

    to: str
    subject: str
    body: str
    from_email: str | None = None
    from_name: str | None = None
    is_html: bool = False


@dataclass
class SendResult:
    """Outcome of :meth:`Mailer.send`."""

    success: bool
    message_id: str | None = None
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.message_id is not None:
            data["messageId"] = self.message_id
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ConnectionCheck:
    """Outcome of :meth:`Mailer.test_connection`."""

    success: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message}


class Mailer:
    """Sends single emails through the configured submission host.

    Attributes:
        config: Validated :class:`SmtpConfig`.
    """

    def __init__(
        self,
        config: SmtpConfig,
        *,
        transport_factory: TransportFactory = open_transport,
        ssl_context: ssl.SSLContext | None = None,
    ):
        self.config = config
        self._transport_factory = transport_factory
        self._ssl_context = ssl_context

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **kwargs: Any) -> Mailer:
        """Build a mailer from ``SMTP_*`` variables.

        Raises:
            ConfigError: If credentials are missing.
        """
        return cls(SmtpConfig.from_env(environ), **kwargs)

    def _session(self):
        return open_session(
            self.config,
            transport_factory=self._transport_factory,
            ssl_context=self._ssl_context,
        )

    def prepare(self, request: SendRequest) -> OutgoingMessage:
        """Apply configured defaults and validate ``request``.

        Raises:
            MessageValidationError: If the request is not sendable.
        """
        from_email = request.from_email if request.from_email is not None else self.config.from_email
        from_name = request.from_name if request.from_name is not None else self.config.from_name
        return OutgoingMessage.build(
            to=request.to,
            subject=request.subject,
            body=request.body,
            from_email=from_email,
            from_name=from_name,
            is_html=request.is_html,
        )

    async def send(self, request: SendRequest) -> SendResult:
        """Send one email.

        Returns:
            ``SendResult(success=True, message_id=...)`` once the server has
            accepted the message, otherwise ``success=False`` with a
            human-readable ``error``. Validation failures return before any
            connection is attempted.
        """
        try:
            message = self.prepare(request)
        except MessageValidationError as exc:
            logger.info("Rejected email to %r: %s", request.to, exc)
            return SendResult(success=False, error=str(exc), error_code=exc.code)

        domain = self.config.message_id_domain or message.sender_domain
        message_id = generate_message_id(domain)
        try:
            async with self._session() as session:
                await session.mail_from(message.sender)
                await session.rcpt_to(message.recipient)
                await session.data(compose_message(message, message_id))
                try:
                    await session.quit()
                except MailerError as exc:
                    logger.warning("QUIT failed after message %s was accepted: %s", message_id, exc)
        except MailerError as exc:
            logger.warning("Email to %s failed (%s): %s", message.recipient, exc.code, exc)
            return SendResult(success=False, error=str(exc), error_code=exc.code)
        except Exception as exc:
            logger.exception("Unexpected error sending email to %s", message.recipient)
            return SendResult(success=False, error=str(exc) or type(exc).__name__, error_code="unexpected")

        logger.info("Email to %s accepted, Message-ID %s", message.recipient, message_id)
        return SendResult(success=True, message_id=message_id)

    async def test_connection(self) -> ConnectionCheck:
        """Connect, authenticate and QUIT without sending anything."""
        try:
            async with self._session() as session:
                await session.quit()
        except MailerError as exc:
            logger.warning("Connection test to %s:%s failed: %s", self.config.host, self.config.port, exc)
            return ConnectionCheck(success=False, message=str(exc))
        except Exception as exc:
            logger.exception("Unexpected error testing %s:%s", self.config.host, self.config.port)
            return ConnectionCheck(success=False, message=str(exc) or type(exc).__name__)
        return ConnectionCheck(success=True, message=f"Connected to {self.config.host}:{self.config.port}")

    def get_config(self) -> dict[str, Any]:
        """Return host, port, user and default sender. Never the password."""
        return self.config.public_view()


__all__ = ["ConnectionCheck", "Mailer", "SendRequest", "SendResult"]
