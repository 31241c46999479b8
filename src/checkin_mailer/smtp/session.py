# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP session state machine.

An :class:`SmtpSession` drives one submission dialogue over a
:class:`~checkin_mailer.smtp.transport.Transport`::

    CONNECTED -> GREETED -> (SECURED) -> AUTHENTICATED -> IN_TRANSACTION -> CLOSED

The handshake performed by :meth:`SmtpSession.handshake` is:

1. Read the greeting, which must be a 220 reply.
2. ``EHLO <local hostname>``.
3. On ports other than 465: ``STARTTLS``, upgrade the connection, and send
   ``EHLO`` again over the encrypted channel.
4. ``AUTH LOGIN`` with base64 username and password.

:func:`open_session` wraps connection, handshake and teardown in an async
context manager that closes the transport exactly once, whatever stage
fails.

Example:
    Sending one message::

        async with open_session(config) as session:
            await session.mail_from("desk@example.com")
            await session.rcpt_to("host@example.com")
            await session.data(payload)
            await session.quit()
"""

from __future__ import annotations

import base64
import socket
import ssl
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum

from ..config import SmtpConfig
from ..errors import AuthError, GreetingError, ProtocolError, SmtpError, TLSError
from ..logger import get_logger
from .reply import Reply, ReplyAccumulator
from .transport import Transport, TransportFactory, build_ssl_context, open_transport

logger = get_logger("SmtpSession")


class SessionPhase(str, Enum):
    """Lifecycle phases of a session."""

    CONNECTED = "connected"
    GREETED = "greeted"
    SECURED = "secured"
    AUTHENTICATED = "authenticated"
    IN_TRANSACTION = "in_transaction"
    CLOSED = "closed"


class SmtpSession:
    """One SMTP dialogue over an already connected transport.

    Attributes:
        host: Server host name, used for TLS server name indication.
        port: Server port.
        phase: Current :class:`SessionPhase`.
        capabilities: EHLO keywords advertised by the server, upper-cased.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        host: str,
        port: int,
        local_hostname: str | None = None,
        ssl_context: ssl.SSLContext | None = None,
    ):
        self.transport = transport
        self.host = host
        self.port = port
        self.local_hostname = local_hostname or socket.gethostname()
        self.ssl_context = ssl_context
        self.phase = SessionPhase.CONNECTED
        self.capabilities: set[str] = set()

    @property
    def is_tls(self) -> bool:
        return self.transport.is_tls

    def _require(self, *phases: SessionPhase) -> None:
        if self.phase not in phases:
            allowed = ", ".join(p.value for p in phases)
            raise ProtocolError(f"Command not allowed in phase {self.phase.value} (expected {allowed})")

    async def read_reply(self) -> Reply:
        """Read lines until a final reply line or EOF."""
        accumulator = ReplyAccumulator()
        while True:
            line = await self.transport.readline()
            if not line:
                return accumulator.finish_at_eof()
            reply = accumulator.feed(line)
            if reply is not None:
                logger.debug("S: %s", reply.raw)
                return reply

    async def exchange(self, line: str, *, log_as: str | None = None) -> Reply:
        """Send one CRLF-terminated line and return the reply unchecked."""
        logger.debug("C: %s", log_as or line)
        await self.transport.write(line.encode("utf-8") + b"\r\n")
        return await self.read_reply()

    async def command(self, line: str) -> Reply:
        """Send a command and raise :class:`SmtpError` on a 4xx/5xx reply."""
        reply = await self.exchange(line)
        return reply.raise_for_status()

    async def greet(self) -> Reply:
        self._require(SessionPhase.CONNECTED)
        try:
            reply = await self.read_reply()
        except ProtocolError as exc:
            raise GreetingError(f"No greeting from server: {exc}") from exc
        if reply.code != 220:
            raise GreetingError(f"No greeting from server: {reply.raw}")
        self.phase = SessionPhase.GREETED
        return reply

    async def ehlo(self) -> Reply:
        self._require(SessionPhase.GREETED, SessionPhase.SECURED)
        reply = await self.command(f"EHLO {self.local_hostname}")
        # First line is the server's own greeting text
        self.capabilities = {
            text.split(" ", 1)[0].upper() for text in reply.texts[1:] if text
        }
        return reply

    async def starttls(self) -> None:
        """Issue STARTTLS, upgrade the transport and re-send EHLO."""
        self._require(SessionPhase.GREETED)
        try:
            reply = await self.command("STARTTLS")
        except SmtpError as exc:
            raise TLSError(f"STARTTLS not supported or failed: {exc.text}") from exc
        if reply.code not in (220, 250):
            raise TLSError(f"STARTTLS not supported or failed: {reply.raw}")
        context = self.ssl_context or build_ssl_context()
        await self.transport.start_tls(context, server_hostname=self.host)
        self.phase = SessionPhase.SECURED
        await self.ehlo()

    async def auth_login(self, user: str, password: str) -> Reply:
        """Authenticate with AUTH LOGIN.

        A 503 reply to the password is accepted as "already authenticated".

        Raises:
            AuthError: On any other reply than the expected 334/235/503.
        """
        self._require(SessionPhase.GREETED, SessionPhase.SECURED)
        reply = await self.exchange("AUTH LOGIN")
        if reply.code != 334:
            raise AuthError(f"Authentication failed: {reply.raw}", reply.raw)
        reply = await self.exchange(_b64(user), log_as="<username>")
        if reply.code != 334:
            raise AuthError(f"Username not accepted: {reply.raw}", reply.raw)
        reply = await self.exchange(_b64(password), log_as="<password>")
        if reply.code not in (235, 503):
            raise AuthError(f"Authentication failed: {reply.raw}", reply.raw)
        self.phase = SessionPhase.AUTHENTICATED
        return reply

    async def handshake(self, user: str, password: str, *, use_starttls: bool) -> None:
        """Greeting, EHLO, optional STARTTLS and AUTH LOGIN."""
        await self.greet()
        await self.ehlo()
        if use_starttls:
            await self.starttls()
        await self.auth_login(user, password)

    async def mail_from(self, sender: str) -> Reply:
        self._require(SessionPhase.AUTHENTICATED)
        reply = await self.command(f"MAIL FROM:<{sender}>")
        self.phase = SessionPhase.IN_TRANSACTION
        return reply

    async def rcpt_to(self, recipient: str) -> Reply:
        self._require(SessionPhase.IN_TRANSACTION)
        return await self.command(f"RCPT TO:<{recipient}>")

    async def data(self, payload: bytes) -> Reply:
        """Run the DATA phase.

        ``payload`` must be dot-stuffed and end with the ``.`` line, as
        produced by :func:`~checkin_mailer.smtp.message.compose_message`.
        """
        self._require(SessionPhase.IN_TRANSACTION)
        reply = await self.command("DATA")
        if reply.code != 354:
            raise ProtocolError(f"Unexpected reply to DATA: {reply.raw}")
        logger.debug("C: <message payload, %d bytes>", len(payload))
        await self.transport.write(payload)
        reply = (await self.read_reply()).raise_for_status()
        self.phase = SessionPhase.AUTHENTICATED
        return reply

    async def quit(self) -> Reply:
        if self.phase is SessionPhase.CLOSED:
            raise ProtocolError("Session already closed")
        return await self.command("QUIT")

    async def close(self) -> None:
        """Close the transport. Safe to call more than once."""
        if self.phase is SessionPhase.CLOSED:
            return
        self.phase = SessionPhase.CLOSED
        await self.transport.close()


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


@asynccontextmanager
async def open_session(
    config: SmtpConfig,
    *,
    transport_factory: TransportFactory = open_transport,
    ssl_context: ssl.SSLContext | None = None,
) -> AsyncIterator[SmtpSession]:
    """Connect, handshake and yield an authenticated :class:`SmtpSession`.

    Port 465 connects with implicit TLS; any other port connects in
    plaintext and upgrades with STARTTLS. The transport is closed when the
    block exits, on success and on every failure path.
    """
    context = ssl_context or build_ssl_context(config.verify_tls)
    transport = await transport_factory(
        config.host,
        config.port,
        ssl_context=context if config.implicit_tls else None,
        timeout=config.timeout,
    )
    session = SmtpSession(
        transport,
        host=config.host,
        port=config.port,
        local_hostname=config.local_hostname,
        ssl_context=context,
    )
    try:
        await session.handshake(config.user, config.password, use_starttls=not config.implicit_tls)
        yield session
    finally:
        await session.close()


__all__ = ["SessionPhase", "SmtpSession", "open_session"]
