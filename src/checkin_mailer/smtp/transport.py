# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Socket transport for SMTP sessions.

:class:`StreamTransport` wraps an asyncio stream pair and bounds every
operation with the same timeout. It converts low-level failures into the
mailer taxonomy:

- ``asyncio.TimeoutError`` -> :class:`SmtpTimeoutError`
- ``ssl.SSLError`` -> :class:`TLSError`
- ``OSError`` -> :class:`SmtpConnectionError`

Sessions obtain transports through a *transport factory*, an async callable
with the signature of :func:`open_transport`. Tests inject their own factory
to talk to an in-memory SMTP peer.

Example:
    Opening an implicit TLS connection::

        transport = await open_transport(
            "smtp.example.com", 465,
            ssl_context=build_ssl_context(), timeout=30.0,
        )
        line = await transport.readline()
        await transport.close()
"""

from __future__ import annotations

import asyncio
import ssl
from collections.abc import Awaitable, Callable
from typing import Protocol

from ..errors import SmtpConnectionError, SmtpTimeoutError, TLSError
from ..logger import get_logger

logger = get_logger("SmtpTransport")

MAX_LINE_LENGTH = 8192


def build_ssl_context(verify: bool = True) -> ssl.SSLContext:
    """Create a client TLS context with TLS 1.2 as the floor.

    Args:
        verify: Verify the server certificate and hostname.
    """
    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class Transport(Protocol):
    """Byte-level connection used by :class:`~checkin_mailer.smtp.session.SmtpSession`."""

    @property
    def is_tls(self) -> bool: ...

    async def readline(self) -> bytes: ...

    async def write(self, data: bytes) -> None: ...

    async def start_tls(self, ssl_context: ssl.SSLContext, server_hostname: str) -> None: ...

    async def close(self) -> None: ...


TransportFactory = Callable[..., Awaitable[Transport]]


class StreamTransport:
    """Transport backed by ``asyncio.StreamReader``/``StreamWriter``."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        timeout: float,
        is_tls: bool = False,
    ):
        self._reader = reader
        self._writer = writer
        self._timeout = timeout
        self._is_tls = is_tls
        self._closed = False

    @property
    def is_tls(self) -> bool:
        return self._is_tls

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def tls_version(self) -> str | None:
        """Negotiated protocol, e.g. ``"TLSv1.3"``; None on a plaintext connection."""
        ssl_object = self._writer.get_extra_info("ssl_object")
        return ssl_object.version() if ssl_object is not None else None

    async def readline(self) -> bytes:
        """Read one CRLF-terminated line. Returns ``b""`` on EOF."""
        try:
            line = await asyncio.wait_for(self._reader.readline(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise SmtpTimeoutError(f"Read timed out after {self._timeout:g}s") from exc
        except ValueError as exc:
            # StreamReader limit exceeded
            raise SmtpConnectionError(f"Reply line too long: {exc}") from exc
        except OSError as exc:
            raise SmtpConnectionError(f"Read failed: {exc}") from exc
        return line

    async def write(self, data: bytes) -> None:
        try:
            self._writer.write(data)
            await asyncio.wait_for(self._writer.drain(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise SmtpTimeoutError(f"Write timed out after {self._timeout:g}s") from exc
        except OSError as exc:
            raise SmtpConnectionError(f"Write failed: {exc}") from exc

    async def start_tls(self, ssl_context: ssl.SSLContext, server_hostname: str) -> None:
        """Upgrade the live connection to TLS in place."""
        try:
            await asyncio.wait_for(
                self._writer.start_tls(ssl_context, server_hostname=server_hostname),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise SmtpTimeoutError(f"TLS handshake timed out after {self._timeout:g}s") from exc
        except ssl.SSLError as exc:
            raise TLSError(f"TLS negotiation failed: {exc}") from exc
        except OSError as exc:
            raise TLSError(f"TLS negotiation failed: {exc}") from exc
        self._is_tls = True
        logger.debug("Connection upgraded to %s", self.tls_version)

    async def close(self) -> None:
        """Close the connection. Further calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await asyncio.wait_for(self._writer.wait_closed(), timeout=self._timeout)
        except (asyncio.TimeoutError, OSError, ssl.SSLError) as exc:
            logger.debug("Ignoring error while closing connection: %s", exc)


async def open_transport(
    host: str,
    port: int,
    *,
    ssl_context: ssl.SSLContext | None,
    timeout: float,
) -> StreamTransport:
    """Connect to ``host:port``, with implicit TLS when ``ssl_context`` is given.

    Raises:
        SmtpTimeoutError: If the connection is not established in time.
        TLSError: If the implicit TLS handshake fails.
        SmtpConnectionError: On DNS or socket errors.
    """
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(
                host,
                port,
                ssl=ssl_context,
                server_hostname=host if ssl_context else None,
                limit=MAX_LINE_LENGTH,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        raise SmtpTimeoutError(f"Connection to {host}:{port} timed out after {timeout:g}s") from exc
    except ssl.SSLError as exc:
        raise TLSError(f"TLS negotiation failed: {exc}") from exc
    except OSError as exc:
        raise SmtpConnectionError(f"Connection failed: {exc}") from exc
    logger.debug("Connected to %s:%s (tls=%s)", host, port, ssl_context is not None)
    return StreamTransport(reader, writer, timeout=timeout, is_tls=ssl_context is not None)


__all__ = [
    "MAX_LINE_LENGTH",
    "StreamTransport",
    "Transport",
    "TransportFactory",
    "build_ssl_context",
    "open_transport",
]
