# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP submission client.

This package provides the wire-level pieces used by the mailer facade:

- StreamTransport / open_transport: asyncio socket with a single timeout
- parse_reply_line / Reply: reply tokenizer
- SmtpSession / open_session: session state machine and scoped connection
- OutgoingMessage / compose_message: DATA payload composition

Usage:
    from checkin_mailer.smtp import open_session, compose_message

    async with open_session(config) as session:
        ...
"""

from .message import OutgoingMessage, compose_message, generate_message_id
from .reply import Reply, ReplyLine, parse_reply_line
from .session import SessionPhase, SmtpSession, open_session
from .transport import StreamTransport, build_ssl_context, open_transport

__all__ = [
    "OutgoingMessage",
    "Reply",
    "ReplyLine",
    "SessionPhase",
    "SmtpSession",
    "StreamTransport",
    "build_ssl_context",
    "compose_message",
    "generate_message_id",
    "open_session",
    "open_transport",
    "parse_reply_line",
]
