# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Message composition for the SMTP DATA phase.

Everything here is pure and performs no I/O:

- :func:`is_valid_email` checks addresses with ``email-validator`` (syntax
  only, no DNS lookups).
- :func:`sanitize_header` strips CR/LF from header values to prevent header
  injection.
- :func:`normalize_line_endings` and :func:`dot_stuff` prepare the body for
  transmission; :func:`encode_payload` adds the terminating ``.`` line.
- :func:`generate_message_id` and :func:`compose_message` build the final
  DATA payload.
"""

from __future__ import annotations

import re
import secrets
import time
from dataclasses import dataclass
from email.header import Header
from email.utils import formataddr, formatdate

from email_validator import EmailNotValidError, validate_email

from ..errors import MessageValidationError

CRLF = "\r\n"
_LINE_BREAKS = re.compile(r"\r\n|\r|\n")


def is_valid_email(address: str) -> bool:
    """Return True if ``address`` is a syntactically valid ASCII mailbox.

    Internationalized addresses are refused: the session never negotiates
    SMTPUTF8, so ``MAIL FROM``/``RCPT TO`` must stay 7-bit.
    """
    if not address or address != address.strip() or not address.isascii():
        return False
    try:
        validate_email(address, check_deliverability=False, allow_smtputf8=False)
    except EmailNotValidError:
        return False
    return True


def sanitize_header(value: str) -> str:
    """Remove CR and LF characters from a header value."""
    return value.replace("\r", "").replace("\n", "")


def normalize_line_endings(text: str) -> str:
    """Convert ``\\r\\n``, bare ``\\r`` and bare ``\\n`` to CRLF."""
    return _LINE_BREAKS.sub(CRLF, text)


def dot_stuff(text: str) -> str:
    """Apply SMTP transparency to CRLF-normalized text.

    Every line starting with ``.`` gets one more leading ``.``; the server
    removes it again on receipt. A line consisting of a single ``.`` thus
    becomes ``..`` and can no longer end the DATA phase early.
    """
    return CRLF.join(
        "." + line if line.startswith(".") else line for line in text.split(CRLF)
    )


def encode_payload(headers: str, body: str) -> bytes:
    """Join headers and body and append the end-of-data marker."""
    content = dot_stuff(normalize_line_endings(body))
    if not content.endswith(CRLF):
        content += CRLF
    return (headers + CRLF + content + "." + CRLF).encode("utf-8")


def generate_message_id(domain: str, now: float | None = None) -> str:
    """Return ``<16 hex chars>.<unix time>@<domain>`` (without angle brackets)."""
    timestamp = int(time.time() if now is None else now)
    return f"{secrets.token_hex(8)}.{timestamp}@{domain}"


def _encode_if_needed(value: str) -> str:
    if value.isascii():
        return value
    # Long values fold into several encoded words; continuation lines must use CRLF
    return Header(value, "utf-8", header_name="Subject").encode(linesep=CRLF)


@dataclass(frozen=True)
class OutgoingMessage:
    """A validated message ready for the SMTP transaction.

    Attributes:
        sender: Envelope sender, also used in the ``From`` header.
        recipient: Envelope recipient, also used in the ``To`` header.
        subject: Sanitized subject.
        body: Body as given by the caller.
        from_name: Sanitized display name.
        is_html: Send as ``text/html`` instead of ``text/plain``.
    """

    sender: str
    recipient: str
    subject: str
    body: str
    from_name: str = ""
    is_html: bool = False

    @classmethod
    def build(
        cls,
        *,
        to: str | None,
        subject: str | None,
        body: str | None,
        from_email: str | None,
        from_name: str | None = "",
        is_html: bool = False,
    ) -> OutgoingMessage:
        """Validate raw fields and build a message.

        Raises:
            MessageValidationError: On invalid addresses or empty
                subject/body.
        """
        recipient = (to or "").strip()
        sender = (from_email or "").strip()
        clean_subject = sanitize_header((subject or "").strip())
        clean_name = sanitize_header((from_name or "").strip())
        body = body or ""

        if not is_valid_email(recipient):
            raise MessageValidationError("Invalid recipient email")
        if not is_valid_email(sender):
            raise MessageValidationError("Invalid sender email")
        if not clean_subject.strip() or not body.strip():
            raise MessageValidationError("Subject and body required")

        return cls(
            sender=sender,
            recipient=recipient,
            subject=clean_subject,
            body=body,
            from_name=clean_name,
            is_html=is_html,
        )

    @property
    def sender_domain(self) -> str:
        return self.sender.rpartition("@")[2]

    def headers(self, message_id: str, date: str | None = None) -> str:
        """Render the header block, each line CRLF-terminated."""
        if self.from_name:
            from_value = formataddr((self.from_name, self.sender))
        else:
            from_value = self.sender
        content_type = "text/html" if self.is_html else "text/plain"
        lines = [
            f"From: {from_value}",
            f"To: {self.recipient}",
            f"Subject: {_encode_if_needed(self.subject)}",
            f"Message-ID: <{message_id}>",
            "MIME-Version: 1.0",
            f"Content-Type: {content_type}; charset=UTF-8",
            f"Date: {date or formatdate(localtime=True)}",
        ]
        return "".join(line + CRLF for line in lines)


def compose_message(message: OutgoingMessage, message_id: str, date: str | None = None) -> bytes:
    """Build the complete DATA payload including the final ``.`` line."""
    return encode_payload(message.headers(message_id, date), message.body)


__all__ = [
    "CRLF",
    "OutgoingMessage",
    "compose_message",
    "dot_stuff",
    "encode_payload",
    "generate_message_id",
    "is_valid_email",
    "normalize_line_endings",
    "sanitize_header",
]
