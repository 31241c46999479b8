# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP reply tokenizer.

A reply line is ``DDD`` optionally followed by ``-`` (more lines follow) or a
space and free text. :func:`parse_reply_line` turns one raw line into a
:class:`ReplyLine`; :class:`Reply` aggregates the lines of a complete
(possibly multi-line) response.

Example:
    >>> parse_reply_line(b"250-SIZE 35882577\\r\\n")
    ReplyLine(code=250, continuation=True, text='SIZE 35882577')
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import ProtocolError, SmtpError

_REPLY_RE = re.compile(r"^([1-5][0-9]{2})(?:([ -])(.*))?$", re.DOTALL)


@dataclass(frozen=True)
class ReplyLine:
    """One tokenized reply line."""

    code: int
    continuation: bool
    text: str

    @property
    def raw(self) -> str:
        sep = "-" if self.continuation else " "
        return f"{self.code}{sep}{self.text}" if self.text or self.continuation else str(self.code)


def parse_reply_line(line: bytes | str) -> ReplyLine:
    """Tokenize a single reply line.

    Raises:
        ProtocolError: If the line does not start with a valid three-digit
            code followed by end of line, a space or ``-``.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    stripped = line.rstrip("\r\n")
    match = _REPLY_RE.match(stripped)
    if match is None:
        raise ProtocolError(f"Malformed SMTP reply: {stripped[:80]!r}")
    code, sep, text = match.groups()
    return ReplyLine(code=int(code), continuation=sep == "-", text=(text or "").strip())


@dataclass(frozen=True)
class Reply:
    """A complete SMTP response.

    Attributes:
        lines: Every line of the response, the last one without continuation.
    """

    lines: tuple[ReplyLine, ...]

    @property
    def code(self) -> int:
        return self.lines[-1].code

    @property
    def text(self) -> str:
        """Text of the last line."""
        return self.lines[-1].text

    @property
    def raw(self) -> str:
        """Last line as sent by the server, without CRLF."""
        return self.lines[-1].raw

    @property
    def texts(self) -> list[str]:
        return [line.text for line in self.lines]

    @property
    def is_error(self) -> bool:
        return self.code >= 400

    def raise_for_status(self) -> Reply:
        """Raise :class:`SmtpError` for 4xx/5xx replies, return self otherwise."""
        if self.is_error:
            raise SmtpError(self.code, self.raw)
        return self


class ReplyAccumulator:
    """Collects reply lines until a final (non-continuation) line arrives.

    Lines of one response must share the same code; a mismatch is a
    :class:`ProtocolError`.
    """

    def __init__(self) -> None:
        self._lines: list[ReplyLine] = []

    def feed(self, line: bytes | str) -> Reply | None:
        """Add a raw line. Returns the complete :class:`Reply` when done."""
        parsed = parse_reply_line(line)
        if self._lines and parsed.code != self._lines[0].code:
            raise ProtocolError(
                f"Inconsistent codes in multi-line reply: {self._lines[0].code} then {parsed.code}"
            )
        self._lines.append(parsed)
        if parsed.continuation:
            return None
        return Reply(tuple(self._lines))

    def finish_at_eof(self) -> Reply:
        """Close the reply on EOF, keeping whatever was read.

        Raises:
            ProtocolError: If no line at all was received.
        """
        if not self._lines:
            raise ProtocolError("Connection closed by server")
        return Reply(tuple(self._lines))


__all__ = ["Reply", "ReplyAccumulator", "ReplyLine", "parse_reply_line"]
