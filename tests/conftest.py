"""Shared fixtures: an in-memory SMTP peer injected through the transport factory."""

import base64
import dataclasses
from collections import deque

import pytest

from checkin_mailer.config import SmtpConfig
from checkin_mailer.errors import TLSError
from checkin_mailer.mailer import Mailer

DEFAULT_REPLIES = {
    "GREETING": "220 fake.smtp ESMTP ready",
    "EHLO": "250-fake.smtp Hello\n250-AUTH LOGIN PLAIN\n250-STARTTLS\n250 8BITMIME",
    "STARTTLS": "220 Ready to start TLS",
    "AUTH": "334 VXNlcm5hbWU6",
    "AUTH_USER": "334 UGFzc3dvcmQ6",
    "AUTH_PASS": "235 2.7.0 Authentication successful",
    "MAIL": "250 2.1.0 Ok",
    "RCPT": "250 2.1.5 Ok",
    "DATA": "354 End data with <CR><LF>.<CR><LF>",
    "END_DATA": "250 2.0.0 Ok: queued",
    "QUIT": "221 2.0.0 Bye",
}


class FakeTransport:
    """Scripted server side of one connection."""

    def __init__(self, server, *, is_tls):
        self.server = server
        self.is_tls = is_tls
        self.commands = []
        self.payloads = []
        self.auth_credentials = []
        self.tls_upgrades = 0
        self.close_calls = 0
        self._pending = deque()
        self._auth_step = None
        self._in_data = False
        self._queue(server.reply_for("GREETING"))

    def _queue(self, reply):
        if reply is None:
            return
        for line in reply.split("\n"):
            self._pending.append(line.encode() + b"\r\n")

    async def readline(self):
        if self._pending:
            return self._pending.popleft()
        return b""

    async def write(self, data):
        if self._in_data:
            self._in_data = False
            self.payloads.append(data)
            self._queue(self.server.reply_for("END_DATA"))
            return
        line = data.decode().rstrip("\r\n")
        if self._auth_step is not None:
            self.auth_credentials.append(base64.b64decode(line).decode())
            key = "AUTH_USER" if self._auth_step == "user" else "AUTH_PASS"
            self._auth_step = "password" if self._auth_step == "user" else None
            self._queue(self.server.reply_for(key))
            return
        self.commands.append(line)
        verb = line.split(" ", 1)[0].split(":", 1)[0].upper()
        reply = self.server.reply_for(verb)
        if verb == "AUTH" and reply and reply.startswith("334"):
            self._auth_step = "user"
        if verb == "DATA" and reply and reply.startswith("354"):
            self._in_data = True
        self._queue(reply)

    async def start_tls(self, ssl_context, server_hostname):
        self.tls_upgrades += 1
        if self.server.tls_failure:
            raise TLSError("TLS negotiation failed: handshake failure")
        self.is_tls = True

    async def close(self):
        self.close_calls += 1


class FakeSmtpServer:
    """Factory-compatible fake SMTP peer recording every connection."""

    def __init__(self):
        self.replies = dict(DEFAULT_REPLIES)
        self.connect_calls = []
        self.connections = []
        self.connect_error = None
        self.tls_failure = False

    def reply_for(self, key):
        return self.replies.get(key, "500 5.5.2 Command not recognized")

    async def factory(self, host, port, *, ssl_context, timeout):
        self.connect_calls.append(
            {"host": host, "port": port, "implicit_tls": ssl_context is not None, "timeout": timeout}
        )
        if self.connect_error is not None:
            raise self.connect_error
        transport = FakeTransport(self, is_tls=ssl_context is not None)
        self.connections.append(transport)
        return transport

    @property
    def commands(self):
        return [cmd for conn in self.connections for cmd in conn.commands]

    def verbs(self):
        return [cmd.split(" ", 1)[0].split(":", 1)[0].upper() for cmd in self.commands]


@pytest.fixture
def fake_smtp():
    return FakeSmtpServer()


@pytest.fixture
def smtp_config():
    return SmtpConfig(
        host="smtp.floinvite.com",
        port=587,
        user="desk@floinvite.com",
        password="s3cret",
        local_hostname="frontdesk.local",
    )


@pytest.fixture
def make_mailer(fake_smtp, smtp_config):
    def factory(**overrides):
        config = dataclasses.replace(smtp_config, **overrides)
        return Mailer(config, transport_factory=fake_smtp.factory)

    return factory
