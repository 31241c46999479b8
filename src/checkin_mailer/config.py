# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration for the check-in mailer.

Two layers of configuration exist:

- :class:`SmtpConfig` describes the submission host and credentials. It is
  built from the ``SMTP_*`` environment variables by
  :meth:`SmtpConfig.from_env`, which validates eagerly and raises
  :class:`~checkin_mailer.errors.ConfigError` when credentials are missing.
- :class:`ServiceSettings` holds the HTTP service knobs (API token, rate
  limit, sender identities, CORS origins). It is read from an INI file with
  ``CKM_*`` environment variables as fallbacks.

Example:
    Loading everything at startup::

        load_env_files()
        smtp = SmtpConfig.from_env()
        settings = load_settings()

Environment variables:
    SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, SMTP_FROM_NAME,
    SMTP_TIMEOUT, SMTP_TLS_VERIFY, SMTP_MESSAGE_ID_DOMAIN,
    SMTP_LOCAL_HOSTNAME: submission host settings.
    CKM_ENV_FILE: explicit ``.env`` file to load.
    CKM_CONFIG: path to the INI file (default: config.ini).
    CKM_HOST, CKM_PORT, CKM_API_TOKEN, CKM_RATE_LIMIT_MAX,
    CKM_RATE_LIMIT_WINDOW, CKM_ALLOWED_ORIGINS, CKM_ALLOWED_ORIGIN_REGEX,
    CKM_MAX_BODY_LENGTH, CKM_MAX_SUBJECT_LENGTH, CKM_NOTIFICATION_EMAIL,
    CKM_NOTIFICATION_NAME, CKM_ADMIN_EMAIL, CKM_ADMIN_NAME: service settings.
"""

from __future__ import annotations

import configparser
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigError
from .logger import get_logger

logger = get_logger("Config")

DEFAULT_SMTP_HOST = "smtp.hostinger.com"
DEFAULT_SMTP_PORT = 587
IMPLICIT_TLS_PORT = 465
DEFAULT_TIMEOUT = 30.0
DEFAULT_FROM_NAME = "Floinvite"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE:
        return True
    if normalized in _FALSE:
        return False
    return default


@dataclass(frozen=True)
class SmtpConfig:
    """Settings for the SMTP submission host.

    Attributes:
        host: Submission host name.
        port: Submission port. 465 means implicit TLS, anything else STARTTLS.
        user: AUTH LOGIN username, also the default sender address.
        password: AUTH LOGIN password. Never exposed by :meth:`public_view`.
        from_name: Default display name of the sender.
        timeout: Bound in seconds for connect, every read and every write.
        verify_tls: Verify the server certificate during the TLS handshake.
        message_id_domain: Domain used in generated Message-IDs. Defaults to
            the domain of the sender address.
        local_hostname: Name announced in EHLO. Defaults to the machine
            hostname.
    """

    host: str = DEFAULT_SMTP_HOST
    port: int = DEFAULT_SMTP_PORT
    user: str = ""
    password: str = field(default="", repr=False)
    from_name: str = DEFAULT_FROM_NAME
    timeout: float = DEFAULT_TIMEOUT
    verify_tls: bool = True
    message_id_domain: str | None = None
    local_hostname: str | None = None

    @property
    def implicit_tls(self) -> bool:
        """True when the connection is TLS from the first byte."""
        return self.port == IMPLICIT_TLS_PORT

    @property
    def from_email(self) -> str:
        """Default sender address."""
        return self.user

    def validate(self) -> SmtpConfig:
        """Check required fields and return ``self``.

        Raises:
            ConfigError: If credentials are missing or numeric values are
                out of range.
        """
        if not self.user or not self.password:
            raise ConfigError("SMTP credentials not configured")
        if not self.host:
            raise ConfigError("SMTP host not configured")
        if not 0 < self.port < 65536:
            raise ConfigError(f"Invalid SMTP port: {self.port}")
        if self.timeout <= 0:
            raise ConfigError(f"Invalid SMTP timeout: {self.timeout}")
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SmtpConfig:
        """Build and validate a config from ``SMTP_*`` variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Raises:
            ConfigError: If ``SMTP_USER``/``SMTP_PASS`` are missing or a
                numeric variable cannot be parsed.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(name)
            if value is None:
                return None
            value = value.strip()
            return value or None

        try:
            port = int(get("SMTP_PORT") or DEFAULT_SMTP_PORT)
            timeout = float(get("SMTP_TIMEOUT") or DEFAULT_TIMEOUT)
        except ValueError as exc:
            raise ConfigError(f"Invalid SMTP setting: {exc}") from exc

        config = cls(
            host=get("SMTP_HOST") or DEFAULT_SMTP_HOST,
            port=port,
            user=get("SMTP_USER") or "",
            password=get("SMTP_PASS") or "",
            from_name=get("SMTP_FROM_NAME") or DEFAULT_FROM_NAME,
            timeout=timeout,
            verify_tls=_parse_bool(get("SMTP_TLS_VERIFY"), True),
            message_id_domain=get("SMTP_MESSAGE_ID_DOMAIN"),
            local_hostname=get("SMTP_LOCAL_HOSTNAME"),
        )
        return config.validate()

    def public_view(self) -> dict[str, object]:
        """Return the non-secret part of the configuration."""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "fromEmail": self.from_email,
        }


def load_env_files(paths: list[str | Path] | None = None) -> list[Path]:
    """Load ``.env`` files into the process environment.

    Search order is ``CKM_ENV_FILE`` (when set) followed by ``.env`` in the
    working directory, unless ``paths`` is given. Variables that are already
    set are not overwritten, so earlier files win.

    Returns:
        The files that were actually loaded.
    """
    if paths is None:
        candidates: list[Path] = []
        explicit = os.getenv("CKM_ENV_FILE")
        if explicit:
            candidates.append(Path(explicit).expanduser())
        candidates.append(Path.cwd() / ".env")
    else:
        candidates = [Path(p) for p in paths]

    loaded = []
    for path in candidates:
        if path.is_file():
            load_dotenv(path, override=False)
            logger.debug("Loaded .env from %s", path)
            loaded.append(path)
    return loaded


@dataclass
class SenderIdentity:
    """Envelope sender and display name used for a class of emails."""

    email: str | None = None
    """Sender address. None falls back to ``SMTP_USER``."""

    name: str = "Floinvite Reception"
    """Display name."""


@dataclass
class RateLimitConfig:
    """Per-client request limit for the HTTP send endpoints."""

    max_requests: int = 10
    """Requests allowed per window. 0 disables limiting."""

    window_seconds: int = 60
    """Window length in seconds."""


@dataclass
class ServiceSettings:
    """Settings of the HTTP service wrapping the mailer."""

    http_host: str = "0.0.0.0"
    http_port: int = 8000
    api_token: str | None = None
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    notification_sender: SenderIdentity = field(default_factory=SenderIdentity)
    admin_sender: SenderIdentity = field(
        default_factory=lambda: SenderIdentity(name="Floinvite Admin")
    )
    allowed_origins: list[str] = field(
        default_factory=lambda: [
            "https://floinvite.com",
            "http://localhost:5173",
            "http://localhost:3000",
        ]
    )
    allowed_origin_regex: str | None = r"https://([a-z0-9-]+\.)*floinvite\.com"
    max_body_length: int = 10000
    max_subject_length: int = 200

    def as_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["api_token"] = "***" if self.api_token else None
        return data


def load_settings(config_path: str | Path | None = None) -> ServiceSettings:
    """Load service settings from an INI file with ``CKM_*`` env fallbacks.

    Config file sections/keys:
      [server] host, port, api_token
      [rate_limit] max_requests, window_seconds
      [senders] notification_email, notification_name, admin_email, admin_name
      [cors] allowed_origins (comma separated), allowed_origin_regex
      [limits] max_body_length, max_subject_length
    """
    path = Path(config_path or os.getenv("CKM_CONFIG", "config.ini"))
    parser = configparser.ConfigParser()
    parser.read(path)

    def get(section: str, option: str, fallback: str | None = None) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        return fallback

    def get_int(section: str, option: str, fallback: str | None, default: int) -> int:
        value = get(section, option, fallback)
        if value is None or not str(value).strip():
            return default
        return int(value)

    defaults = ServiceSettings()

    token = get("server", "api_token", os.getenv("CKM_API_TOKEN"))
    if isinstance(token, str):
        token = token.strip() or None

    origins_raw = get("cors", "allowed_origins", os.getenv("CKM_ALLOWED_ORIGINS"))
    if origins_raw:
        origins = [item.strip() for item in origins_raw.split(",") if item.strip()]
    else:
        origins = defaults.allowed_origins

    return ServiceSettings(
        http_host=get("server", "host", os.getenv("CKM_HOST")) or defaults.http_host,
        http_port=get_int("server", "port", os.getenv("CKM_PORT"), defaults.http_port),
        api_token=token,
        rate_limit=RateLimitConfig(
            max_requests=get_int(
                "rate_limit", "max_requests", os.getenv("CKM_RATE_LIMIT_MAX"),
                defaults.rate_limit.max_requests,
            ),
            window_seconds=get_int(
                "rate_limit", "window_seconds", os.getenv("CKM_RATE_LIMIT_WINDOW"),
                defaults.rate_limit.window_seconds,
            ),
        ),
        notification_sender=SenderIdentity(
            email=get("senders", "notification_email", os.getenv("CKM_NOTIFICATION_EMAIL")),
            name=get("senders", "notification_name", os.getenv("CKM_NOTIFICATION_NAME"))
            or defaults.notification_sender.name,
        ),
        admin_sender=SenderIdentity(
            email=get("senders", "admin_email", os.getenv("CKM_ADMIN_EMAIL")),
            name=get("senders", "admin_name", os.getenv("CKM_ADMIN_NAME"))
            or defaults.admin_sender.name,
        ),
        allowed_origins=origins,
        allowed_origin_regex=get("cors", "allowed_origin_regex", os.getenv("CKM_ALLOWED_ORIGIN_REGEX"))
        or defaults.allowed_origin_regex,
        max_body_length=get_int(
            "limits", "max_body_length", os.getenv("CKM_MAX_BODY_LENGTH"),
            defaults.max_body_length,
        ),
        max_subject_length=get_int(
            "limits", "max_subject_length", os.getenv("CKM_MAX_SUBJECT_LENGTH"),
            defaults.max_subject_length,
        ),
    )


__all__ = [
    "RateLimitConfig",
    "SenderIdentity",
    "ServiceSettings",
    "SmtpConfig",
    "load_env_files",
    "load_settings",
]
