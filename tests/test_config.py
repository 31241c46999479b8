import os

import pytest

from checkin_mailer.config import ServiceSettings, SmtpConfig, load_env_files, load_settings
from checkin_mailer.errors import ConfigError

CKM_VARS = [
    "CKM_HOST", "CKM_PORT", "CKM_API_TOKEN", "CKM_RATE_LIMIT_MAX", "CKM_RATE_LIMIT_WINDOW",
    "CKM_ALLOWED_ORIGINS", "CKM_ALLOWED_ORIGIN_REGEX", "CKM_MAX_BODY_LENGTH", "CKM_MAX_SUBJECT_LENGTH",
    "CKM_NOTIFICATION_EMAIL", "CKM_NOTIFICATION_NAME", "CKM_ADMIN_EMAIL", "CKM_ADMIN_NAME",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in CKM_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSmtpConfig:
    def test_defaults(self):
        config = SmtpConfig.from_env({"SMTP_USER": "desk@floinvite.com", "SMTP_PASS": "s3cret"})
        assert config.host == "smtp.hostinger.com"
        assert config.port == 587
        assert not config.implicit_tls
        assert config.from_email == "desk@floinvite.com"
        assert config.from_name == "Floinvite"
        assert config.timeout == 30.0
        assert config.verify_tls is True

    def test_all_variables(self):
        config = SmtpConfig.from_env(
            {
                "SMTP_HOST": "mail.floinvite.com",
                "SMTP_PORT": "465",
                "SMTP_USER": "desk@floinvite.com",
                "SMTP_PASS": "s3cret",
                "SMTP_FROM_NAME": "Reception",
                "SMTP_TIMEOUT": "5",
                "SMTP_TLS_VERIFY": "false",
                "SMTP_MESSAGE_ID_DOMAIN": "floinvite.com",
                "SMTP_LOCAL_HOSTNAME": "kiosk-1",
            }
        )
        assert config.implicit_tls
        assert config.timeout == 5.0
        assert config.verify_tls is False
        assert config.message_id_domain == "floinvite.com"
        assert config.local_hostname == "kiosk-1"

    @pytest.mark.parametrize(
        "env",
        [
            {},
            {"SMTP_USER": "desk@floinvite.com"},
            {"SMTP_PASS": "s3cret"},
            {"SMTP_USER": "  ", "SMTP_PASS": "s3cret"},
        ],
    )
    def test_missing_credentials(self, env):
        with pytest.raises(ConfigError, match="SMTP credentials not configured"):
            SmtpConfig.from_env(env)

    @pytest.mark.parametrize("name,value", [("SMTP_PORT", "smtp"), ("SMTP_PORT", "70000"), ("SMTP_TIMEOUT", "0")])
    def test_invalid_numbers(self, name, value):
        env = {"SMTP_USER": "desk@floinvite.com", "SMTP_PASS": "s3cret", name: value}
        with pytest.raises(ConfigError):
            SmtpConfig.from_env(env)

    def test_password_never_exposed(self):
        config = SmtpConfig(user="desk@floinvite.com", password="s3cret")
        assert "s3cret" not in repr(config)
        assert "s3cret" not in str(config.public_view())
        assert set(config.public_view()) == {"host", "port", "user", "fromEmail"}


def test_load_env_files(tmp_path, monkeypatch):
    monkeypatch.setenv("SMTP_USER", "placeholder")
    monkeypatch.delenv("SMTP_USER")
    monkeypatch.setenv("SMTP_HOST", "already.set")
    env_file = tmp_path / "mailer.env"
    env_file.write_text("SMTP_USER=desk@floinvite.com\nSMTP_HOST=from.file\n")

    loaded = load_env_files([env_file, tmp_path / "missing.env"])

    assert loaded == [env_file]
    assert os.environ["SMTP_USER"] == "desk@floinvite.com"
    assert os.environ["SMTP_HOST"] == "already.set"


def test_load_settings_defaults(tmp_path):
    settings = load_settings(tmp_path / "missing.ini")
    assert settings == ServiceSettings()
    assert settings.rate_limit.max_requests == 10
    assert settings.rate_limit.window_seconds == 60
    assert settings.admin_sender.name == "Floinvite Admin"
    assert settings.notification_sender.email is None


def test_load_settings_from_file(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text(
        "[server]\nport = 9000\napi_token = abc\n"
        "[rate_limit]\nmax_requests = 3\n"
        "[senders]\nadmin_email = admin@floinvite.com\n"
        "[cors]\nallowed_origins = https://a.floinvite.com, https://b.floinvite.com\n"
        "[limits]\nmax_body_length = 500\n"
    )
    settings = load_settings(path)

    assert settings.http_port == 9000
    assert settings.api_token == "abc"
    assert settings.rate_limit.max_requests == 3
    assert settings.admin_sender.email == "admin@floinvite.com"
    assert settings.allowed_origins == ["https://a.floinvite.com", "https://b.floinvite.com"]
    assert settings.max_body_length == 500
    assert settings.as_dict()["api_token"] == "***"


def test_load_settings_env_fallback(tmp_path, monkeypatch):
    monkeypatch.setenv("CKM_RATE_LIMIT_MAX", "25")
    monkeypatch.setenv("CKM_API_TOKEN", " tok ")
    monkeypatch.setenv("CKM_NOTIFICATION_NAME", "Front Desk")

    settings = load_settings(tmp_path / "missing.ini")

    assert settings.rate_limit.max_requests == 25
    assert settings.api_token == "tok"
    assert settings.notification_sender.name == "Front Desk"
