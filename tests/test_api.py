import pytest
from fastapi.testclient import TestClient

from checkin_mailer.api import API_TOKEN_HEADER_NAME, create_app
from checkin_mailer.config import RateLimitConfig, SenderIdentity, ServiceSettings
from checkin_mailer.mailer import ConnectionCheck, SendResult

API_TOKEN = "secret-token"


class DummyMailer:
    def __init__(self):
        self.requests = []
        self.result = SendResult(success=True, message_id="0123456789abcdef.1700000000@floinvite.com")
        self.check = ConnectionCheck(success=True, message="Connected to smtp.floinvite.com:587")

    async def send(self, request):
        self.requests.append(request)
        return self.result

    async def test_connection(self):
        return self.check

    def get_config(self):
        return {"host": "smtp.floinvite.com", "port": 587, "user": "desk@floinvite.com", "fromEmail": "desk@floinvite.com"}


def _settings(**overrides):
    fields = dict(
        api_token=API_TOKEN,
        notification_sender=SenderIdentity(email="reception@floinvite.com", name="Floinvite Reception"),
        admin_sender=SenderIdentity(email="admin@floinvite.com", name="Floinvite Admin"),
    )
    fields.update(overrides)
    return ServiceSettings(**fields)


@pytest.fixture
def mailer():
    return DummyMailer()


@pytest.fixture
def client(mailer):
    return TestClient(create_app(mailer, _settings()))


def _payload(**overrides):
    data = {"to": "grace@floinvite.com", "subject": "Visitor Arrival: Ada", "body": "Ada has arrived."}
    data.update(overrides)
    return data


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_send_email_success(client, mailer):
    response = client.post("/send-email", json=_payload())

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["message"] == "Email sent successfully"
    assert data["to"] == "grace@floinvite.com"
    assert data["messageId"] == mailer.result.message_id
    assert "timestamp" in data

    (request,) = mailer.requests
    assert request.from_email == "reception@floinvite.com"
    assert request.from_name == "Floinvite Reception"
    assert request.is_html is False


def test_send_email_admin_sender(client, mailer):
    response = client.post("/send-email", json=_payload(emailType="admin", isHtml=True))

    assert response.status_code == 200
    (request,) = mailer.requests
    assert request.from_email == "admin@floinvite.com"
    assert request.from_name == "Floinvite Admin"
    assert request.is_html is True


def test_send_email_truncates_subject(client, mailer):
    client.post("/send-email", json=_payload(subject="x" * 500))
    assert len(mailer.requests[0].subject) == 200


@pytest.mark.parametrize("content", [b"not json", b"[]", b"{}", b""])
def test_send_email_invalid_json(client, mailer, content):
    response = client.post("/send-email", content=content, headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid JSON payload"}
    assert mailer.requests == []


def test_send_email_collects_validation_errors(client, mailer):
    response = client.post("/send-email", json={"to": "not-an-email", "body": "x" * 10001})

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "errors": [
            "Email subject is required",
            "Invalid recipient email address",
            "Email body too long (max 10000 characters)",
        ],
    }
    assert mailer.requests == []


def test_send_email_missing_fields(client):
    response = client.post("/send-email", json={"emailType": "notification"})

    assert response.status_code == 400
    assert response.json()["errors"] == [
        "Recipient email (to) is required",
        "Email subject is required",
        "Email body is required",
    ]


def test_send_email_failure_maps_to_500(client, mailer):
    mailer.result = SendResult(success=False, error="Error (550): 550 5.1.1 User unknown", error_code="smtp_error")
    response = client.post("/send-email", json=_payload())

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Failed to send email",
        "details": "Error (550): 550 5.1.1 User unknown",
    }


def test_send_email_without_mailer_returns_503():
    client = TestClient(create_app(None, _settings()))
    response = client.post("/send-email", json=_payload())

    assert response.status_code == 503
    assert response.json() == {"success": False, "error": "SMTP credentials not configured"}


def test_send_email_rate_limited(mailer):
    client = TestClient(create_app(mailer, _settings(rate_limit=RateLimitConfig(max_requests=2))))

    assert client.post("/send-email", json=_payload()).status_code == 200
    # Invalid requests count toward the limit too
    assert client.post("/send-email", json={"to": "bad"}).status_code == 400
    response = client.post("/send-email", json=_payload())

    assert response.status_code == 429
    assert response.json() == {"success": False, "error": "Rate limit exceeded. Maximum 2 emails per minute."}
    assert int(response.headers["Retry-After"]) > 0
    assert len(mailer.requests) == 1


def test_rate_limit_disabled(mailer):
    client = TestClient(create_app(mailer, _settings(rate_limit=RateLimitConfig(max_requests=0))))
    for _ in range(15):
        assert client.post("/send-email", json=_payload()).status_code == 200


def test_notify_arrival(client, mailer):
    response = client.post(
        "/notify",
        json={
            "guest": {"name": "Ada Lovelace", "company": "Acme", "check_in_time": "2025-01-06T09:05:00"},
            "host": {"name": "Grace", "email": "grace@floinvite.com"},
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["to"] == "grace@floinvite.com"
    assert data["subject"] == "Visitor Arrival: Ada Lovelace"
    (request,) = mailer.requests
    assert request.body == "Ada Lovelace from Acme has arrived.\n\nCheck-in time: 09:05"
    assert request.from_email == "reception@floinvite.com"


def test_notify_no_show_requires_expected_time(client, mailer):
    response = client.post(
        "/notify",
        json={
            "kind": "no_show",
            "guest": {"name": "Ada", "check_in_time": "2025-01-06T09:05:00"},
            "host": {"name": "Grace", "email": "grace@floinvite.com"},
        },
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "expectedTime is required for no-show reminders"}
    assert mailer.requests == []


def test_notify_validation_failure_from_mailer(client, mailer):
    mailer.result = SendResult(success=False, error="Invalid recipient email", error_code="validation_error")
    response = client.post(
        "/notify",
        json={
            "guest": {"name": "Ada", "check_in_time": "2025-01-06T09:05:00"},
            "host": {"name": "Grace", "email": "grace"},
        },
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid recipient email"}


def test_notify_sms_goes_to_carrier_gateway(client, mailer):
    response = client.post(
        "/notify",
        json={
            "channel": "sms",
            "guest": {"name": "Ada Lovelace", "company": "Acme", "check_in_time": "2025-01-06T09:05:00"},
            "host": {
                "name": "Grace",
                "email": "grace@floinvite.com",
                "phone": "07700 900-000",
                "sms_carrier": "vodafone",
                "notify_by_sms": True,
            },
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["channel"] == "sms"
    assert data["to"] == "07700900000@vodafone.net"
    (request,) = mailer.requests
    assert request.to == "07700900000@vodafone.net"
    assert request.subject == "Visitor Arrival (SMS)"
    assert request.body == "Ada Lovelace from Acme has arrived (09:05)"


def test_notify_sms_without_opt_in_is_rejected(client, mailer):
    response = client.post(
        "/notify",
        json={
            "channel": "sms",
            "guest": {"name": "Ada", "check_in_time": "2025-01-06T09:05:00"},
            "host": {"name": "Grace", "email": "grace@floinvite.com", "phone": "5551234567", "sms_carrier": "att"},
        },
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "SMS not configured for host Grace"}
    assert mailer.requests == []


def test_notify_sms_unknown_carrier(client, mailer):
    response = client.post(
        "/notify",
        json={
            "channel": "sms",
            "kind": "no_show",
            "expectedTime": "10:00",
            "guest": {"name": "Ada", "check_in_time": "2025-01-06T09:05:00"},
            "host": {
                "name": "Grace",
                "email": "grace@floinvite.com",
                "phone": "5551234567",
                "sms_carrier": "pigeon",
                "notify_by_sms": True,
            },
        },
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Unknown SMS carrier: pigeon"


def test_notify_auto_follows_guest_status(client, mailer):
    response = client.post(
        "/notify",
        json={
            "kind": "auto",
            "guest": {"name": "Ada", "company": "Acme", "check_in_time": "2025-01-06T09:05:00", "status": "Expected"},
            "host": {"name": "Grace", "email": "grace@floinvite.com"},
        },
    )

    assert response.status_code == 200
    assert response.json()["subject"] == "Expected Guest Arrived: Ada"
    (request,) = mailer.requests
    assert "(expected at 09:05)" in request.body


def test_notify_schema_errors_return_422(client):
    response = client.post("/notify", json={"guest": {"name": "Ada"}})

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["detail"]


def test_protected_endpoints_require_token(client):
    for path in ("/test-connection", "/config", "/metrics"):
        assert client.get(path).status_code == 401
        assert client.get(path, headers={API_TOKEN_HEADER_NAME: "wrong"}).status_code == 401


def test_test_connection(client, mailer):
    response = client.get("/test-connection", headers={API_TOKEN_HEADER_NAME: API_TOKEN})
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Connected to smtp.floinvite.com:587"}

    mailer.check = ConnectionCheck(success=False, message="Connection failed: refused")
    response = client.get("/test-connection", headers={API_TOKEN_HEADER_NAME: API_TOKEN})
    assert response.status_code == 502
    assert response.json()["success"] is False


def test_config_endpoint(client):
    response = client.get("/config", headers={API_TOKEN_HEADER_NAME: API_TOKEN})
    assert response.status_code == 200
    assert "password" not in response.json()
    assert response.json()["host"] == "smtp.floinvite.com"


def test_metrics_endpoint_counts_sends(client, mailer):
    client.post("/send-email", json=_payload())
    mailer.result = SendResult(success=False, error="Connection failed", error_code="connection_error")
    client.post("/send-email", json=_payload())

    response = client.get("/metrics", headers={API_TOKEN_HEADER_NAME: API_TOKEN})
    assert response.status_code == 200
    text = response.text
    assert 'ckm_sent_total{email_type="notification"} 1.0' in text
    assert 'ckm_errors_total{email_type="notification",reason="connection_error"} 1.0' in text


def test_endpoints_open_without_configured_token(mailer):
    client = TestClient(create_app(mailer, _settings(api_token=None)))
    assert client.get("/config").status_code == 200


def test_cors_preflight_for_allowed_origin(client):
    response = client.options(
        "/send-email",
        headers={"Origin": "https://app.floinvite.com", "Access-Control-Request-Method": "POST"},
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "https://app.floinvite.com"
