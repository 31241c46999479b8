# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""FastAPI application factory and HTTP schemas for the check-in mailer.

The front desk browser app posts visitor notifications here. The API:

- ``POST /send-email``: validate, rate limit per client IP and send one email
- ``POST /notify``: render a check-in notification (email or SMS gateway) and send it
- ``GET /test-connection``: SMTP diagnostic (token protected)
- ``GET /config``: non-secret SMTP settings (token protected)
- ``GET /metrics``: Prometheus metrics (token protected)
- ``GET /health``: liveness check

Mail endpoints always answer JSON with a ``success`` flag. A notification
failure never blocks a check-in; the browser proceeds whatever the answer.

Example:
    Creating and running the API application::

        from checkin_mailer.api import create_app
        from checkin_mailer.mailer import Mailer

        app = create_app(Mailer.from_env(), load_settings())
        uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from __future__ import annotations

import json
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Any, Literal

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from . import notifications
from .config import SenderIdentity, ServiceSettings
from .logger import get_logger
from .mailer import Mailer, SendRequest, SendResult
from .prometheus import MailMetrics
from .rate_limit import RateLimiter
from .smtp.message import is_valid_email

logger = get_logger("CheckinMailerAPI")

API_TOKEN_HEADER_NAME = "X-API-Token"
api_key_scheme = APIKeyHeader(name=API_TOKEN_HEADER_NAME, auto_error=False)


async def require_token(request: Request, api_token: str | None = Depends(api_key_scheme)) -> None:
    """Validate the API token carried in the ``X-API-Token`` header.

    When no token is configured the dependency is effectively bypassed.
    """
    expected = getattr(request.app.state, "api_token", None)
    if expected is None:
        return
    if not api_token or api_token != expected:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid or missing API token")


auth_dependency = Depends(require_token)


class SendEmailPayload(BaseModel):
    """Body of ``POST /send-email``. Presence checks happen in the handler."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    to: str | None = None
    subject: str | None = None
    body: str | None = None
    email_type: str = Field(default="notification", alias="emailType")
    is_html: bool = Field(default=False, alias="isHtml")


class NotifyPayload(BaseModel):
    """Body of ``POST /notify``."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    kind: Literal["arrival", "returning", "expected", "no_show", "auto"] = "arrival"
    channel: Literal["email", "sms"] = "email"
    guest: notifications.Guest
    host: notifications.Host
    tone: notifications.Tone = "professional"
    include_company: bool = Field(default=True, alias="includeCompany")
    include_time: bool = Field(default=True, alias="includeTime")
    expected_time: str | None = Field(default=None, alias="expectedTime")
    previous_visit: datetime | None = Field(default=None, alias="previousVisit")

    def render(self) -> notifications.Notification:
        """Build the email, or the SMS gateway message when ``channel`` is ``sms``.

        Raises:
            ValueError: If a field required by ``kind`` or by SMS delivery is
                missing.
        """
        if self.channel == "sms":
            return notifications.sms_notification(self.host, self.render_sms())
        if self.kind == "auto":
            return notifications.notification_for_status(
                self.guest,
                self.host,
                include_company=self.include_company,
                include_time=self.include_time,
                tone=self.tone,
            )
        if self.kind == "returning":
            if self.previous_visit is None:
                raise ValueError("previousVisit is required for returning visitors")
            return notifications.returning_visitor(self.guest, self.host, self.previous_visit, tone=self.tone)
        if self.kind == "expected":
            return notifications.expected_guest(self.guest, self.host, self.expected_time)
        if self.kind == "no_show":
            if not self.expected_time:
                raise ValueError("expectedTime is required for no-show reminders")
            return notifications.no_show(self.guest, self.host, self.expected_time)
        return notifications.visitor_arrival(
            self.guest,
            self.host,
            include_company=self.include_company,
            include_time=self.include_time,
            tone=self.tone,
        )

    def render_sms(self) -> str:
        """SMS text for ``kind``; ``auto`` uses the arrival text."""
        if self.kind == "returning":
            if self.previous_visit is None:
                raise ValueError("previousVisit is required for returning visitors")
            return notifications.returning_visitor_sms(self.guest, self.previous_visit)
        if self.kind == "expected":
            return notifications.expected_guest_sms(self.guest, self.expected_time)
        if self.kind == "no_show":
            if not self.expected_time:
                raise ValueError("expectedTime is required for no-show reminders")
            return notifications.no_show_sms(self.guest, self.expected_time)
        return notifications.visitor_arrival_sms(self.guest)


def _failure(status_code: int, **content: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, **content})


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def create_app(
    mailer: Mailer | None,
    settings: ServiceSettings | None = None,
    *,
    metrics: MailMetrics | None = None,
    lifespan: Callable[[FastAPI], AbstractAsyncContextManager[None]] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    mailer:
        Configured :class:`~checkin_mailer.mailer.Mailer`. ``None`` keeps the
        app running with mail endpoints answering 503, which is what happens
        when SMTP credentials are missing at startup.
    settings:
        Service settings. Defaults to :class:`ServiceSettings` defaults.
    metrics:
        Metrics collector. A private one is created when omitted.
    lifespan:
        Optional lifespan context manager for startup/shutdown events.
    """
    settings = settings or ServiceSettings()
    api = FastAPI(title="Check-in Mailer", lifespan=lifespan)
    api.state.api_token = settings.api_token
    api.state.mailer = mailer
    api.state.settings = settings
    api.state.metrics = metrics or MailMetrics()
    api.state.rate_limiter = RateLimiter(
        max_requests=settings.rate_limit.max_requests,
        window_seconds=settings.rate_limit.window_seconds,
    )

    api.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_origin_regex=settings.allowed_origin_regex,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )

    @api.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Log validation errors with full details."""
        logger.error("Validation error on %s %s: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(status_code=422, content={"success": False, "detail": jsonable_errors(exc.errors())})

    async def check_rate_limit(request: Request) -> JSONResponse | None:
        limiter: RateLimiter = api.state.rate_limiter
        key = _client_key(request)
        if await limiter.hit(key):
            return None
        api.state.metrics.inc_rate_limited()
        logger.warning("Rate limit exceeded for %s", key)
        response = _failure(
            status.HTTP_429_TOO_MANY_REQUESTS,
            error=f"Rate limit exceeded. Maximum {limiter.max_requests} emails per minute.",
        )
        response.headers["Retry-After"] = str(await limiter.retry_after(key))
        return response

    def sender_for(email_type: str) -> SenderIdentity:
        if email_type.lower() == "admin":
            return settings.admin_sender
        return settings.notification_sender

    async def deliver(request: SendRequest, email_type: str) -> SendResult:
        result = await api.state.mailer.send(request)
        outcome = "SUCCESS" if result.success else "FAILED"
        logger.info(
            "%s | Type: %s | Name: %s | Sender: %s | To: %s | Subject: %s",
            outcome, email_type, request.from_name, request.from_email or "<default>", request.to, request.subject,
        )
        if result.success:
            api.state.metrics.inc_sent(email_type)
        else:
            api.state.metrics.inc_error(email_type, result.error_code)
        return result

    @api.get("/health")
    async def health():
        """Health check endpoint for container monitoring (no authentication required)."""
        return {"status": "ok"}

    @api.post("/send-email")
    async def send_email(request: Request):
        """Send one email on behalf of the front desk."""
        try:
            raw = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raw = None
        if not isinstance(raw, dict) or not raw:
            return _failure(status.HTTP_400_BAD_REQUEST, error="Invalid JSON payload")
        try:
            payload = SendEmailPayload.model_validate(raw)
        except ValidationError as exc:
            return _failure(status.HTTP_400_BAD_REQUEST, errors=[err["msg"] for err in exc.errors()])

        errors: list[str] = []
        if not payload.to:
            errors.append("Recipient email (to) is required")
        if not payload.subject:
            errors.append("Email subject is required")
        if not payload.body:
            errors.append("Email body is required")
        if payload.to and not is_valid_email(payload.to):
            errors.append("Invalid recipient email address")
        if payload.body and len(payload.body) > settings.max_body_length:
            errors.append(f"Email body too long (max {settings.max_body_length} characters)")

        # Counted before validation errors are returned
        limited = await check_rate_limit(request)
        if limited is not None:
            return limited
        if errors:
            return _failure(status.HTTP_400_BAD_REQUEST, errors=errors)

        if api.state.mailer is None:
            return _failure(status.HTTP_503_SERVICE_UNAVAILABLE, error="SMTP credentials not configured")

        email_type = payload.email_type.lower()
        sender = sender_for(email_type)
        send_request = SendRequest(
            to=payload.to,
            subject=payload.subject[: settings.max_subject_length],
            body=payload.body,
            from_email=sender.email,
            from_name=sender.name,
            is_html=payload.is_html,
        )
        result = await deliver(send_request, email_type)
        if not result.success:
            return _failure(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                error="Failed to send email",
                details=result.error,
            )
        return {
            "success": True,
            "message": "Email sent successfully",
            "to": send_request.to,
            "messageId": result.message_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @api.post("/notify")
    async def notify(payload: NotifyPayload, request: Request):
        """Render a check-in notification and mail it to the host."""
        limited = await check_rate_limit(request)
        if limited is not None:
            return limited
        try:
            notification = payload.render()
        except ValueError as exc:
            return _failure(status.HTTP_400_BAD_REQUEST, error=str(exc))
        if api.state.mailer is None:
            return _failure(status.HTTP_503_SERVICE_UNAVAILABLE, error="SMTP credentials not configured")

        sender = settings.notification_sender
        send_request = SendRequest(
            to=notification.to,
            subject=notification.subject,
            body=notification.body,
            from_email=sender.email,
            from_name=sender.name,
        )
        prefix = "sms" if payload.channel == "sms" else "notify"
        result = await deliver(send_request, f"{prefix}_{payload.kind}")
        if not result.success:
            code = (
                status.HTTP_400_BAD_REQUEST
                if result.error_code == "validation_error"
                else status.HTTP_500_INTERNAL_SERVER_ERROR
            )
            return _failure(code, error=result.error)
        return {
            "success": True,
            "messageId": result.message_id,
            "channel": payload.channel,
            "to": notification.to,
            "subject": notification.subject,
        }

    @api.get("/test-connection", dependencies=[auth_dependency])
    async def test_connection():
        """Run the SMTP diagnostic without sending mail."""
        if api.state.mailer is None:
            return _failure(status.HTTP_503_SERVICE_UNAVAILABLE, message="SMTP credentials not configured")
        check = await api.state.mailer.test_connection()
        return JSONResponse(
            status_code=status.HTTP_200_OK if check.success else status.HTTP_502_BAD_GATEWAY,
            content=check.to_dict(),
        )

    @api.get("/config", dependencies=[auth_dependency])
    async def get_config():
        """Return the non-secret SMTP settings."""
        if api.state.mailer is None:
            return _failure(status.HTTP_503_SERVICE_UNAVAILABLE, error="SMTP credentials not configured")
        return api.state.mailer.get_config()

    @api.get("/metrics", dependencies=[auth_dependency])
    async def metrics_endpoint():
        """Expose Prometheus metrics collected by the mailer."""
        return Response(content=api.state.metrics.generate_latest(), media_type="text/plain; version=0.0.4")

    return api


def jsonable_errors(errors: Any) -> list[dict[str, Any]]:
    """Drop non-serializable context from pydantic error entries."""
    cleaned = []
    for err in errors:
        cleaned.append({key: err[key] for key in ("loc", "msg", "type") if key in err})
    return cleaned


__all__ = ["API_TOKEN_HEADER_NAME", "NotifyPayload", "SendEmailPayload", "create_app", "require_token"]
