# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Notification templates for check-in events.

Each builder returns a :class:`Notification` addressed to the host. The text
is plain and short, meant to be read on a phone. Times render as 24-hour
``HH:MM``.

SMS texts are capped at 160 characters and delivered through the carrier
email-to-SMS gateways in :data:`SMS_GATEWAYS`, so they travel through the
same mailer as every other notification.

Example:
    >>> guest = Guest(name="Ada Lovelace", company="Acme", check_in_time=datetime(2025, 1, 6, 9, 5))
    >>> host = Host(name="Grace", email="grace@floinvite.com")
    >>> visitor_arrival(guest, host).subject
    'Visitor Arrival: Ada Lovelace'
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

Tone = Literal["professional", "friendly", "casual"]
BatchKind = Literal["arrival", "expected", "returning"]

SMS_MAX_LENGTH = 160
SMS_SUBJECT = "Visitor Arrival (SMS)"

# Carrier email-to-SMS gateways: <digits><suffix>
SMS_GATEWAYS = {
    "vodafone": "@vodafone.net",
    "ee": "@mms.ee.co.uk",
    "o2": "@o2.co.uk",
    "three": "@three.co.uk",
    "tmobile": "@tmomail.net",
    "att": "@txt.att.net",
    "verizon": "@vtext.com",
}

_PHONE_NOISE = re.compile(r"[\s\-()]")


class GuestStatus(str, Enum):
    EXPECTED = "Expected"
    CHECKED_IN = "Checked In"
    CHECKED_OUT = "Checked Out"
    NO_SHOW = "No Show"


class Guest(BaseModel):
    """A visitor as recorded at the front desk."""

    model_config = ConfigDict(extra="ignore")

    name: Annotated[str, Field(min_length=1, max_length=200)]
    email: str | None = None
    company: str | None = None
    check_in_time: datetime
    status: GuestStatus = GuestStatus.CHECKED_IN
    visit_count: int | None = None
    last_visit: datetime | None = None


class Host(BaseModel):
    """The employee being visited."""

    model_config = ConfigDict(extra="ignore")

    name: Annotated[str, Field(min_length=1, max_length=200)]
    email: str
    phone: str | None = None
    sms_carrier: str | None = None
    notify_by_sms: bool = False


class Notification(BaseModel):
    """A rendered notification ready to be mailed."""

    to: str
    subject: str
    body: str
    timestamp: datetime


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clock(value: datetime) -> str:
    return value.strftime("%H:%M")


def _from_company(guest: Guest, include_company: bool = True) -> str:
    if include_company and guest.company:
        return f" from {guest.company}"
    return ""


def visitor_arrival(
    guest: Guest,
    host: Host,
    *,
    include_company: bool = True,
    include_time: bool = True,
    tone: Tone = "professional",
) -> Notification:
    """Tell the host a guest has checked in."""
    time = _clock(guest.check_in_time)
    company = _from_company(guest, include_company)
    if tone == "casual":
        suffix = f" ({time})" if include_time else ""
        body = f"{guest.name}{company} has arrived{suffix}."
    else:
        label = "Check-in time" if tone == "professional" else "Time"
        body = f"{guest.name}{company} has arrived."
        if include_time:
            body += f"\n\n{label}: {time}"
    return Notification(to=host.email, subject=f"Visitor Arrival: {guest.name}", body=body, timestamp=_now())


def returning_visitor(
    guest: Guest,
    host: Host,
    previous_visit: datetime,
    *,
    tone: Tone = "professional",
    now: datetime | None = None,
) -> Notification:
    """Tell the host a returning guest has checked in."""
    current = now or datetime.now(previous_visit.tzinfo)
    days = max((current - previous_visit).days, 0)
    company = _from_company(guest)
    if tone == "casual":
        body = f"{guest.name}{company} has arrived. (last visit: {days}d ago)"
    else:
        plural = "" if days == 1 else "s"
        body = f"{guest.name}{company} has arrived.\n\nLast visit: {days} day{plural} ago"
    return Notification(to=host.email, subject=f"Welcome Back: {guest.name}", body=body, timestamp=_now())


def expected_guest(
    guest: Guest,
    host: Host,
    expected_time: str | None = None,
) -> Notification:
    """Tell the host a pre-registered guest has checked in."""
    status = f" (expected at {expected_time})" if expected_time else ""
    company = guest.company or "your guest list"
    body = (
        f"{guest.name} from {company} has arrived.\n\n"
        f"Check-in time: {_clock(guest.check_in_time)}{status}"
    )
    return Notification(
        to=host.email, subject=f"Expected Guest Arrived: {guest.name}", body=body, timestamp=_now()
    )


def no_show(guest: Guest, host: Host, expected_time: str, *, now: datetime | None = None) -> Notification:
    """Remind the host that an expected guest has not checked in."""
    current = now or datetime.now()
    body = (
        f"{guest.name} was expected at {expected_time} but hasn't checked in yet.\n\n"
        f"Expected time: {expected_time}\n"
        f"Current time: {_clock(current)}\n\n"
        "Would you like to mark them as a no-show?"
    )
    return Notification(to=host.email, subject=f"No-Show Reminder: {guest.name}", body=body, timestamp=_now())


def format_for_display(notification: Notification) -> str:
    """Plain-text preview shown at the desk before or instead of sending."""
    return f"TO: {notification.to}\nSUBJECT: {notification.subject}\n\n{notification.body}"


def batch_notifications(
    guest: Guest,
    hosts: Iterable[Host],
    kind: BatchKind,
    *,
    include_company: bool = True,
    include_time: bool = True,
    tone: Tone = "professional",
    now: datetime | None = None,
) -> list[Notification]:
    """One notification per host, for meetings with several attendees.

    Returning visitors are measured from ``guest.last_visit``, falling back to
    the check-in time.
    """
    notifications = []
    for host in hosts:
        if kind == "arrival":
            notification = visitor_arrival(
                guest, host, include_company=include_company, include_time=include_time, tone=tone
            )
        elif kind == "expected":
            notification = expected_guest(guest, host)
        else:
            previous = guest.last_visit or guest.check_in_time
            notification = returning_visitor(guest, host, previous, tone=tone, now=now)
        notifications.append(notification)
    return notifications


def notification_for_status(
    guest: Guest,
    host: Host,
    *,
    include_company: bool = True,
    include_time: bool = True,
    tone: Tone = "professional",
    now: datetime | None = None,
) -> Notification:
    """Pick the template matching the guest's status and visit history.

    Expected and no-show guests use ``check_in_time`` as the expected time.
    """
    if guest.status is GuestStatus.CHECKED_IN and (guest.visit_count or 0) > 1:
        previous = guest.last_visit or guest.check_in_time
        return returning_visitor(guest, host, previous, tone=tone, now=now)
    if guest.status is GuestStatus.EXPECTED:
        return expected_guest(guest, host, _clock(guest.check_in_time))
    if guest.status is GuestStatus.NO_SHOW:
        return no_show(guest, host, _clock(guest.check_in_time), now=now)
    return visitor_arrival(guest, host, include_company=include_company, include_time=include_time, tone=tone)


def _sms(text: str) -> str:
    return text[:SMS_MAX_LENGTH]


def visitor_arrival_sms(guest: Guest) -> str:
    """``<name> from <company> has arrived (HH:MM)``; the time is dropped first when too long."""
    company = _from_company(guest)
    message = f"{guest.name}{company} has arrived ({_clock(guest.check_in_time)})"
    if len(message) > SMS_MAX_LENGTH:
        message = f"{guest.name}{company} has arrived"
    return _sms(message)


def returning_visitor_sms(guest: Guest, previous_visit: datetime, *, now: datetime | None = None) -> str:
    current = now or datetime.now(previous_visit.tzinfo)
    days = max((current - previous_visit).days, 0)
    return _sms(f"{guest.name}{_from_company(guest)} has arrived (visited {days}d ago)")


def expected_guest_sms(guest: Guest, expected_time: str | None = None) -> str:
    status = f" (expected {expected_time})" if expected_time else ""
    return _sms(f"{guest.name}{_from_company(guest)} has arrived{status}")


def no_show_sms(guest: Guest, expected_time: str) -> str:
    return _sms(f"{guest.name} was expected at {expected_time}, still waiting?")


def sms_address(host: Host) -> str:
    """Email-to-SMS gateway address of ``host``, e.g. ``07700900000@vodafone.net``.

    Raises:
        ValueError: If the host has not opted in, has no phone or carrier,
            or uses a carrier without a known gateway.
    """
    if not host.notify_by_sms or not host.phone or not host.sms_carrier:
        raise ValueError(f"SMS not configured for host {host.name}")
    gateway = SMS_GATEWAYS.get(host.sms_carrier.strip().lower())
    if gateway is None:
        raise ValueError(f"Unknown SMS carrier: {host.sms_carrier}")
    return _PHONE_NOISE.sub("", host.phone) + gateway


def sms_notification(host: Host, message: str) -> Notification:
    """Wrap an SMS text into a notification addressed to the host's gateway."""
    return Notification(to=sms_address(host), subject=SMS_SUBJECT, body=_sms(message), timestamp=_now())


__all__ = [
    "SMS_GATEWAYS",
    "SMS_MAX_LENGTH",
    "Guest",
    "GuestStatus",
    "Host",
    "Notification",
    "Tone",
    "batch_notifications",
    "expected_guest",
    "expected_guest_sms",
    "format_for_display",
    "no_show",
    "no_show_sms",
    "notification_for_status",
    "returning_visitor",
    "returning_visitor_sms",
    "sms_address",
    "sms_notification",
    "visitor_arrival",
    "visitor_arrival_sms",
]
