# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for the check-in mailer.

Usage:
    checkin-mailer send --to host@example.com --subject "Hi" --body "Hello"
    checkin-mailer send --to host@example.com --subject "Report" --body-file report.html --html
    checkin-mailer test-connection
    checkin-mailer show-config
    checkin-mailer arrival "Ada Lovelace" --company Acme --host-email grace@example.com --send
    checkin-mailer arrival "Ada Lovelace" --host-email grace@example.com --sms-phone "07700 900000" --sms-carrier vodafone
    checkin-mailer serve --port 8000

SMTP settings come from ``SMTP_*`` environment variables, optionally loaded
from a ``.env`` file (``--env-file`` or ``CKM_ENV_FILE``).
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import load_env_files, load_settings
from .errors import ConfigError
from .logger import configure_logging
from .mailer import Mailer, SendRequest
from .notifications import (
    Guest,
    Host,
    format_for_display,
    sms_notification,
    visitor_arrival,
    visitor_arrival_sms,
)

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    console.print_json(json.dumps(data, indent=2, default=str))


def get_mailer() -> Mailer:
    """Build the mailer, exiting with status 2 when unconfigured."""
    try:
        return Mailer.from_env()
    except ConfigError as exc:
        print_error(str(exc))
        raise SystemExit(2) from exc


@click.group()
@click.version_option(__version__, prog_name="checkin-mailer")
@click.option("--env-file", type=click.Path(dir_okay=False, path_type=Path), help="Load variables from this .env file.")
@click.option("--log-level", default=None, help="Logging level (default: CKM_LOG_LEVEL or INFO).")
def main(env_file: Path | None, log_level: str | None) -> None:
    """Check-in notification mailer."""
    load_env_files([env_file] if env_file else None)
    configure_logging(log_level)


@main.command()
@click.option("--to", "to_addr", required=True, help="Recipient address.")
@click.option("--subject", required=True, help="Subject line.")
@click.option("--body", default=None, help="Body text.")
@click.option("--body-file", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Read the body from a file.")
@click.option("--html", "is_html", is_flag=True, help="Send as text/html.")
@click.option("--from-email", default=None, help="Sender address (default: SMTP_USER).")
@click.option("--from-name", default=None, help="Sender display name.")
@click.option("--json", "as_json", is_flag=True, help="Print the raw result as JSON.")
def send(
    to_addr: str,
    subject: str,
    body: str | None,
    body_file: Path | None,
    is_html: bool,
    from_email: str | None,
    from_name: str | None,
    as_json: bool,
) -> None:
    """Send one email."""
    if body_file is not None:
        body = body_file.read_text(encoding="utf-8")
    if body is None:
        raise click.UsageError("Provide --body or --body-file")

    mailer = get_mailer()
    result = run_async(
        mailer.send(
            SendRequest(
                to=to_addr,
                subject=subject,
                body=body,
                from_email=from_email,
                from_name=from_name,
                is_html=is_html,
            )
        )
    )
    if as_json:
        print_json(result.to_dict())
    elif result.success:
        print_success(f"Email sent to {to_addr} (Message-ID {result.message_id})")
    else:
        print_error(result.error or "Send failed")
    if not result.success:
        raise SystemExit(1)


@main.command("test-connection")
def test_connection() -> None:
    """Connect and authenticate without sending mail."""
    mailer = get_mailer()
    check = run_async(mailer.test_connection())
    if check.success:
        print_success(check.message)
    else:
        print_error(check.message)
        raise SystemExit(1)


@main.command("show-config")
def show_config() -> None:
    """Show SMTP settings (the password is never printed)."""
    mailer = get_mailer()
    table = Table(title="SMTP configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in mailer.get_config().items():
        table.add_row(key, str(value))
    console.print(table)


@main.command()
@click.argument("guest_name")
@click.option("--company", default=None, help="Guest's company.")
@click.option("--host-name", default="Host", help="Host's name.")
@click.option("--host-email", required=True, help="Host's address.")
@click.option("--tone", type=click.Choice(["professional", "friendly", "casual"]), default="professional")
@click.option("--sms-phone", default=None, help="Send a 160 character SMS to this phone instead of an email.")
@click.option("--sms-carrier", default=None, help="Carrier of --sms-phone (vodafone, ee, o2, three, tmobile, att, verizon).")
@click.option("--send", "do_send", is_flag=True, help="Send the notification instead of only previewing it.")
def arrival(
    guest_name: str,
    company: str | None,
    host_name: str,
    host_email: str,
    tone: str,
    sms_phone: str | None,
    sms_carrier: str | None,
    do_send: bool,
) -> None:
    """Preview (or send) a visitor arrival notification."""
    guest = Guest(name=guest_name, company=company, check_in_time=datetime.now())
    if sms_phone:
        host = Host(name=host_name, email=host_email, phone=sms_phone, sms_carrier=sms_carrier, notify_by_sms=True)
        try:
            notification = sms_notification(host, visitor_arrival_sms(guest))
        except ValueError as exc:
            print_error(str(exc))
            raise SystemExit(2) from exc
    else:
        notification = visitor_arrival(guest, Host(name=host_name, email=host_email), tone=tone)
    console.print(format_for_display(notification), markup=False)
    if not do_send:
        return
    mailer = get_mailer()
    sender = load_settings().notification_sender
    result = run_async(
        mailer.send(
            SendRequest(
                to=notification.to,
                subject=notification.subject,
                body=notification.body,
                from_email=sender.email,
                from_name=sender.name,
            )
        )
    )
    if result.success:
        print_success(f"Notification sent to {notification.to}")
    else:
        print_error(result.error or "Send failed")
        raise SystemExit(1)


@main.command()
@click.option("--host", default=None, help="Bind address (default from settings).")
@click.option("--port", type=int, default=None, help="Bind port (default from settings).")
def serve(host: str | None, port: int | None) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "checkin_mailer.server:app",
        host=host or settings.http_host,
        port=port or settings.http_port,
    )


if __name__ == "__main__":
    main()
