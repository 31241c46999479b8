# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for the check-in mailer.

All metrics use the ``ckm_`` prefix.

Metrics exposed:
    - ``ckm_sent_total``: Counter of accepted emails per email type.
    - ``ckm_errors_total``: Counter of failed sends per email type and
      error code.
    - ``ckm_rate_limited_total``: Counter of requests refused by the rate
      limiter.

Example:
    Accessing metrics via the REST API::

        GET /metrics
"""

from prometheus_client import CollectorRegistry, Counter, generate_latest


class MailMetrics:
    """Prometheus metrics collector for the mailer.

    Attributes:
        registry: The Prometheus CollectorRegistry holding all metrics.
        sent: Counter tracking accepted emails.
        errors: Counter tracking failed sends.
        rate_limited: Counter tracking refused requests.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """Initialize metrics with an optional custom registry.

        Args:
            registry: Optional Prometheus CollectorRegistry. A private
                registry is created when omitted, so several apps (and
                tests) can coexist in one process.
        """
        self.registry = registry or CollectorRegistry()
        self.sent = Counter(
            "ckm_sent_total",
            "Total accepted emails",
            ["email_type"],
            registry=self.registry,
        )
        self.errors = Counter(
            "ckm_errors_total",
            "Total failed sends",
            ["email_type", "reason"],
            registry=self.registry,
        )
        self.rate_limited = Counter(
            "ckm_rate_limited_total",
            "Total requests refused by the rate limiter",
            registry=self.registry,
        )

    def inc_sent(self, email_type: str | None) -> None:
        self.sent.labels(email_type=email_type or "default").inc()

    def inc_error(self, email_type: str | None, reason: str | None) -> None:
        self.errors.labels(email_type=email_type or "default", reason=reason or "unknown").inc()

    def inc_rate_limited(self) -> None:
        self.rate_limited.inc()

    def generate_latest(self) -> bytes:
        """Return metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)


__all__ = ["MailMetrics"]
