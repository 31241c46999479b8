# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Per-client fixed-window rate limiter for the HTTP send endpoints.

Each client key (the caller's IP address) gets a counter and a window start.
The window opens with the first request and lasts ``window_seconds``; once
``max_requests`` requests were counted inside it, further requests are
refused until the window expires.

Expired windows are swept every ``sweep_every`` calls to ``hit``, so the
map only holds clients seen within the last window or so.

State lives in memory and is shared by all requests of one process, so
access is serialized with an ``asyncio.Lock``.

Example:
    Guarding an endpoint::

        limiter = RateLimiter(max_requests=10, window_seconds=60)
        if not await limiter.hit(request.client.host):
            raise HTTPException(429, "Rate limit exceeded")
"""

from __future__ import annotations

import asyncio
import time


class RateLimiter:
    """In-memory fixed-window limiter keyed by client.

    Attributes:
        max_requests: Requests allowed per window. 0 or less disables limiting.
        window_seconds: Window length in seconds.
        sweep_every: Drop expired windows after this many calls to :meth:`hit`.
    """

    def __init__(self, max_requests: int = 10, window_seconds: int = 60, sweep_every: int = 100):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.sweep_every = max(sweep_every, 1)
        self._windows: dict[str, tuple[float, int]] = {}
        self._calls = 0
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._windows)

    @property
    def enabled(self) -> bool:
        return self.max_requests > 0

    async def hit(self, key: str) -> bool:
        """Count one request for ``key``.

        Returns:
            True if the request is within the limit, False if it must be
            refused. Refused requests are not counted.
        """
        if not self.enabled:
            return True
        now = time.time()
        async with self._lock:
            self._calls += 1
            if self._calls >= self.sweep_every:
                self._calls = 0
                self._sweep(now)
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            if count >= self.max_requests:
                return False
            self._windows[key] = (started, count + 1)
            return True

    async def retry_after(self, key: str) -> int:
        """Seconds until ``key``'s current window expires (0 if none)."""
        now = time.time()
        async with self._lock:
            entry = self._windows.get(key)
        if entry is None:
            return 0
        return max(int(entry[0] + self.window_seconds - now + 0.999), 0)

    async def cleanup(self) -> int:
        """Drop expired windows. Returns the number removed."""
        now = time.time()
        async with self._lock:
            return self._sweep(now)

    def _sweep(self, now: float) -> int:
        expired = [k for k, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for key in expired:
            del self._windows[key]
        return len(expired)


__all__ = ["RateLimiter"]
