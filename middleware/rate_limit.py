"""
Cooldown gate that keeps a failing endpoint from flooding the alert channel. Each (client, endpoint) pair may raise one alert per cooldown window; the first failure after a quiet period always goes through. Endpoints on the exception list are either never alerted on or always alerted on, depending on the configured policy.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from ipaddress import ip_address
from typing import Callable, Dict, Iterable, Optional

from starlette.requests import HTTPConnection

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_SECONDS = 600.0
KEY_SEPARATOR = "#"


class ExceptionUrlPolicy(str, Enum):
    SUPPRESS = "suppress"
    COOLDOWN_EXEMPT = "cooldown_exempt"


def _valid_ip(value: str) -> Optional[str]:
    candidate = (value or "").strip()
    if not candidate:
        return None
    try:
        ip_address(candidate)
        return candidate
    except ValueError:
        return None


def rate_limit_key(client: str, endpoint: str) -> str:
    return f"{client}{KEY_SEPARATOR}{endpoint}"


class CooldownRateLimiter:

    def __init__(
        self,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        *,
        clock: Callable[[], float] = time.time,
        gc_every: int = 1024,
        max_states: int = 100_000,
    ) -> None:
        self._lock = threading.Lock()
        self._last_notified: Dict[str, float] = {}
        self._cooldown = float(cooldown_seconds)
        self._clock = clock
        self._gc_every = max(1, int(gc_every))
        self._max_states = max(1, int(max_states))
        self._ops = 0

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown

    def last_notified(self, key: str) -> Optional[float]:
        with self._lock:
            return self._last_notified.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_notified)

    def __bool__(self) -> bool:
        return True

    def _cleanup(self, now: float, cooldown: float) -> None:
        self._ops += 1
        if self._ops % self._gc_every != 0:
            return
        # entries older than the cooldown would be allowed anyway, dropping them is lossless
        stale = [k for k, ts in self._last_notified.items() if now - ts > cooldown]
        for k in stale:
            self._last_notified.pop(k, None)

    def should_notify(self, key: str, now: Optional[float] = None, cooldown: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        cooldown = self._cooldown if cooldown is None else float(cooldown)

        with self._lock:
            self._cleanup(now, cooldown)

            last = self._last_notified.get(key)
            if last is not None and now - last <= cooldown:
                return False

            if last is None and len(self._last_notified) >= self._max_states:
                oldest = min(self._last_notified, key=self._last_notified.__getitem__)
                self._last_notified.pop(oldest, None)

            self._last_notified[key] = now
            return True


class NotificationGate:
    """Combines the exception URL list with the cooldown limiter."""

    def __init__(
        self,
        limiter: CooldownRateLimiter,
        exception_urls: Iterable[str] = (),
        policy: ExceptionUrlPolicy = ExceptionUrlPolicy.SUPPRESS,
    ) -> None:
        self.limiter = limiter
        self.exception_urls = frozenset(exception_urls)
        self.policy = ExceptionUrlPolicy(policy)

    def should_notify(self, client: str, endpoint: str) -> bool:
        if endpoint in self.exception_urls:
            if self.policy is ExceptionUrlPolicy.SUPPRESS:
                logger.debug("Suppressing alert for exception URL %s", endpoint)
                return False
            return True
        return self.limiter.should_notify(rate_limit_key(client, endpoint))


def client_ip(conn: HTTPConnection, trust_proxy_headers: bool = True) -> str:
    if trust_proxy_headers:
        forwarded_for = (conn.headers.get("x-forwarded-for") or "").strip()
        if forwarded_for:
            first = forwarded_for.split(",", 1)[0].strip()
            valid_first = _valid_ip(first)
            if valid_first:
                return valid_first

        real_ip = (conn.headers.get("x-real-ip") or "").strip()
        valid_real_ip = _valid_ip(real_ip)
        if valid_real_ip:
            return valid_real_ip

    direct = (conn.client.host if conn.client else "").strip()
    return _valid_ip(direct) or direct or "unknown"
