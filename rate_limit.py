"""
Fixed-window request limiting per client address.

Counters live behind a CounterStore so the limiter can run against the
in-process store (single instance) or a shared one; the clock is
injected so windows can be tested without waiting.
"""
import logging
import threading
import time
from typing import Callable, Dict, Optional, Protocol

from fastapi import Request

import config
from errors import RateLimitError

logger = logging.getLogger(__name__)


class CounterStore(Protocol):
    def hit(self, key: str, now: float, window_seconds: float) -> int:
        ...


class InMemoryCounterStore:
    """Process-local counters. Not shared between workers and lost on restart."""

    def __init__(self):
        self._entries: Dict[str, Dict[str, float]] = {}
        self._lock = threading.Lock()

    def _sweep(self, now: float, window_seconds: float) -> None:
        expired = [k for k, v in self._entries.items() if now - v["windowStart"] >= window_seconds]
        for key in expired:
            del self._entries[key]

    def hit(self, key: str, now: float, window_seconds: float) -> int:
        with self._lock:
            self._sweep(now, window_seconds)
            entry = self._entries.get(key)
            if entry is None:
                entry = {"count": 0, "windowStart": now}
                self._entries[key] = entry
            entry["count"] += 1
            return int(entry["count"])

    def __len__(self) -> int:
        return len(self._entries)


class RateLimiter:
    def __init__(self, store: Optional[CounterStore] = None, limit: int = 100,
                 window_seconds: float = 15 * 60, clock: Callable[[], float] = time.monotonic):
        self.store = store if store is not None else InMemoryCounterStore()
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock

    def check(self, key: str) -> int:
        count = self.store.hit(key, self.clock(), self.window_seconds)
        if count > self.limit:
            logger.warning("Rate limit exceeded for %s (%d requests)", key, count)
            raise RateLimitError()
        return count


def _trusts_proxy_headers(peer: Optional[str]) -> bool:
    trusted = config.TRUSTED_PROXIES
    return "*" in trusted or (peer is not None and peer in trusted)


def client_address(request: Request) -> str:
    """
    Address used for rate limiting and audit entries.

    X-Forwarded-For and X-Real-IP are only honoured when the connecting
    peer is listed in TRUSTED_PROXIES ("*" trusts any peer).
    """
    peer = request.client.host if request.client and request.client.host else None
    if _trusts_proxy_headers(peer):
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    return peer or "unknown"


limiter = RateLimiter(limit=config.RATE_LIMIT_MAX, window_seconds=config.RATE_LIMIT_WINDOW_SECONDS)


def rate_limited(request: Request) -> None:
    limiter.check(client_address(request))
